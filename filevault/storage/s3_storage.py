import logging
from typing import BinaryIO, Optional

import boto3
from boto3.s3.transfer import TransferConfig
from botocore.config import Config as BotoConfig
from botocore.exceptions import (
    BotoCoreError,
    ClientError,
    ConnectionClosedError,
    ConnectTimeoutError,
    EndpointConnectionError,
    ReadTimeoutError,
)

from filevault.config import Config
from filevault.errors import NotFoundError, StorageError
from .base import ReplayableStream, StorageBackend

logger = logging.getLogger(__name__)

TRANSIENT_CODES = {
    'InternalError',
    'RequestTimeout',
    'RequestTimeTooSkewed',
    'ServiceUnavailable',
    'SlowDown',
    'Throttling',
    'ThrottlingException',
}

NOT_FOUND_CODES = {'404', 'NoSuchKey', 'NotFound'}


def _error_code(e: ClientError) -> str:
    return e.response.get('Error', {}).get('Code', '')


class S3Storage(StorageBackend):
    """
    Handles storage and retrieval of blob content in S3 (or any
    S3-compatible service such as MinIO).

    Uploads go through the managed transfer layer, which switches to
    multipart uploads for large payloads. An object only becomes visible
    once its upload completes, so readers never see partial content.
    """

    backend_errors = (BotoCoreError, ClientError, OSError)

    def __init__(self, bucket: Optional[str] = None, client=None, max_attempts: int = 3,
                 transfer_config: Optional[TransferConfig] = None):
        super().__init__(max_attempts=max_attempts)
        self.bucket = bucket or Config.S3_BUCKET
        if not self.bucket:
            raise ValueError("S3Storage requires a bucket (set S3_BUCKET)")
        # Retries happen in StorageBackend._call; botocore gets a single attempt
        self.s3_client = client or boto3.client(
            's3',
            endpoint_url=Config.S3_ENDPOINT_URL,
            aws_access_key_id=Config.AWS_ACCESS_KEY_ID,
            aws_secret_access_key=Config.AWS_SECRET_ACCESS_KEY,
            region_name=Config.AWS_REGION,
            config=BotoConfig(
                signature_version='s3v4',
                connect_timeout=5,
                read_timeout=60,
                retries={'max_attempts': 1, 'mode': 'standard'},
            ),
        )
        self.transfer_config = transfer_config or TransferConfig()

    def _is_transient(self, exc: BaseException) -> bool:
        if isinstance(exc, (EndpointConnectionError, ConnectionClosedError,
                            ConnectTimeoutError, ReadTimeoutError)):
            return True
        if isinstance(exc, ClientError):
            status = exc.response.get('ResponseMetadata', {}).get('HTTPStatusCode', 0)
            return status >= 500 or _error_code(exc) in TRANSIENT_CODES
        return False

    def _object_size(self, key: str) -> Optional[int]:
        """Size of the object under ``key``, or None if there is none."""
        try:
            response = self.s3_client.head_object(Bucket=self.bucket, Key=key)
        except ClientError as e:
            if _error_code(e) in NOT_FOUND_CODES:
                return None
            raise
        return response['ContentLength']

    def put(self, key: str, stream: BinaryIO, size: int) -> None:
        replay = ReplayableStream(stream)

        def _upload():
            source = replay.begin()
            # Check if already exists (content-addressable storage deduplication)
            if self._object_size(key) == size:
                logger.debug(f"Object {key} already present, skipping upload")
                return

            self.s3_client.upload_fileobj(
                source,
                self.bucket,
                key,
                ExtraArgs={
                    'ContentType': 'application/octet-stream',
                    'Metadata': {'size': str(size)},
                },
                Config=self.transfer_config,
            )

            stored = self._object_size(key)
            if stored != size:
                self.s3_client.delete_object(Bucket=self.bucket, Key=key)
                raise StorageError(
                    f"Short write for {key}: expected {size} bytes, stored {stored}"
                )

        self._call('upload', key, _upload)

    def get(self, key: str) -> BinaryIO:
        def _get():
            try:
                response = self.s3_client.get_object(Bucket=self.bucket, Key=key)
            except ClientError as e:
                if _error_code(e) in NOT_FOUND_CODES:
                    raise NotFoundError(f"No object stored under {key}")
                raise
            return response['Body']

        return self._call('download', key, _get)

    def exists(self, key: str) -> bool:
        return self._call('check', key, self._object_size, key) is not None

    def delete(self, key: str) -> bool:
        def _delete():
            if self._object_size(key) is None:
                return False
            self.s3_client.delete_object(Bucket=self.bucket, Key=key)
            return True

        return self._call('delete', key, _delete)
