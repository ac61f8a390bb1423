"""
Upload ingestion: stream the payload once, hash it, stage it, verify it.

Nothing here touches the database or a storage backend. A staged upload is
what the rest of the pipeline commits from, so a dropped connection can
only ever leave a half-written temp file behind, never a registry row.
"""
import hashlib
import logging
import tempfile
from dataclasses import dataclass
from typing import BinaryIO, Callable, Optional

from filevault.errors import ValidationError
from filevault.storage.base import CHUNK_SIZE

logger = logging.getLogger(__name__)

DEFAULT_MIME_TYPE = 'application/octet-stream'

# How many leading bytes a MIME validator gets to look at
SNIFF_BYTES = 3072

# Uploads up to this size are staged in memory, larger ones spill to disk
SPOOL_LIMIT = 8 * 1024 * 1024

# (leading bytes, declared mime) -> whether the content is acceptable
MimeValidator = Callable[[bytes, str], bool]


def accept_any_mime(head: bytes, declared_mime: str) -> bool:
    return True


def new_hasher():
    return hashlib.sha256()


@dataclass
class StagedUpload:
    """A fully read and verified upload, ready to be committed."""
    content_hash: str
    size: int
    mime_type: str
    data: BinaryIO

    def close(self):
        self.data.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()


def ingest(
    stream: BinaryIO,
    declared_size: int,
    declared_mime: Optional[str] = None,
    mime_validator: Optional[MimeValidator] = None,
    max_size: Optional[int] = None,
) -> StagedUpload:
    """
    Read ``stream`` to the end, hashing and staging it chunk by chunk.

    Args:
        stream: Upload body
        declared_size: Size the client announced
        declared_mime: MIME type the client announced (defaults to octet-stream)
        mime_validator: External verdict on whether the content matches the MIME type
        max_size: Largest accepted upload in bytes

    Returns:
        StagedUpload positioned at the start of the staged bytes. The caller
        must close it.

    Raises:
        ValidationError: on a size mismatch, an oversized upload or a MIME rejection
    """
    if declared_size is None or declared_size < 0:
        raise ValidationError(f"Invalid declared size: {declared_size}")
    if max_size is not None and declared_size > max_size:
        raise ValidationError(
            f"File too large: {declared_size} bytes (max: {max_size} bytes)",
            extra={'declared_size': declared_size, 'max_size': max_size},
        )

    mime_type = declared_mime or DEFAULT_MIME_TYPE
    validator = mime_validator or accept_any_mime

    hasher = new_hasher()
    staged = tempfile.SpooledTemporaryFile(max_size=SPOOL_LIMIT)
    head = b''
    actual = 0
    try:
        # Read at most one byte past the declared size to detect oversized bodies
        while actual <= declared_size:
            chunk = stream.read(min(CHUNK_SIZE, declared_size + 1 - actual))
            if not chunk:
                break
            if len(head) < SNIFF_BYTES:
                head += chunk[:SNIFF_BYTES - len(head)]
            hasher.update(chunk)
            staged.write(chunk)
            actual += len(chunk)

        if actual > declared_size:
            raise ValidationError(
                f"Size mismatch: declared {declared_size} bytes, received more",
                extra={'declared_size': declared_size},
            )
        if actual < declared_size:
            raise ValidationError(
                f"Size mismatch: declared {declared_size} bytes, received {actual}",
                extra={'declared_size': declared_size, 'actual_size': actual},
            )

        if not validator(head, mime_type):
            raise ValidationError(
                f"File content does not match declared MIME type '{mime_type}'",
                extra={'declared_mime': mime_type},
            )
    except BaseException:
        staged.close()
        raise

    staged.seek(0)
    content_hash = hasher.hexdigest()
    logger.debug(f"Ingested {actual} bytes, hash {content_hash[:12]}")
    return StagedUpload(content_hash=content_hash, size=actual, mime_type=mime_type, data=staged)
