import logging
from abc import ABC, abstractmethod
from typing import BinaryIO

from tenacity import Retrying, before_sleep_log, retry_if_exception, stop_after_attempt, wait_exponential

from filevault.errors import StorageError

logger = logging.getLogger(__name__)

CHUNK_SIZE = 1024 * 1024


class StorageBackend(ABC):
    """
    Abstract base class for storage backends.
    Implementations can use S3, filesystem, or any other storage system.

    Keys are opaque strings chosen by the caller. Transfers are streamed in
    both directions; no implementation may read a whole payload into memory.
    """

    def __init__(self, max_attempts: int = 3):
        self.max_attempts = max_attempts

    @abstractmethod
    def put(self, key: str, stream: BinaryIO, size: int) -> None:
        """
        Store ``size`` bytes read from ``stream`` under ``key``.

        Writing the same bytes to the same key twice is harmless. Readers
        never observe a partially written object.

        Args:
            key: Storage key
            stream: Readable binary stream positioned at the start of the payload
            size: Exact number of bytes expected

        Raises:
            StorageError: if the write failed after retries or the byte count
                did not match ``size``
        """
        pass

    @abstractmethod
    def get(self, key: str) -> BinaryIO:
        """
        Open a readable stream over the object stored under ``key``.

        The caller owns the returned stream and must close it.

        Raises:
            NotFoundError: if nothing is stored under ``key``
            StorageError: on backend failure
        """
        pass

    @abstractmethod
    def exists(self, key: str) -> bool:
        """
        Check if an object is stored under ``key``.
        """
        pass

    @abstractmethod
    def delete(self, key: str) -> bool:
        """
        Delete the object stored under ``key``.

        Returns:
            True if deleted, False if not found
        """
        pass

    # Exceptions the underlying client raises for I/O failures
    backend_errors: tuple = (OSError,)

    def _is_transient(self, exc: BaseException) -> bool:
        """Whether ``exc`` is worth another attempt."""
        return False

    def _retrying(self) -> Retrying:
        return Retrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_exponential(multiplier=0.1, max=2),
            retry=retry_if_exception(self._is_transient),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        )

    def _call(self, operation: str, key: str, func, *args, **kwargs):
        """
        Run ``func`` with bounded retries on transient failures.

        Exhausted retries and non-transient backend errors surface as
        StorageError; vault errors raised by ``func`` propagate unchanged.
        """
        try:
            return self._retrying()(func, *args, **kwargs)
        except self.backend_errors as e:
            raise StorageError(f"Failed to {operation} {key}: {e}") from e


class ReplayableStream:
    """
    Hands out the same stream to successive write attempts, seeking back
    to where the payload started before every attempt after the first.
    """

    def __init__(self, stream: BinaryIO):
        self.stream = stream
        self.start = stream.tell() if stream.seekable() else None
        self.attempts = 0

    def begin(self) -> BinaryIO:
        if self.attempts:
            if self.start is None:
                raise StorageError("Cannot retry a write from a non-seekable stream")
            self.stream.seek(self.start)
        self.attempts += 1
        return self.stream

