import os
import tempfile
from pathlib import Path
from typing import BinaryIO

from filevault.errors import NotFoundError, StorageError
from .base import CHUNK_SIZE, ReplayableStream, StorageBackend

# OSErrors that will not go away by trying again
PERMANENT_ERRORS = (
    FileNotFoundError,
    FileExistsError,
    IsADirectoryError,
    NotADirectoryError,
    PermissionError,
)


class FilesystemStorage(StorageBackend):
    """
    Filesystem-based storage backend.
    Stores objects in a local directory, one file per key.

    Also serves records created before object storage existed, whose keys are
    paths relative to the legacy upload directory.
    """

    def __init__(self, base_path: str = '.filevault/objects', max_attempts: int = 3):
        """
        Initialize filesystem storage.

        Args:
            base_path: Base directory for storing objects
            max_attempts: Attempts per operation before giving up
        """
        super().__init__(max_attempts=max_attempts)
        self.base_path = Path(base_path)
        self.base_path.mkdir(parents=True, exist_ok=True)

    def _is_transient(self, exc: BaseException) -> bool:
        return isinstance(exc, OSError) and not isinstance(exc, PERMANENT_ERRORS)

    def _make_path(self, key: str) -> Path:
        """Resolve ``key`` below the base directory, refusing keys that escape it."""
        base = self.base_path.resolve()
        path = (base / key).resolve()
        if base != path and base not in path.parents:
            raise StorageError(f"Invalid storage key: {key}")
        return path

    def put(self, key: str, stream: BinaryIO, size: int) -> None:
        path = self._make_path(key)
        replay = ReplayableStream(stream)

        def _write():
            source = replay.begin()
            # Content-addressed keys: an existing object of the right size is this content
            if path.exists() and path.stat().st_size == size:
                return

            path.parent.mkdir(parents=True, exist_ok=True)
            # Stage next to the target so the final rename is atomic
            fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix='.tmp-')
            try:
                with os.fdopen(fd, 'wb') as out:
                    written = _copy(source, out)
                    out.flush()
                    os.fsync(out.fileno())
                if written != size:
                    raise StorageError(
                        f"Short write for {key}: expected {size} bytes, got {written}"
                    )
                os.replace(tmp_name, path)
            except BaseException:
                try:
                    os.unlink(tmp_name)
                except FileNotFoundError:
                    pass
                raise

        self._call('write', key, _write)

    def get(self, key: str) -> BinaryIO:
        path = self._make_path(key)

        def _open():
            try:
                return open(path, 'rb')
            except FileNotFoundError:
                raise NotFoundError(f"No object stored under {key}")

        return self._call('read', key, _open)

    def exists(self, key: str) -> bool:
        return self._make_path(key).is_file()

    def delete(self, key: str) -> bool:
        path = self._make_path(key)

        def _delete():
            try:
                path.unlink()
            except FileNotFoundError:
                return False
            # Try to remove empty parent directories
            if path.parent != self.base_path.resolve():
                try:
                    path.parent.rmdir()
                except OSError:
                    pass  # Directory not empty
            return True

        return self._call('delete', key, _delete)


def _copy(source: BinaryIO, out: BinaryIO) -> int:
    written = 0
    while True:
        chunk = source.read(CHUNK_SIZE)
        if not chunk:
            return written
        out.write(chunk)
        written += len(chunk)
