"""
Blob registry: the dedup index over stored content.

One row per distinct content hash. New content is written to storage under
a key derived from its hash *before* the row is inserted, and the insert is
conditional, so concurrent uploads of the same new content need no lock:
every writer targets the same key with the same bytes, exactly one insert
applies, and the others read back the winner's row.
"""
import logging
from typing import BinaryIO, List, Optional, Tuple

from sqlalchemy import exists, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from filevault.errors import StorageError
from filevault.models import BlobRecord, FileRecord
from filevault.storage import LocalPath, ObjectKey, StorageBackend, StorageRef, blob_key

logger = logging.getLogger(__name__)


class BlobRegistry:
    """
    Lookup-or-create access to blob records and the bytes behind them.

    Args:
        db: Database session
        storage: Primary backend; all new content is written here
        legacy_storage: Filesystem backend holding records that predate the
            primary one (optional)
    """

    def __init__(self, db: Session, storage: StorageBackend,
                 legacy_storage: Optional[StorageBackend] = None):
        self.db = db
        self.storage = storage
        self.legacy_storage = legacy_storage

    def lookup(self, content_hash: str) -> Optional[BlobRecord]:
        return self.db.get(BlobRecord, content_hash, populate_existing=True)

    def insert_if_absent(self, values: dict) -> bool:
        """
        Insert a blob row unless one with the same hash exists.

        The caller commits. Returns whether this call inserted the row.
        """
        dialect = self.db.get_bind().dialect.name
        if dialect == 'sqlite':
            stmt = sqlite_insert(BlobRecord).values(**values).on_conflict_do_nothing(
                index_elements=['content_hash']
            )
        elif dialect == 'postgresql':
            stmt = pg_insert(BlobRecord).values(**values).on_conflict_do_nothing(
                index_elements=['content_hash']
            )
        else:
            # No native upsert: let the unique key arbitrate inside a savepoint
            try:
                with self.db.begin_nested():
                    self.db.add(BlobRecord(**values))
                return True
            except IntegrityError:
                return False

        result = self.db.execute(stmt)
        return result.rowcount == 1

    def upsert(self, content_hash: str, size: int, mime_type: str,
               data: BinaryIO) -> Tuple[BlobRecord, bool]:
        """
        Return the blob for ``content_hash``, storing ``data`` first if the
        content is new.

        Args:
            content_hash: Verified hash of ``data``
            size: Verified size of ``data``
            mime_type: MIME type recorded on first upload
            data: Staged content, positioned at its start

        Returns:
            Tuple of (blob, created). ``created`` is False on a dedup hit and
            when a concurrent upload inserted the row first.

        Raises:
            StorageError: if the bytes could not be stored; no row is created
        """
        existing = self.lookup(content_hash)
        if existing is not None:
            logger.info(f"Dedup hit for {content_hash[:12]}, no storage write")
            return existing, False

        key = blob_key(content_hash)
        self.storage.put(key, data, size)

        values = BlobRecord.columns_for(content_hash, size, mime_type, ObjectKey(key))
        try:
            applied = self.insert_if_absent(values)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        if applied:
            logger.info(f"Stored new blob {content_hash[:12]} ({size} bytes) at {key}")
        else:
            logger.warning(f"Concurrent upload registered blob {content_hash[:12]} first; reusing it")

        blob = self.lookup(content_hash)
        return blob, applied

    def backend_for(self, ref: StorageRef) -> StorageBackend:
        """Pick the backend that holds ``ref``."""
        if isinstance(ref, LocalPath):
            if self.legacy_storage is None:
                raise StorageError(f"No legacy storage configured for {ref.path}")
            return self.legacy_storage
        if isinstance(ref, ObjectKey):
            return self.storage
        raise TypeError(f"Unknown storage reference: {ref!r}")

    def open(self, blob: BlobRecord) -> BinaryIO:
        """Open a stream over the blob's bytes. The caller closes it."""
        ref = blob.storage_ref
        return self.backend_for(ref).get(ref.path if isinstance(ref, LocalPath) else ref.key)

    def reference_count(self, content_hash: str) -> int:
        return self.db.query(FileRecord).filter(FileRecord.content_hash == content_hash).count()

    def has_other_owners(self, file: FileRecord) -> bool:
        """Whether another file record shares ``file``'s content."""
        stmt = select(exists().where(
            FileRecord.content_hash == file.content_hash,
            FileRecord.id != file.id,
        ))
        return bool(self.db.execute(stmt).scalar())

    def find_orphans(self) -> List[BlobRecord]:
        """
        Blobs no file record references any more.

        Orphans are reported, never reclaimed here.
        """
        referenced = select(FileRecord.content_hash).where(
            FileRecord.content_hash == BlobRecord.content_hash
        )
        return self.db.query(BlobRecord).filter(~referenced.exists()).order_by(BlobRecord.created_at).all()
