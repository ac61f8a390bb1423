"""Blob record model - one row per distinct piece of content."""
import enum
from datetime import datetime, timezone
from sqlalchemy import Column, String, BigInteger, DateTime, Enum as SQLEnum
from .base import Base
from filevault.storage.refs import LocalPath, ObjectKey, StorageRef


class StorageKind(enum.Enum):
    """Which backend holds a blob's bytes."""
    OBJECT = "object"  # Object storage (S3 / MinIO)
    LOCAL = "local"    # Legacy filesystem upload directory


class BlobRecord(Base):
    """
    A unique piece of file content, identified by its content hash.

    Many file records (from the same or different owners) may point at one
    blob. Rows are immutable once created.
    """
    __tablename__ = 'blobs'

    # SHA-256 hex digest of the content
    content_hash = Column(String(64), primary_key=True)

    # Size in bytes
    size = Column(BigInteger, nullable=False)

    mime_type = Column(String(255), nullable=False, default='application/octet-stream')

    # Where the bytes live
    storage_kind = Column(SQLEnum(StorageKind), nullable=False, default=StorageKind.OBJECT)
    storage_key = Column(String(512), nullable=False)

    # Metadata
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    @property
    def storage_ref(self) -> StorageRef:
        if self.storage_kind == StorageKind.LOCAL:
            return LocalPath(self.storage_key)
        return ObjectKey(self.storage_key)

    @staticmethod
    def columns_for(content_hash: str, size: int, mime_type: str, ref: StorageRef) -> dict:
        """Column values for a new row pointing at ``ref``."""
        if isinstance(ref, LocalPath):
            kind, key = StorageKind.LOCAL, ref.path
        else:
            kind, key = StorageKind.OBJECT, ref.key
        return {
            'content_hash': content_hash,
            'size': size,
            'mime_type': mime_type,
            'storage_kind': kind,
            'storage_key': key,
            'created_at': datetime.now(timezone.utc),
        }

    def __repr__(self):
        return f"<BlobRecord(hash='{self.content_hash[:8]}...', size={self.size})>"
