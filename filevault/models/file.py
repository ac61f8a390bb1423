"""File record model - one row per upload."""
import uuid
from datetime import datetime, timezone
from sqlalchemy import Column, String, DateTime, ForeignKey, Index
from sqlalchemy.orm import relationship
from .base import Base


def _new_id() -> str:
    return str(uuid.uuid4())


class FileRecord(Base):
    """
    An owner's upload. Points at the blob holding its content.

    Deleting a file record never touches the blob, which other file records
    may still reference.
    """
    __tablename__ = 'files'

    id = Column(String(36), primary_key=True, default=_new_id)

    owner_id = Column(String(64), nullable=False, index=True)

    # Name as given by the uploader
    display_name = Column(String(255), nullable=False)

    # Declared MIME type of this upload
    mime_type = Column(String(255), nullable=False, default='application/octet-stream')

    content_hash = Column(String(64), ForeignKey('blobs.content_hash'), nullable=False, index=True)

    # Opaque folder reference, not interpreted here
    folder_id = Column(String(64), nullable=True)

    # Metadata
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    updated_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    __table_args__ = (
        Index('ix_files_owner_hash', 'owner_id', 'content_hash'),
    )

    # Relationships
    blob = relationship("BlobRecord", lazy='joined')
    shares = relationship("ShareToken", back_populates="file", cascade="all, delete-orphan", passive_deletes=True)
    direct_shares = relationship(
        "DirectShare", back_populates="file", cascade="all, delete-orphan", passive_deletes=True
    )

    @property
    def size(self) -> int:
        return self.blob.size

    def __repr__(self):
        return f"<FileRecord(id={self.id[:8]}, owner='{self.owner_id}', name='{self.display_name}')>"
