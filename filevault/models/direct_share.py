"""Direct share model - a file shared from one user to another."""
import uuid
from datetime import datetime, timezone
from sqlalchemy import Column, String, Boolean, DateTime, ForeignKey, Text, UniqueConstraint
from sqlalchemy.orm import relationship
from .base import Base


class DirectShare(Base):
    """
    A file handed to a specific recipient, with an optional message.

    A file can be shared with the same recipient only once.
    """
    __tablename__ = 'direct_shares'

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    file_id = Column(String(36), ForeignKey('files.id', ondelete='CASCADE'), nullable=False, index=True)
    from_user_id = Column(String(64), nullable=False, index=True)
    to_user_id = Column(String(64), nullable=False, index=True)
    message = Column(Text, nullable=True)
    is_read = Column(Boolean, nullable=False, default=False)

    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    updated_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    __table_args__ = (
        UniqueConstraint('file_id', 'to_user_id', name='uq_direct_share_file_recipient'),
    )

    file = relationship("FileRecord", back_populates="direct_shares")

    def __repr__(self):
        return f"<DirectShare(file={self.file_id[:8]}, from='{self.from_user_id}', to='{self.to_user_id}')>"
