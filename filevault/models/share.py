"""Share token model - public and direct access credentials for a file."""
import enum
import uuid
from datetime import datetime, timezone
from typing import Optional
from sqlalchemy import Column, String, Integer, Boolean, DateTime, ForeignKey, Text, Enum as SQLEnum
from sqlalchemy.orm import relationship
from .base import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """Attach UTC to naive datetimes (SQLite drops the offset on the way back)."""
    if dt is None or dt.tzinfo is not None:
        return dt
    return dt.replace(tzinfo=timezone.utc)


class ShareKind(enum.Enum):
    PUBLIC = "public"  # Anyone holding the token
    DIRECT = "direct"  # Only the target user


class ShareState(enum.Enum):
    """Access state of a share token, computed at access time."""
    ACTIVE = "active"
    EXPIRED = "expired"
    EXHAUSTED = "exhausted"
    REVOKED = "revoked"


class ShareToken(Base):
    """
    A credential granting access to a file without vault authentication.

    Expiry and exhaustion are never written back; they are derived from
    expires_at and download_count whenever the token is used. Rows are kept
    after they stop being redeemable so their statistics stay available.
    """
    __tablename__ = 'share_tokens'

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))

    file_id = Column(String(36), ForeignKey('files.id', ondelete='CASCADE'), nullable=False, index=True)

    kind = Column(SQLEnum(ShareKind), nullable=False, default=ShareKind.PUBLIC)

    # Opaque URL-safe secret, unrelated to the row id
    token = Column(String(128), nullable=False, unique=True)

    # User who issued the share
    created_by = Column(String(64), nullable=False)

    # Recipient for direct-kind tokens
    target_user_id = Column(String(64), nullable=True)

    # Limits (None means unlimited)
    expires_at = Column(DateTime(timezone=True), nullable=True)
    max_downloads = Column(Integer, nullable=True)

    download_count = Column(Integer, nullable=False, default=0)
    is_active = Column(Boolean, nullable=False, default=True)

    # Metadata
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    # Relationships
    file = relationship("FileRecord", back_populates="shares")
    downloads = relationship(
        "DownloadLog", back_populates="share", cascade="all, delete-orphan", passive_deletes=True
    )

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        if self.expires_at is None:
            return False
        return (now or utcnow()) > as_utc(self.expires_at)

    def is_exhausted(self) -> bool:
        if self.max_downloads is None:
            return False
        return self.download_count >= self.max_downloads

    def state(self, now: Optional[datetime] = None) -> ShareState:
        if not self.is_active:
            return ShareState.REVOKED
        if self.is_expired(now):
            return ShareState.EXPIRED
        if self.is_exhausted():
            return ShareState.EXHAUSTED
        return ShareState.ACTIVE

    def __repr__(self):
        return f"<ShareToken(id={self.id[:8]}, kind={self.kind.value}, downloads={self.download_count})>"


class DownloadLog(Base):
    """One successful redemption of a share token."""
    __tablename__ = 'download_logs'

    id = Column(Integer, primary_key=True, autoincrement=True)
    share_id = Column(String(36), ForeignKey('share_tokens.id', ondelete='CASCADE'), nullable=False, index=True)
    ip_address = Column(String(64), nullable=True)
    user_agent = Column(Text, nullable=True)
    downloaded_at = Column(DateTime(timezone=True), default=utcnow, index=True)

    share = relationship("ShareToken", back_populates="downloads")
