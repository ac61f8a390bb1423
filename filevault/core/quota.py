"""
Per-user storage quota over logical usage.

A user's usage is the summed size of the distinct blobs their own file
records point at. Physical sharing is ignored: content another user already
stored is charged in full, and content the user already owns is free.
"""
import logging
from dataclasses import dataclass
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from filevault.models import BlobRecord, FileRecord

logger = logging.getLogger(__name__)

MB = 1024 * 1024


@dataclass
class QuotaUsage:
    used_bytes: int
    limit_bytes: int

    @property
    def remaining_bytes(self) -> int:
        return max(self.limit_bytes - self.used_bytes, 0)

    @property
    def usage_percentage(self) -> float:
        if self.limit_bytes <= 0:
            return 100.0
        return self.used_bytes / self.limit_bytes * 100

    def to_dict(self) -> dict:
        return {
            'used_bytes': self.used_bytes,
            'limit_bytes': self.limit_bytes,
            'remaining_bytes': self.remaining_bytes,
            'usage_percentage': self.usage_percentage,
        }


@dataclass
class QuotaDecision:
    """Outcome of a quota check. A denial is an ordinary result, not an error."""
    allowed: bool
    used_bytes: int
    limit_bytes: int
    charged_bytes: int
    reason: Optional[str] = None


class QuotaAccountant:
    def __init__(self, db: Session, limit_bytes: int):
        self.db = db
        self.limit_bytes = limit_bytes

    def usage(self, user_id: str) -> int:
        owned = (
            select(FileRecord.content_hash)
            .where(FileRecord.owner_id == user_id)
            .distinct()
            .subquery()
        )
        stmt = select(func.coalesce(func.sum(BlobRecord.size), 0)).select_from(BlobRecord).join(
            owned, owned.c.content_hash == BlobRecord.content_hash
        )
        return int(self.db.execute(stmt).scalar())

    def owns_content(self, user_id: str, content_hash: str) -> bool:
        return self.db.query(FileRecord.id).filter(
            FileRecord.owner_id == user_id,
            FileRecord.content_hash == content_hash,
        ).first() is not None

    def check(self, user_id: str, incoming_bytes: int,
              content_hash: Optional[str] = None) -> QuotaDecision:
        """
        Decide whether ``user_id`` may add ``incoming_bytes`` of content.

        Args:
            user_id: Uploading user
            incoming_bytes: Size of the upload
            content_hash: Hash of the upload, when known. Content the user
                already owns costs nothing.

        Returns:
            QuotaDecision; allowed when usage after the upload is within the limit
        """
        used = self.usage(user_id)
        charged = incoming_bytes
        if content_hash is not None and self.owns_content(user_id, content_hash):
            charged = 0

        if used + charged > self.limit_bytes:
            reason = (
                f"{used} bytes used + {charged} bytes requested exceeds "
                f"quota of {self.limit_bytes} bytes"
            )
            logger.warning(f"Quota denied for user {user_id}: {reason}")
            return QuotaDecision(False, used, self.limit_bytes, charged, reason)

        return QuotaDecision(True, used, self.limit_bytes, charged)

    def info(self, user_id: str) -> QuotaUsage:
        return QuotaUsage(used_bytes=self.usage(user_id), limit_bytes=self.limit_bytes)
