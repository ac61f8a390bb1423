"""
Share token manager.

A share token moves from ACTIVE to one of three terminal access states:
EXPIRED (past expires_at), EXHAUSTED (download_count reached max_downloads)
or REVOKED (owner set is_active false). Nothing sweeps tokens; the state is
computed whenever a token is used, and rows are kept for their statistics.

Redemption increments the download counter with a single conditional
UPDATE whose predicate restates the ACTIVE conditions. Two redeemers racing
for the last download both pass the read-side check, but only one UPDATE
matches a row.
"""
import logging
import secrets
from datetime import datetime, timezone
from typing import BinaryIO, List, Optional, Tuple

from sqlalchemy import or_, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from filevault.errors import (
    ConflictError,
    ExhaustedError,
    ExpiredError,
    ForbiddenError,
    NotFoundError,
    RevokedError,
    StorageError,
    ValidationError,
)
from filevault.models import DirectShare, DownloadLog, FileRecord, ShareKind, ShareState, ShareToken
from filevault.models.share import as_utc, utcnow
from .blob_registry import BlobRegistry

logger = logging.getLogger(__name__)

# Bytes of randomness in a share token (encoded as ~43 URL-safe characters)
TOKEN_BYTES = 32

RECENT_DOWNLOADS = 10


def generate_token() -> str:
    return secrets.token_urlsafe(TOKEN_BYTES)


def _normalize_expiry(expires_at: Optional[datetime]) -> Optional[datetime]:
    if expires_at is None:
        return None
    return as_utc(expires_at).astimezone(timezone.utc)


def _validate_max_downloads(max_downloads: Optional[int]) -> None:
    if max_downloads is not None and max_downloads < 1:
        raise ValidationError(f"max_downloads must be at least 1, got {max_downloads}")


class ShareManager:
    def __init__(self, db: Session, registry: BlobRegistry, base_url: str = ''):
        self.db = db
        self.registry = registry
        self.base_url = base_url.rstrip('/')

    def share_url(self, share: ShareToken) -> str:
        return f"{self.base_url}/api/share/{share.token}"

    # ------------------------------------------------------------------
    # Public / direct-kind tokens
    # ------------------------------------------------------------------

    def issue(self, file: FileRecord, owner_id: str, expires_at: Optional[datetime] = None,
              max_downloads: Optional[int] = None, target_user_id: Optional[str] = None) -> ShareToken:
        """
        Issue a share token for ``file``.

        Args:
            file: File to share; must belong to ``owner_id``
            owner_id: Issuing user
            expires_at: Moment after which the token stops working (None: never)
            max_downloads: Number of redemptions allowed (None: unlimited)
            target_user_id: Restrict the token to one recipient (direct kind)

        Returns:
            The new ShareToken
        """
        if file.owner_id != owner_id:
            raise ForbiddenError("You can only share your own files")
        _validate_max_downloads(max_downloads)

        share = ShareToken(
            file_id=file.id,
            kind=ShareKind.DIRECT if target_user_id else ShareKind.PUBLIC,
            token=generate_token(),
            created_by=owner_id,
            target_user_id=target_user_id,
            expires_at=_normalize_expiry(expires_at),
            max_downloads=max_downloads,
            download_count=0,
            is_active=True,
        )
        self.db.add(share)
        try:
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        logger.info(f"Issued {share.kind.value} share {share.id} for file {file.id}")
        return share

    def get_by_token(self, token: str) -> Optional[ShareToken]:
        return self.db.query(ShareToken).filter(ShareToken.token == token).first()

    def _get_owned(self, owner_id: str, share_id: str) -> ShareToken:
        share = self.db.query(ShareToken).filter(ShareToken.id == share_id).first()
        if share is None:
            raise NotFoundError("Share not found")
        if share.file.owner_id != owner_id:
            raise ForbiddenError("You can only manage shares of your own files")
        return share

    @staticmethod
    def _raise_for_state(share: ShareToken, now: datetime) -> None:
        state = share.state(now)
        if state == ShareState.REVOKED:
            raise RevokedError()
        if state == ShareState.EXPIRED:
            raise ExpiredError()
        if state == ShareState.EXHAUSTED:
            raise ExhaustedError(extra={'max_downloads': share.max_downloads})

    def claim(self, share_id: str, now: Optional[datetime] = None) -> bool:
        """
        Count one download against ``share_id`` if the token is still ACTIVE.

        Returns:
            Whether the increment applied. The caller commits.
        """
        now = now or utcnow()
        stmt = (
            update(ShareToken)
            .where(
                ShareToken.id == share_id,
                ShareToken.is_active.is_(True),
                or_(ShareToken.expires_at.is_(None), ShareToken.expires_at >= now),
                or_(
                    ShareToken.max_downloads.is_(None),
                    ShareToken.download_count < ShareToken.max_downloads,
                ),
            )
            .values(download_count=ShareToken.download_count + 1, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        return self.db.execute(stmt).rowcount == 1

    def release(self, share_id: str) -> None:
        """Give back a download claimed for a transfer that never started."""
        stmt = (
            update(ShareToken)
            .where(ShareToken.id == share_id, ShareToken.download_count > 0)
            .values(download_count=ShareToken.download_count - 1)
            .execution_options(synchronize_session=False)
        )
        self.db.execute(stmt)
        self.db.commit()

    def redeem(self, token: str, ip_address: Optional[str] = None, user_agent: Optional[str] = None,
               accessor_user_id: Optional[str] = None) -> Tuple[FileRecord, BinaryIO]:
        """
        Redeem a share token and open the shared content.

        Args:
            token: Share token string
            ip_address: Accessor IP, kept in the download log
            user_agent: Accessor user agent, kept in the download log
            accessor_user_id: Authenticated accessor, required for direct-kind tokens

        Returns:
            Tuple of (file, stream). The caller closes the stream.

        Raises:
            NotFoundError: unknown token (RevokedError if the owner revoked it)
            ExpiredError: token past its expiry
            ExhaustedError: download limit reached, including by a concurrent redeemer
            ForbiddenError: direct-kind token presented by someone else
        """
        now = utcnow()
        share = self.get_by_token(token)
        if share is None:
            raise NotFoundError("Share not found")

        self._raise_for_state(share, now)

        if share.kind == ShareKind.DIRECT and share.target_user_id != accessor_user_id:
            raise ForbiddenError("This share was issued to another user")

        file = share.file
        if file is None:
            raise NotFoundError("Shared file no longer exists")

        try:
            applied = self.claim(share.id, now)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        if not applied:
            logger.warning(f"Lost redemption race on share {share.id}")
            current = self.db.get(ShareToken, share.id, populate_existing=True)
            if current is None:
                raise NotFoundError("Share not found")
            self._raise_for_state(current, now)
            raise ExhaustedError()

        try:
            stream = self.registry.open(file.blob)
        except (StorageError, NotFoundError):
            logger.error(f"Could not open content for share {share.id}; releasing download", exc_info=True)
            self.release(share.id)
            raise

        self.db.add(DownloadLog(
            share_id=share.id,
            ip_address=ip_address,
            user_agent=user_agent,
            downloaded_at=now,
        ))
        try:
            self.db.commit()
        except Exception:
            stream.close()
            self.db.rollback()
            raise

        logger.info(f"Share {share.id} redeemed ({share.download_count} downloads)")
        return file, stream

    def list_for_owner(self, owner_id: str) -> List[ShareToken]:
        return (
            self.db.query(ShareToken)
            .join(FileRecord, FileRecord.id == ShareToken.file_id)
            .filter(FileRecord.owner_id == owner_id)
            .order_by(ShareToken.created_at.desc())
            .all()
        )

    def update(self, owner_id: str, share_id: str, is_active: Optional[bool] = None,
               expires_at: Optional[datetime] = None, max_downloads: Optional[int] = None) -> ShareToken:
        share = self._get_owned(owner_id, share_id)
        if is_active is not None:
            share.is_active = is_active
        if expires_at is not None:
            share.expires_at = _normalize_expiry(expires_at)
        if max_downloads is not None:
            _validate_max_downloads(max_downloads)
            share.max_downloads = max_downloads
        try:
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        return share

    def revoke(self, owner_id: str, share_id: str) -> ShareToken:
        return self.update(owner_id, share_id, is_active=False)

    def delete(self, owner_id: str, share_id: str) -> ShareToken:
        share = self._get_owned(owner_id, share_id)
        self.db.delete(share)
        try:
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        return share

    def stats(self, owner_id: str, share_id: str) -> dict:
        share = self._get_owned(owner_id, share_id)
        recent = (
            self.db.query(DownloadLog)
            .filter(DownloadLog.share_id == share.id)
            .order_by(DownloadLog.downloaded_at.desc(), DownloadLog.id.desc())
            .limit(RECENT_DOWNLOADS)
            .all()
        )
        return {
            'download_count': share.download_count,
            'state': share.state().value,
            'recent_downloads': [
                {
                    'ip_address': log.ip_address,
                    'user_agent': log.user_agent,
                    'downloaded_at': as_utc(log.downloaded_at).isoformat(),
                }
                for log in recent
            ],
        }

    # ------------------------------------------------------------------
    # User-to-user shares
    # ------------------------------------------------------------------

    def share_with_user(self, file: FileRecord, from_user_id: str, to_user_id: str,
                        message: Optional[str] = None) -> DirectShare:
        """
        Hand ``file`` to ``to_user_id``. A file goes to a given recipient once.

        Raises:
            ForbiddenError: ``from_user_id`` does not own the file
            ValidationError: sharing with yourself
            ConflictError: already shared with this recipient
        """
        if file.owner_id != from_user_id:
            raise ForbiddenError("You can only share your own files")
        if to_user_id == from_user_id:
            raise ValidationError("Cannot share a file with yourself")

        share = DirectShare(
            file_id=file.id,
            from_user_id=from_user_id,
            to_user_id=to_user_id,
            message=message,
            is_read=False,
        )
        self.db.add(share)
        try:
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            raise ConflictError("File is already shared with this user")

        logger.info(f"File {file.id} shared from {from_user_id} to {to_user_id}")
        return share

    def incoming(self, user_id: str) -> List[DirectShare]:
        return (
            self.db.query(DirectShare)
            .filter(DirectShare.to_user_id == user_id)
            .order_by(DirectShare.created_at.desc())
            .all()
        )

    def outgoing(self, user_id: str) -> List[DirectShare]:
        return (
            self.db.query(DirectShare)
            .filter(DirectShare.from_user_id == user_id)
            .order_by(DirectShare.created_at.desc())
            .all()
        )

    def _get_direct(self, share_id: str) -> DirectShare:
        share = self.db.query(DirectShare).filter(DirectShare.id == share_id).first()
        if share is None:
            raise NotFoundError("Share not found")
        return share

    def mark_read(self, user_id: str, share_id: str) -> DirectShare:
        share = self._get_direct(share_id)
        if share.to_user_id != user_id:
            raise ForbiddenError("Only the recipient can mark a share as read")
        share.is_read = True
        try:
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        return share

    def delete_direct(self, user_id: str, share_id: str) -> None:
        share = self._get_direct(share_id)
        if user_id not in (share.from_user_id, share.to_user_id):
            raise ForbiddenError("Only the sender or recipient can remove a share")
        self.db.delete(share)
        try:
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
