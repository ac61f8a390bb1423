"""
FileVault: the operations the transport layer calls.

Upload pipeline: ingest (hash + stage + verify) -> quota check -> blob
registry lookup-or-create (storage write only on a miss) -> file record ->
event. Each step only runs once the previous one has committed, so no file
record can point at a missing blob and no blob row at missing bytes.
"""
import logging
from datetime import datetime
from typing import BinaryIO, List, Optional, Tuple

from sqlalchemy.orm import Session

from filevault.errors import ForbiddenError, NotFoundError, QuotaExceededError, ValidationError
from filevault.models import BlobRecord, DirectShare, FileRecord, ShareToken
from filevault.storage import StorageBackend
from .blob_registry import BlobRegistry
from .events import EventSink, EventType, LoggingEventSink, VaultEvent, emit_safely
from .files import FileStats, FileStore
from .ingest import MimeValidator, ingest
from .quota import QuotaAccountant, QuotaUsage
from .shares import ShareManager

logger = logging.getLogger(__name__)


class FileVault:
    """
    Multi-user file vault over one database session.

    Args:
        db: Database session (one per worker / request)
        storage: Primary storage backend for new content
        quota_limit_bytes: Per-user logical storage limit
        legacy_storage: Backend for records stored before the primary existed
        max_upload_bytes: Largest accepted upload (None: no limit)
        mime_validator: External MIME verdict, see ``ingest``
        event_sink: Receiver for domain events
        base_url: Prefix for public share URLs
    """

    def __init__(
        self,
        db: Session,
        storage: StorageBackend,
        quota_limit_bytes: int,
        legacy_storage: Optional[StorageBackend] = None,
        max_upload_bytes: Optional[int] = None,
        mime_validator: Optional[MimeValidator] = None,
        event_sink: Optional[EventSink] = None,
        base_url: str = '',
    ):
        self.db = db
        self.registry = BlobRegistry(db, storage, legacy_storage)
        self.files = FileStore(db)
        self.quota = QuotaAccountant(db, quota_limit_bytes)
        self.shares = ShareManager(db, self.registry, base_url)
        self.max_upload_bytes = max_upload_bytes
        self.mime_validator = mime_validator
        self.events = event_sink or LoggingEventSink()

    def _emit(self, type: EventType, user_id: Optional[str], file: Optional[FileRecord] = None,
              content_hash: Optional[str] = None, size: Optional[int] = None):
        if file is not None:
            content_hash = content_hash or file.content_hash
            size = size if size is not None else file.size
        emit_safely(self.events, VaultEvent(
            type=type,
            user_id=user_id,
            file_id=file.id if file is not None else None,
            content_hash=content_hash,
            size=size,
        ))

    # ------------------------------------------------------------------
    # Files
    # ------------------------------------------------------------------

    def upload_file(self, user_id: str, stream: BinaryIO, name: str, declared_size: int,
                    declared_mime: Optional[str] = None, folder_id: Optional[str] = None) -> FileRecord:
        """
        Upload a file for ``user_id``.

        Returns:
            The new FileRecord

        Raises:
            ValidationError: bad name, size mismatch, oversized or MIME rejected
            QuotaExceededError: the upload would exceed the user's quota
            StorageError: the content could not be stored
        """
        if not name or not name.strip():
            raise ValidationError("A file name is required")

        with ingest(stream, declared_size, declared_mime, self.mime_validator,
                    self.max_upload_bytes) as staged:
            decision = self.quota.check(user_id, staged.size, staged.content_hash)
            if not decision.allowed:
                self._emit(EventType.QUOTA_DENIED, user_id,
                           content_hash=staged.content_hash, size=staged.size)
                raise QuotaExceededError(decision.used_bytes, decision.limit_bytes, staged.size)

            blob, created = self.registry.upsert(
                staged.content_hash, staged.size, staged.mime_type, staged.data
            )

        record = self.files.create(user_id, name.strip(), staged.mime_type, blob, folder_id)
        logger.info(
            f"User {user_id} uploaded {record.display_name} as {record.id} "
            f"({'new content' if created else 'deduplicated'})"
        )
        self._emit(EventType.UPLOADED if created else EventType.DEDUPED, user_id, record)
        return record

    def _get_owned_file(self, user_id: str, file_id: str) -> FileRecord:
        file = self.files.get(file_id)
        if file is None:
            raise NotFoundError("File not found")
        if file.owner_id != user_id:
            raise ForbiddenError("Only the owner can do this")
        return file

    def get_file(self, user_id: str, file_id: str) -> FileRecord:
        """A file its owner, or a user it was directly shared with, may see."""
        file = self.files.get(file_id)
        if file is None:
            raise NotFoundError("File not found")
        if not self.files.can_read(file, user_id):
            raise ForbiddenError("You do not have access to this file")
        return file

    def list_files(self, user_id: str, limit: int = 50, offset: int = 0,
                   search: Optional[str] = None) -> List[FileRecord]:
        return self.files.list_for_owner(user_id, limit, offset, search)

    def download_file(self, user_id: str, file_id: str) -> Tuple[FileRecord, BinaryIO]:
        file = self.get_file(user_id, file_id)
        stream = self.registry.open(file.blob)
        self._emit(EventType.DOWNLOADED, user_id, file)
        return file, stream

    def delete_file(self, user_id: str, file_id: str) -> None:
        """
        Delete one of ``user_id``'s file records. The blob stays, whether or
        not other records still reference it.
        """
        file = self._get_owned_file(user_id, file_id)
        content_hash, size = file.content_hash, file.size
        self.files.delete(file)

        if self.registry.reference_count(content_hash) == 0:
            logger.debug(f"Blob {content_hash[:12]} has no remaining references")
        self._emit(EventType.DELETED, user_id, content_hash=content_hash, size=size)

    def has_other_owners(self, file: FileRecord) -> bool:
        return self.registry.has_other_owners(file)

    def get_file_stats(self, user_id: str) -> FileStats:
        return self.files.stats(user_id)

    def find_orphan_blobs(self) -> List[BlobRecord]:
        return self.registry.find_orphans()

    # ------------------------------------------------------------------
    # Quota
    # ------------------------------------------------------------------

    def get_quota_usage(self, user_id: str) -> QuotaUsage:
        return self.quota.info(user_id)

    # ------------------------------------------------------------------
    # Shares
    # ------------------------------------------------------------------

    def issue_public_share(self, user_id: str, file_id: str, expires_at: Optional[datetime] = None,
                           max_downloads: Optional[int] = None,
                           target_user_id: Optional[str] = None) -> ShareToken:
        file = self._get_owned_file(user_id, file_id)
        share = self.shares.issue(file, user_id, expires_at, max_downloads, target_user_id)
        self._emit(EventType.SHARED, user_id, file)
        return share

    def redeem_public_share(self, token: str, ip_address: Optional[str] = None,
                            user_agent: Optional[str] = None,
                            accessor_user_id: Optional[str] = None) -> Tuple[FileRecord, BinaryIO]:
        file, stream = self.shares.redeem(token, ip_address, user_agent, accessor_user_id)
        self._emit(EventType.DOWNLOADED, file.owner_id, file)
        return file, stream

    def list_shares(self, user_id: str) -> List[ShareToken]:
        return self.shares.list_for_owner(user_id)

    def update_share(self, user_id: str, share_id: str, is_active: Optional[bool] = None,
                     expires_at: Optional[datetime] = None,
                     max_downloads: Optional[int] = None) -> ShareToken:
        return self.shares.update(user_id, share_id, is_active, expires_at, max_downloads)

    def revoke_share(self, user_id: str, share_id: str) -> ShareToken:
        return self.shares.revoke(user_id, share_id)

    def delete_share(self, user_id: str, share_id: str) -> None:
        self.shares.delete(user_id, share_id)

    def get_share_stats(self, user_id: str, share_id: str) -> dict:
        return self.shares.stats(user_id, share_id)

    def share_with_user(self, from_user_id: str, file_id: str, to_user_id: str,
                        message: Optional[str] = None) -> DirectShare:
        file = self._get_owned_file(from_user_id, file_id)
        share = self.shares.share_with_user(file, from_user_id, to_user_id, message)
        self._emit(EventType.SHARED, from_user_id, file)
        return share

    def list_incoming_shares(self, user_id: str) -> List[DirectShare]:
        return self.shares.incoming(user_id)

    def list_outgoing_shares(self, user_id: str) -> List[DirectShare]:
        return self.shares.outgoing(user_id)

    def mark_share_read(self, user_id: str, share_id: str) -> DirectShare:
        return self.shares.mark_read(user_id, share_id)

    def delete_direct_share(self, user_id: str, share_id: str) -> None:
        self.shares.delete_direct(user_id, share_id)
