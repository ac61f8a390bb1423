"""Pydantic models for HTTP API payloads."""
from typing import Optional, Dict, List
from pydantic import BaseModel
from datetime import datetime

from .share import as_utc


def _iso(dt: Optional[datetime]) -> Optional[str]:
    return as_utc(dt).isoformat() if dt is not None else None


# ============================================================================
# Files
# ============================================================================

class FileInfo(BaseModel):
    """Information about an uploaded file."""

    id: str
    """Unique ID for this file record"""

    owner_id: str
    """User who uploaded the file"""

    display_name: str
    """Name given by the uploader"""

    mime_type: str
    """Declared MIME type of the upload"""

    size: int
    """Content size in bytes"""

    content_hash: str
    """SHA-256 hash of the content"""

    folder_id: Optional[str] = None
    """Opaque folder reference supplied at upload"""

    has_other_owners: bool = False
    """Whether other file records share this content (computed on read)"""

    created_at: str
    """ISO 8601 timestamp when the file was uploaded"""

    @classmethod
    def from_record(cls, file, has_other_owners: bool = False) -> 'FileInfo':
        return cls(
            id=file.id,
            owner_id=file.owner_id,
            display_name=file.display_name,
            mime_type=file.mime_type,
            size=file.size,
            content_hash=file.content_hash,
            folder_id=file.folder_id,
            has_other_owners=has_other_owners,
            created_at=_iso(file.created_at),
        )


class ListFilesResponse(BaseModel):
    files: List[FileInfo]


class FileStatsResponse(BaseModel):
    total_files: int
    unique_files: int
    total_size: int
    files_by_mime_type: Dict[str, int]


class QuotaResponse(BaseModel):
    used_bytes: int
    limit_bytes: int
    remaining_bytes: int
    usage_percentage: float


# ============================================================================
# Public shares
# ============================================================================

class CreateShareRequest(BaseModel):
    """Request to issue a share token for a file."""

    expires_at: Optional[datetime] = None
    """When the token stops working (None: never)"""

    max_downloads: Optional[int] = None
    """How many downloads the token allows (None: unlimited)"""

    target_user_id: Optional[str] = None
    """Restrict the token to this user"""


class UpdateShareRequest(BaseModel):
    is_active: Optional[bool] = None
    expires_at: Optional[datetime] = None
    max_downloads: Optional[int] = None


class ShareInfo(BaseModel):
    """Information about a share token."""

    id: str
    file_id: str
    kind: str
    token: str
    share_url: str
    target_user_id: Optional[str] = None
    is_active: bool
    state: str
    """active, expired, exhausted or revoked"""
    expires_at: Optional[str] = None
    download_count: int
    max_downloads: Optional[int] = None
    created_at: str

    @classmethod
    def from_record(cls, share, share_url: str) -> 'ShareInfo':
        return cls(
            id=share.id,
            file_id=share.file_id,
            kind=share.kind.value,
            token=share.token,
            share_url=share_url,
            target_user_id=share.target_user_id,
            is_active=share.is_active,
            state=share.state().value,
            expires_at=_iso(share.expires_at),
            download_count=share.download_count,
            max_downloads=share.max_downloads,
            created_at=_iso(share.created_at),
        )


class ListSharesResponse(BaseModel):
    shares: List[ShareInfo]


class RecentDownload(BaseModel):
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    downloaded_at: str


class ShareStatsResponse(BaseModel):
    download_count: int
    state: str
    recent_downloads: List[RecentDownload]


# ============================================================================
# Direct shares
# ============================================================================

class ShareWithUserRequest(BaseModel):
    to_user_id: str
    message: Optional[str] = None


class DirectShareInfo(BaseModel):
    id: str
    file_id: str
    file_name: str
    from_user_id: str
    to_user_id: str
    message: Optional[str] = None
    is_read: bool
    created_at: str

    @classmethod
    def from_record(cls, share) -> 'DirectShareInfo':
        return cls(
            id=share.id,
            file_id=share.file_id,
            file_name=share.file.display_name,
            from_user_id=share.from_user_id,
            to_user_id=share.to_user_id,
            message=share.message,
            is_read=share.is_read,
            created_at=_iso(share.created_at),
        )


class ListDirectSharesResponse(BaseModel):
    shares: List[DirectShareInfo]


# ============================================================================
# Error Response
# ============================================================================

class ErrorResponse(BaseModel):
    """Standard error response."""

    code: str
    """Machine-readable error code"""

    error: str
    """Error message describing what went wrong"""

    extra: Dict = {}
    """Additional context (e.g. quota figures)"""
