"""Business exceptions raised by the vault.

Each exception carries a machine-readable code, a human message, the HTTP
status the transport layer should answer with, and optional extra context.
"""
from typing import Optional


class VaultError(Exception):
    code = 'vault_error'
    status_code = 500
    default_message = 'Internal vault error'

    def __init__(self, message: Optional[str] = None, extra: Optional[dict] = None):
        self.message = message or self.default_message
        self.extra = extra or {}
        super().__init__(self.message)

    def __str__(self):
        return f"[{self.code}] {self.message}"


class ValidationError(VaultError):
    """Rejected before anything was committed; the caller may fix and retry."""
    code = 'validation_error'
    status_code = 400
    default_message = 'Invalid upload'


class QuotaExceededError(VaultError):
    """The upload would push the user's logical usage over their limit."""
    code = 'quota_exceeded'
    status_code = 413
    default_message = 'Storage quota exceeded'

    def __init__(self, used_bytes: int, limit_bytes: int, requested_bytes: int,
                 message: Optional[str] = None):
        self.used_bytes = used_bytes
        self.limit_bytes = limit_bytes
        self.requested_bytes = requested_bytes
        super().__init__(
            message or (
                f"Storage quota exceeded: {used_bytes} bytes used, "
                f"{limit_bytes} bytes quota, {requested_bytes} bytes requested"
            ),
            extra={
                'used_bytes': used_bytes,
                'limit_bytes': limit_bytes,
                'requested_bytes': requested_bytes,
            },
        )


class StorageError(VaultError):
    code = 'storage_error'
    status_code = 502
    default_message = 'Storage backend failure'


class NotFoundError(VaultError):
    code = 'not_found'
    status_code = 404
    default_message = 'Resource not found'


class RevokedError(NotFoundError):
    """A share token the owner deactivated. Looks like a missing token to accessors."""
    code = 'share_revoked'
    default_message = 'Share is no longer available'


class ExpiredError(VaultError):
    code = 'share_expired'
    status_code = 410
    default_message = 'Share has expired'


class ExhaustedError(VaultError):
    code = 'share_exhausted'
    status_code = 410
    default_message = 'Share download limit reached'


class ForbiddenError(VaultError):
    code = 'forbidden'
    status_code = 403
    default_message = 'Permission denied'


class ConflictError(VaultError):
    code = 'conflict'
    status_code = 409
    default_message = 'Resource already exists'


class AuthenticationError(VaultError):
    """No authenticated principal came with the request."""
    code = 'unauthenticated'
    status_code = 401
    default_message = 'Authentication required'
