"""
Error taxonomy shared by the repositories, services and routers.

Each error carries an HTTP status and a stable error code so the router
layer can render it without knowing where it was raised.
"""

from typing import Optional


class ChatSyncError(Exception):
    """Base class for every error raised by chatsync."""

    status_code: int = 500
    default_code: str = "CHATSYNC_ERROR"

    def __init__(self, detail: str, error_code: Optional[str] = None) -> None:
        super().__init__(detail)
        self.detail = detail
        self.error_code = error_code or self.default_code


class NotFoundError(ChatSyncError):
    """A lookup missed. Caches and aggregators turn this into absence."""

    status_code = 404
    default_code = "NOT_FOUND"


class ConflictError(ChatSyncError):
    """A uniqueness rule was violated (taken username, duplicate chat)."""

    status_code = 409
    default_code = "CONFLICT"


class ValidationError(ChatSyncError):
    """Input rejected before any remote call was attempted."""

    status_code = 422
    default_code = "VALIDATION_ERROR"


class PermissionDenied(ChatSyncError):
    """The caller is not allowed to perform this operation."""

    status_code = 403
    default_code = "PERMISSION_DENIED"


class RemoteUnavailable(ChatSyncError):
    """The backend (store, feed or blob storage) failed to answer."""

    status_code = 503
    default_code = "REMOTE_UNAVAILABLE"
