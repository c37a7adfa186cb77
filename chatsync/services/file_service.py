import logging
from typing import Any, Awaitable, Callable, Optional
from urllib.parse import quote, urlencode

from chatsync.core.config import Settings
from chatsync.core.exceptions import ChatSyncError, ValidationError
from chatsync.repositories.file_repository import FileRepository
from chatsync.schemas.message import Attachment
from chatsync.utils.files import FileKind, classify_mime

logger = logging.getLogger(__name__)


def validate_upload(
    filename: str,
    content_type: str,
    size: int,
    max_bytes: int,
    images_only: bool = False,
) -> FileKind:
    """Pre-flight checks; raises ValidationError before anything is sent."""
    if not filename or not filename.strip():
        raise ValidationError("File name is required")
    if size <= 0:
        raise ValidationError("File is empty")
    if size > max_bytes:
        raise ValidationError(
            f"File is too large ({size} bytes, limit {max_bytes})", error_code="FILE_TOO_LARGE"
        )
    kind = classify_mime(content_type)
    if images_only and kind is not FileKind.IMAGE:
        raise ValidationError("Please select an image file", error_code="FILE_TYPE_NOT_ALLOWED")
    if kind is FileKind.GENERIC:
        raise ValidationError(
            f"File type {content_type or 'unknown'} is not allowed", error_code="FILE_TYPE_NOT_ALLOWED"
        )
    return kind


class FileService:

    def __init__(self, file_repo: FileRepository, settings: Settings) -> None:
        self._file_repo = file_repo
        self._settings = settings

    async def upload_attachment(self, owner_id: str, filename: str, content_type: str, data: bytes) -> Attachment:
        validate_upload(filename, content_type, len(data), self._settings.MAX_ATTACHMENT_BYTES)
        file_id = await self._file_repo.upload(filename, content_type, data, owner_id)
        logger.info("User %s uploaded %s (%d bytes) as %s", owner_id, filename, len(data), file_id)
        return Attachment(file_id=file_id, file_name=filename, file_size=len(data), mime_type=content_type)

    def check_avatar(self, filename: str, content_type: str, size: int) -> None:
        validate_upload(filename, content_type, size, self._settings.MAX_AVATAR_BYTES, images_only=True)

    async def upload_avatar(self, owner_id: str, filename: str, content_type: str, data: bytes) -> str:
        self.check_avatar(filename, content_type, len(data))
        return await self._file_repo.upload(filename, content_type, data, owner_id)

    async def replace_avatar(
        self,
        owner_id: str,
        old_avatar_id: Optional[str],
        filename: str,
        content_type: str,
        data: bytes,
        write: Callable[[str], Awaitable[Any]],
    ) -> str:
        """Upload a new avatar and hand its id to ``write``.

        The previous file is deleted only once ``write`` succeeds; if it
        fails the new upload is deleted and the old avatar stays in place.
        """
        new_id = await self.upload_avatar(owner_id, filename, content_type, data)
        try:
            await write(new_id)
        except ChatSyncError:
            await self.discard(new_id)
            raise
        if old_avatar_id:
            await self.discard(old_avatar_id)
        return new_id

    async def discard(self, file_id: str) -> None:
        """Best-effort delete; a missing or undeletable file is only logged."""
        try:
            removed = await self._file_repo.delete(file_id)
        except ChatSyncError as exc:
            logger.warning("Could not delete file %s: %s", file_id, exc.detail)
            return
        if not removed:
            logger.warning("File %s was already gone", file_id)

    async def download(self, file_id: str):
        return await self._file_repo.download(file_id)

    def view_url(self, file_id: str) -> str:
        return f"{self._settings.FILES_BASE_URL}/{quote(file_id)}"

    def download_url(self, file_id: str) -> str:
        return f"{self.view_url(file_id)}?{urlencode({'download': 1})}"

    def preview_url(self, file_id: str, width: int = 400, height: int = 300) -> str:
        return f"{self.view_url(file_id)}?{urlencode({'width': width, 'height': height})}"
