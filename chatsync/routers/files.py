from urllib.parse import quote

from fastapi import APIRouter, Depends, File, Response, UploadFile, status

from chatsync.schemas.user import User
from chatsync.services.container import ServiceContainer
from chatsync.utils.dependencies import get_container, get_current_user
from chatsync.utils.files import classify_mime, format_file_size


router = APIRouter(prefix="/files", tags=["files"])


@router.post("", status_code=status.HTTP_201_CREATED)
async def upload_file(file: UploadFile = File(...), current_user: User = Depends(get_current_user), container: ServiceContainer = Depends(get_container)):
    data = await file.read()
    attachment = await container.files.upload_attachment(current_user.id, file.filename or "", file.content_type or "", data)
    return {
        **attachment.model_dump(),
        "kind": classify_mime(attachment.mime_type).value,
        "size_label": format_file_size(attachment.file_size),
        "view_url": container.files.view_url(attachment.file_id),
        "download_url": container.files.download_url(attachment.file_id),
        "preview_url": container.files.preview_url(attachment.file_id),
    }


@router.get("/{file_id}")
async def get_file(file_id: str, download: bool = False, container: ServiceContainer = Depends(get_container)):
    # width/height in preview URLs are hints for the storage provider; the original is served here
    data, filename, metadata = await container.files.download(file_id)
    disposition = "attachment" if download else "inline"
    return Response(
        content=data,
        media_type=metadata.get("contentType") or "application/octet-stream",
        headers={"Content-Disposition": f"{disposition}; filename*=UTF-8''{quote(filename)}"},
    )
