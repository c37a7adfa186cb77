from typing import Any, Dict, Optional, Tuple

from gridfs.errors import NoFile
from motor.motor_asyncio import AsyncIOMotorDatabase, AsyncIOMotorGridFSBucket

from chatsync.core.exceptions import NotFoundError
from chatsync.utils.mongo import remote_errors, to_object_id


class FileRepository:
    """Blob storage backed by a GridFS bucket."""

    def __init__(self, db: AsyncIOMotorDatabase, bucket_name: str = "attachments") -> None:
        self._bucket = AsyncIOMotorGridFSBucket(db, bucket_name=bucket_name)

    @remote_errors
    async def upload(self, filename: str, content_type: str, data: bytes, owner_id: str) -> str:
        file_id = await self._bucket.upload_from_stream(
            filename,
            data,
            metadata={"contentType": content_type, "owner_id": owner_id},
        )
        return str(file_id)

    @remote_errors
    async def download(self, file_id: str) -> Tuple[bytes, str, Dict[str, Any]]:
        oid = to_object_id(file_id)
        if oid is None:
            raise NotFoundError(f"File {file_id} not found")
        try:
            stream = await self._bucket.open_download_stream(oid)
        except NoFile as exc:
            raise NotFoundError(f"File {file_id} not found") from exc
        data = await stream.read()
        metadata: Optional[Dict[str, Any]] = stream.metadata
        return data, stream.filename, metadata or {}

    @remote_errors
    async def delete(self, file_id: str) -> bool:
        oid = to_object_id(file_id)
        if oid is None:
            return False
        try:
            await self._bucket.delete(oid)
        except NoFile:
            return False
        return True
