from datetime import datetime, timezone
from typing import List, Optional

from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ASCENDING

from chatsync.models.conversation import DirectChatDocument
from chatsync.utils.mongo import normalize, remote_errors, to_object_id


class ConversationRepository:
    """Direct (two-party) chats."""

    def __init__(self, db: AsyncIOMotorDatabase) -> None:
        self._db = db

    @property
    def collection(self):
        return self._db["chats"]

    async def ensure_indexes(self) -> None:
        await self.collection.create_index([("participants", ASCENDING)])

    @remote_errors
    async def list_for_user(self, user_id: str) -> List[DirectChatDocument]:
        # The store cannot match an array as a set, so callers compare pairs themselves.
        cursor = self.collection.find({"participants": user_id}).sort("created_at", ASCENDING)
        items = await cursor.to_list(length=None)
        return [normalize(it) for it in items]

    @remote_errors
    async def create_direct(self, participants: List[str]) -> DirectChatDocument:
        doc: DirectChatDocument = {
            "participants": sorted(participants),
            "created_at": datetime.now(timezone.utc),
        }
        result = await self.collection.insert_one(doc)
        doc["_id"] = str(result.inserted_id)
        return doc

    @remote_errors
    async def get(self, chat_id: str) -> Optional[DirectChatDocument]:
        oid = to_object_id(chat_id)
        if oid is None:
            return None
        return normalize(await self.collection.find_one({"_id": oid}))

    @remote_errors
    async def delete(self, chat_id: str) -> bool:
        oid = to_object_id(chat_id)
        if oid is None:
            return False
        result = await self.collection.delete_one({"_id": oid})
        return bool(result.deleted_count)
