from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ASCENDING

from chatsync.models.conversation import GroupDocument
from chatsync.utils.mongo import normalize, remote_errors, to_object_id


class GroupRepository:

    def __init__(self, db: AsyncIOMotorDatabase) -> None:
        self._db = db

    @property
    def collection(self):
        return self._db["groups"]

    async def ensure_indexes(self) -> None:
        await self.collection.create_index([("participants", ASCENDING), ("active", ASCENDING)])

    @remote_errors
    async def create_group(
        self,
        name: str,
        created_by: str,
        description: Optional[str] = None,
        avatar_id: Optional[str] = None,
    ) -> GroupDocument:
        doc: GroupDocument = {
            "name": name,
            "description": description,
            "avatar_id": avatar_id,
            "participants": [created_by],
            "created_by": created_by,
            "active": True,
            "created_at": datetime.now(timezone.utc),
        }
        result = await self.collection.insert_one(doc)
        doc["_id"] = str(result.inserted_id)
        return doc

    @remote_errors
    async def get(self, group_id: str) -> Optional[GroupDocument]:
        oid = to_object_id(group_id)
        if oid is None:
            return None
        return normalize(await self.collection.find_one({"_id": oid}))

    @remote_errors
    async def list_active_for_user(self, user_id: str) -> List[GroupDocument]:
        cursor = self.collection.find({"participants": user_id, "active": True})
        items = await cursor.to_list(length=None)
        return [normalize(it) for it in items]

    @remote_errors
    async def update_group(self, group_id: str, fields: Dict[str, Any]) -> bool:
        result = await self.collection.update_one({"_id": to_object_id(group_id)}, {"$set": fields})
        return bool(result.matched_count)

    @remote_errors
    async def add_participant(self, group_id: str, user_id: str) -> bool:
        result = await self.collection.update_one(
            {"_id": to_object_id(group_id)}, {"$addToSet": {"participants": user_id}}
        )
        return bool(result.modified_count)

    @remote_errors
    async def remove_participant(self, group_id: str, user_id: str) -> bool:
        result = await self.collection.update_one(
            {"_id": to_object_id(group_id)}, {"$pull": {"participants": user_id}}
        )
        return bool(result.modified_count)

    @remote_errors
    async def deactivate(self, group_id: str) -> bool:
        result = await self.collection.update_one(
            {"_id": to_object_id(group_id)}, {"$set": {"active": False}}
        )
        return bool(result.matched_count)
