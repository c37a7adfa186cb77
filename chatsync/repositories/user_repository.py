import re
from typing import Any, Dict, List, Optional

from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ASCENDING
from pymongo.errors import DuplicateKeyError

from chatsync.core.exceptions import ConflictError
from chatsync.models.user import UserDocument
from chatsync.utils.mongo import remote_errors


class UserRepository:

    def __init__(self, db: AsyncIOMotorDatabase) -> None:
        self._collection = db.get_collection("users")

    async def ensure_indexes(self) -> None:
        await self._collection.create_index([("username_lower", ASCENDING)], unique=True)

    @remote_errors
    async def create_user(
        self,
        user_id: str,
        username: str,
        email: Optional[str],
        display_name: Optional[str] = None,
    ) -> UserDocument:
        doc: UserDocument = {
            "_id": user_id,
            "username": username,
            "username_lower": username.lower(),
            "display_name": display_name,
            "avatar_id": None,
            "email": email,
        }
        try:
            await self._collection.insert_one(doc)
        except DuplicateKeyError as exc:
            raise ConflictError(f"Username or id already registered: {username}") from exc
        return doc

    @remote_errors
    async def get_user_by_id(self, user_id: str) -> Optional[UserDocument]:
        return await self._collection.find_one({"_id": user_id})

    @remote_errors
    async def get_user_by_username(self, username: str) -> Optional[UserDocument]:
        return await self._collection.find_one({"username_lower": username.strip().lower()})

    @remote_errors
    async def search_users(self, query: str, limit: int = 25) -> List[UserDocument]:
        pattern = {"$regex": re.escape(query.strip()), "$options": "i"}
        cursor = self._collection.find(
            {"$or": [{"username": pattern}, {"display_name": pattern}]}
        ).limit(limit)
        return await cursor.to_list(length=limit)

    @remote_errors
    async def update_user(self, user_id: str, fields: Dict[str, Any]) -> bool:
        fields = dict(fields)
        if "username" in fields:
            fields["username_lower"] = fields["username"].lower()
        try:
            result = await self._collection.update_one({"_id": user_id}, {"$set": fields})
        except DuplicateKeyError as exc:
            raise ConflictError("Username is already taken") from exc
        return bool(result.matched_count)
