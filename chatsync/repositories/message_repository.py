from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ASCENDING, DESCENDING

from chatsync.models.message import AttachmentDocument, MessageDocument
from chatsync.schemas.conversation import ConversationRef
from chatsync.utils.mongo import normalize, remote_errors, to_object_id


PageCursor = Tuple[datetime, Optional[str]]


class MessageRepository:

    def __init__(self, db: AsyncIOMotorDatabase) -> None:
        self._db = db

    @property
    def collection(self):
        return self._db["messages"]

    async def ensure_indexes(self) -> None:
        await self.collection.create_index(
            [
                ("conversation_kind", ASCENDING),
                ("conversation_id", ASCENDING),
                ("created_at", DESCENDING),
            ]
        )

    @staticmethod
    def _ref_query(ref: ConversationRef) -> Dict[str, Any]:
        return {"conversation_kind": ref.kind.value, "conversation_id": ref.id}

    @remote_errors
    async def save_message(
        self,
        ref: ConversationRef,
        sender_id: str,
        text: Optional[str] = None,
        attachments: Optional[List[AttachmentDocument]] = None,
    ) -> MessageDocument:
        doc: MessageDocument = {
            "conversation_kind": ref.kind.value,
            "conversation_id": ref.id,
            "sender_id": sender_id,
            "text": text,
            "attachments": attachments or [],
            "created_at": datetime.now(timezone.utc),
        }
        result = await self.collection.insert_one(doc)
        doc["_id"] = str(result.inserted_id)
        return doc

    @remote_errors
    async def list_for_conversation(
        self,
        ref: ConversationRef,
        limit: int = 100,
        before: Optional[PageCursor] = None,
    ) -> List[MessageDocument]:
        """Latest ``limit`` messages, oldest first.

        ``before`` is the ``(created_at, id)`` of the oldest message already
        held; messages sharing its timestamp are paged by id.
        """
        query = self._ref_query(ref)
        if before is not None:
            created_at, message_id = before
            oid = to_object_id(message_id) if message_id else None
            if oid is None:
                query["created_at"] = {"$lt": created_at}
            else:
                query["$or"] = [
                    {"created_at": {"$lt": created_at}},
                    {"created_at": created_at, "_id": {"$lt": oid}},
                ]
        cursor = self.collection.find(query).sort([("created_at", DESCENDING), ("_id", DESCENDING)]).limit(limit)
        items = await cursor.to_list(length=limit)
        return [normalize(it) for it in reversed(items)]

    @remote_errors
    async def latest_for_conversation(self, ref: ConversationRef) -> Optional[MessageDocument]:
        doc = await self.collection.find_one(
            self._ref_query(ref), sort=[("created_at", DESCENDING), ("_id", DESCENDING)]
        )
        return normalize(doc)

    @remote_errors
    async def count_since(
        self,
        ref: ConversationRef,
        since: Optional[datetime],
        exclude_sender: str,
    ) -> int:
        query = self._ref_query(ref)
        query["sender_id"] = {"$ne": exclude_sender}
        if since is not None:
            query["created_at"] = {"$gt": since}
        return await self.collection.count_documents(query)

    @remote_errors
    async def delete_for_conversation(self, ref: ConversationRef) -> int:
        result = await self.collection.delete_many(self._ref_query(ref))
        return result.deleted_count or 0
