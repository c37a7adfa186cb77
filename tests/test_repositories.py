"""Query building of the Motor-backed repositories against a mocked database."""

from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest
from bson import ObjectId
from pymongo import DESCENDING
from pymongo.errors import DuplicateKeyError, ServerSelectionTimeoutError

from chatsync.core.exceptions import ConflictError, RemoteUnavailable
from chatsync.repositories.conversation_repository import ConversationRepository
from chatsync.repositories.message_repository import MessageRepository
from chatsync.repositories.user_repository import UserRepository
from chatsync.schemas.conversation import ConversationRef


def mock_db():
    db = MagicMock()
    collection = MagicMock()
    db.__getitem__.return_value = collection
    db.get_collection.return_value = collection
    return db, collection


class TestMessageRepository:

    @pytest.mark.asyncio
    async def test_list_returns_oldest_first(self):
        db, collection = mock_db()
        t1 = datetime(2024, 1, 1, tzinfo=timezone.utc)
        t2 = datetime(2024, 1, 2, tzinfo=timezone.utc)
        cursor = collection.find.return_value.sort.return_value.limit.return_value
        cursor.to_list = AsyncMock(
            return_value=[{"_id": ObjectId(), "created_at": t2}, {"_id": ObjectId(), "created_at": t1}]
        )
        ref = ConversationRef.group("g1")

        docs = await MessageRepository(db).list_for_conversation(ref, limit=2)

        collection.find.assert_called_once_with({"conversation_kind": "group", "conversation_id": "g1"})
        collection.find.return_value.sort.assert_called_once_with(
            [("created_at", DESCENDING), ("_id", DESCENDING)]
        )
        assert [d["created_at"] for d in docs] == [t1, t2]
        assert all(isinstance(d["_id"], str) for d in docs)

    @pytest.mark.asyncio
    async def test_page_cursor_includes_same_timestamp_older_ids(self):
        db, collection = mock_db()
        collection.find.return_value.sort.return_value.limit.return_value.to_list = AsyncMock(return_value=[])
        boundary = datetime(2024, 1, 2, tzinfo=timezone.utc)
        oldest = ObjectId()

        await MessageRepository(db).list_for_conversation(
            ConversationRef.direct("c1"), limit=2, before=(boundary, str(oldest))
        )

        query = collection.find.call_args.args[0]
        assert "created_at" not in query
        assert query["$or"] == [
            {"created_at": {"$lt": boundary}},
            {"created_at": boundary, "_id": {"$lt": oldest}},
        ]

    @pytest.mark.asyncio
    async def test_page_cursor_without_id_uses_time_only(self):
        db, collection = mock_db()
        collection.find.return_value.sort.return_value.limit.return_value.to_list = AsyncMock(return_value=[])
        boundary = datetime(2024, 1, 2, tzinfo=timezone.utc)

        await MessageRepository(db).list_for_conversation(ConversationRef.direct("c1"), before=(boundary, None))

        assert collection.find.call_args.args[0]["created_at"] == {"$lt": boundary}

    @pytest.mark.asyncio
    async def test_count_since_excludes_own_messages(self):
        db, collection = mock_db()
        collection.count_documents = AsyncMock(return_value=4)
        since = datetime(2024, 1, 1, tzinfo=timezone.utc)

        count = await MessageRepository(db).count_since(ConversationRef.direct("c1"), since, exclude_sender="1")

        assert count == 4
        collection.count_documents.assert_awaited_once_with(
            {
                "conversation_kind": "direct",
                "conversation_id": "c1",
                "sender_id": {"$ne": "1"},
                "created_at": {"$gt": since},
            }
        )

    @pytest.mark.asyncio
    async def test_count_without_marker_counts_everything(self):
        db, collection = mock_db()
        collection.count_documents = AsyncMock(return_value=7)

        await MessageRepository(db).count_since(ConversationRef.direct("c1"), None, exclude_sender="1")

        query = collection.count_documents.await_args.args[0]
        assert "created_at" not in query

    @pytest.mark.asyncio
    async def test_driver_failure_becomes_remote_unavailable(self, caplog):
        db, collection = mock_db()
        collection.insert_one = AsyncMock(side_effect=ServerSelectionTimeoutError("no servers"))

        with caplog.at_level("ERROR"), pytest.raises(RemoteUnavailable):
            await MessageRepository(db).save_message(ConversationRef.direct("c1"), sender_id="1", text="hi")
        assert "save_message" in caplog.text


class TestConversationRepository:

    @pytest.mark.asyncio
    async def test_create_direct_sorts_participants(self):
        db, collection = mock_db()
        inserted = ObjectId()
        collection.insert_one = AsyncMock(return_value=MagicMock(inserted_id=inserted))

        doc = await ConversationRepository(db).create_direct(["2", "1"])

        assert doc["participants"] == ["1", "2"]
        assert doc["_id"] == str(inserted)

    @pytest.mark.asyncio
    async def test_get_with_malformed_id_skips_the_store(self):
        db, collection = mock_db()
        collection.find_one = AsyncMock()

        assert await ConversationRepository(db).get("not-an-object-id") is None
        collection.find_one.assert_not_awaited()


class TestUserRepository:

    @pytest.mark.asyncio
    async def test_duplicate_username_is_conflict(self):
        db, collection = mock_db()
        collection.insert_one = AsyncMock(side_effect=DuplicateKeyError("E11000 duplicate key"))

        with pytest.raises(ConflictError):
            await UserRepository(db).create_user("9", "Alice", "a@example.com")

    @pytest.mark.asyncio
    async def test_search_escapes_regex(self):
        db, collection = mock_db()
        collection.find.return_value.limit.return_value.to_list = AsyncMock(return_value=[])

        await UserRepository(db).search_users(" a.b ", limit=5)

        query = collection.find.call_args.args[0]
        assert query["$or"][0]["username"] == {"$regex": r"a\.b", "$options": "i"}
        collection.find.return_value.limit.assert_called_once_with(5)
