"""
Pytest fixtures for chatsync.

The remote store is replaced by in-memory repositories that implement the
same methods as the Motor-backed ones, so services run unchanged. A shared
FakeClock hands out strictly increasing server timestamps.
"""

import re
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

import pytest

from chatsync.core.config import Settings
from chatsync.core.exceptions import ConflictError, NotFoundError
from chatsync.schemas.conversation import ConversationRef
from chatsync.services.container import Repositories, ServiceContainer
from chatsync.services.read_state import ReadMarkerStore
from chatsync.utils.realtime_bus import LocalBus


class FakeClock:
    def __init__(self, start: Optional[datetime] = None, step: timedelta = timedelta(seconds=1)) -> None:
        self.now = start or datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)
        self.step = step

    def __call__(self) -> datetime:
        self.now = self.now + self.step
        return self.now


class _Ids:
    def __init__(self, prefix: str) -> None:
        self._prefix = prefix
        self._next = 0

    def __call__(self) -> str:
        self._next += 1
        return f"{self._prefix}{self._next:04d}"


class FakeUserRepository:
    def __init__(self) -> None:
        self.docs: Dict[str, Dict[str, Any]] = {}
        self.get_calls = 0

    async def ensure_indexes(self) -> None:
        return None

    def seed(self, user_id: str, username: str, display_name: Optional[str] = None) -> Dict[str, Any]:
        doc = {
            "_id": user_id,
            "username": username,
            "username_lower": username.lower(),
            "display_name": display_name,
            "avatar_id": None,
            "email": f"{username}@example.com",
        }
        self.docs[user_id] = doc
        return doc

    async def create_user(self, user_id, username, email, display_name=None):
        if user_id in self.docs or any(d["username_lower"] == username.lower() for d in self.docs.values()):
            raise ConflictError("taken")
        doc = self.seed(user_id, username, display_name)
        doc["email"] = email
        return dict(doc)

    async def get_user_by_id(self, user_id):
        self.get_calls += 1
        doc = self.docs.get(user_id)
        return dict(doc) if doc else None

    async def get_user_by_username(self, username):
        for doc in self.docs.values():
            if doc["username_lower"] == username.strip().lower():
                return dict(doc)
        return None

    async def search_users(self, query, limit=25):
        pattern = re.compile(re.escape(query.strip()), re.IGNORECASE)
        hits = [
            dict(d)
            for d in self.docs.values()
            if pattern.search(d["username"]) or (d.get("display_name") and pattern.search(d["display_name"]))
        ]
        return hits[:limit]

    async def update_user(self, user_id, fields):
        if user_id not in self.docs:
            return False
        fields = dict(fields)
        if "username" in fields:
            fields["username_lower"] = fields["username"].lower()
        self.docs[user_id].update(fields)
        return True


class FakeChatRepository:
    def __init__(self, clock: FakeClock) -> None:
        self.docs: Dict[str, Dict[str, Any]] = {}
        self._clock = clock
        self._ids = _Ids("c")
        self.created = 0

    async def ensure_indexes(self) -> None:
        return None

    async def list_for_user(self, user_id):
        items = [dict(d) for d in self.docs.values() if user_id in d["participants"]]
        return sorted(items, key=lambda d: d["created_at"])

    async def create_direct(self, participants, created_at=None):
        self.created += 1
        doc = {"_id": self._ids(), "participants": sorted(participants), "created_at": created_at or self._clock()}
        self.docs[doc["_id"]] = doc
        return dict(doc)

    async def get(self, chat_id):
        doc = self.docs.get(chat_id)
        return dict(doc) if doc else None

    async def delete(self, chat_id):
        return self.docs.pop(chat_id, None) is not None


class FakeGroupRepository:
    def __init__(self, clock: FakeClock) -> None:
        self.docs: Dict[str, Dict[str, Any]] = {}
        self._clock = clock
        self._ids = _Ids("g")

    async def ensure_indexes(self) -> None:
        return None

    async def create_group(self, name, created_by, description=None, avatar_id=None, created_at=None):
        doc = {
            "_id": self._ids(),
            "name": name,
            "description": description,
            "avatar_id": avatar_id,
            "participants": [created_by],
            "created_by": created_by,
            "active": True,
            "created_at": created_at or self._clock(),
        }
        self.docs[doc["_id"]] = doc
        return dict(doc, participants=list(doc["participants"]))

    async def get(self, group_id):
        doc = self.docs.get(group_id)
        return dict(doc, participants=list(doc["participants"])) if doc else None

    async def list_active_for_user(self, user_id):
        return [
            dict(d, participants=list(d["participants"]))
            for d in self.docs.values()
            if d["active"] and user_id in d["participants"]
        ]

    async def update_group(self, group_id, fields):
        if group_id not in self.docs:
            return False
        self.docs[group_id].update(fields)
        return True

    async def add_participant(self, group_id, user_id):
        doc = self.docs.get(group_id)
        if doc is None or user_id in doc["participants"]:
            return False
        doc["participants"].append(user_id)
        return True

    async def remove_participant(self, group_id, user_id):
        doc = self.docs.get(group_id)
        if doc is None or user_id not in doc["participants"]:
            return False
        doc["participants"].remove(user_id)
        return True

    async def deactivate(self, group_id):
        return await self.update_group(group_id, {"active": False})


class FakeMessageRepository:
    def __init__(self, clock: FakeClock) -> None:
        self.docs: List[Dict[str, Any]] = []
        self._clock = clock
        self._ids = _Ids("m")
        self.list_calls = 0

    async def ensure_indexes(self) -> None:
        return None

    @staticmethod
    def _in(doc, ref: ConversationRef) -> bool:
        return doc["conversation_kind"] == ref.kind.value and doc["conversation_id"] == ref.id

    async def save_message(self, ref, sender_id, text=None, attachments=None, created_at=None):
        doc = {
            "_id": self._ids(),
            "conversation_kind": ref.kind.value,
            "conversation_id": ref.id,
            "sender_id": sender_id,
            "text": text,
            "attachments": list(attachments or []),
            "created_at": created_at or self._clock(),
        }
        self.docs.append(doc)
        return dict(doc)

    async def list_for_conversation(self, ref, limit=100, before=None):
        self.list_calls += 1
        items = [d for d in self.docs if self._in(d, ref) and self._older(d, before)]
        items.sort(key=lambda d: (d["created_at"], d["_id"]))
        return [dict(d) for d in items[-limit:]]

    @staticmethod
    def _older(doc, before) -> bool:
        if before is None:
            return True
        created_at, message_id = before
        if message_id is None:
            return doc["created_at"] < created_at
        return (doc["created_at"], doc["_id"]) < (created_at, message_id)

    async def latest_for_conversation(self, ref):
        items = await self.list_for_conversation(ref, limit=1)
        return items[0] if items else None

    async def count_since(self, ref, since, exclude_sender):
        return sum(
            1
            for d in self.docs
            if self._in(d, ref)
            and d["sender_id"] != exclude_sender
            and (since is None or d["created_at"] > since)
        )

    async def delete_for_conversation(self, ref):
        before = len(self.docs)
        self.docs = [d for d in self.docs if not self._in(d, ref)]
        return before - len(self.docs)


class FakeFileRepository:
    def __init__(self) -> None:
        self.files: Dict[str, Dict[str, Any]] = {}
        self._ids = _Ids("f")
        self.uploads = 0

    async def upload(self, filename, content_type, data, owner_id):
        self.uploads += 1
        file_id = self._ids()
        self.files[file_id] = {"filename": filename, "data": data, "metadata": {"contentType": content_type, "owner_id": owner_id}}
        return file_id

    async def download(self, file_id):
        entry = self.files.get(file_id)
        if entry is None:
            raise NotFoundError(f"File {file_id} not found")
        return entry["data"], entry["filename"], entry["metadata"]

    async def delete(self, file_id):
        return self.files.pop(file_id, None) is not None


ALICE = "1"
BOB = "2"
CAROL = "3"


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def test_settings() -> Settings:
    return Settings(
        READ_MARKERS_PATH="",
        REDIS_URL="",
        FILES_BASE_URL="http://files.test/files/",
        MAX_ATTACHMENT_BYTES=1024,
        MAX_AVATAR_BYTES=512,
        MESSAGE_PAGE_SIZE=50,
        SEARCH_MESSAGE_WINDOW=500,
        SEARCH_DEBOUNCE_SECONDS=0.05,
    )


@pytest.fixture
def repositories(clock) -> Repositories:
    repos = Repositories(
        users=FakeUserRepository(),
        chats=FakeChatRepository(clock),
        groups=FakeGroupRepository(clock),
        messages=FakeMessageRepository(clock),
        files=FakeFileRepository(),
    )
    repos.users.seed(ALICE, "alice", "Alice")
    repos.users.seed(BOB, "bob", "Bob")
    repos.users.seed(CAROL, "carol")
    return repos


@pytest.fixture
def bus() -> LocalBus:
    return LocalBus()


@pytest.fixture
def container(repositories, bus, test_settings, clock) -> ServiceContainer:
    return ServiceContainer(repositories, bus, test_settings, marker_store=ReadMarkerStore(), clock=clock)
