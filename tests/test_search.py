"""Tests for in-memory message and user search plus the debouncer."""

import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from chatsync.schemas.conversation import ConversationRef
from chatsync.schemas.message import Message
from chatsync.schemas.user import User
from chatsync.services.search import Debouncer, search_messages, search_users
from conftest import ALICE, BOB

REF = ConversationRef.direct("c1")
T0 = datetime(2024, 1, 1, tzinfo=timezone.utc)


def msg(message_id: str, text, minutes: int) -> Message:
    return Message(id=message_id, conversation=REF, sender_id=BOB, text=text, created_at=T0 + timedelta(minutes=minutes))


class TestSearchMessages:

    def test_whole_word_matches_first_then_newest(self):
        messages = [
            msg("old-word", "see the cat", 1),
            msg("new-partial", "concatenate strings", 5),
            msg("new-word", "Cat pictures", 4),
            msg("old-partial", "catalog", 2),
        ]
        results = search_messages(messages, "CAT")
        assert [m.id for m in results] == ["new-word", "old-word", "new-partial", "old-partial"]

    def test_skips_messages_without_text(self):
        messages = [msg("a", None, 1), msg("b", "hello", 2)]
        assert [m.id for m in search_messages(messages, "hel")] == ["b"]

    def test_blank_query_returns_nothing(self):
        assert search_messages([msg("a", "hello", 1)], "   ") == []


class TestSearchUsers:

    USERS = [
        User(id="10", username="annabelle"),
        User(id="11", username="ann", display_name="Ann Lee"),
        User(id="12", username="zed", display_name="Joanna"),
        User(id="13", username="bob"),
    ]

    def test_exact_word_first_then_alphabetical(self):
        results = search_users(self.USERS, "ann")
        assert [u.id for u in results] == ["11", "10", "12"]

    def test_excludes_self(self):
        results = search_users(self.USERS, "ann", exclude_ids=["11"])
        assert "11" not in [u.id for u in results]


class TestDebouncer:

    @pytest.mark.asyncio
    async def test_only_last_call_runs(self):
        calls = []

        async def run(query):
            calls.append(query)
            return query

        debouncer = Debouncer(0.01)
        first = debouncer.schedule(run, "c")
        debouncer.schedule(run, "ca")
        last = debouncer.schedule(run, "cat")

        assert await last == "cat"
        assert first.cancelled()
        assert calls == ["cat"]

    @pytest.mark.asyncio
    async def test_cancel_drops_pending(self):
        calls = []

        async def run():
            calls.append(1)

        debouncer = Debouncer(0.01)
        debouncer.schedule(run)
        debouncer.cancel()
        await asyncio.sleep(0.03)

        assert calls == []
        assert not debouncer.pending


class TestSearchService:

    @pytest.mark.asyncio
    async def test_searches_conversation_window(self, container, repositories):
        chat = await container.resolver.resolve_direct(ALICE, BOB)
        await container.chat.send_message(ALICE, chat.ref, "meeting at noon")
        await container.chat.send_message(BOB, chat.ref, "ok")

        results = await container.search.search_messages(chat.ref, "noon")

        assert [m.text for m in results] == ["meeting at noon"]

    @pytest.mark.asyncio
    async def test_user_search_excludes_caller(self, container):
        results = await container.search.search_users("b", self_id=BOB)
        assert BOB not in [u.id for u in results]

    @pytest.mark.asyncio
    async def test_blank_query_skips_remote_call(self, container, repositories):
        assert await container.search.search_messages(REF, " ") == []
        assert repositories.messages.list_calls == 0

    @pytest.mark.asyncio
    async def test_debounced_keystrokes_fetch_once(self, container, repositories):
        chat = await container.resolver.resolve_direct(ALICE, BOB)
        await container.chat.send_message(ALICE, chat.ref, "meeting at noon")
        debouncer = container.search.debouncer()

        for query in ("n", "no", "noo", "noon"):
            task = debouncer.schedule(container.search.search_messages, chat.ref, query)

        results = await task
        assert [m.text for m in results] == ["meeting at noon"]
        assert repositories.messages.list_calls == 1
