import asyncio
import logging
from typing import Any, Awaitable, Callable, Iterable, List, Optional

from chatsync.repositories.message_repository import MessageRepository
from chatsync.repositories.user_repository import UserRepository
from chatsync.schemas.conversation import ConversationRef
from chatsync.schemas.message import Message
from chatsync.schemas.user import User

logger = logging.getLogger(__name__)


def _normalize(query: str) -> str:
    return (query or "").strip().lower()


def _has_word(text: str, needle: str) -> bool:
    return needle in text.lower().split()


def search_messages(messages: Iterable[Message], query: str) -> List[Message]:
    """Case-insensitive substring match; whole-word hits first, then newest first."""
    needle = _normalize(query)
    if not needle:
        return []
    hits = [m for m in messages if m.text and needle in m.text.lower()]
    hits.sort(key=lambda m: m.order_key, reverse=True)
    hits.sort(key=lambda m: not _has_word(m.text, needle))
    return hits


def search_users(users: Iterable[User], query: str, exclude_ids: Iterable[str] = ()) -> List[User]:
    """Match on username or display name; whole-word hits first, then alphabetical."""
    needle = _normalize(query)
    if not needle:
        return []
    excluded = set(exclude_ids)

    def fields(user: User) -> List[str]:
        return [f for f in (user.username, user.display_name) if f]

    hits = [
        u
        for u in users
        if u.id not in excluded and any(needle in f.lower() for f in fields(u))
    ]
    hits.sort(key=lambda u: (u.label.lower(), u.id))
    hits.sort(key=lambda u: not any(_has_word(f, needle) for f in fields(u)))
    return hits


class Debouncer:
    """Runs only the last call scheduled within ``delay`` seconds."""

    def __init__(self, delay: float) -> None:
        self._delay = delay
        self._task: Optional[asyncio.Task] = None

    @property
    def pending(self) -> bool:
        return self._task is not None and not self._task.done()

    def schedule(self, func: Callable[..., Awaitable[Any]], *args: Any) -> asyncio.Task:
        self.cancel()
        self._task = asyncio.ensure_future(self._run(func, *args))
        return self._task

    def cancel(self) -> None:
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None

    async def _run(self, func: Callable[..., Awaitable[Any]], *args: Any) -> Any:
        await asyncio.sleep(self._delay)
        return await func(*args)


class SearchService:
    """Fetches a bounded candidate window and filters it in memory."""

    def __init__(
        self,
        message_repo: MessageRepository,
        user_repo: UserRepository,
        message_window: int = 500,
        user_limit: int = 25,
        debounce_seconds: float = 0.3,
    ) -> None:
        self._message_repo = message_repo
        self._user_repo = user_repo
        self._message_window = message_window
        self._user_limit = user_limit
        self._debounce_seconds = debounce_seconds

    def debouncer(self) -> Debouncer:
        """One per typing source; each new keystroke replaces the pending search."""
        return Debouncer(self._debounce_seconds)

    async def search_messages(self, ref: ConversationRef, query: str) -> List[Message]:
        if not _normalize(query):
            return []
        docs = await self._message_repo.list_for_conversation(ref, limit=self._message_window)
        results = search_messages((Message.from_document(doc) for doc in docs), query)
        logger.debug("Message search in %s matched %d of %d", ref.marker_key, len(results), len(docs))
        return results

    async def search_users(self, query: str, self_id: Optional[str] = None) -> List[User]:
        if not _normalize(query):
            return []
        docs = await self._user_repo.search_users(query, limit=self._user_limit)
        exclude = [self_id] if self_id else []
        return search_users((User.from_document(doc) for doc in docs), query, exclude)
