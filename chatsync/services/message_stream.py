import logging
from enum import Enum
from typing import Awaitable, Callable, Dict, Iterable, List, Optional, Set

from pydantic import ValidationError as PayloadError

from chatsync.core.exceptions import ValidationError
from chatsync.repositories.message_repository import MessageRepository
from chatsync.schemas.conversation import ConversationRef
from chatsync.schemas.message import Message
from chatsync.schemas.user import User
from chatsync.services.identity_cache import IdentityCache
from chatsync.utils.realtime_bus import CREATE, LocalBus, RecordEvent, Subscription

logger = logging.getLogger(__name__)

MESSAGES = "messages"

Listener = Callable[[List[Message]], Awaitable[None]]


class StreamState(str, Enum):
    IDLE = "idle"
    LOADING = "loading"
    LIVE = "live"
    CLOSED = "closed"


class MessageStream:
    """Ordered, de-duplicated message sequence of one open conversation.

    Combines the initial page from the store with create events from the
    realtime feed. The feed is not scoped to a conversation, so events are
    filtered here by conversation reference.
    """

    def __init__(
        self,
        ref: ConversationRef,
        message_repo: MessageRepository,
        bus: LocalBus,
        identity_cache: IdentityCache,
        page_size: int = 100,
    ) -> None:
        self.ref = ref
        self._message_repo = message_repo
        self._bus = bus
        self._identity_cache = identity_cache
        self._page_size = page_size
        self.state = StreamState.IDLE
        self._messages: List[Message] = []
        self._ids: Set[str] = set()
        self._pending: List[Message] = []
        self._senders: Dict[str, User] = {}
        self._subscription: Optional[Subscription] = None
        self._listeners: List[Listener] = []

    @property
    def messages(self) -> List[Message]:
        return list(self._messages)

    def sender_of(self, message: Message) -> Optional[User]:
        return self._senders.get(message.sender_id)

    def add_listener(self, listener: Listener) -> None:
        self._listeners.append(listener)

    async def open(self) -> "MessageStream":
        if self.state is not StreamState.IDLE:
            raise ValidationError(f"Stream for {self.ref.marker_key} is already {self.state.value}")
        self.state = StreamState.LOADING
        logger.debug("Opening stream %s", self.ref.marker_key)
        # subscribe before fetching so nothing created during the fetch is lost
        self._subscription = await self._bus.subscribe(MESSAGES, self._matches, self._on_event)
        try:
            docs = await self._message_repo.list_for_conversation(self.ref, limit=self._page_size)
        except Exception:
            self.close()
            raise
        if self.state is StreamState.CLOSED:
            return self
        pending, self._pending = self._pending, []
        self.merge([Message.from_document(doc) for doc in docs] + pending)
        self.state = StreamState.LIVE
        logger.debug("Stream %s live with %d messages", self.ref.marker_key, len(self._messages))
        await self._resolve_senders(self._messages)
        return self

    async def load_older(self) -> int:
        """Fetch the page before the oldest loaded message; returns how many were added."""
        if self.state is not StreamState.LIVE or not self._messages:
            return 0
        docs = await self._message_repo.list_for_conversation(
            self.ref, limit=self._page_size, before=self._messages[0].order_key
        )
        added = self.merge(Message.from_document(doc) for doc in docs)
        await self._resolve_senders(self._messages[:added])
        return added

    async def refresh(self) -> int:
        """Re-fetch the latest page while live events keep arriving."""
        if self.state is not StreamState.LIVE:
            return 0
        docs = await self._message_repo.list_for_conversation(self.ref, limit=self._page_size)
        added = self.merge(Message.from_document(doc) for doc in docs)
        if added:
            await self._resolve_senders(self._messages)
        return added

    def merge(self, messages: Iterable[Message]) -> int:
        added = 0
        for message in messages:
            if message.conversation != self.ref or message.id in self._ids:
                continue
            self._ids.add(message.id)
            self._messages.append(message)
            added += 1
        if added:
            self._messages.sort(key=lambda m: m.order_key)
        return added

    def append(self, message: Message) -> bool:
        if message.conversation != self.ref or message.id in self._ids:
            return False
        self._ids.add(message.id)
        if self._messages and message.order_key < self._messages[-1].order_key:
            # late event: restore time order
            self._messages.append(message)
            self._messages.sort(key=lambda m: m.order_key)
        else:
            self._messages.append(message)
        return True

    def close(self) -> None:
        if self._subscription is not None:
            self._subscription.cancel()
            self._subscription = None
        self._messages = []
        self._ids = set()
        self._pending = []
        self._senders = {}
        self._listeners = []
        if self.state is not StreamState.CLOSED:
            logger.debug("Closed stream %s", self.ref.marker_key)
        self.state = StreamState.CLOSED

    def _matches(self, event: RecordEvent) -> bool:
        if event.collection != MESSAGES or event.action != CREATE:
            return False
        conversation = event.payload.get("conversation") or {}
        return (
            conversation.get("kind") == self.ref.kind.value
            and str(conversation.get("id")) == self.ref.id
        )

    async def _on_event(self, event: RecordEvent) -> None:
        if self.state is StreamState.CLOSED:
            return
        try:
            message = Message.model_validate(event.payload)
        except PayloadError as exc:
            logger.warning("Dropping malformed message event on %s: %s", self.ref.marker_key, exc)
            return
        if self.state is StreamState.LOADING:
            self._pending.append(message)
            return
        if not self.append(message):
            return
        await self._resolve_senders([message])
        for listener in list(self._listeners):
            await listener([message])

    async def _resolve_senders(self, messages: Iterable[Message]) -> None:
        missing = {m.sender_id for m in messages if m.sender_id not in self._senders}
        if not missing:
            return
        users = await self._identity_cache.get_many(missing)
        if self.state is StreamState.CLOSED:
            return
        for user_id, user in users.items():
            # unresolved senders stay absent and render as a placeholder
            if user is not None:
                self._senders[user_id] = user


class MessageStreamAggregator:
    """Keeps at most one open stream; switching closes the previous one first."""

    def __init__(
        self,
        message_repo: MessageRepository,
        bus: LocalBus,
        identity_cache: IdentityCache,
        page_size: int = 100,
    ) -> None:
        self._message_repo = message_repo
        self._bus = bus
        self._identity_cache = identity_cache
        self._page_size = page_size
        self._active: Optional[MessageStream] = None

    @property
    def active(self) -> Optional[MessageStream]:
        return self._active

    def create_stream(self, ref: ConversationRef) -> MessageStream:
        return MessageStream(ref, self._message_repo, self._bus, self._identity_cache, self._page_size)

    async def open(self, ref: ConversationRef) -> MessageStream:
        if self._active is not None and self._active.ref == ref and self._active.state is StreamState.LIVE:
            return self._active
        self.close()
        stream = self.create_stream(ref)
        self._active = stream
        try:
            await stream.open()
        except Exception:
            self._active = None
            raise
        return stream

    def close(self) -> None:
        if self._active is not None:
            self._active.close()
            self._active = None
