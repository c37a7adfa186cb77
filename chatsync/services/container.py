import logging
from dataclasses import dataclass
from typing import Any, Callable, Optional

from motor.motor_asyncio import AsyncIOMotorDatabase

from chatsync.core.config import Settings
from chatsync.repositories.conversation_repository import ConversationRepository
from chatsync.repositories.file_repository import FileRepository
from chatsync.repositories.group_repository import GroupRepository
from chatsync.repositories.message_repository import MessageRepository
from chatsync.repositories.user_repository import UserRepository
from chatsync.services.chat_service import ChatService
from chatsync.services.conversation_list import ConversationListAggregator
from chatsync.services.conversation_resolver import ConversationResolver
from chatsync.services.file_service import FileService
from chatsync.services.group_service import GroupService
from chatsync.services.identity_cache import IdentityCache
from chatsync.services.message_stream import MessageStreamAggregator
from chatsync.services.read_state import ReadMarkerStore, ReadStateTracker, utcnow
from chatsync.services.search import SearchService
from chatsync.services.user_service import UserService
from chatsync.utils.realtime_bus import LocalBus

logger = logging.getLogger(__name__)


@dataclass
class Repositories:
    users: Any
    chats: Any
    groups: Any
    messages: Any
    files: Any

    @classmethod
    def from_database(cls, db: AsyncIOMotorDatabase) -> "Repositories":
        return cls(
            users=UserRepository(db),
            chats=ConversationRepository(db),
            groups=GroupRepository(db),
            messages=MessageRepository(db),
            files=FileRepository(db),
        )

    async def ensure_indexes(self) -> None:
        for repo in (self.users, self.chats, self.groups, self.messages):
            await repo.ensure_indexes()


class ServiceContainer:
    """Builds every component once per process and shares the identity cache."""

    def __init__(
        self,
        repositories: Repositories,
        bus: LocalBus,
        settings: Settings,
        marker_store: Optional[ReadMarkerStore] = None,
        clock: Callable = utcnow,
    ) -> None:
        self.settings = settings
        self.repositories = repositories
        self.bus = bus
        self.identity_cache = IdentityCache(repositories.users)
        self.resolver = ConversationResolver(repositories.chats, repositories.groups, repositories.messages)
        self.files = FileService(repositories.files, settings)
        self.groups = GroupService(repositories.groups, self.resolver, self.files, self.identity_cache)
        self.read_state = ReadStateTracker(
            marker_store or ReadMarkerStore(settings.READ_MARKERS_PATH),
            repositories.messages,
            clock=clock,
        )
        self.chat = ChatService(repositories.messages, self.resolver, bus)
        self.conversations = ConversationListAggregator(
            repositories.chats,
            repositories.groups,
            repositories.messages,
            self.identity_cache,
            self.read_state,
        )
        self.search = SearchService(
            repositories.messages,
            repositories.users,
            message_window=settings.SEARCH_MESSAGE_WINDOW,
            user_limit=settings.USER_SEARCH_LIMIT,
            debounce_seconds=settings.SEARCH_DEBOUNCE_SECONDS,
        )
        self.users = UserService(repositories.users, self.identity_cache, self.files)

    def message_streams(self) -> MessageStreamAggregator:
        """One aggregator per client view; each keeps at most one open stream."""
        return MessageStreamAggregator(
            self.repositories.messages,
            self.bus,
            self.identity_cache,
            page_size=self.settings.MESSAGE_PAGE_SIZE,
        )
