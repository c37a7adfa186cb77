import asyncio
import logging
from typing import Dict, Iterable, Optional

from chatsync.core.exceptions import ChatSyncError
from chatsync.repositories.user_repository import UserRepository
from chatsync.schemas.user import User

logger = logging.getLogger(__name__)


class IdentityCache:
    """Process-wide memo of user profiles keyed by identity id.

    There is no expiry: every local profile mutation calls invalidate_all().
    Lookups never raise; a miss or a backend failure reads as None.
    A fetch that was in flight across an invalidation is returned to its
    caller but never stored.
    """

    def __init__(self, user_repository: UserRepository) -> None:
        self._user_repository = user_repository
        self._users: Dict[str, User] = {}
        self._generation = 0

    async def get(self, user_id: Optional[str]) -> Optional[User]:
        if not user_id:
            return None
        cached = self._users.get(user_id)
        if cached is not None:
            return cached
        generation = self._generation
        try:
            doc = await self._user_repository.get_user_by_id(user_id)
        except ChatSyncError as exc:
            logger.warning("Could not load user %s: %s", user_id, exc.detail)
            return None
        if doc is None:
            logger.warning("User %s not found", user_id)
            return None
        user = User.from_document(doc)
        if generation == self._generation:
            self._users[user_id] = user
        else:
            logger.debug("Not caching user %s fetched before an invalidation", user_id)
        return user

    async def get_many(self, user_ids: Iterable[str]) -> Dict[str, Optional[User]]:
        ids = list(dict.fromkeys(user_ids))
        users = await asyncio.gather(*(self.get(uid) for uid in ids))
        return dict(zip(ids, users))

    def invalidate_all(self) -> None:
        logger.debug("Invalidating %d cached profiles", len(self._users))
        self._generation += 1
        self._users.clear()

    def __contains__(self, user_id: str) -> bool:
        return user_id in self._users

    def __len__(self) -> int:
        return len(self._users)
