import logging
from typing import Optional

from chatsync.core.exceptions import ConflictError, NotFoundError, ValidationError
from chatsync.repositories.user_repository import UserRepository
from chatsync.schemas.user import User, UsernameAvailability
from chatsync.services.file_service import FileService
from chatsync.services.identity_cache import IdentityCache

logger = logging.getLogger(__name__)


class UserService:
    """Profile records of users whose identity comes from the auth provider.

    Every successful write invalidates the identity cache.
    """

    def __init__(
        self,
        user_repository: UserRepository,
        identity_cache: IdentityCache,
        file_service: FileService,
    ) -> None:
        self.user_repository = user_repository
        self.identity_cache = identity_cache
        self.file_service = file_service

    async def register_profile(
        self,
        user_id: str,
        username: str,
        email: Optional[str],
        display_name: Optional[str] = None,
    ) -> User:
        """
        Create the profile record for an identity issued by the auth provider
        - username must be non-empty and not taken (case-insensitive)
        """
        username = (username or "").strip()
        if not username:
            raise ValidationError("Username cannot be empty")
        existing = await self.user_repository.get_user_by_username(username)
        if existing:
            raise ConflictError(f"Username {username} is already taken")
        doc = await self.user_repository.create_user(
            user_id=user_id,
            username=username,
            email=email,
            display_name=(display_name or "").strip() or None,
        )
        self.identity_cache.invalidate_all()
        logger.info("Registered profile %s (%s)", user_id, username)
        return User.from_document(doc)

    async def get_profile(self, user_id: str) -> User:
        user = await self.identity_cache.get(user_id)
        if user is None:
            raise NotFoundError(f"User {user_id} not found")
        return user

    async def check_username_available(self, username: str, self_id: str) -> UsernameAvailability:
        username = (username or "").strip()
        if not username:
            return UsernameAvailability(available=False, message="Username cannot be empty")
        existing = await self.user_repository.get_user_by_username(username)
        if existing is None:
            return UsernameAvailability(available=True, message="Username is available")
        if str(existing["_id"]) == self_id:
            return UsernameAvailability(available=True, message="Current username")
        return UsernameAvailability(available=False, message="Username is already taken")

    async def update_profile(
        self,
        user_id: str,
        display_name: Optional[str] = None,
        username: Optional[str] = None,
    ) -> User:
        fields = {}
        if display_name is not None:
            display_name = display_name.strip()
            if not display_name:
                raise ValidationError("Name cannot be empty")
            fields["display_name"] = display_name
        if username is not None:
            username = username.strip()
            if not username:
                raise ValidationError("Username cannot be empty")
            availability = await self.check_username_available(username, user_id)
            if not availability.available:
                raise ConflictError(availability.message)
            fields["username"] = username
        if fields:
            await self._write(user_id, fields)
        return await self.get_profile(user_id)

    async def set_avatar(self, user_id: str, filename: str, content_type: str, data: bytes) -> User:
        self.file_service.check_avatar(filename, content_type, len(data))
        current = await self.get_profile(user_id)
        await self.file_service.replace_avatar(
            user_id,
            current.avatar_id,
            filename,
            content_type,
            data,
            write=lambda avatar_id: self._write(user_id, {"avatar_id": avatar_id}),
        )
        return await self.get_profile(user_id)

    async def remove_avatar(self, user_id: str) -> User:
        current = await self.get_profile(user_id)
        if current.avatar_id:
            await self._write(user_id, {"avatar_id": None})
            await self.file_service.discard(current.avatar_id)
        return await self.get_profile(user_id)

    async def _write(self, user_id: str, fields: dict) -> None:
        found = await self.user_repository.update_user(user_id, fields)
        self.identity_cache.invalidate_all()
        if not found:
            raise NotFoundError(f"User {user_id} not found")
        logger.info("Updated profile %s: %s", user_id, ", ".join(sorted(fields)))
