import logging
from typing import Iterable, Optional

from chatsync.core.exceptions import PermissionDenied, ValidationError
from chatsync.repositories.group_repository import GroupRepository
from chatsync.schemas.conversation import GroupConversation
from chatsync.services.conversation_resolver import ConversationResolver
from chatsync.services.file_service import FileService
from chatsync.services.identity_cache import IdentityCache

logger = logging.getLogger(__name__)


class GroupService:
    """Group lifecycle and membership.

    Only the creator may rename, change the avatar, remove members or delete
    the group. Any member may add members or leave. Permission checks run
    here before the write; the store stays the final authority.
    """

    def __init__(
        self,
        group_repo: GroupRepository,
        resolver: ConversationResolver,
        file_service: FileService,
        identity_cache: IdentityCache,
    ) -> None:
        self._group_repo = group_repo
        self._resolver = resolver
        self._file_service = file_service
        self._identity_cache = identity_cache

    async def create_group(
        self,
        name: str,
        creator_id: str,
        description: Optional[str] = None,
        avatar_id: Optional[str] = None,
        participants: Iterable[str] = (),
    ) -> GroupConversation:
        name = (name or "").strip()
        if not name:
            raise ValidationError("Group name cannot be empty")
        if not creator_id:
            raise ValidationError("Group creator is required")
        description = description.strip() if description else None
        others = [uid for uid in dict.fromkeys(participants) if uid != creator_id]
        await self._require_users(others)
        doc = await self._group_repo.create_group(
            name=name,
            created_by=creator_id,
            description=description or None,
            avatar_id=avatar_id,
        )
        group = GroupConversation.from_document(doc)
        logger.info("User %s created group %s (%s)", creator_id, group.id, name)
        for user_id in others:
            await self._group_repo.add_participant(group.id, user_id)
        return await self._resolver.get_group(group.id)

    async def add_participant(self, actor_id: str, group_id: str, user_id: str) -> GroupConversation:
        group = await self._member_group(actor_id, group_id)
        if group.is_member(user_id):
            return group
        await self._require_users([user_id])
        await self._group_repo.add_participant(group_id, user_id)
        logger.info("User %s added %s to group %s", actor_id, user_id, group_id)
        return await self._resolver.get_group(group_id)

    async def remove_participant(self, actor_id: str, group_id: str, user_id: str) -> GroupConversation:
        group = await self._creator_group(actor_id, group_id, "remove members")
        if user_id == group.created_by:
            raise ValidationError("The group creator cannot be removed")
        if not group.is_member(user_id):
            return group
        await self._group_repo.remove_participant(group_id, user_id)
        logger.info("User %s removed %s from group %s", actor_id, user_id, group_id)
        return await self._resolver.get_group(group_id)

    async def leave_group(self, user_id: str, group_id: str) -> None:
        group = await self._member_group(user_id, group_id)
        if group.is_creator(user_id):
            raise ValidationError("The group creator cannot leave; delete the group instead")
        await self._group_repo.remove_participant(group_id, user_id)
        logger.info("User %s left group %s", user_id, group_id)

    async def update_group(
        self,
        actor_id: str,
        group_id: str,
        name: Optional[str] = None,
        description: Optional[str] = None,
    ) -> GroupConversation:
        fields = {}
        if name is not None:
            name = name.strip()
            if not name:
                raise ValidationError("Group name cannot be empty")
            fields["name"] = name
        if description is not None:
            fields["description"] = description.strip() or None
        await self._creator_group(actor_id, group_id, "edit the group")
        if fields:
            await self._group_repo.update_group(group_id, fields)
        return await self._resolver.get_group(group_id)

    async def get_group(self, actor_id: str, group_id: str) -> GroupConversation:
        return await self._member_group(actor_id, group_id)

    async def set_avatar(
        self, actor_id: str, group_id: str, filename: str, content_type: str, data: bytes
    ) -> GroupConversation:
        self._file_service.check_avatar(filename, content_type, len(data))
        group = await self._creator_group(actor_id, group_id, "change the avatar")
        await self._file_service.replace_avatar(
            actor_id,
            group.avatar_id,
            filename,
            content_type,
            data,
            write=lambda avatar_id: self._group_repo.update_group(group_id, {"avatar_id": avatar_id}),
        )
        return await self._resolver.get_group(group_id)

    async def remove_avatar(self, actor_id: str, group_id: str) -> GroupConversation:
        group = await self._creator_group(actor_id, group_id, "change the avatar")
        if group.avatar_id:
            await self._group_repo.update_group(group_id, {"avatar_id": None})
            await self._file_service.discard(group.avatar_id)
        return await self._resolver.get_group(group_id)

    async def delete_group(self, actor_id: str, group_id: str) -> None:
        await self._creator_group(actor_id, group_id, "delete the group")
        await self._group_repo.deactivate(group_id)
        logger.info("User %s deleted group %s", actor_id, group_id)

    async def _member_group(self, user_id: str, group_id: str) -> GroupConversation:
        group = await self._resolver.get_group(group_id)
        if not group.is_member(user_id):
            raise PermissionDenied(f"User {user_id} is not a member of group {group_id}")
        return group

    async def _creator_group(self, user_id: str, group_id: str, action: str) -> GroupConversation:
        group = await self._resolver.get_group(group_id)
        if not group.is_creator(user_id):
            raise PermissionDenied(f"Only the group creator can {action}")
        return group

    async def _require_users(self, user_ids: Iterable[str]) -> None:
        users = await self._identity_cache.get_many(user_ids)
        unknown = sorted(uid for uid, user in users.items() if user is None)
        if unknown:
            raise ValidationError(f"Unknown users: {', '.join(unknown)}", error_code="UNKNOWN_USER")
