import logging
from typing import List, Union

from chatsync.core.exceptions import NotFoundError, PermissionDenied, ValidationError
from chatsync.repositories.conversation_repository import ConversationRepository
from chatsync.repositories.group_repository import GroupRepository
from chatsync.repositories.message_repository import MessageRepository
from chatsync.schemas.conversation import (
    ConversationKind,
    ConversationRef,
    DirectConversation,
    GroupConversation,
    direct_pair_key,
)

logger = logging.getLogger(__name__)


class ConversationResolver:
    """Finds or creates the unique direct chat of a pair and loads conversations by reference.

    Find-or-create is a scan followed by an insert with no transaction around
    it: two processes resolving the same new pair at the same moment can both
    create a chat. Duplicates are logged when seen and the oldest one wins;
    they are never merged.
    """

    def __init__(
        self,
        chat_repo: ConversationRepository,
        group_repo: GroupRepository,
        message_repo: MessageRepository,
    ) -> None:
        self._chat_repo = chat_repo
        self._group_repo = group_repo
        self._message_repo = message_repo

    async def resolve_direct(self, self_id: str, other_id: str) -> DirectConversation:
        if not self_id or not other_id:
            raise ValidationError("Both participants are required")
        if self_id == other_id:
            raise ValidationError("Cannot start a conversation with yourself", error_code="SELF_CHAT")

        pair = direct_pair_key(self_id, other_id)
        docs = await self._chat_repo.list_for_user(self_id)
        matches: List[DirectConversation] = [
            chat for chat in map(DirectConversation.from_document, docs) if chat.pair_key == pair
        ]
        if matches:
            matches.sort(key=lambda chat: (chat.created_at, chat.id))
            if len(matches) > 1:
                logger.warning(
                    "Duplicate direct conversations for %s: %s; using %s",
                    pair,
                    [chat.id for chat in matches],
                    matches[0].id,
                )
            return matches[0]

        doc = await self._chat_repo.create_direct(list(pair))
        chat = DirectConversation.from_document(doc)
        logger.info("Created direct conversation %s for %s", chat.id, pair)
        return chat

    async def get_direct(self, chat_id: str) -> DirectConversation:
        doc = await self._chat_repo.get(chat_id)
        if doc is None:
            raise NotFoundError(f"Conversation {chat_id} not found")
        return DirectConversation.from_document(doc)

    async def get_group(self, group_id: str, include_inactive: bool = False) -> GroupConversation:
        doc = await self._group_repo.get(group_id)
        if doc is None:
            raise NotFoundError(f"Group {group_id} not found")
        group = GroupConversation.from_document(doc)
        if not group.active and not include_inactive:
            raise NotFoundError(f"Group {group_id} was deleted")
        return group

    async def get(self, ref: ConversationRef) -> Union[DirectConversation, GroupConversation]:
        if ref.kind == ConversationKind.DIRECT:
            return await self.get_direct(ref.id)
        return await self.get_group(ref.id)

    async def require_participant(
        self, ref: ConversationRef, user_id: str
    ) -> Union[DirectConversation, GroupConversation]:
        conversation = await self.get(ref)
        if user_id not in conversation.participants:
            raise PermissionDenied(f"User {user_id} is not a participant of {ref.marker_key}")
        return conversation

    async def delete_direct(self, user_id: str, chat_id: str) -> None:
        ref = ConversationRef.direct(chat_id)
        await self.require_participant(ref, user_id)
        removed = await self._message_repo.delete_for_conversation(ref)
        await self._chat_repo.delete(chat_id)
        logger.info("User %s deleted conversation %s (%d messages)", user_id, chat_id, removed)
