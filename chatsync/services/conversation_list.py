import asyncio
import logging
from typing import List, Union

from chatsync.repositories.conversation_repository import ConversationRepository
from chatsync.repositories.group_repository import GroupRepository
from chatsync.repositories.message_repository import MessageRepository
from chatsync.schemas.conversation import DirectConversation, GroupConversation
from chatsync.schemas.message import Message
from chatsync.schemas.summary import ConversationSummary
from chatsync.schemas.user import display_name
from chatsync.services.identity_cache import IdentityCache
from chatsync.services.read_state import ReadStateTracker

logger = logging.getLogger(__name__)


def sort_summaries(summaries: List[ConversationSummary]) -> List[ConversationSummary]:
    """Most recent activity first; equal times fall back to ascending id."""
    ordered = sorted(summaries, key=lambda s: (s.conversation.id, s.conversation.kind))
    ordered.sort(key=lambda s: s.sort_time, reverse=True)
    return ordered


class ConversationListAggregator:
    """Direct chats and active groups of a user as one list.

    The list is recomputed as a whole on every call; callers trigger a
    refresh after sending, creating or deleting instead of patching it.
    """

    def __init__(
        self,
        chat_repo: ConversationRepository,
        group_repo: GroupRepository,
        message_repo: MessageRepository,
        identity_cache: IdentityCache,
        read_state: ReadStateTracker,
    ) -> None:
        self._chat_repo = chat_repo
        self._group_repo = group_repo
        self._message_repo = message_repo
        self._identity_cache = identity_cache
        self._read_state = read_state

    async def list(self, user_id: str) -> List[ConversationSummary]:
        chat_docs, group_docs = await asyncio.gather(
            self._chat_repo.list_for_user(user_id),
            self._group_repo.list_active_for_user(user_id),
        )
        conversations: List[Union[DirectConversation, GroupConversation]] = []
        conversations.extend(DirectConversation.from_document(doc) for doc in chat_docs)
        conversations.extend(
            group
            for group in map(GroupConversation.from_document, group_docs)
            if group.active and group.is_member(user_id)
        )
        summaries = await asyncio.gather(*(self._summarize(c, user_id) for c in conversations))
        logger.debug("Listed %d conversations for %s", len(summaries), user_id)
        return sort_summaries(list(summaries))

    async def _summarize(
        self, conversation: Union[DirectConversation, GroupConversation], user_id: str
    ) -> ConversationSummary:
        ref = conversation.ref
        latest_doc, unread = await asyncio.gather(
            self._message_repo.latest_for_conversation(ref),
            self._read_state.unread_count(ref, user_id),
        )
        last_message = Message.from_document(latest_doc) if latest_doc else None
        sort_time = last_message.created_at if last_message else conversation.created_at

        if isinstance(conversation, DirectConversation):
            other_user = await self._identity_cache.get(conversation.other_participant(user_id))
            return ConversationSummary(
                conversation=conversation,
                title=display_name(other_user),
                avatar_id=other_user.avatar_id if other_user else None,
                other_user=other_user,
                last_message=last_message,
                unread_count=unread,
                sort_time=sort_time,
            )

        last_sender = await self._identity_cache.get(last_message.sender_id) if last_message else None
        return ConversationSummary(
            conversation=conversation,
            title=conversation.name,
            avatar_id=conversation.avatar_id,
            last_message=last_message,
            last_sender=last_sender,
            unread_count=unread,
            sort_time=sort_time,
        )
