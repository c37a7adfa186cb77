import logging
from typing import List, Optional, Sequence

from chatsync.core.exceptions import ValidationError
from chatsync.repositories.message_repository import MessageRepository, PageCursor
from chatsync.schemas.conversation import ConversationRef
from chatsync.schemas.message import Attachment, Message
from chatsync.services.conversation_resolver import ConversationResolver
from chatsync.services.message_stream import MESSAGES
from chatsync.utils.realtime_bus import CREATE, LocalBus, RecordEvent

logger = logging.getLogger(__name__)


class ChatService:

    def __init__(
        self,
        message_repo: MessageRepository,
        resolver: ConversationResolver,
        bus: LocalBus,
    ) -> None:
        self._message_repo = message_repo
        self._resolver = resolver
        self._bus = bus

    async def send_message(
        self,
        sender_id: str,
        ref: ConversationRef,
        text: Optional[str] = None,
        attachments: Optional[Sequence[Attachment]] = None,
    ) -> Message:
        text = text.strip() if text else None
        attachments = list(attachments or [])
        if not text and not attachments:
            raise ValidationError("Message must have text or at least one attachment")
        await self._resolver.require_participant(ref, sender_id)

        doc = await self._message_repo.save_message(
            ref,
            sender_id=sender_id,
            text=text or None,
            attachments=[a.model_dump() for a in attachments],
        )
        message = Message.from_document(doc)
        await self._bus.publish(RecordEvent(MESSAGES, CREATE, message.model_dump(mode="json")))
        logger.debug("User %s sent %s to %s", sender_id, message.id, ref.marker_key)
        return message

    async def get_history(
        self,
        user_id: str,
        ref: ConversationRef,
        limit: int = 50,
        before: Optional[PageCursor] = None,
    ) -> List[Message]:
        await self._resolver.require_participant(ref, user_id)
        docs = await self._message_repo.list_for_conversation(ref, limit=limit, before=before)
        return [Message.from_document(doc) for doc in docs]

    async def clear_history(self, user_id: str, ref: ConversationRef) -> int:
        await self._resolver.require_participant(ref, user_id)
        removed = await self._message_repo.delete_for_conversation(ref)
        logger.info("User %s cleared %d messages from %s", user_id, removed, ref.marker_key)
        return removed
