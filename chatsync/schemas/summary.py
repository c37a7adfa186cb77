from datetime import datetime
from typing import Optional

from pydantic import BaseModel

from chatsync.schemas.conversation import Conversation, ConversationKind
from chatsync.schemas.message import Message
from chatsync.schemas.user import User, display_name


class ConversationSummary(BaseModel):
    """One row of the conversation list."""

    conversation: Conversation
    title: str
    avatar_id: Optional[str] = None
    other_user: Optional[User] = None
    last_message: Optional[Message] = None
    last_sender: Optional[User] = None
    unread_count: int = 0
    sort_time: datetime

    @property
    def preview(self) -> str:
        if self.last_message is None:
            return ""
        text = self.last_message.preview()
        if self.conversation.kind == ConversationKind.GROUP:
            return f"{display_name(self.last_sender)}: {text}"
        return text
