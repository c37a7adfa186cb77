from datetime import datetime
from typing import Any, List, Mapping, Optional

from pydantic import BaseModel, Field

from chatsync.schemas.conversation import ConversationKind, ConversationRef


class Attachment(BaseModel):

    file_id: str
    file_name: str
    file_size: int = Field(ge=0)
    mime_type: str


class Message(BaseModel):

    id: str
    conversation: ConversationRef
    sender_id: str
    text: Optional[str] = None
    attachments: List[Attachment] = Field(default_factory=list)
    created_at: datetime

    @property
    def order_key(self):
        return (self.created_at, self.id)

    def preview(self, limit: int = 200) -> str:
        if self.text:
            return self.text[:limit]
        if self.attachments:
            return f"[{len(self.attachments)} attachment(s)]"
        return ""

    @classmethod
    def from_document(cls, doc: Mapping[str, Any]) -> "Message":
        return cls(
            id=str(doc["_id"]),
            conversation=ConversationRef(
                kind=ConversationKind(doc["conversation_kind"]),
                id=str(doc["conversation_id"]),
            ),
            sender_id=doc["sender_id"],
            text=doc.get("text"),
            attachments=[Attachment(**a) for a in doc.get("attachments") or []],
            created_at=doc["created_at"],
        )


class MessageCreate(BaseModel):

    text: Optional[str] = None
    attachments: List[Attachment] = Field(default_factory=list)
