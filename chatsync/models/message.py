from datetime import datetime
from typing import List, Literal, Optional, TypedDict


class AttachmentDocument(TypedDict):
    file_id: str
    file_name: str
    file_size: int
    mime_type: str


class MessageDocument(TypedDict, total=False):
    _id: str
    conversation_kind: Literal["direct", "group"]
    conversation_id: str
    sender_id: str
    text: Optional[str]
    attachments: List[AttachmentDocument]
    # server-assigned
    created_at: datetime
