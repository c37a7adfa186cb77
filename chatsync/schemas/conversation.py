from datetime import datetime
from enum import Enum
from typing import Annotated, Any, List, Literal, Mapping, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field


class ConversationKind(str, Enum):
    DIRECT = "direct"
    GROUP = "group"


class ConversationRef(BaseModel):
    """Identifies the conversation a message belongs to.

    Direct and group ids live in different collections, so a reference is
    only equal to another when both the kind and the id match.
    """

    model_config = ConfigDict(frozen=True)

    kind: ConversationKind
    id: str

    @property
    def marker_key(self) -> str:
        return f"{self.kind.value}:{self.id}"

    @classmethod
    def direct(cls, chat_id: str) -> "ConversationRef":
        return cls(kind=ConversationKind.DIRECT, id=chat_id)

    @classmethod
    def group(cls, group_id: str) -> "ConversationRef":
        return cls(kind=ConversationKind.GROUP, id=group_id)


def direct_pair_key(user_a: str, user_b: str) -> Tuple[str, str]:
    return (user_a, user_b) if user_a <= user_b else (user_b, user_a)


class DirectConversation(BaseModel):

    kind: Literal["direct"] = "direct"
    id: str
    participants: List[str]
    created_at: datetime

    @property
    def ref(self) -> ConversationRef:
        return ConversationRef.direct(self.id)

    @property
    def pair_key(self) -> Optional[Tuple[str, str]]:
        if len(self.participants) != 2:
            return None
        return direct_pair_key(*self.participants)

    def other_participant(self, user_id: str) -> Optional[str]:
        others = [p for p in self.participants if p != user_id]
        return others[0] if others else None

    @classmethod
    def from_document(cls, doc: Mapping[str, Any]) -> "DirectConversation":
        return cls(
            id=str(doc["_id"]),
            participants=list(doc.get("participants") or []),
            created_at=doc["created_at"],
        )


class GroupConversation(BaseModel):

    kind: Literal["group"] = "group"
    id: str
    name: str
    description: Optional[str] = None
    avatar_id: Optional[str] = None
    participants: List[str]
    created_by: str
    active: bool = True
    created_at: datetime

    @property
    def ref(self) -> ConversationRef:
        return ConversationRef.group(self.id)

    def is_creator(self, user_id: str) -> bool:
        return self.created_by == user_id

    def is_member(self, user_id: str) -> bool:
        return user_id in self.participants

    @classmethod
    def from_document(cls, doc: Mapping[str, Any]) -> "GroupConversation":
        return cls(
            id=str(doc["_id"]),
            name=doc["name"],
            description=doc.get("description"),
            avatar_id=doc.get("avatar_id"),
            participants=list(doc.get("participants") or []),
            created_by=doc["created_by"],
            active=doc.get("active", True),
            created_at=doc["created_at"],
        )


Conversation = Annotated[
    Union[DirectConversation, GroupConversation],
    Field(discriminator="kind"),
]


class DirectChatRequest(BaseModel):

    user_id: str


class GroupCreate(BaseModel):

    name: str
    description: Optional[str] = None
    avatar_id: Optional[str] = None
    participants: List[str] = Field(default_factory=list)


class GroupUpdate(BaseModel):

    name: Optional[str] = None
    description: Optional[str] = None


class ParticipantRequest(BaseModel):

    user_id: str
