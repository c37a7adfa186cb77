from datetime import datetime
from typing import List, Optional, TypedDict


class DirectChatDocument(TypedDict, total=False):
    _id: str
    # always stored sorted, exactly two ids
    participants: List[str]
    created_at: datetime


class GroupDocument(TypedDict, total=False):
    _id: str
    name: str
    description: Optional[str]
    avatar_id: Optional[str]
    participants: List[str]
    created_by: str
    # soft delete flag
    active: bool
    created_at: datetime
