from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query, status

from chatsync.schemas.conversation import ConversationKind, ConversationRef, DirectChatRequest
from chatsync.schemas.message import MessageCreate
from chatsync.schemas.user import User
from chatsync.services.container import ServiceContainer
from chatsync.utils.dependencies import get_container, get_current_user


router = APIRouter(prefix="/conversations", tags=["conversations"])


def conversation_ref(kind: ConversationKind, conversation_id: str) -> ConversationRef:
    return ConversationRef(kind=kind, id=conversation_id)


@router.get("")
async def list_conversations(current_user: User = Depends(get_current_user), container: ServiceContainer = Depends(get_container)):
    summaries = await container.conversations.list(current_user.id)
    return {"items": [{**s.model_dump(mode="json"), "preview": s.preview} for s in summaries]}


@router.post("/direct")
async def resolve_direct(body: DirectChatRequest, current_user: User = Depends(get_current_user), container: ServiceContainer = Depends(get_container)):
    chat = await container.resolver.resolve_direct(current_user.id, body.user_id)
    return chat.model_dump(mode="json")


@router.delete("/direct/{chat_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_direct(chat_id: str, current_user: User = Depends(get_current_user), container: ServiceContainer = Depends(get_container)):
    await container.resolver.delete_direct(current_user.id, chat_id)


@router.get("/{kind}/{conversation_id}/messages")
async def list_messages(
    ref: ConversationRef = Depends(conversation_ref),
    limit: int = Query(50, ge=1, le=200),
    before: Optional[datetime] = None,
    before_id: Optional[str] = None,
    current_user: User = Depends(get_current_user),
    container: ServiceContainer = Depends(get_container),
):
    cursor = (before, before_id) if before is not None else None
    messages = await container.chat.get_history(current_user.id, ref, limit=limit, before=cursor)
    return {"items": [m.model_dump(mode="json") for m in messages]}


@router.post("/{kind}/{conversation_id}/messages", status_code=status.HTTP_201_CREATED)
async def send_message(body: MessageCreate, ref: ConversationRef = Depends(conversation_ref), current_user: User = Depends(get_current_user), container: ServiceContainer = Depends(get_container)):
    message = await container.chat.send_message(current_user.id, ref, body.text, body.attachments)
    return message.model_dump(mode="json")


@router.delete("/{kind}/{conversation_id}/messages")
async def clear_history(ref: ConversationRef = Depends(conversation_ref), current_user: User = Depends(get_current_user), container: ServiceContainer = Depends(get_container)):
    removed = await container.chat.clear_history(current_user.id, ref)
    return {"deleted": removed}


@router.post("/{kind}/{conversation_id}/read")
async def mark_read(ref: ConversationRef = Depends(conversation_ref), current_user: User = Depends(get_current_user), container: ServiceContainer = Depends(get_container)):
    await container.resolver.require_participant(ref, current_user.id)
    read_at = container.read_state.mark_read(ref, current_user.id)
    return {"read_at": read_at.isoformat()}


@router.get("/{kind}/{conversation_id}/unread")
async def unread_count(ref: ConversationRef = Depends(conversation_ref), current_user: User = Depends(get_current_user), container: ServiceContainer = Depends(get_container)):
    await container.resolver.require_participant(ref, current_user.id)
    count = await container.read_state.unread_count(ref, current_user.id)
    return {"unread": count}


@router.get("/{kind}/{conversation_id}/search")
async def search_messages(q: str = Query(..., min_length=1), ref: ConversationRef = Depends(conversation_ref), current_user: User = Depends(get_current_user), container: ServiceContainer = Depends(get_container)):
    await container.resolver.require_participant(ref, current_user.id)
    results = await container.search.search_messages(ref, q)
    return {"items": [m.model_dump(mode="json") for m in results]}
