import json
import logging
from typing import List

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from chatsync.core.exceptions import ChatSyncError
from chatsync.schemas.conversation import ConversationKind, ConversationRef
from chatsync.schemas.message import Message
from chatsync.schemas.user import display_name
from chatsync.services.container import ServiceContainer
from chatsync.services.message_stream import MessageStream


router = APIRouter(tags=["chat"])
logger = logging.getLogger(__name__)


def _serialize(stream: MessageStream, messages: List[Message]) -> list:
    return [
        {**m.model_dump(mode="json"), "sender_name": display_name(stream.sender_of(m))}
        for m in messages
    ]


@router.websocket("/ws/conversations/{kind}/{conversation_id}")
async def conversation_socket(websocket: WebSocket, kind: ConversationKind, conversation_id: str):
    container: ServiceContainer = websocket.app.state.container
    user_id = websocket.query_params.get("user_id")
    if not user_id or await container.identity_cache.get(user_id) is None:
        await websocket.close(code=4401)
        return
    ref = ConversationRef(kind=kind, id=conversation_id)
    try:
        await container.resolver.require_participant(ref, user_id)
    except ChatSyncError as exc:
        logger.warning("Rejected stream %s for %s: %s", ref.marker_key, user_id, exc.detail)
        await websocket.close(code=4403)
        return

    await websocket.accept()
    streams = container.message_streams()
    try:
        stream = await streams.open(ref)
    except ChatSyncError as exc:
        logger.error("Could not open stream %s: %s", ref.marker_key, exc.detail)
        await websocket.close(code=1011)
        return

    async def push(messages: List[Message]) -> None:
        await websocket.send_text(json.dumps({"type": "message", "messages": _serialize(stream, messages)}))

    async def send_search_results(query: str) -> None:
        try:
            results = await container.search.search_messages(ref, query)
        except ChatSyncError as exc:
            logger.warning("Search in %s failed: %s", ref.marker_key, exc.detail)
            await websocket.send_text(json.dumps({"type": "error", "message": exc.detail}))
            return
        await websocket.send_text(
            json.dumps({"type": "search_results", "query": query, "messages": _serialize(stream, results)})
        )

    stream.add_listener(push)
    debouncer = container.search.debouncer()
    container.read_state.mark_read(ref, user_id)
    await websocket.send_text(json.dumps({"type": "snapshot", "messages": _serialize(stream, stream.messages)}))

    try:
        while True:
            data = await websocket.receive_text()
            try:
                msg = json.loads(data)
            except ValueError:
                await websocket.send_text(json.dumps({"type": "error", "message": "Invalid JSON"}))
                continue
            # Expect msg = {"type": "load_older" | "refresh" | "read" | "search", "q": ...}
            if msg.get("type") == "load_older":
                await stream.load_older()
            elif msg.get("type") == "refresh":
                await stream.refresh()
            elif msg.get("type") == "read":
                container.read_state.mark_read(ref, user_id)
                continue
            elif msg.get("type") == "search":
                debouncer.schedule(send_search_results, str(msg.get("q") or ""))
                continue
            else:
                await websocket.send_text(json.dumps({"type": "error", "message": "Unknown message type"}))
                continue
            await websocket.send_text(json.dumps({"type": "snapshot", "messages": _serialize(stream, stream.messages)}))
    except WebSocketDisconnect:
        logger.debug("Socket for %s closed by %s", ref.marker_key, user_id)
    finally:
        debouncer.cancel()
        streams.close()
