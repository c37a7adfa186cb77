import asyncio
import json
import logging
from dataclasses import asdict, dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional

import redis.asyncio as redis

from chatsync.core.config import Settings, get_settings

logger = logging.getLogger(__name__)


CREATE = "create"
UPDATE = "update"
DELETE = "delete"


@dataclass
class RecordEvent:

    collection: str
    action: str
    payload: Dict[str, Any] = field(default_factory=dict)

    def to_json(self) -> str:
        return json.dumps(asdict(self), default=str)

    @classmethod
    def from_json(cls, raw: str) -> "RecordEvent":
        data = json.loads(raw)
        return cls(collection=data["collection"], action=data["action"], payload=data.get("payload") or {})


Predicate = Callable[[RecordEvent], bool]
Handler = Callable[[RecordEvent], Awaitable[None]]


class Subscription:
    """Handle returned by subscribe(); cancel() stops delivery immediately."""

    def __init__(self, bus: "LocalBus", collection: str, predicate: Predicate, on_event: Handler) -> None:
        self._bus = bus
        self.collection = collection
        self._predicate = predicate
        self._on_event = on_event
        self.active = True

    def cancel(self) -> None:
        if not self.active:
            return
        self.active = False
        self._bus._remove(self)

    async def deliver(self, event: RecordEvent) -> None:
        if not self.active:
            return
        try:
            if not self._predicate(event):
                return
            await self._on_event(event)
        except Exception:
            logger.exception("Subscriber on %s failed to handle %s event", self.collection, event.action)


class LocalBus:
    """In-process fan-out of record events.

    The feed is broad: every subscriber of a collection sees every event and
    narrows it down with its own predicate.
    """

    def __init__(self) -> None:
        self._subscriptions: Dict[str, List[Subscription]] = {}

    async def publish(self, event: RecordEvent) -> None:
        await self._dispatch(event)

    async def subscribe(self, collection: str, predicate: Predicate, on_event: Handler) -> Subscription:
        sub = Subscription(self, collection, predicate, on_event)
        self._subscriptions.setdefault(collection, []).append(sub)
        logger.debug("Subscribed to %s (%d active)", collection, len(self._subscriptions[collection]))
        return sub

    def subscriber_count(self, collection: str) -> int:
        return len(self._subscriptions.get(collection, []))

    async def close(self) -> None:
        for subs in list(self._subscriptions.values()):
            for sub in list(subs):
                sub.cancel()

    async def _dispatch(self, event: RecordEvent) -> None:
        for sub in list(self._subscriptions.get(event.collection, [])):
            await sub.deliver(event)

    def _remove(self, sub: Subscription) -> None:
        subs = self._subscriptions.get(sub.collection)
        if not subs:
            return
        try:
            subs.remove(sub)
        except ValueError:
            pass
        if not subs:
            del self._subscriptions[sub.collection]


class RedisBus(LocalBus):
    """Record events shared across processes through Redis pub/sub.

    One listener task per collection channel feeds the local subscriptions,
    so cancelling a subscription never touches the network.
    """

    def __init__(self, url: str) -> None:
        super().__init__()
        self._redis = redis.from_url(url)
        self._listeners: Dict[str, asyncio.Task] = {}

    @staticmethod
    def channel(collection: str) -> str:
        return f"records:{collection}"

    async def publish(self, event: RecordEvent) -> None:
        await self._redis.publish(self.channel(event.collection), event.to_json())

    async def subscribe(self, collection: str, predicate: Predicate, on_event: Handler) -> Subscription:
        sub = await super().subscribe(collection, predicate, on_event)
        if collection not in self._listeners:
            pubsub = self._redis.pubsub()
            await pubsub.subscribe(self.channel(collection))
            self._listeners[collection] = asyncio.create_task(self._listen(collection, pubsub))
        return sub

    async def _listen(self, collection: str, pubsub) -> None:
        try:
            while True:
                try:
                    msg = await pubsub.get_message(ignore_subscribe_messages=True, timeout=1.0)
                    if msg and msg.get("type") == "message":
                        data = msg.get("data")
                        if isinstance(data, bytes):
                            data = data.decode("utf-8")
                        await self._dispatch(RecordEvent.from_json(data))
                except asyncio.CancelledError:
                    raise
                except Exception:
                    logger.exception("Realtime listener for %s failed; retrying", collection)
                    await asyncio.sleep(0.5)
        finally:
            await pubsub.unsubscribe(self.channel(collection))
            await pubsub.aclose()

    async def close(self) -> None:
        await super().close()
        for task in self._listeners.values():
            task.cancel()
        await asyncio.gather(*self._listeners.values(), return_exceptions=True)
        self._listeners.clear()
        await self._redis.aclose()


_bus: Optional[LocalBus] = None


def get_bus(settings: Optional[Settings] = None) -> LocalBus:
    global _bus
    if _bus is not None:
        return _bus
    settings = settings or get_settings()
    if settings.REDIS_URL:
        _bus = RedisBus(settings.REDIS_URL)
        logger.info("Realtime feed backed by Redis")
    else:
        _bus = LocalBus()
        logger.info("Realtime feed is in-process only (REDIS_URL not set)")
    return _bus


async def reset_bus() -> None:
    global _bus
    if _bus is not None:
        await _bus.close()
    _bus = None
