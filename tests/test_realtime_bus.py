"""Tests for the in-process record feed."""

import pytest

from chatsync.utils.realtime_bus import CREATE, DELETE, LocalBus, RecordEvent, RedisBus


def test_record_event_json():
    event = RecordEvent("messages", CREATE, {"id": "m1", "conversation": {"kind": "group", "id": "g1"}})

    assert RecordEvent.from_json(event.to_json()) == event
    assert RecordEvent.from_json('{"collection": "messages", "action": "delete"}').payload == {}


def test_redis_channel_name():
    assert RedisBus.channel("messages") == "records:messages"


@pytest.mark.asyncio
async def test_predicate_filters_broad_feed():
    bus = LocalBus()
    seen = []

    async def on_event(event):
        seen.append(event.payload["id"])

    await bus.subscribe("messages", lambda e: e.payload.get("room") == "a", on_event)
    await bus.publish(RecordEvent("messages", CREATE, {"id": "1", "room": "a"}))
    await bus.publish(RecordEvent("messages", CREATE, {"id": "2", "room": "b"}))
    await bus.publish(RecordEvent("groups", CREATE, {"id": "3", "room": "a"}))

    assert seen == ["1"]


@pytest.mark.asyncio
async def test_cancel_stops_delivery_immediately():
    bus = LocalBus()
    seen = []

    async def on_event(event):
        seen.append(event.action)

    sub = await bus.subscribe("messages", lambda e: True, on_event)
    await bus.publish(RecordEvent("messages", CREATE))
    sub.cancel()
    sub.cancel()
    await bus.publish(RecordEvent("messages", DELETE))

    assert seen == [CREATE]
    assert bus.subscriber_count("messages") == 0


@pytest.mark.asyncio
async def test_failing_handler_does_not_break_others(caplog):
    bus = LocalBus()
    seen = []

    async def broken(event):
        raise RuntimeError("boom")

    async def healthy(event):
        seen.append(event.action)

    await bus.subscribe("messages", lambda e: True, broken)
    await bus.subscribe("messages", lambda e: True, healthy)

    with caplog.at_level("ERROR"):
        await bus.publish(RecordEvent("messages", CREATE))

    assert seen == [CREATE]
    assert "failed to handle" in caplog.text


@pytest.mark.asyncio
async def test_close_cancels_everything():
    bus = LocalBus()

    async def on_event(event):
        return None

    first = await bus.subscribe("messages", lambda e: True, on_event)
    second = await bus.subscribe("groups", lambda e: True, on_event)
    await bus.close()

    assert not first.active
    assert not second.active
    assert bus.subscriber_count("messages") == 0
