"""Event hub subscription, wildcard delivery and history."""

import asyncio

import pytest

from core.events import EventHub


@pytest.mark.unit
def test_subscribers_receive_named_and_wildcard_events(events):
    named, everything = [], []
    events.subscribe("cache:hit", named.append)
    events.subscribe("*", everything.append)

    events.emit("cache:hit", {"tier": "L1"})
    events.emit("cache:miss")

    assert [e.payload for e in named] == [{"tier": "L1"}]
    assert [e.name for e in everything] == ["cache:hit", "cache:miss"]


@pytest.mark.unit
def test_failing_callback_does_not_reach_emitter(events):
    def explode(event):
        raise RuntimeError("subscriber bug")

    received = []
    events.subscribe("cache:hit", explode)
    events.subscribe("cache:hit", received.append)

    events.emit("cache:hit")

    assert len(received) == 1


@pytest.mark.unit
def test_unsubscribe_and_counts(events):
    events.subscribe("cache:hit", print)

    assert events.subscriber_count("cache:hit") == 1
    assert events.unsubscribe("cache:hit", print) is True
    assert events.unsubscribe("cache:hit", print) is False
    assert events.subscriber_count("cache:hit") == 0


@pytest.mark.unit
def test_history_is_bounded_and_filterable():
    hub = EventHub(max_history=3)
    for i in range(5):
        hub.emit("tick" if i % 2 else "tock", {"i": i})

    assert [e.payload["i"] for e in hub.history()] == [2, 3, 4]
    assert [e.payload["i"] for e in hub.history("tick")] == [3]

    hub.clear()
    assert hub.history() == []


@pytest.mark.unit
@pytest.mark.asyncio
async def test_async_callbacks_are_scheduled(events):
    received = []

    async def on_event(event):
        received.append(event.name)

    events.subscribe("request:completed", on_event)
    events.emit("request:completed")
    await asyncio.sleep(0)

    assert received == ["request:completed"]
