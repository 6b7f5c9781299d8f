"""
Event bus: subscription, priority, filtering, middleware, post/drain
"""

import asyncio

import pytest

from initsys.models.enums import ErrorKind, LifecycleEventType, LifecycleState
from initsys.models.events import ErrorEvent, LifecycleEvent
from initsys.services.event_bus import EventBus
from initsys.services.middleware import log_middleware


def ready_event():
    return LifecycleEvent(LifecycleEventType.READY, LifecycleState.READY)


@pytest.mark.asyncio
async def test_basic_pub_sub_with_sync_and_async_handlers():
    bus = EventBus()
    received = []

    async def async_handler(event):
        received.append(("async", event.type))

    bus.subscribe(LifecycleEventType.READY, async_handler)
    bus.subscribe(LifecycleEventType.READY, lambda e: received.append(("sync", e.type)))
    await bus.publish(ready_event())

    assert received == [
        ("async", LifecycleEventType.READY),
        ("sync", LifecycleEventType.READY),
    ]


@pytest.mark.asyncio
async def test_priority_high_first_then_registration_order():
    bus = EventBus()
    order = []

    bus.subscribe(LifecycleEventType.READY, lambda e: order.append("low"), priority=-1)
    bus.subscribe(LifecycleEventType.READY, lambda e: order.append("first"))
    bus.subscribe(LifecycleEventType.READY, lambda e: order.append("high"), priority=10)
    bus.subscribe(LifecycleEventType.READY, lambda e: order.append("second"))

    await bus.publish(ready_event())
    assert order == ["high", "first", "second", "low"]


@pytest.mark.asyncio
async def test_filtering():
    bus = EventBus()
    task_errors = []

    bus.subscribe(
        LifecycleEventType.ERROR,
        task_errors.append,
        filter_fn=lambda e: e.kind is ErrorKind.TASK
    )
    await bus.publish(ErrorEvent(LifecycleState.INIT, "task", ErrorKind.TASK))
    await bus.publish(ErrorEvent(LifecycleState.INIT, "usage", ErrorKind.USAGE))

    assert [str(e) for e in task_errors] == ["task"]


@pytest.mark.asyncio
async def test_middleware_can_block_and_rewrite():
    bus = EventBus()
    received = []
    bus.subscribe(LifecycleEventType.READY, received.append)

    def tag(event):
        event.data["tagged"] = True
        return event

    bus.add_middleware(log_middleware)
    bus.add_middleware(tag)
    await bus.publish(ready_event())
    assert received[0].data == {"tagged": True}

    bus.add_middleware(lambda e: None)
    await bus.publish(ready_event())
    assert len(received) == 1
    assert len(bus.get_event_history()) == 1


@pytest.mark.asyncio
async def test_failing_handler_does_not_stop_others(capsys):
    bus = EventBus()
    received = []

    def broken(event):
        raise RuntimeError("observer bug")

    bus.subscribe(LifecycleEventType.READY, broken, priority=1)
    bus.subscribe(LifecycleEventType.READY, received.append)
    await bus.publish(ready_event())

    assert len(received) == 1
    assert "Event handler failed: broken" in capsys.readouterr().out


def test_post_without_loop_is_held_until_flush():
    bus = EventBus()
    received = []
    bus.subscribe(LifecycleEventType.READY, received.append)

    bus.post(ready_event())
    assert received == []

    asyncio.run(bus.flush_pending())
    assert len(received) == 1


@pytest.mark.asyncio
async def test_post_with_loop_is_delivered_by_drain():
    bus = EventBus()
    received = []
    bus.subscribe(LifecycleEventType.READY, received.append)

    bus.post(ready_event())
    bus.post(ready_event())
    await bus.drain()

    assert len(received) == 2


@pytest.mark.asyncio
async def test_history_is_bounded_and_clearable():
    bus = EventBus(history_limit=3)
    for event_type in (
        LifecycleEventType.STARTUP,
        LifecycleEventType.INITING,
        LifecycleEventType.INITED,
        LifecycleEventType.READY,
    ):
        await bus.publish(LifecycleEvent(event_type, LifecycleState.INIT))

    assert bus.event_types_seen() == [
        LifecycleEventType.INITING,
        LifecycleEventType.INITED,
        LifecycleEventType.READY,
    ]
    assert len(bus.get_event_history(limit=2)) == 2

    bus.clear_history()
    assert bus.event_types_seen() == []


def test_unsubscribe_and_has_subscribers():
    bus = EventBus()

    def handler(event):
        return None

    assert not bus.has_subscribers(LifecycleEventType.END)
    bus.subscribe(LifecycleEventType.END, handler)
    assert bus.has_subscribers(LifecycleEventType.END)

    assert bus.unsubscribe(LifecycleEventType.END, handler)
    assert not bus.unsubscribe(LifecycleEventType.END, handler)
    assert not bus.has_subscribers(LifecycleEventType.END)


@pytest.mark.asyncio
async def test_publish_now_delivers_sync_handlers_before_returning():
    bus = EventBus()
    received = []

    async def async_handler(event):
        received.append("async")

    def broken(event):
        raise RuntimeError("observer bug")

    bus.subscribe(LifecycleEventType.EXIT, broken, priority=5)
    bus.subscribe(LifecycleEventType.EXIT, lambda e: received.append("sync"))
    bus.subscribe(LifecycleEventType.EXIT, async_handler)

    bus.publish_now(LifecycleEvent(LifecycleEventType.EXIT, LifecycleState.FINISH))
    assert received == ["sync"]
    assert bus.event_types_seen() == [LifecycleEventType.EXIT]

    await bus.drain()
    assert received == ["sync", "async"]


def test_publish_now_without_loop_skips_async_handlers():
    bus = EventBus()
    received = []

    async def async_handler(event):
        received.append("async")

    bus.subscribe(LifecycleEventType.READY, async_handler)
    bus.subscribe(LifecycleEventType.READY, received.append)

    bus.publish_now(ready_event())
    assert len(received) == 1
    assert received[0].type is LifecycleEventType.READY
