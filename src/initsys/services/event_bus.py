"""
Event Bus - Lifecycle event routing

Implements pub-sub pattern:
- Publishers: publish(event) / post(event) / publish_now(event)
- Subscribers: subscribe(event_type, handler, priority, filter_fn)
- Middleware: add_middleware(middleware_fn)
"""

import asyncio
from typing import Any, Callable, Dict, List, Optional, Set
from dataclasses import dataclass

from initsys.models.enums import LifecycleEventType, LogCategory
from initsys.models.events import LifecycleEvent
from initsys.utils.logger import get_logger

log = get_logger().for_category(LogCategory.EVENT)


@dataclass
class EventHandler:
    """Event handler registration"""
    handler: Callable[[LifecycleEvent], Any]
    priority: int
    filter_fn: Optional[Callable[[LifecycleEvent], bool]]


class EventBus:
    """
    Event bus for lifecycle notifications

    Features:
    - One typed handler list per LifecycleEventType
    - Priority-based handler execution (high priority first, then
      registration order)
    - Per-handler filtering
    - Middleware pipeline (logging, blocking)
    - Async/sync handler support (auto-detected)
    - Fault tolerance (one handler crash doesn't stop others)
    - post() for synchronous call sites; events posted before the loop
      runs are held until flush_pending()

    Example:
        bus = EventBus()
        bus.subscribe(LifecycleEventType.READY, on_ready)
        await bus.publish(LifecycleEvent(LifecycleEventType.READY, state))
    """

    def __init__(self, history_limit: int = 100):
        self._handlers: Dict[LifecycleEventType, List[EventHandler]] = {}

        # Middleware pipeline (applied in registration order)
        self._middleware: List[Callable[[LifecycleEvent], Optional[LifecycleEvent]]] = []

        # Event history (circular buffer for debugging)
        self._event_history: List[LifecycleEvent] = []
        self._history_limit = history_limit

        # Events posted without a running loop, and publish tasks in flight
        self._pending: List[LifecycleEvent] = []
        self._inflight: Set[asyncio.Task] = set()

    def subscribe(
        self,
        event_type: LifecycleEventType,
        handler: Callable[[LifecycleEvent], Any],
        priority: int = 0,
        filter_fn: Optional[Callable[[LifecycleEvent], bool]] = None
    ) -> None:
        """
        Subscribe to event type

        Args:
            event_type: Which events to listen for
            handler: Function to call (can be async or sync)
            priority: Execution priority (higher = called first, default: 0)
            filter_fn: Optional filter (return True = handle, False = skip)
        """
        handlers = self._handlers.setdefault(event_type, [])
        handlers.append(EventHandler(handler, priority, filter_fn))

        # Stable sort: equal priorities keep registration order
        handlers.sort(key=lambda h: h.priority, reverse=True)

        log.debug(
            "Event handler subscribed",
            event_type=event_type.name,
            handler=getattr(handler, "__name__", repr(handler)),
            priority=priority
        )

    def unsubscribe(self, event_type: LifecycleEventType, handler: Callable[[LifecycleEvent], Any]) -> bool:
        """Remove a handler. Returns True if it was subscribed."""
        handlers = self._handlers.get(event_type, [])
        for entry in handlers:
            if entry.handler == handler:
                handlers.remove(entry)
                return True
        return False

    def has_subscribers(self, event_type: LifecycleEventType) -> bool:
        return bool(self._handlers.get(event_type))

    def add_middleware(self, middleware: Callable[[LifecycleEvent], Optional[LifecycleEvent]]) -> None:
        """
        Add middleware to event processing pipeline

        Middleware can modify events (return modified event), block events
        (return None) or just log them. Runs in registration order.
        """
        self._middleware.append(middleware)
        log.debug(
            "Middleware registered",
            middleware=getattr(middleware, "__name__", repr(middleware))
        )

    async def publish(self, event: LifecycleEvent) -> None:
        """
        Publish event to all subscribers

        Flow:
        1. Apply middleware (can modify or block event)
        2. Save to event history
        3. Execute handlers by priority (high → low), applying filters
        4. Await async handlers, call sync ones directly
        5. Catch and log handler exceptions
        """
        event = self._process(event)
        if event is None:
            return

        for handler_entry in self._matching(event):
            try:
                result = handler_entry.handler(event)
                if asyncio.iscoroutine(result):
                    await result
            except Exception as e:
                self._handler_failed(handler_entry, event, e)

    def publish_now(self, event: LifecycleEvent) -> None:
        """
        Deliver an event before returning, for paths that end the process.

        Sync handlers have run when this returns. Coroutines returned by
        async handlers are scheduled on the running loop, or closed when
        there is none.
        """
        event = self._process(event)
        if event is None:
            return

        for handler_entry in self._matching(event):
            try:
                result = handler_entry.handler(event)
            except Exception as e:
                self._handler_failed(handler_entry, event, e)
                continue
            if asyncio.iscoroutine(result):
                self._schedule(result)

    def _process(self, event: LifecycleEvent) -> Optional[LifecycleEvent]:
        """Run middleware and record history; None if the event was blocked."""
        for middleware in self._middleware:
            processed_event = middleware(event)
            if processed_event is None:
                return None
            event = processed_event

        self._event_history.append(event)
        if len(self._event_history) > self._history_limit:
            self._event_history.pop(0)
        return event

    def _matching(self, event: LifecycleEvent) -> List[EventHandler]:
        # Copy: handlers may subscribe/unsubscribe while we iterate
        return [
            entry for entry in list(self._handlers.get(event.type, []))
            if not entry.filter_fn or entry.filter_fn(event)
        ]

    def _handler_failed(self, handler_entry: EventHandler, event: LifecycleEvent, error: Exception) -> None:
        log.error(
            f"Event handler failed: {getattr(handler_entry.handler, '__name__', handler_entry.handler)} "
            f"for {event.type.name}",
            exception=error
        )

    def _schedule(self, coro: Any) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            coro.close()
            log.warn("Async event handler skipped, no running loop")
            return
        task = loop.create_task(coro)
        self._inflight.add(task)
        task.add_done_callback(self._inflight.discard)

    def post(self, event: LifecycleEvent) -> None:
        """
        Publish from synchronous code.

        With a running loop the publish is scheduled as a task; otherwise the
        event is held until flush_pending() is awaited.
        """
        try:
            asyncio.get_running_loop()
        except RuntimeError:
            self._pending.append(event)
            return
        self._schedule(self.publish(event))

    async def flush_pending(self) -> None:
        """Publish events that were posted before the loop was running."""
        while self._pending:
            await self.publish(self._pending.pop(0))

    async def drain(self) -> None:
        """Wait for scheduled publishes (and pending events) to be delivered."""
        await self.flush_pending()
        while self._inflight:
            await asyncio.gather(*list(self._inflight), return_exceptions=True)

    def get_event_history(self, limit: int = 10) -> List[LifecycleEvent]:
        """Recent events (newest last)"""
        return self._event_history[-limit:]

    def event_types_seen(self) -> List[LifecycleEventType]:
        """Types of every event in history, in publish order"""
        return [event.type for event in self._event_history]

    def clear_history(self) -> None:
        """Clear event history"""
        self._event_history.clear()
