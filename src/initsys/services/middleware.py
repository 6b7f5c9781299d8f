"""
Middleware for EventBus

Middleware = pipeline functions that process events before handlers.
Can modify events, block events, or log/validate events.
"""

from initsys.models.events import LifecycleEvent
from initsys.utils.logger import get_logger, LogCategory

log = get_logger().for_category(LogCategory.EVENT)


def log_middleware(event: LifecycleEvent) -> LifecycleEvent:
    """
    Log all lifecycle events for debugging

    Usage:
        event_bus.add_middleware(log_middleware)
    """
    payload = {k: v for k, v in event.data.items() if v is not None}
    if payload:
        log.debug(f"Event: {event.type.name} in {event.state.label} | {payload}")
    else:
        log.debug(f"Event: {event.type.name} in {event.state.label}")
    return event
