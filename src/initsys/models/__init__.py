from .enums import (
    ErrorKind,
    LifecycleEventType,
    LifecycleState,
    LogCategory,
    LogLevel,
    Phase,
)
from .errors import CallbackError, LifecycleError, TaskError, UsageError
from .events import ErrorEvent, ExitEvent, LifecycleEvent

__all__ = [
    "ErrorKind",
    "LifecycleEventType",
    "LifecycleState",
    "LogCategory",
    "LogLevel",
    "Phase",
    "CallbackError",
    "LifecycleError",
    "TaskError",
    "UsageError",
    "ErrorEvent",
    "ExitEvent",
    "LifecycleEvent",
]
