"""
initsys - asyncio lifecycle orchestrator
----------------------------------------

Sequences user tasks through init → start → stop → finish and coordinates
an orderly shutdown on completion, request, error or OS signal.

    from initsys import get_controller, run_main

    inits = get_controller()
    inits.init(connect_database, priority=1)
    inits.finish(close_database)
    run_main()
"""

from initsys.config.options import LifecycleOptions, load_options
from initsys.lifecycle import (
    ErrorShutdownCoordinator,
    ILifecycleHandler,
    LifecycleController,
    PhaseRunner,
    TaskQueue,
    TaskRegistry,
    callback_task,
)
from initsys.main import get_controller, reset_controller, run_main
from initsys.models import (
    CallbackError,
    ErrorEvent,
    ErrorKind,
    ExitEvent,
    LifecycleError,
    LifecycleEvent,
    LifecycleEventType,
    LifecycleState,
    Phase,
    TaskError,
    UsageError,
)
from initsys.services import EventBus

__version__ = "1.0.0"

__all__ = [
    "LifecycleOptions",
    "load_options",
    "ErrorShutdownCoordinator",
    "ILifecycleHandler",
    "LifecycleController",
    "PhaseRunner",
    "TaskQueue",
    "TaskRegistry",
    "callback_task",
    "get_controller",
    "reset_controller",
    "run_main",
    "CallbackError",
    "ErrorEvent",
    "ErrorKind",
    "ExitEvent",
    "LifecycleError",
    "LifecycleEvent",
    "LifecycleEventType",
    "LifecycleState",
    "Phase",
    "TaskError",
    "UsageError",
    "EventBus",
]
