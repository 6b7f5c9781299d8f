"""
Lifecycle subsystem
-------------------

Exports the public API for:
- phase queues and their runner
- the lifecycle controller
- error propagation and shutdown escalation
- task tracking & introspection

External code should import from:
    from initsys.lifecycle import LifecycleController, callback_task
"""

from .controller import LifecycleController
from .phase_runner import PhaseRunner
from .shutdown_coordinator import ErrorShutdownCoordinator
from .task_protocol import ILifecycleHandler, callback_task
from .task_queue import QueuedTask, TaskQueue
from .task_registry import TaskInfo, TaskRecord, TaskRegistry

__all__ = [
    "LifecycleController",
    "PhaseRunner",
    "ErrorShutdownCoordinator",
    "ILifecycleHandler",
    "callback_task",
    "QueuedTask",
    "TaskQueue",
    "TaskInfo",
    "TaskRecord",
    "TaskRegistry",
]
