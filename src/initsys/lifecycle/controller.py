"""
Lifecycle controller: sequences init → start → ready → stop → finish.

Typical use:

    controller = LifecycleController()

    @controller.init
    async def connect_database():
        await db.connect()

    controller.start(http_server.start, priority=1)
    controller.stop(http_server.stop)
    controller.finish(db.close)

    exit_code = asyncio.run(controller.run())

Registration calls only queue tasks. startup() defers the run to the next
loop tick, so every registration made while modules load is in place before
the init phase drains.
"""

from __future__ import annotations

import asyncio
import os
import sys
import time
from typing import Any, Callable, Dict, Optional, Set

from initsys.config.options import LifecycleOptions
from initsys.lifecycle.phase_runner import PhaseRunner
from initsys.lifecycle.shutdown_coordinator import ErrorShutdownCoordinator
from initsys.lifecycle.task_queue import QueuedTask, Task, TaskQueue
from initsys.lifecycle.task_registry import TaskRegistry
from initsys.models.enums import (
    ErrorKind,
    LifecycleEventType,
    LifecycleState,
    LogCategory,
    LogLevel,
    Phase,
)
from initsys.models.errors import TaskError, UsageError
from initsys.models.events import ExitEvent, LifecycleEvent
from initsys.services.event_bus import EventBus
from initsys.services.middleware import log_middleware
from initsys.utils.logger import get_logger

log = get_logger().for_category(LogCategory.LIFECYCLE)
system_log = log.with_category(LogCategory.SYSTEM)

STARTUP_PHASES = (Phase.INIT, Phase.START)
SHUTDOWN_PHASES = (Phase.STOP, Phase.FINISH)


class LifecycleController:
    """
    Owns the four phase queues and drives them.

    Every failure (misuse of this API, task errors, unhandled loop errors)
    is reported through the ERROR event and the log; none of the public
    methods raise.

    Args:
        options: LifecycleOptions (defaults if omitted)
        event_bus: EventBus for lifecycle events (a new one with debug
                   event logging if omitted)
        exit_func: Called with the exit code after a clean end when
                   exit_process is on
        force_exit_func: Called with the exit code on forced termination
                         when exit_process is on
        **overrides: Option overrides, e.g. stop_on_error=False
    """

    def __init__(
        self,
        options: Optional[LifecycleOptions] = None,
        event_bus: Optional[EventBus] = None,
        exit_func: Callable[[int], Any] = sys.exit,
        force_exit_func: Callable[[int], Any] = os._exit,
        **overrides: Any,
    ):
        options = options or LifecycleOptions()
        self.options = options.merged(**overrides) if overrides else options
        if event_bus is None:
            event_bus = EventBus()
            event_bus.add_middleware(log_middleware)
        self.events = event_bus
        self.registry = TaskRegistry()
        self.coordinator = ErrorShutdownCoordinator(self)

        self._queues: Dict[Phase, TaskQueue] = {phase: TaskQueue(phase.label) for phase in Phase}
        self._completed: Set[Phase] = set()
        self._standalone: Optional[QueuedTask] = None
        self._standalone_task: Optional[asyncio.Task] = None

        self._state = LifecycleState.PRE
        self._starting_up = False
        self._shutting_down = False
        self._startup_requested = False
        self._startup_scheduled = False
        self._shutdown_code = 0

        self._driver: Optional[asyncio.Task] = None
        self._shutdown_task: Optional[asyncio.Task] = None
        self._closed = asyncio.Event()
        self._exit_code: Optional[int] = None

        self._exit_func = exit_func
        self._force_exit_func = force_exit_func

    # ----------------------------------------------------------------------
    # PROPERTIES
    # ----------------------------------------------------------------------

    @property
    def state(self) -> LifecycleState:
        return self._state

    @property
    def starting_up(self) -> bool:
        return self._starting_up

    @property
    def shutting_down(self) -> bool:
        return self._shutting_down

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    @property
    def exit_code(self) -> Optional[int]:
        """Exit code once the controller closed, else None"""
        return self._exit_code

    @property
    def completed_phases(self) -> Set[Phase]:
        return set(self._completed)

    def pending(self, phase: Phase) -> int:
        """Tasks still queued for a phase"""
        return self._queues[phase].remaining()

    # ----------------------------------------------------------------------
    # REGISTRATION
    # ----------------------------------------------------------------------

    def register(self, phase: Phase, task: Task, priority: Optional[int] = None) -> Optional[Task]:
        """
        Queue a task into a phase.

        Returns the task (so the phase methods work as decorators), or None
        when the registration was rejected.
        """
        if task is None or not callable(task):
            self._usage_error(f"Could not add {phase.label} task: {task!r} is not callable")
            return None
        if phase in self._completed:
            self._usage_error(f"Could not add {phase.label} task to queue after it has run")
            return None

        entry = self._queues[phase].add(priority, task)
        log.debug(f"Queued {phase.label} task {entry.description}", priority=priority)
        return task

    def init(self, task: Task, priority: Optional[int] = None) -> Optional[Task]:
        return self.register(Phase.INIT, task, priority)

    def start(self, task: Task, priority: Optional[int] = None) -> Optional[Task]:
        return self.register(Phase.START, task, priority)

    def stop(self, task: Task, priority: Optional[int] = None) -> Optional[Task]:
        return self.register(Phase.STOP, task, priority)

    def finish(self, task: Task, priority: Optional[int] = None) -> Optional[Task]:
        return self.register(Phase.FINISH, task, priority)

    def add_handler(self, handler: Any) -> int:
        """
        Queue every phase hook an ILifecycleHandler defines.

        Returns the number of hooks queued.
        """
        priority = getattr(handler, "priority", None)
        queued = 0
        for phase in Phase:
            hook = getattr(handler, phase.label, None)
            if callable(hook) and self.register(phase, hook, priority) is not None:
                queued += 1
        if not queued:
            self._usage_error(f"Handler {type(handler).__name__} defines no phase hooks")
        return queued

    def standalone(self, task: Task) -> Optional[Task]:
        """Register the single task that runs after ready and before stop."""
        if self._standalone is not None:
            self._usage_error("Already have a standalone task")
            return None
        if task is None or not callable(task):
            self._usage_error(f"Could not add standalone task: {task!r} is not callable")
            return None
        if Phase.START in self._completed:
            self._usage_error("Could not add standalone task after start has run")
            return None
        self._standalone = QueuedTask(task=task, priority=None, sequence=0)
        return task

    def on(self, event_type: LifecycleEventType, handler: Callable[[LifecycleEvent], Any], priority: int = 0) -> None:
        """Subscribe an observer to a lifecycle event."""
        self.events.subscribe(event_type, handler, priority=priority)

    # ----------------------------------------------------------------------
    # STARTUP
    # ----------------------------------------------------------------------

    def startup(self) -> None:
        """
        Begin the lifecycle on the next loop tick.

        Without a running loop the start is deferred until run() is awaited.
        """
        if self._startup_requested:
            self._usage_error("Could not start up again")
            return
        self._startup_requested = True
        self._schedule_startup()

    def _schedule_startup(self) -> None:
        if self._startup_scheduled:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            log.debug("No running loop yet, startup deferred until run()")
            return
        self._startup_scheduled = True
        loop.call_soon(self._begin_startup)

    def _begin_startup(self) -> None:
        self._driver = asyncio.get_running_loop().create_task(self._drive(), name="initsys-startup")

    async def run(self) -> int:
        """Start up (if not already requested) and wait until closed."""
        if not self._startup_requested:
            self.startup()
        else:
            self._schedule_startup()
        return await self.wait_closed()

    async def wait_closed(self) -> int:
        """Wait for end or forced termination; returns the exit code."""
        await self._closed.wait()
        return self._exit_code

    async def _drive(self) -> None:
        if self._shutting_down or self.closed:
            self._usage_error("Could not start up after shutdown")
            return

        loop = asyncio.get_running_loop()
        self._starting_up = True
        started_at = time.monotonic()
        self.coordinator.install(loop)
        await self.events.flush_pending()

        system_log.info("Starting up")
        await self._publish(LifecycleEventType.STARTUP)

        for phase in STARTUP_PHASES:
            if self._shutting_down or not await self._run_phase(phase):
                break
        self._starting_up = False

        if not self._shutting_down and not self.closed:
            self._state = LifecycleState.READY
            if self.options.log_times:
                system_log.info(f"Ready in {time.monotonic() - started_at:.3f}s")
            else:
                system_log.info("Ready")
            await self._publish(LifecycleEventType.READY)

            if self._standalone is not None and not self._shutting_down:
                await self._run_standalone()

        if self._shutting_down and not self.closed:
            await self._run_shutdown()

    async def _run_standalone(self) -> None:
        self._state = LifecycleState.STANDALONE
        entry = self._standalone
        runner = PhaseRunner(None, TaskQueue("standalone"), self.options, self.registry)

        task = runner.launch(entry)
        self._standalone_task = task
        error = await runner.settle(entry, task, warn_slow=False)
        self._standalone_task = None

        if error is not None and not (self._shutting_down and task.cancelled()):
            await self.coordinator.handle_phase_failure(error)
        if not self._shutting_down:
            self.coordinator.request_shutdown(0, reason="standalone task completed")

    # ----------------------------------------------------------------------
    # SHUTDOWN
    # ----------------------------------------------------------------------

    def shutdown(self, error_code: int = 0) -> None:
        """
        Run stop then finish, emit end, then request exit with error_code.

        Repeated calls while shutting down only log a warning and arm the
        forced-termination grace timer.
        """
        self.coordinator.request_shutdown(error_code, reason="shutdown()")

    def _begin_shutdown(self, code: int) -> bool:
        """Transition shutting_down false → true; called by the coordinator."""
        if self._shutting_down:
            return False
        self._shutting_down = True
        self._shutdown_code = code

        if self._driver is not None and not self._driver.done():
            # The startup driver moves on to stop once its current step settles
            if self._standalone_task is not None and not self._standalone_task.done():
                log.info("Cancelling standalone task for shutdown")
                self._standalone_task.cancel()
            return True

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self._usage_error("Could not shut down without a running event loop")
            self._shutting_down = False
            return False
        self._shutdown_task = loop.create_task(self._run_shutdown(), name="initsys-shutdown")
        return True

    async def _run_shutdown(self) -> None:
        if not self.coordinator.installed:
            # Shutdown without startup still gets the traps
            self.coordinator.install(asyncio.get_running_loop())
        started_at = time.monotonic()

        system_log.info("Shutting down", code=self._shutdown_code)
        await self._publish(LifecycleEventType.SHUTDOWN)

        for phase in SHUTDOWN_PHASES:
            if self.closed:
                return
            await self._run_phase(phase)
            # A failed stop still lets finish run; a failed finish is forced
        if self.closed:
            return

        code = self._shutdown_code
        if self.coordinator.failed and code == 0:
            code = 1

        self._state = LifecycleState.END
        if self.options.log_times:
            system_log.info(f"Shutdown took {time.monotonic() - started_at:.3f}s")
        await self._publish(LifecycleEventType.END)
        await self.events.publish(ExitEvent(self._state, code))
        await self.events.drain()
        system_log.info(f"Finished (exit code {code})")
        self._close(code, forced=False)

    def _close(self, code: int, forced: bool) -> None:
        """Record the exit code, remove traps and hand over to the exit function."""
        if self.closed:
            return
        self._exit_code = code
        self.coordinator.uninstall()
        self._closed.set()

        if self.options.exit_process:
            if forced:
                self._force_exit_func(code)
            else:
                self._exit_func(code)

    # ----------------------------------------------------------------------
    # PHASES
    # ----------------------------------------------------------------------

    async def _run_phase(self, phase: Phase) -> bool:
        if phase in self._completed:
            self._usage_error(f"Tasks for {phase.label} already run")
            return False

        self._state = LifecycleState.for_phase(phase)
        await self._publish(phase.entering)

        interrupted = (lambda: self._shutting_down) if phase in STARTUP_PHASES else None
        runner = PhaseRunner(
            phase, self._queues[phase], self.options, self.registry,
            report=self._task_error, interrupted=interrupted
        )
        try:
            count = await runner.run()
        except TaskError as error:
            await self.coordinator.handle_phase_failure(error)
            return False

        if self.closed:
            return False
        if interrupted is not None and interrupted():
            log.info(f"Phase {phase.label} interrupted by shutdown", tasks=count)
            return False

        self._completed.add(phase)
        log.info(f"Phase {phase.label} completed", tasks=count)
        await self._publish(phase.completed)
        return True

    async def _publish(self, event_type: LifecycleEventType) -> None:
        await self.events.publish(LifecycleEvent(type=event_type, state=self._state))

    # ----------------------------------------------------------------------
    # ERRORS
    # ----------------------------------------------------------------------

    def _task_error(self, error: TaskError) -> None:
        """Task error that did not stop its phase (stop_on_error off)."""
        self.coordinator.report(error, ErrorKind.TASK)

    def _usage_error(self, message: str) -> None:
        self.coordinator.report(UsageError(message, state=self._state.label), ErrorKind.USAGE, level=LogLevel.WARN)
