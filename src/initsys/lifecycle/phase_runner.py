"""
Phase runner: drains one phase's TaskQueue.

Two strategies, chosen per phase by the options:
- sequential: run one task, wait for it, then pop the next
- parallel: start every queued task, then wait for all of them

Every task body runs in its own asyncio task. Whatever the body raises,
synchronously or after suspending, comes back as a TaskError result instead
of escaping into the controller.
"""

from __future__ import annotations

import asyncio
import inspect
from typing import Callable, List, Optional

from initsys.config.options import LifecycleOptions
from initsys.lifecycle.task_queue import QueuedTask, Task, TaskQueue
from initsys.lifecycle.task_registry import TaskRegistry
from initsys.models.enums import LogCategory, Phase
from initsys.models.errors import TaskError
from initsys.utils.logger import get_logger

log = get_logger().for_category(LogCategory.TASK)

ErrorReporter = Callable[[TaskError], None]
InterruptCheck = Callable[[], bool]


async def _invoke(task: Task) -> None:
    """Call a task body and await its result if it is awaitable."""
    result = task()
    if inspect.isawaitable(result):
        await result


class PhaseRunner:
    """
    Executes the tasks of one phase.

    run() returns the number of tasks executed, or raises the first TaskError
    when stop_on_error is set. Errors that do not stop the phase are handed
    to `report` (if given) and otherwise only logged.

    In sequential mode `interrupted` is checked before each task; once it
    returns True the remaining tasks stay queued.

    Example:
        runner = PhaseRunner(Phase.INIT, queue, options, registry)
        await runner.run()
    """

    def __init__(
        self,
        phase: Optional[Phase],
        queue: TaskQueue,
        options: LifecycleOptions,
        registry: TaskRegistry,
        report: Optional[ErrorReporter] = None,
        interrupted: Optional[InterruptCheck] = None,
    ):
        self.phase = phase
        self.queue = queue
        self.options = options
        self.registry = registry
        self._report = report
        self._interrupted = interrupted

    @property
    def label(self) -> str:
        return self.phase.label if self.phase else "standalone"

    @property
    def parallel(self) -> bool:
        return self.phase is not None and self.options.in_parallel(self.phase)

    async def run(self) -> int:
        """Drain the queue with the configured strategy."""
        total = self.queue.remaining()
        log.debug(
            f"Running {self.label} tasks",
            tasks=total,
            mode="parallel" if self.parallel else "sequential"
        )
        if self.parallel:
            return await self._run_parallel()
        return await self._run_sequential()

    # ----------------------------------------------------------------------
    # STRATEGIES
    # ----------------------------------------------------------------------

    async def _run_sequential(self) -> int:
        executed = 0
        while True:
            if self._interrupted is not None and self._interrupted():
                log.info(
                    f"Skipping remaining {self.label} tasks",
                    remaining=self.queue.remaining()
                )
                return executed
            entry = self.queue.next()
            if entry is None:
                return executed
            executed += 1
            error = await self.execute(entry)
            if error is None:
                continue
            if self.options.stop_on_error:
                raise error
            self._recovered(error)

    async def _run_parallel(self) -> int:
        launched = []
        while True:
            entry = self.queue.next()
            if entry is None:
                break
            launched.append((entry, self.launch(entry)))

        if not launched:
            return 0

        # settle() never raises for a failing task, so gather waits for all
        results: List[Optional[TaskError]] = await asyncio.gather(
            *(self.settle(entry, task) for entry, task in launched)
        )
        errors = [error for error in results if error is not None]
        if not errors:
            return len(launched)

        # Launch order decides which failure is reported as the phase error
        if self.options.stop_on_error:
            first, rest = errors[0], errors[1:]
            for error in rest:
                self._recovered(error)
            raise first

        for error in errors:
            self._recovered(error)
        return len(launched)

    # ----------------------------------------------------------------------
    # EXECUTION WRAPPER
    # ----------------------------------------------------------------------

    async def execute(self, entry: QueuedTask, warn_slow: bool = True) -> Optional[TaskError]:
        """Run one task to completion; its failure comes back as a TaskError."""
        return await self.settle(entry, self.launch(entry), warn_slow=warn_slow)

    def launch(self, entry: QueuedTask) -> asyncio.Task:
        """Start one task body and register it."""
        task = asyncio.get_running_loop().create_task(
            _invoke(entry.task), name=f"{self.label}:{entry.description}"
        )
        self.registry.register(task, self.phase, entry.description, entry.priority)
        return task

    async def settle(
        self,
        entry: QueuedTask,
        task: asyncio.Task,
        warn_slow: bool = True,
    ) -> Optional[TaskError]:
        """Wait for a launched body; return its failure as a TaskError."""
        limit = self.options.max_task_time_sec if warn_slow else 0
        done, _ = await asyncio.wait({task}, timeout=limit or None)
        if not done:
            self.registry.mark_slow(task)
            log.warn(
                f"Task {entry.description} still running",
                phase=self.label,
                after=f"{limit}s"
            )
            await asyncio.wait({task})

        if task.cancelled():
            return TaskError(self.phase, entry.description, asyncio.CancelledError("task was cancelled"))
        exc = task.exception()
        if exc is None:
            return None
        return TaskError(self.phase, entry.description, exc)

    def _recovered(self, error: TaskError) -> None:
        if self._report is not None:
            self._report(error)
        else:
            log.error(f"Error in phase {self.label}: {error}")
