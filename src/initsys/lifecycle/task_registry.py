"""
Task Registry
-------------

Tracking of every lifecycle task the controller has executed.

Each controller owns one registry. The phase runner registers the asyncio
task it creates for a task body, and the registry records how it ended.

Features:
- Metadata per execution (phase, description, priority)
- Completion state, errors, cancellation, duration
- Slow-task flag set by the runner's warning
- Introspection API for logs and the HTTP status routes
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Dict, List, Optional

from initsys.models.enums import LogCategory, Phase
from initsys.utils.logger import get_logger

log = get_logger().for_category(LogCategory.TASK)


@dataclass(frozen=True)
class TaskInfo:
    """Immutable metadata captured when a task starts running."""
    id: int
    phase: Optional[Phase]  # None for the standalone task
    description: str
    priority: Optional[int]
    created_at: str  # ISO UTC string
    created_timestamp: float  # monotonic, for durations

    @property
    def phase_label(self) -> str:
        return self.phase.label if self.phase else "standalone"


@dataclass
class TaskRecord:
    """Internal structure tracking task state."""
    task: asyncio.Task
    info: TaskInfo
    cancelled: bool = False
    finished_with_error: Optional[BaseException] = None
    finished_timestamp: Optional[float] = None
    slow: bool = False

    @property
    def status(self) -> str:
        if not self.task.done():
            return "running"
        if self.cancelled:
            return "cancelled"
        if self.finished_with_error is not None:
            return "failed"
        return "completed"

    @property
    def duration(self) -> float:
        end = self.finished_timestamp if self.finished_timestamp is not None else time.monotonic()
        return end - self.info.created_timestamp


class TaskRegistry:
    """
    Registry of executed lifecycle tasks for one controller.

    Responsibilities:
    - Track tasks and metadata
    - Record failures and cancellations
    - Provide introspection for logs and the status API
    """

    def __init__(self) -> None:
        self._records: Dict[int, TaskRecord] = {}
        self._by_task: Dict[asyncio.Task, int] = {}
        self._next_id: int = 1

    def register(
        self,
        task: asyncio.Task,
        phase: Optional[Phase],
        description: str,
        priority: Optional[int] = None,
    ) -> TaskRecord:
        """Register a running task with metadata."""
        task_id = self._next_id
        self._next_id += 1

        info = TaskInfo(
            id=task_id,
            phase=phase,
            description=description,
            priority=priority,
            created_at=datetime.now(timezone.utc).isoformat(),
            created_timestamp=time.monotonic(),
        )
        record = TaskRecord(task=task, info=info)
        self._records[task_id] = record
        self._by_task[task] = task_id

        log.debug(f"[Task {task_id}] Running ({info.phase_label}) - {description}")

        task.add_done_callback(self._on_task_done)
        return record

    def _on_task_done(self, task: asyncio.Task) -> None:
        """Internal callback whenever a task finishes."""
        record = self.get_record(task)
        if record is None:
            return

        record.finished_timestamp = time.monotonic()
        if task.cancelled():
            record.cancelled = True
            log.debug(f"[Task {record.info.id}] Cancelled")
            return

        exc = task.exception()
        if exc is not None:
            record.finished_with_error = exc
            log.debug(f"[Task {record.info.id}] Failed: {exc}")
        else:
            log.debug(f"[Task {record.info.id}] Completed in {record.duration:.3f}s")

    def get_record(self, task: asyncio.Task) -> Optional[TaskRecord]:
        task_id = self._by_task.get(task)
        return self._records.get(task_id) if task_id is not None else None

    def mark_slow(self, task: asyncio.Task) -> None:
        record = self.get_record(task)
        if record is not None:
            record.slow = True

    # -----------------------------
    # Public API
    # -----------------------------

    def list_all(self) -> List[TaskRecord]:
        """All tracked records, in execution order."""
        return list(self._records.values())

    def active(self) -> List[TaskRecord]:
        """Tasks that are still running."""
        return [r for r in self._records.values() if not r.task.done()]

    def failed(self) -> List[TaskRecord]:
        """Tasks that ended with an exception."""
        return [r for r in self._records.values() if r.finished_with_error is not None]

    def cancelled(self) -> List[TaskRecord]:
        return [r for r in self._records.values() if r.cancelled]

    def slow(self) -> List[TaskRecord]:
        """Tasks that outlived the slow-task threshold."""
        return [r for r in self._records.values() if r.slow]

    def for_phase(self, phase: Optional[Phase]) -> List[TaskRecord]:
        return [r for r in self._records.values() if r.info.phase is phase]

    def summary(self) -> str:
        """Human-readable summary for logs."""
        return (
            f"Tasks: total={len(self._records)}, running={len(self.active())}, "
            f"failed={len(self.failed())}, cancelled={len(self.cancelled())}, "
            f"slow={len(self.slow())}"
        )
