"""
Task queue for one lifecycle phase.

Tasks with a priority go into per-priority buckets; tasks without one go to
an unsorted list. Draining order: lowest priority bucket first, each bucket in
insertion order, then the unsorted tasks in insertion order.
"""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass
from typing import Any, Callable, Deque, Dict, Optional

Task = Callable[[], Any]


@dataclass(frozen=True)
class QueuedTask:
    """A task plus the ordering metadata it was registered with."""
    task: Task
    priority: Optional[int]
    sequence: int

    @property
    def description(self) -> str:
        name = getattr(self.task, "__qualname__", None) or getattr(self.task, "__name__", None)
        return name or repr(self.task)


class TaskQueue:
    """Priority buckets plus an unordered batch, drained in priority order."""

    def __init__(self, name: str):
        self.name = name
        self._prioritized: Dict[int, Deque[QueuedTask]] = {}
        self._unsorted: Deque[QueuedTask] = deque()
        self._sequence = 0

    def add(self, priority: Optional[int], task: Task) -> QueuedTask:
        """Append a task; a falsy priority puts it in the unsorted batch."""
        self._sequence += 1
        entry = QueuedTask(task=task, priority=priority or None, sequence=self._sequence)
        if not priority:
            self._unsorted.append(entry)
        else:
            self._prioritized.setdefault(priority, deque()).append(entry)
        return entry

    def next(self) -> Optional[QueuedTask]:
        """Pop the next task in draining order, or None when empty."""
        for priority in sorted(self._prioritized):
            bucket = self._prioritized[priority]
            if bucket:
                return bucket.popleft()
        if self._unsorted:
            return self._unsorted.popleft()
        return None

    def remaining(self) -> int:
        return len(self._unsorted) + sum(len(bucket) for bucket in self._prioritized.values())

    def __len__(self) -> int:
        return self.remaining()

    def __repr__(self) -> str:
        return f"TaskQueue({self.name!r}, remaining={self.remaining()})"
