"""
Lifecycle events

Every notification the controller publishes is a LifecycleEvent. Observers
subscribe to a LifecycleEventType on the EventBus and receive these objects.
"""

from dataclasses import dataclass, field
import time
from typing import Any, Dict, Optional

from initsys.models.enums import ErrorKind, LifecycleEventType, LifecycleState


@dataclass
class LifecycleEvent:
    """
    Base event class

    - type: LifecycleEventType (what happened)
    - state: LifecycleState of the controller when it happened
    - data: dict (event-specific payload)
    - timestamp: float (when it happened)
    """
    type: LifecycleEventType
    state: LifecycleState
    data: Dict[str, Any] = field(default_factory=dict)
    timestamp: float = field(default_factory=time.time)


@dataclass
class ErrorEvent(LifecycleEvent):
    """Propagated failure (usage, task, runtime or shutdown error)"""

    def __init__(
        self,
        state: LifecycleState,
        message: str,
        kind: ErrorKind,
        error: Optional[BaseException] = None,
    ):
        super().__init__(
            type=LifecycleEventType.ERROR,
            state=state,
            data={"message": message, "kind": kind, "error": error},
            timestamp=time.time()
        )

    @property
    def message(self) -> str:
        return self.data["message"]

    @property
    def kind(self) -> ErrorKind:
        return self.data["kind"]

    @property
    def error(self) -> Optional[BaseException]:
        return self.data["error"]

    def __str__(self) -> str:
        return self.message


@dataclass
class ExitEvent(LifecycleEvent):
    """Terminal exit request: process should end with `code`"""

    def __init__(self, state: LifecycleState, code: int, forced: bool = False):
        super().__init__(
            type=LifecycleEventType.EXIT,
            state=state,
            data={"code": code, "forced": forced},
            timestamp=time.time()
        )

    @property
    def code(self) -> int:
        return self.data["code"]

    @property
    def forced(self) -> bool:
        return self.data["forced"]
