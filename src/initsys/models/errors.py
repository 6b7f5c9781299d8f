"""
Lifecycle errors

All errors carry a machine-readable code, a human-readable message and an
optional details dict. The controller never raises these to its caller; they
travel through the error event and the log.
"""

from typing import Any, Dict, Optional

from initsys.models.enums import Phase


class LifecycleError(Exception):
    """Base class for lifecycle errors"""
    def __init__(
        self,
        code: str,
        message: str,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(message)


class UsageError(LifecycleError):
    """Misuse of the registration or lifecycle API"""
    def __init__(self, message: str, **details: Any):
        super().__init__(code="USAGE_ERROR", message=message, details=details)


class TaskError(LifecycleError):
    """A task failed, by raising or by reporting an error"""
    def __init__(
        self,
        phase: Optional[Phase],
        description: str,
        cause: Optional[BaseException] = None,
    ):
        phase_label = phase.label if phase else "standalone"
        super().__init__(
            code="TASK_FAILED",
            message=f"Task {description} failed in {phase_label}: {cause}",
            details={"phase": phase_label, "task": description},
        )
        self.phase = phase
        self.description = description
        self.cause = cause
        self.__cause__ = cause


class CallbackError(LifecycleError):
    """Non-exception error value passed to a callback-style task's done()"""
    def __init__(self, value: Any):
        super().__init__(
            code="CALLBACK_ERROR",
            message=str(value),
            details={"value": value},
        )
        self.value = value
