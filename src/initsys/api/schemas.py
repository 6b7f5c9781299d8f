"""
Lifecycle schemas - Pydantic models for the status routes
"""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ErrorDetail(BaseModel):
    """Detailed error information"""
    code: str = Field(description="Machine-readable error code")
    message: str = Field(description="Human-readable error message")
    details: Optional[Dict[str, Any]] = Field(
        None,
        description="Additional context (state, valid values, etc.)"
    )
    timestamp: datetime = Field(
        default_factory=_utcnow,
        description="When the error occurred"
    )


class ErrorResponse(BaseModel):
    """API error response - every route error uses this structure"""
    error: ErrorDetail = Field(description="Error information")
    request_id: Optional[str] = Field(None, description="Request ID for logging/debugging")

    class Config:
        json_schema_extra = {
            "example": {
                "error": {
                    "code": "SHUTDOWN_IN_PROGRESS",
                    "message": "Shutdown already in progress",
                    "details": {"state": "stop"},
                    "timestamp": "2026-01-12T10:30:00Z"
                },
                "request_id": "req-12345"
            }
        }


class ValidationErrorResponse(BaseModel):
    """Validation error - when query parameters are invalid"""
    error: ErrorDetail = Field(description="Error information")
    validation_errors: List[Dict[str, Any]] = Field(
        description="Per-field validation errors"
    )
    request_id: Optional[str] = Field(None, description="Request ID for logging/debugging")


class LifecycleStatus(BaseModel):
    """Controller state snapshot"""
    state: str = Field(description="Current lifecycle state (pre, init, start, ready, ...)")
    starting_up: bool
    shutting_down: bool
    closed: bool
    exit_code: Optional[int] = Field(None, description="Set once the controller closed")
    completed_phases: List[str] = Field(default_factory=list)
    pending: Dict[str, int] = Field(
        default_factory=dict,
        description="Tasks still queued per phase"
    )
    summary: str = Field(description="Task registry summary")

    class Config:
        json_schema_extra = {
            "example": {
                "state": "ready",
                "starting_up": False,
                "shutting_down": False,
                "closed": False,
                "exit_code": None,
                "completed_phases": ["init", "start"],
                "pending": {"init": 0, "start": 0, "stop": 2, "finish": 1},
                "summary": "Tasks: total=3, running=0, failed=0, cancelled=0, slow=0"
            }
        }


class TaskStatus(BaseModel):
    """One executed task"""
    id: int
    phase: str
    description: str
    priority: Optional[int] = None
    created_at: str
    status: str = Field(description="running, completed, failed or cancelled")
    duration_seconds: float
    slow: bool = False
    error: Optional[str] = None


class TaskList(BaseModel):
    count: int
    tasks: List[TaskStatus]


class ShutdownAccepted(BaseModel):
    """Response to a shutdown request"""
    accepted: bool
    state: str
    exit_code: int = 0
