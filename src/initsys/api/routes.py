"""
Lifecycle endpoints - state, task introspection and remote shutdown
"""

from typing import Optional

from fastapi import APIRouter, Query, status

from initsys.api.errors import ShutdownInProgressError, UnknownTaskStatusError
from initsys.api.schemas import LifecycleStatus, ShutdownAccepted, TaskList, TaskStatus
from initsys.lifecycle.controller import LifecycleController
from initsys.lifecycle.task_registry import TaskRecord
from initsys.models.enums import LogCategory, Phase
from initsys.utils.logger import get_logger

log = get_logger().for_category(LogCategory.API)

TASK_STATUSES = ("running", "completed", "failed", "cancelled")


def _task_status(record: TaskRecord) -> TaskStatus:
    return TaskStatus(
        id=record.info.id,
        phase=record.info.phase_label,
        description=record.info.description,
        priority=record.info.priority,
        created_at=record.info.created_at,
        status=record.status,
        duration_seconds=round(record.duration, 3),
        slow=record.slow,
        error=str(record.finished_with_error) if record.finished_with_error else None,
    )


def create_lifecycle_router(controller: LifecycleController) -> APIRouter:
    """Router exposing one controller under /lifecycle"""
    router = APIRouter(prefix="/lifecycle", tags=["Lifecycle"])

    @router.get("/status", response_model=LifecycleStatus)
    async def get_status() -> LifecycleStatus:
        """Current state, completed phases and queued task counts."""
        return LifecycleStatus(
            state=controller.state.label,
            starting_up=controller.starting_up,
            shutting_down=controller.shutting_down,
            closed=controller.closed,
            exit_code=controller.exit_code,
            completed_phases=[p.label for p in Phase if p in controller.completed_phases],
            pending={p.label: controller.pending(p) for p in Phase},
            summary=controller.registry.summary(),
        )

    @router.get("/tasks", response_model=TaskList)
    async def get_tasks(
        task_status: Optional[str] = Query(None, alias="status", description="Filter by task status"),
        phase: Optional[str] = Query(None, description="Filter by phase label"),
    ) -> TaskList:
        """Every task executed so far, oldest first."""
        if task_status is not None and task_status not in TASK_STATUSES:
            raise UnknownTaskStatusError(task_status, TASK_STATUSES)
        records = controller.registry.list_all()
        tasks = [_task_status(r) for r in records]
        if task_status is not None:
            tasks = [t for t in tasks if t.status == task_status]
        if phase is not None:
            tasks = [t for t in tasks if t.phase == phase]
        return TaskList(count=len(tasks), tasks=tasks)

    @router.post("/shutdown", response_model=ShutdownAccepted, status_code=status.HTTP_202_ACCEPTED)
    async def request_shutdown(exit_code: int = Query(0, ge=0, le=255)) -> ShutdownAccepted:
        """Start an orderly shutdown."""
        if controller.shutting_down or controller.closed:
            raise ShutdownInProgressError(controller.state.label)
        log.info("Shutdown requested over HTTP", exit_code=exit_code)
        controller.shutdown(exit_code)
        return ShutdownAccepted(accepted=True, state=controller.state.label, exit_code=exit_code)

    return router
