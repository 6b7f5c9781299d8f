"""
API errors and their exception handlers

Route errors are LifecycleError subclasses carrying an HTTP status code.
register_exception_handlers() turns them (and request validation failures)
into the ErrorResponse / ValidationErrorResponse JSON shapes.
"""

import uuid
from typing import Any, Dict, Optional, Sequence

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from initsys.api.schemas import ErrorDetail, ErrorResponse, ValidationErrorResponse
from initsys.models.enums import LogCategory
from initsys.models.errors import LifecycleError
from initsys.utils.logger import get_logger

log = get_logger().for_category(LogCategory.API)


class APIError(LifecycleError):
    """Lifecycle error raised by a route"""
    def __init__(
        self,
        code: str,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        status_code: int = status.HTTP_400_BAD_REQUEST,
    ):
        super().__init__(code=code, message=message, details=details)
        self.status_code = status_code


class ShutdownInProgressError(APIError):
    """Shutdown requested while one is already running"""
    def __init__(self, state: str):
        super().__init__(
            code="SHUTDOWN_IN_PROGRESS",
            message="Shutdown already in progress",
            details={"state": state},
            status_code=status.HTTP_409_CONFLICT
        )


class UnknownTaskStatusError(APIError):
    """Task status filter is not one of the known statuses"""
    def __init__(self, value: str, valid: Sequence[str]):
        super().__init__(
            code="UNKNOWN_TASK_STATUS",
            message=f"Unknown task status '{value}'",
            details={"value": value, "valid_values": list(valid)},
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY
        )


def register_exception_handlers(app: FastAPI) -> None:
    """Register the lifecycle exception handlers with a FastAPI app"""

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        request_id = str(uuid.uuid4())
        errors = exc.errors()
        log.warn(f"Validation error ({request_id}): {len(errors)} errors", path=request.url.path)

        validation_errors = [
            {
                "field": ".".join(str(x) for x in error["loc"][1:]),
                "message": error["msg"],
                "type": error["type"],
            }
            for error in errors
        ]
        response = ValidationErrorResponse(
            error=ErrorDetail(
                code="VALIDATION_ERROR",
                message="Request validation failed",
                details={"error_count": len(errors)},
            ),
            validation_errors=validation_errors,
            request_id=request_id
        )
        return JSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content=response.model_dump(mode="json")
        )

    @app.exception_handler(LifecycleError)
    async def lifecycle_exception_handler(request: Request, exc: LifecycleError):
        request_id = str(uuid.uuid4())
        log.warn(f"Lifecycle error ({request_id}): {exc.code} - {exc.message}")

        response = ErrorResponse(
            error=ErrorDetail(code=exc.code, message=exc.message, details=exc.details),
            request_id=request_id
        )
        return JSONResponse(
            status_code=getattr(exc, "status_code", status.HTTP_400_BAD_REQUEST),
            content=response.model_dump(mode="json")
        )
