"""
HTTP integration: lifecycle routes and an in-loop uvicorn server
"""

from initsys.api.errors import APIError, register_exception_handlers
from initsys.api.main import create_app
from initsys.api.routes import create_lifecycle_router
from initsys.api.schemas import ErrorResponse, LifecycleStatus, ShutdownAccepted, TaskList, TaskStatus
from initsys.api.server import APIServerWrapper

__all__ = [
    "APIError",
    "register_exception_handlers",
    "ErrorResponse",
    "APIServerWrapper",
    "create_app",
    "create_lifecycle_router",
    "LifecycleStatus",
    "ShutdownAccepted",
    "TaskList",
    "TaskStatus",
]
