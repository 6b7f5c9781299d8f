"""
FastAPI application factory

Assembles a small HTTP surface around one LifecycleController:
- /lifecycle routes (status, tasks, shutdown)
- lifecycle error and validation handlers
- /health for liveness probes

Applications with their own FastAPI app include create_lifecycle_router()
directly instead.
"""

from fastapi import FastAPI

from initsys.api.errors import register_exception_handlers
from initsys.api.routes import create_lifecycle_router
from initsys.lifecycle.controller import LifecycleController
from initsys.models.enums import LifecycleState, LogCategory
from initsys.utils.logger import get_logger

log = get_logger().for_category(LogCategory.API)


def create_app(
    controller: LifecycleController,
    title: str = "initsys",
    version: str = "1.0.0",
    docs_enabled: bool = True,
) -> FastAPI:
    """
    Create the FastAPI app for a controller.

    Args:
        controller: Controller the routes report on and shut down
        title: API title (shown in docs)
        version: API version
        docs_enabled: Enable /docs and /openapi.json

    Returns:
        Configured FastAPI application
    """
    app = FastAPI(
        title=title,
        version=version,
        docs_url="/docs" if docs_enabled else None,
        redoc_url=None,
        openapi_url="/openapi.json" if docs_enabled else None,
    )
    log.debug(f"Creating FastAPI app: {title} v{version}")

    register_exception_handlers(app)
    app.include_router(create_lifecycle_router(controller))

    @app.get("/health", tags=["System"], summary="Health check")
    async def health_check():
        """Ready means init and start completed and no shutdown began."""
        return {
            "status": "ok" if controller.state is LifecycleState.READY else "unavailable",
            "state": controller.state.label,
        }

    return app
