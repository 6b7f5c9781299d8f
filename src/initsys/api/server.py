from __future__ import annotations

import asyncio
import contextlib
from typing import TYPE_CHECKING, Optional

import uvicorn
from fastapi import FastAPI

from initsys.models.enums import LogCategory
from initsys.utils.logger import get_logger

if TYPE_CHECKING:
    from initsys.lifecycle.controller import LifecycleController

log = get_logger().for_category(LogCategory.API)


class APIServerWrapper:
    """
    Runs uvicorn inside the controller's event loop as start/stop tasks.

    Behaviour:
      - start() launches uvicorn.Server.serve() as a background task and
        returns once the server has bound its sockets. Suitable as a start
        phase task.
      - stop() asks uvicorn to exit, waits for the serve task and forces
        exit if it does not finish in time. Suitable as a stop phase task.
      - uvicorn's own signal handlers are disabled; the controller traps
        SIGINT/SIGTERM.

    Example:
        server = APIServerWrapper(create_app(controller), port=8080)
        server.register(controller, priority=10)
    """

    def __init__(
        self,
        app: FastAPI,
        host: str = "127.0.0.1",
        port: int = 8000,
        log_level: str = "warning",
    ):
        self.app = app
        self.host = host
        self.port = port
        self.log_level = log_level
        self._server: Optional[uvicorn.Server] = None
        self._serve_task: Optional[asyncio.Task] = None

    # ----------------------------------------------------------------------
    # INTERNAL
    # ----------------------------------------------------------------------
    def _create_server(self) -> uvicorn.Server:
        """Create a uvicorn.Server instance with signal handlers disabled."""
        config = uvicorn.Config(
            app=self.app,
            host=self.host,
            port=self.port,
            loop="asyncio",
            log_level=self.log_level,
            access_log=False,
            server_header=False,
        )
        server = uvicorn.Server(config)
        server.install_signal_handlers = lambda: None  # type: ignore
        server.capture_signals = contextlib.nullcontext  # type: ignore
        return server

    # ----------------------------------------------------------------------
    # PUBLIC API
    # ----------------------------------------------------------------------
    async def start(self, *, wait_started_timeout: float = 5.0) -> None:
        """
        Start uvicorn in the background and wait until it is serving.

        Raises:
            RuntimeError: If already running, or the server stopped or did
                          not start within wait_started_timeout
        """
        if self.is_running:
            raise RuntimeError("API server already started")

        self._server = self._create_server()
        log.info(f"Launching API server on http://{self.host}:{self.port}")
        self._serve_task = asyncio.create_task(self._server.serve(), name="UvicornServe")

        loop = asyncio.get_running_loop()
        deadline = loop.time() + wait_started_timeout
        while loop.time() < deadline:
            if self._server.started:
                log.info("API server started")
                return
            if self._serve_task.done():
                break
            await asyncio.sleep(0.05)

        await self.stop()
        raise RuntimeError(f"API server did not start on {self.host}:{self.port}")

    async def stop(self, *, shutdown_timeout: float = 2.0) -> None:
        """
        Stop the API server and release the port.

        Steps:
          1. set should_exit so serve() runs its own shutdown
          2. wait for the serve task (with timeout)
          3. set force_exit and cancel the task if it is still running
        """
        if self._server is None or self._serve_task is None:
            log.debug("API server stop() called but server was not running")
            return

        log.info("Stopping API server...")
        self._server.should_exit = True

        try:
            await asyncio.wait_for(asyncio.shield(self._serve_task), timeout=shutdown_timeout)
        except asyncio.TimeoutError:
            log.warn("API server shutdown timeout; forcing exit")
            self._server.force_exit = True
            self._serve_task.cancel()
            try:
                await self._serve_task
            except asyncio.CancelledError:
                log.debug("Uvicorn serve task cancelled")

        self._server = None
        self._serve_task = None
        log.info("API server stopped")

    def register(self, controller: "LifecycleController", priority: Optional[int] = None) -> None:
        """Queue start() in the start phase and stop() in the stop phase."""
        controller.start(self.start, priority)
        controller.stop(self.stop, priority)

    # ----------------------------------------------------------------------
    # PROPERTIES
    # ----------------------------------------------------------------------
    @property
    def is_running(self) -> bool:
        """Return whether a uvicorn serve task is active."""
        return self._serve_task is not None and not self._serve_task.done()

    @property
    def task(self) -> Optional[asyncio.Task]:
        return self._serve_task

    @property
    def server(self) -> Optional[uvicorn.Server]:
        return self._server
