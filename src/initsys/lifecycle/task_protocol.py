"""
Task contracts.

A task is any zero-argument callable. If calling it returns an awaitable, the
awaitable is awaited. Returning means success, raising means failure.

Two helpers cover the other common shapes:
- ILifecycleHandler: a component with per-phase hook methods
- callback_task(): bodies written in completion-callback style
"""

from __future__ import annotations

import asyncio
import functools
from typing import Any, Awaitable, Callable, Optional, Protocol

from initsys.models.enums import LogCategory
from initsys.models.errors import CallbackError
from initsys.utils.logger import get_logger

log = get_logger().for_category(LogCategory.TASK)

Done = Callable[..., None]


class ILifecycleHandler(Protocol):
    """
    Protocol for components that take part in several phases.

    Any subset of the hook coroutines init(), start(), stop() and finish()
    may be defined; each one found is queued into the matching phase at
    the handler's priority.

    Example:
        class DatabaseHandler:
            @property
            def priority(self) -> int:
                return 1  # Connect first

            async def init(self) -> None:
                self.pool = await create_pool()

            async def finish(self) -> None:
                await self.pool.close()
    """

    @property
    def priority(self) -> Optional[int]:
        """
        Lower priority runs earlier. None = after all prioritized tasks.
        """
        ...


def callback_task(fn: Callable[[Done], Any]) -> Callable[[], Awaitable[None]]:
    """
    Adapt a completion-callback body into a task.

    The body receives done(error=None) and must call it exactly once. A falsy
    error means success; an exception is raised as-is and any other value is
    wrapped in CallbackError. Extra calls to done() are logged and ignored.

    Example:
        def connect(done):
            client.connect(on_connected=lambda err: done(err))

        controller.init(callback_task(connect))
    """
    name = getattr(fn, "__qualname__", repr(fn))

    @functools.wraps(fn)
    async def run() -> None:
        future = asyncio.get_running_loop().create_future()

        def done(error: Any = None) -> None:
            if future.done():
                log.warn(f"Task {name} signalled completion more than once")
                return
            future.set_result(error)

        fn(done)
        error = await future
        if not error:
            return
        if isinstance(error, BaseException):
            raise error
        raise CallbackError(error)

    return run
