"""
Shutdown coordinator: decides what an error or a shutdown request does.

Owns the process-level traps of one controller (OS signals and the asyncio
loop exception handler), installs them when startup begins and removes them
when the controller closes.

Policy for errors reaching the coordinator:
- not shutting down: start a normal shutdown with exit code 1
- shutting down before stop began (startup, ready, standalone): remember the
  failure, the pending shutdown still runs stop and finish
- shutting down in the stop phase: remember the failure, finish still runs
- shutting down in finish or later: forced termination with exit code 1
"""

from __future__ import annotations

import asyncio
import signal
from typing import TYPE_CHECKING, Any, Dict, List, Optional

from initsys.models.enums import ErrorKind, LifecycleEventType, LifecycleState, LogCategory, LogLevel
from initsys.models.errors import LifecycleError, TaskError
from initsys.models.events import ErrorEvent, ExitEvent
from initsys.utils.logger import get_logger

if TYPE_CHECKING:
    from initsys.lifecycle.controller import LifecycleController

log = get_logger().for_category(LogCategory.SHUTDOWN)
signal_log = log.with_category(LogCategory.SIGNAL)

TRAPPED_SIGNALS = (signal.SIGINT, signal.SIGTERM)

# States in which stop or finish is running
SHUTDOWN_STATES = (LifecycleState.STOP, LifecycleState.FINISH, LifecycleState.END)
FORCED_STATES = (LifecycleState.FINISH, LifecycleState.END)


class ErrorShutdownCoordinator:
    """
    Coordinates error propagation and shutdown escalation for one controller.

    Example:
        coordinator = ErrorShutdownCoordinator(controller)
        coordinator.install(asyncio.get_running_loop())
        ...
        coordinator.handle_error(error, ErrorKind.RUNTIME)
        ...
        coordinator.uninstall()
    """

    def __init__(self, controller: "LifecycleController"):
        self._controller = controller
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._signals: List[signal.Signals] = []
        self._previous_exception_handler: Any = None
        self._exception_handler_installed = False
        self._grace_timer: Optional[asyncio.TimerHandle] = None
        self._shutdown_reason: Optional[str] = None
        self.failed = False

    @property
    def installed(self) -> bool:
        return self._loop is not None

    @property
    def shutdown_reason(self) -> Optional[str]:
        return self._shutdown_reason

    # ----------------------------------------------------------------------
    # TRAPS
    # ----------------------------------------------------------------------

    def install(self, loop: asyncio.AbstractEventLoop) -> None:
        """
        Install the traps enabled in the options. Calling it again is a no-op.

        Args:
            loop: Running asyncio event loop
        """
        if self._loop is not None:
            return
        self._loop = loop
        options = self._controller.options

        if options.catch_signals:
            for sig in TRAPPED_SIGNALS:
                try:
                    loop.add_signal_handler(sig, lambda s=sig: self._on_signal(s))
                    self._signals.append(sig)
                except (NotImplementedError, RuntimeError, ValueError) as e:
                    # No signal support on this platform / not the main thread
                    signal_log.warn(f"Could not trap {sig.name}: {e}")
            if self._signals:
                signal_log.debug(f"Signal handlers installed ({', '.join(s.name for s in self._signals)})")

        if options.catch_errors:
            self._previous_exception_handler = loop.get_exception_handler()
            loop.set_exception_handler(self._on_loop_exception)
            self._exception_handler_installed = True
            log.debug("Loop exception handler installed")

    def uninstall(self) -> None:
        """Remove every trap installed by install() and cancel the grace timer."""
        self._cancel_grace_timer()
        loop = self._loop
        if loop is None:
            return

        for sig in self._signals:
            try:
                loop.remove_signal_handler(sig)
            except (NotImplementedError, RuntimeError, ValueError):
                pass
        self._signals.clear()

        if self._exception_handler_installed:
            loop.set_exception_handler(self._previous_exception_handler)
            self._previous_exception_handler = None
            self._exception_handler_installed = False

        self._loop = None
        log.debug("Traps removed")

    def _on_signal(self, sig: signal.Signals) -> None:
        """Handle OS signal by requesting a shutdown."""
        signal_log.info(f"Signal {sig.name} received → shutting down")
        self.request_shutdown(0, reason=sig.name)

    def _on_loop_exception(self, loop: asyncio.AbstractEventLoop, context: Dict[str, Any]) -> None:
        """
        Unhandled error surfaced by the event loop.

        Contexts without an exception (unclosed resources, pending tasks
        destroyed) are warnings: they go to the previous handler, or the
        loop's default one, and do not shut down.
        """
        error = context.get("exception")
        if error is None:
            if self._previous_exception_handler is not None:
                self._previous_exception_handler(loop, context)
            else:
                loop.default_exception_handler(context)
            return
        self.handle_error(error, ErrorKind.RUNTIME)

    # ----------------------------------------------------------------------
    # SHUTDOWN REQUESTS
    # ----------------------------------------------------------------------

    def request_shutdown(self, code: int = 0, reason: str = "requested") -> bool:
        """
        Start a shutdown, or escalate a repeated request.

        Returns:
            True if this call started the shutdown
        """
        controller = self._controller
        if controller.closed:
            log.debug(f"Shutdown request ignored, already closed ({reason})")
            return False

        if not controller.shutting_down:
            self._shutdown_reason = reason
            return controller._begin_shutdown(code)

        log.warn(
            "Shutdown already in progress",
            reason=reason,
            phase=controller.state.label
        )
        self._arm_grace_timer()
        return False

    def _arm_grace_timer(self) -> None:
        if self._grace_timer is not None:
            return
        grace = self._controller.options.shutdown_grace_sec
        if grace <= 0:
            self.force_exit(1, "shutdown requested again")
            return
        loop = self._loop or asyncio.get_running_loop()
        self._grace_timer = loop.call_later(grace, self._on_grace_expired, grace)
        log.warn(f"Forcing termination in {grace}s unless shutdown completes")

    def _on_grace_expired(self, grace: float) -> None:
        self._grace_timer = None
        if not self._controller.closed:
            self.force_exit(1, f"shutdown did not complete within {grace}s")

    def _cancel_grace_timer(self) -> None:
        if self._grace_timer is not None:
            self._grace_timer.cancel()
            self._grace_timer = None

    # ----------------------------------------------------------------------
    # ERRORS
    # ----------------------------------------------------------------------

    def report(
        self,
        error: BaseException,
        kind: ErrorKind,
        message: Optional[str] = None,
        level: LogLevel = LogLevel.ERROR,
    ) -> ErrorEvent:
        """Log an error and post it to error observers. No policy applied."""
        event = self._make_event(error, kind, message, level)
        self._controller.events.post(event)
        return event

    def handle_error(self, error: BaseException, kind: ErrorKind) -> None:
        """
        Report an error from synchronous code and apply the policy.

        When the error forces termination, observers receive it before the
        exit function runs.
        """
        kind = self._effective_kind(kind)
        forcing = self._forces_exit(kind)
        event = self._make_event(error, kind, self._describe(error), LogLevel.ERROR, always_log=forcing)
        if forcing:
            self._controller.events.publish_now(event)
        else:
            self._controller.events.post(event)
        self._apply_policy(kind)

    async def handle_phase_failure(self, error: TaskError) -> None:
        """Report a phase failure, wait for observers, then apply the policy."""
        kind = self._effective_kind(ErrorKind.TASK)
        event = self._make_event(
            error, kind, self._describe(error), LogLevel.ERROR, always_log=self._forces_exit(kind)
        )
        await self._controller.events.publish(event)
        self._apply_policy(kind)

    def _effective_kind(self, kind: ErrorKind) -> ErrorKind:
        """TASK and RUNTIME errors raised while stop or finish runs are shutdown errors."""
        if kind in (ErrorKind.TASK, ErrorKind.RUNTIME) and self._in_shutdown_phases():
            return ErrorKind.SHUTDOWN
        return kind

    def _in_shutdown_phases(self) -> bool:
        controller = self._controller
        return controller.shutting_down and controller.state in SHUTDOWN_STATES

    def _forces_exit(self, kind: ErrorKind) -> bool:
        controller = self._controller
        return (
            kind is not ErrorKind.USAGE
            and not controller.closed
            and controller.shutting_down
            and controller.state in FORCED_STATES
        )

    def _describe(self, error: BaseException) -> str:
        if isinstance(error, TaskError) and error.phase is not None:
            return f"Could not run {error.phase.label} tasks: {error.message}"
        if isinstance(error, LifecycleError):
            return error.message
        return f"Unexpected {type(error).__name__}: {error}"

    def _make_event(
        self,
        error: BaseException,
        kind: ErrorKind,
        message: Optional[str],
        level: LogLevel,
        always_log: bool = False,
    ) -> ErrorEvent:
        controller = self._controller
        state = controller.state
        text = message or str(error)
        options = controller.options

        if always_log or options.show_errors or not controller.events.has_subscribers(LifecycleEventType.ERROR):
            log.log(
                f"Error in phase {state.label}: {text}",
                level,
                category=LogCategory.SYSTEM,
                exc_info=error if options.show_traces else None
            )
        return ErrorEvent(state, text, kind, error)

    def _apply_policy(self, kind: ErrorKind) -> None:
        controller = self._controller
        if kind is ErrorKind.USAGE or controller.closed:
            return

        if not controller.shutting_down:
            self.request_shutdown(1, reason=f"{kind.name.lower()} error")
            return

        if self._forces_exit(kind):
            self.force_exit(1, f"{kind.name.lower()} error during {controller.state.label}")
            return

        self.failed = True
        if controller.state is LifecycleState.STOP:
            log.warn("Stop phase failed; finish tasks will still run")
        else:
            log.warn(
                f"Error after shutdown request during {controller.state.label}; "
                "stop and finish will still run"
            )

    # ----------------------------------------------------------------------
    # TERMINATION
    # ----------------------------------------------------------------------

    def force_exit(self, code: int, reason: str) -> None:
        """Forced termination: no end event, does not wait for running tasks."""
        controller = self._controller
        if controller.closed:
            return

        log.error(f"Forcing termination (code {code}): {reason}")
        active = controller.registry.active()
        if active:
            log.warn(
                f"{len(active)} task(s) still running",
                details=[f"{r.info.phase_label}: {r.info.description}" for r in active]
            )
        controller.events.publish_now(ExitEvent(controller.state, code, forced=True))
        controller._close(code, forced=True)
