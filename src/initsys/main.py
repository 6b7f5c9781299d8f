"""
main.py - process entry helpers
-------------------------------

Responsible for:
- the process-wide default controller (for modules that register tasks
  at import time)
- running a controller as the main program
"""

import asyncio
from pathlib import Path
from typing import Optional, Union

from initsys.config.options import load_options
from initsys.lifecycle.controller import LifecycleController
from initsys.models.enums import LogCategory
from initsys.utils.logger import configure_logger, get_logger

log = get_logger().for_category(LogCategory.SYSTEM)

_controller: Optional[LifecycleController] = None


def get_controller() -> LifecycleController:
    """Default controller shared by every module of the process."""
    global _controller
    if _controller is None:
        _controller = LifecycleController()
    return _controller


def reset_controller() -> None:
    """Drop the default controller (tests)."""
    global _controller
    _controller = None


def run_main(
    controller: Optional[LifecycleController] = None,
    options_path: Optional[Union[str, Path]] = None,
) -> int:
    """
    Run a controller until it closes and return its exit code.

    With exit_process on (the default) the controller ends the process
    itself, so this only returns when exit_process is off.

    Args:
        controller: Controller to run (the default controller if omitted)
        options_path: YAML options file applied to the default controller
    """
    if controller is None:
        if options_path is not None:
            global _controller
            _controller = LifecycleController(load_options(options_path))
        controller = get_controller()

    configure_logger(controller.options.log_level)
    try:
        return asyncio.run(controller.run())
    except KeyboardInterrupt:
        log.info("Keyboard interrupt received")
        return 130
