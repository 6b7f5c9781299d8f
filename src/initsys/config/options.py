"""
Lifecycle options

Pydantic model for every recognised controller setting. Field names are
snake_case; the camelCase aliases (catchErrors, stopOnError, initInParallel...)
are accepted too, so option files written for other init systems load as-is.

Options can be built in code, or loaded from YAML:

    lifecycle:
      stopOnError: false
      maxTaskTimeSec: 5
      stop_in_parallel: true
"""

from pathlib import Path
from typing import Any, Dict, Union

import yaml
from pydantic import BaseModel, ConfigDict, Field, field_validator

from initsys.models.enums import LogCategory, LogLevel, Phase
from initsys.utils.logger import get_logger

log = get_logger().for_category(LogCategory.CONFIG)


class LifecycleOptions(BaseModel):
    """Controller settings (each independently togglable)"""

    model_config = ConfigDict(populate_by_name=True, extra="forbid", validate_assignment=True)

    catch_errors: bool = Field(
        True, alias="catchErrors",
        description="Trap unhandled loop errors and turn them into a shutdown"
    )
    catch_signals: bool = Field(
        True, alias="catchSignals",
        description="Trap SIGINT/SIGTERM and turn them into a shutdown"
    )
    exit_process: bool = Field(
        True, alias="exitProcess",
        description="Terminate the process after end / forced failure"
    )
    show_errors: bool = Field(
        True, alias="showErrors",
        description="Log every propagated error"
    )
    show_traces: bool = Field(
        False, alias="showTraces",
        description="Include the traceback in logged errors"
    )
    log_times: bool = Field(
        False, alias="logTimes",
        description="Log elapsed time for startup and shutdown"
    )
    stop_on_error: bool = Field(
        True, alias="stopOnError",
        description="Abort a phase on the first task error"
    )
    max_task_time_sec: float = Field(
        10.0, alias="maxTaskTimeSec", ge=0,
        description="Warn about tasks running longer than this (0 disables)"
    )
    shutdown_grace_sec: float = Field(
        30.0, alias="shutdownGraceSec", ge=0,
        description="Force termination if a repeated shutdown request is not "
                    "followed by end within this time"
    )
    init_in_parallel: bool = Field(False, alias="initInParallel")
    start_in_parallel: bool = Field(False, alias="startInParallel")
    stop_in_parallel: bool = Field(False, alias="stopInParallel")
    finish_in_parallel: bool = Field(False, alias="finishInParallel")
    log_level: LogLevel = Field(LogLevel.INFO, alias="logLevel")

    @field_validator("log_level", mode="before")
    @classmethod
    def _parse_log_level(cls, value: Any) -> Any:
        if isinstance(value, str):
            try:
                return LogLevel[value.upper()]
            except KeyError:
                raise ValueError(f"Unknown log level: {value}")
        return value

    def in_parallel(self, phase: Phase) -> bool:
        """Whether the given phase runs its tasks in parallel"""
        return getattr(self, f"{phase.label}_in_parallel")

    def merged(self, **overrides: Any) -> "LifecycleOptions":
        """Validated copy with some options replaced"""
        data = self.model_dump()
        data.update(overrides)
        return type(self).model_validate(data)


def options_from_dict(data: Dict[str, Any]) -> LifecycleOptions:
    """Build options from a mapping, using its 'lifecycle' section if present"""
    section = data.get("lifecycle", data) if data else {}
    return LifecycleOptions.model_validate(section or {})


def load_options(path: Union[str, Path]) -> LifecycleOptions:
    """
    Load options from a YAML file.

    Raises:
        FileNotFoundError: If the file does not exist
        yaml.YAMLError: If the file is not valid YAML
        pydantic.ValidationError: If an option is unknown or invalid
    """
    config_path = Path(path)
    try:
        with open(config_path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except FileNotFoundError:
        log.error(f"Options file not found: {config_path}")
        raise
    except yaml.YAMLError as e:
        log.error(f"Invalid YAML in options file: {config_path}", exception=e)
        raise

    options = options_from_dict(data)
    log.debug(f"Loaded lifecycle options from {config_path}")
    return options
