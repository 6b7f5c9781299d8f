"""
Console logger for the lifecycle

One line per record, grouped by LogCategory, with optional detail lines
drawn as a tree:

    [14:23:45] TASK      ⚠ Task connect_database still running
               ├─ phase: init
               └─ after: 10.0s

Every module binds its category once at import time:

    log = get_logger().for_category(LogCategory.SHUTDOWN)

configure_logger() changes the shared instance in place, so those bound
loggers follow level and colour changes made later (e.g. from options).
"""

import sys
import traceback
from datetime import datetime
from typing import Any, List, Optional, Union

from initsys.models.enums import LogLevel, LogCategory

ExcInfo = Union[bool, BaseException, None]

CATEGORY_WIDTH = 9
DETAIL_INDENT = " " * 11

# Lowest first; a record is printed when its level is at or above min_level
LEVEL_ORDER = (LogLevel.DEBUG, LogLevel.INFO, LogLevel.WARN, LogLevel.ERROR)


class Colors:
    """ANSI escape codes used by the logger"""
    RESET = '\033[0m'
    DIM = '\033[2m'

    RED = '\033[31m'
    GREEN = '\033[32m'
    YELLOW = '\033[33m'
    CYAN = '\033[36m'
    WHITE = '\033[37m'

    BRIGHT_RED = '\033[91m'
    BRIGHT_GREEN = '\033[92m'
    BRIGHT_YELLOW = '\033[93m'
    BRIGHT_BLUE = '\033[94m'
    BRIGHT_MAGENTA = '\033[95m'
    BRIGHT_CYAN = '\033[96m'
    BRIGHT_WHITE = '\033[97m'


CATEGORY_COLORS = {
    LogCategory.CONFIG: Colors.CYAN,
    LogCategory.SYSTEM: Colors.BRIGHT_WHITE,
    LogCategory.LIFECYCLE: Colors.BRIGHT_CYAN,
    LogCategory.TASK: Colors.BRIGHT_BLUE,
    LogCategory.SHUTDOWN: Colors.BRIGHT_YELLOW,
    LogCategory.SIGNAL: Colors.BRIGHT_RED,
    LogCategory.EVENT: Colors.BRIGHT_MAGENTA,
    LogCategory.API: Colors.BRIGHT_GREEN,
}

# (symbol, colour) per level
LEVEL_STYLES = {
    LogLevel.DEBUG: ('·', Colors.DIM),
    LogLevel.INFO: ('✓', Colors.GREEN),
    LogLevel.WARN: ('⚠', Colors.YELLOW),
    LogLevel.ERROR: ('✗', Colors.RED),
}


def _traceback_lines(exc_info: ExcInfo) -> List[str]:
    """Traceback of exc_info (True = exception being handled) as flat lines."""
    error = sys.exc_info()[1] if exc_info is True else exc_info
    if not isinstance(error, BaseException):
        return []
    chunks = traceback.format_exception(type(error), error, error.__traceback__)
    return [line for chunk in chunks for line in chunk.rstrip().splitlines()]


class Logger:
    """
    Print-based lifecycle logger.

    Args:
        min_level: Records below this level are dropped
        use_colors: Wrap output in ANSI colours (turn off for files and tests)
    """

    def __init__(self, min_level: LogLevel = LogLevel.INFO, use_colors: bool = True):
        self.min_level = min_level
        self.use_colors = use_colors

    def enabled_for(self, level: LogLevel) -> bool:
        return LEVEL_ORDER.index(level) >= LEVEL_ORDER.index(self.min_level)

    def _paint(self, text: str, color: str) -> str:
        return f"{color}{text}{Colors.RESET}" if self.use_colors else text

    def _headline(self, category: LogCategory, level: LogLevel, message: str) -> str:
        symbol, color = LEVEL_STYLES[level]
        stamp = datetime.now().strftime('[%H:%M:%S]')
        name = self._paint(category.name.ljust(CATEGORY_WIDTH), CATEGORY_COLORS.get(category, Colors.WHITE))
        return f"{stamp} {name} {self._paint(symbol, color)} {self._paint(message, color)}"

    def log(
        self,
        category: LogCategory,
        message: str,
        level: LogLevel = LogLevel.INFO,
        details: Optional[list] = None,
        exc_info: ExcInfo = None,
        **fields: Any
    ):
        """
        Print one record.

        Args:
            category: LogCategory of the emitting module
            message: Headline text
            level: LogLevel of the record
            details: Extra lines printed under the headline
            exc_info: True for the exception being handled, or an exception
                      instance; its traceback is appended to the details
            **fields: Printed as "key: value" detail lines

        Example:
            logger.log(LogCategory.LIFECYCLE, "Phase completed", phase="init", tasks=3)

            [14:23:45] LIFECYCLE ✓ Phase completed
                       ├─ phase: init
                       └─ tasks: 3
        """
        if not self.enabled_for(level):
            return

        print(self._headline(category, level, message))

        lines = list(details or [])
        lines.extend(f"{key}: {value}" for key, value in fields.items())
        if exc_info:
            lines.extend(_traceback_lines(exc_info))

        last = len(lines) - 1
        for i, line in enumerate(lines):
            branch = self._paint("└─" if i == last else "├─", Colors.DIM)
            print(f"{DETAIL_INDENT}{branch} {line}")

    def debug(self, category: LogCategory, message: str, **kw): self.log(category, message, LogLevel.DEBUG, **kw)
    def info(self, category: LogCategory, message: str, **kw): self.log(category, message, LogLevel.INFO, **kw)
    def warn(self, category: LogCategory, message: str, **kw): self.log(category, message, LogLevel.WARN, **kw)
    def error(self, category: LogCategory, message: str, **kw): self.log(category, message, LogLevel.ERROR, **kw)

    def for_category(self, category: LogCategory) -> 'BoundLogger':
        """Logger that fills in `category` on every call."""
        return BoundLogger(self, category)


class BoundLogger:
    """Logger bound to one category; log(category=...) overrides it per call."""

    def __init__(self, base: Logger, category: LogCategory):
        self._base = base
        self._category = category

    def log(self, message: str, level: LogLevel = LogLevel.INFO, category: Optional[LogCategory] = None, **kw):
        self._base.log(category or self._category, message, level, **kw)

    def debug(self, message: str, **kw): self.log(message, LogLevel.DEBUG, **kw)
    def info(self, message: str, **kw): self.log(message, LogLevel.INFO, **kw)
    def warn(self, message: str, **kw): self.log(message, LogLevel.WARN, **kw)
    def error(self, message: str, **kw): self.log(message, LogLevel.ERROR, **kw)

    def with_category(self, category: LogCategory) -> 'BoundLogger':
        return BoundLogger(self._base, category)


_logger = Logger()

def get_logger() -> Logger:
    return _logger

def get_category_logger(category: LogCategory) -> BoundLogger:
    """Shared logger bound to a category"""
    return _logger.for_category(category)

def configure_logger(min_level: LogLevel = LogLevel.INFO, use_colors: bool = True):
    """Change level and colours of the shared logger in place."""
    _logger.min_level = min_level
    _logger.use_colors = use_colors
