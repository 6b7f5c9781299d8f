"""
Utility functions for initsys
"""

from .logger import (
    BoundLogger,
    Logger,
    configure_logger,
    get_category_logger,
    get_logger,
)

__all__ = [
    'BoundLogger',
    'Logger',
    'configure_logger',
    'get_category_logger',
    'get_logger',
]
