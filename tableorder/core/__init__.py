"""
Core module initialization.
Exports configuration, logging utilities and the domain error taxonomy.
"""

from tableorder.core.config import get_settings, Settings, EnvironmentMode
from tableorder.core.exceptions import (
    OrderingError,
    InvalidToken,
    InvalidItems,
    IllegalTransition,
    Conflict,
    NotFound,
    Unauthorized,
)

__all__ = [
    "get_settings",
    "Settings",
    "EnvironmentMode",
    "OrderingError",
    "InvalidToken",
    "InvalidItems",
    "IllegalTransition",
    "Conflict",
    "NotFound",
    "Unauthorized",
]
