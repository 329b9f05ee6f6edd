"""
Core module initialization.
Exports configuration, logging and error utilities.
"""

from canteen.core.config import get_settings, setup_logging, Settings, EnvironmentMode
from canteen.core.errors import (
    APIError,
    AuthenticationError,
    BadRequestError,
    ConflictError,
    ForbiddenError,
    NotFoundError,
)

__all__ = [
    "get_settings",
    "setup_logging",
    "Settings",
    "EnvironmentMode",
    "APIError",
    "AuthenticationError",
    "BadRequestError",
    "ConflictError",
    "ForbiddenError",
    "NotFoundError",
]
