# reengine/core/__init__.py
"""
Core package for configuration, logging, and shared errors.
"""

from reengine.core.config import Settings, settings
from reengine.core.logging import configure_structlog, get_structlog_logger

__all__ = [
    "Settings",
    "settings",
    "configure_structlog",
    "get_structlog_logger",
]
