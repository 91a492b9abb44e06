"""Hydrotrack Core module.

Shared components used across the service:
- Configuration management
- Logging setup
"""

from hydrotrack.core.config import (
    ConfigValidationError,
    DatabaseSettings,
    Environment,
    Settings,
    WorkflowSettings,
)
from hydrotrack.core.logging import configure_logging
from hydrotrack.core.settings import clear_settings_cache, get_settings, get_settings_safe

__all__ = [
    "ConfigValidationError",
    "DatabaseSettings",
    "Environment",
    "Settings",
    "WorkflowSettings",
    "clear_settings_cache",
    "configure_logging",
    "get_settings",
    "get_settings_safe",
]
