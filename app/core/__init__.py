"""Core app configuration and logging."""

from app.core.config import get_settings, settings
from app.core.logging import configure_logging

__all__ = ["configure_logging", "get_settings", "settings"]
