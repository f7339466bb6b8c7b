"""User API service with a database readiness gate."""

from __future__ import annotations

from typing import Any

from .config import DatabaseTarget, Settings, load_settings
from .database import Database


def create_app(*args: Any, **kwargs: Any):
    """Factory function that returns the ASGI application."""

    from .application import create_application as _create_application

    return _create_application(*args, **kwargs)


__all__ = [
    "Database",
    "DatabaseTarget",
    "Settings",
    "create_app",
    "load_settings",
]
