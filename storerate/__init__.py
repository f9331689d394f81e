"""Store directory with per-user ratings and read-time aggregates."""

from __future__ import annotations

from typing import Any

from .database import Database, resolve_database_path
from .service import DirectoryService


def create_app(*args: Any, **kwargs: Any):
    """Factory function that returns the HTTP application."""

    from .api import create_app as _create_app

    return _create_app(*args, **kwargs)


__all__ = [
    "Database",
    "DirectoryService",
    "create_app",
    "resolve_database_path",
]
