"""Database utilities exposed for the registry service."""

from .base import Base
from .migrations import upgrade_database
from .session import resolve_async_database_url, resolve_database_url, wait_for_database

__all__ = [
    "Base",
    "resolve_async_database_url",
    "resolve_database_url",
    "upgrade_database",
    "wait_for_database",
]
