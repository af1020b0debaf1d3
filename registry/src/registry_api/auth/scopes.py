"""Scope grammar and pure authorization predicates.

Scopes are exact strings. ``admin`` satisfies every check; nothing else
implies anything beyond itself. ``publish:pkg:<name>`` matches one package
name exactly, with no prefix or wildcard semantics.
"""

from __future__ import annotations

from enum import Enum
from typing import Iterable

SCOPE_ADMIN = "admin"
SCOPE_PUBLISH_ALL = "publish:all"
SCOPE_READ_ALL = "read:all"
PUBLISH_PACKAGE_PREFIX = "publish:pkg:"


class Action(str, Enum):
    PUBLISH = "publish"
    READ = "read"
    ADMIN = "admin"


def publish_scope_for(name: str) -> str:
    return f"{PUBLISH_PACKAGE_PREFIX}{name}"


def is_known_scope(scope: str) -> bool:
    if scope in (SCOPE_ADMIN, SCOPE_PUBLISH_ALL, SCOPE_READ_ALL):
        return True
    return scope.startswith(PUBLISH_PACKAGE_PREFIX) and len(scope) > len(PUBLISH_PACKAGE_PREFIX)


def has_admin(scopes: Iterable[str]) -> bool:
    return SCOPE_ADMIN in set(scopes)


def can_publish(scopes: Iterable[str], name: str) -> bool:
    granted = set(scopes)
    return bool(granted & {SCOPE_ADMIN, SCOPE_PUBLISH_ALL, publish_scope_for(name)})


def can_publish_any(scopes: Iterable[str]) -> bool:
    """True when at least one scope could authorize some publish."""

    return any(
        scope in (SCOPE_ADMIN, SCOPE_PUBLISH_ALL) or scope.startswith(PUBLISH_PACKAGE_PREFIX)
        for scope in scopes
    )


def can_read(scopes: Iterable[str]) -> bool:
    granted = set(scopes)
    return bool(granted & {SCOPE_ADMIN, SCOPE_READ_ALL})


def is_authorized(scopes: Iterable[str], action: Action, target: str | None = None) -> bool:
    granted = frozenset(scopes)
    if action is Action.ADMIN:
        return has_admin(granted)
    if action is Action.READ:
        return can_read(granted)
    if target is None:
        return can_publish_any(granted)
    return can_publish(granted, target)


__all__ = [
    "Action",
    "PUBLISH_PACKAGE_PREFIX",
    "SCOPE_ADMIN",
    "SCOPE_PUBLISH_ALL",
    "SCOPE_READ_ALL",
    "can_publish",
    "can_publish_any",
    "can_read",
    "has_admin",
    "is_authorized",
    "is_known_scope",
    "publish_scope_for",
]
