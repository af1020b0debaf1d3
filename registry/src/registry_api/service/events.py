"""In-process event bus for publish/admin events.

Events are emitted only after the metadata write they describe has
committed. Handlers run as background tasks; ``emit`` never waits for them
and a failing handler is logged without affecting the request.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any, Awaitable, Callable, ClassVar, Union

from registry_api.db.types import utcnow

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class PackagePublished:
    kind: ClassVar[str] = "package.published"
    package_name: str
    version: str
    archive_sha256: str
    actor_id: str | None
    occurred_at: datetime = field(default_factory=utcnow)


@dataclass(frozen=True)
class PackageDeleted:
    kind: ClassVar[str] = "package.deleted"
    package_name: str
    actor_id: str | None
    occurred_at: datetime = field(default_factory=utcnow)


@dataclass(frozen=True)
class VersionDeleted:
    kind: ClassVar[str] = "version.deleted"
    package_name: str
    version: str
    actor_id: str | None
    occurred_at: datetime = field(default_factory=utcnow)


@dataclass(frozen=True)
class VersionRetracted:
    kind: ClassVar[str] = "version.retracted"
    package_name: str
    version: str
    retracted: bool
    actor_id: str | None
    occurred_at: datetime = field(default_factory=utcnow)


@dataclass(frozen=True)
class PackageDiscontinued:
    kind: ClassVar[str] = "package.discontinued"
    package_name: str
    discontinued: bool
    replaced_by: str | None
    actor_id: str | None
    occurred_at: datetime = field(default_factory=utcnow)


@dataclass(frozen=True)
class CacheCleared:
    kind: ClassVar[str] = "cache.cleared"
    removed_archives: int
    actor_id: str | None
    occurred_at: datetime = field(default_factory=utcnow)


RegistryEvent = Union[
    PackagePublished,
    PackageDeleted,
    VersionDeleted,
    VersionRetracted,
    PackageDiscontinued,
    CacheCleared,
]

EventHandler = Callable[[RegistryEvent], Awaitable[None]]


def event_payload(event: RegistryEvent) -> dict[str, Any]:
    payload = asdict(event)
    payload["kind"] = event.kind
    payload["occurred_at"] = event.occurred_at.isoformat()
    return payload


class EventBus:
    def __init__(self) -> None:
        self._handlers: list[EventHandler] = []
        self._pending: set[asyncio.Task[None]] = set()

    def subscribe(self, handler: EventHandler) -> None:
        self._handlers.append(handler)

    def emit(self, event: RegistryEvent) -> None:
        for handler in self._handlers:
            task = asyncio.create_task(self._deliver(handler, event))
            self._pending.add(task)
            task.add_done_callback(self._pending.discard)

    async def _deliver(self, handler: EventHandler, event: RegistryEvent) -> None:
        try:
            await handler(event)
        except Exception:
            LOGGER.exception("Event handler %r failed for %s", handler, event.kind)

    async def drain(self) -> None:
        """Wait for every in-flight handler (shutdown and tests)."""

        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)


__all__ = [
    "CacheCleared",
    "EventBus",
    "EventHandler",
    "PackageDeleted",
    "PackageDiscontinued",
    "PackagePublished",
    "RegistryEvent",
    "VersionDeleted",
    "VersionRetracted",
    "event_payload",
]
