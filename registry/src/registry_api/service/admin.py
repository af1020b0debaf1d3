"""Administrative catalog operations: removal, retraction, discontinuation."""

from __future__ import annotations

import logging
from typing import Iterable

from registry_api.domain.models import ActivityEntry, AdminStats, PackageListResult
from registry_api.errors import NotFoundError, RegistryError, ValidationError
from registry_api.metadata import MetadataStore
from registry_api.storage.base import BlobStore
from registry_api.storage.factory import BlobStores

from .events import (
    CacheCleared,
    EventBus,
    PackageDeleted,
    PackageDiscontinued,
    VersionDeleted,
    VersionRetracted,
)

LOGGER = logging.getLogger(__name__)

PACKAGE_TYPES = ("local", "cached")


class AdminService:
    """Metadata is changed first; blobs are removed afterwards, best effort.

    A failed blob delete leaves an orphan, never a catalog row without bytes.
    """

    def __init__(self, *, metadata: MetadataStore, blobs: BlobStores, events: EventBus) -> None:
        self._metadata = metadata
        self._blobs = blobs
        self._events = events

    async def stats(self) -> AdminStats:
        return await self._metadata.get_admin_stats()

    async def list_packages(self, package_type: str, *, page: int = 1, limit: int = 20) -> PackageListResult:
        if package_type not in PACKAGE_TYPES:
            raise ValidationError(f"Unknown package type '{package_type}'.")
        return await self._metadata.list_packages_by_type(
            upstream_cache=package_type == "cached",
            page=page,
            limit=limit,
        )

    async def delete_package(self, name: str, *, actor_id: str | None = None) -> int:
        package = await self._metadata.get_package(name)
        if package is None:
            raise NotFoundError(f"Package '{name}' not found.")
        keys = await self._metadata.delete_package(name)
        store = self._blobs.cached if package.is_upstream_cache else self._blobs.published
        await self._remove_blobs(store, keys)
        self._events.emit(PackageDeleted(package_name=name, actor_id=actor_id))
        LOGGER.info("Deleted package %s (%d archives)", name, len(keys))
        return len(keys)

    async def delete_version(self, name: str, version: str, *, actor_id: str | None = None) -> None:
        package = await self._metadata.get_package(name)
        if package is None:
            raise NotFoundError(f"Package '{name}' not found.")
        key = await self._metadata.delete_package_version(name, version)
        store = self._blobs.cached if package.is_upstream_cache else self._blobs.published
        await self._remove_blobs(store, [key])
        self._events.emit(VersionDeleted(package_name=name, version=version, actor_id=actor_id))
        LOGGER.info("Deleted %s %s", name, version)

    async def retract(
        self,
        name: str,
        version: str,
        *,
        message: str | None = None,
        actor_id: str | None = None,
    ) -> None:
        await self._metadata.retract_version(name, version, message=message)
        self._events.emit(VersionRetracted(package_name=name, version=version, retracted=True, actor_id=actor_id))

    async def unretract(self, name: str, version: str, *, actor_id: str | None = None) -> None:
        await self._metadata.unretract_version(name, version)
        self._events.emit(VersionRetracted(package_name=name, version=version, retracted=False, actor_id=actor_id))

    async def discontinue(
        self,
        name: str,
        *,
        replaced_by: str | None = None,
        actor_id: str | None = None,
    ) -> None:
        await self._metadata.discontinue_package(name, replaced_by=replaced_by)
        self._events.emit(
            PackageDiscontinued(package_name=name, discontinued=True, replaced_by=replaced_by, actor_id=actor_id)
        )

    async def reactivate(self, name: str, *, actor_id: str | None = None) -> None:
        await self._metadata.reactivate_package(name)
        self._events.emit(
            PackageDiscontinued(package_name=name, discontinued=False, replaced_by=None, actor_id=actor_id)
        )

    async def clear_cache(self, *, actor_id: str | None = None) -> int:
        keys = await self._metadata.clear_cached_packages()
        await self._remove_blobs(self._blobs.cached, keys)
        self._events.emit(CacheCleared(removed_archives=len(keys), actor_id=actor_id))
        LOGGER.info("Cleared %d cached archives", len(keys))
        return len(keys)

    async def activity(self, *, limit: int = 50, package_name: str | None = None) -> list[ActivityEntry]:
        return await self._metadata.recent_activity(limit=limit, package_name=package_name)

    async def _remove_blobs(self, store: BlobStore, keys: Iterable[str]) -> None:
        for key in keys:
            try:
                await store.delete(key)
            except RegistryError:
                LOGGER.warning("Failed to remove blob %s", key, exc_info=True)


__all__ = ["AdminService", "PACKAGE_TYPES"]
