"""Process-scoped dependency context.

One ``RegistryContext`` is built at startup and closed at shutdown; every
store, service and key lives on it rather than in module globals.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass

from registry_api.auth.crypto import CredentialCipher
from registry_api.auth.sessions import SessionService
from registry_api.auth.tokens import TokenService
from registry_api.config.settings import RegistrySettings
from registry_api.metadata import MetadataStore, create_metadata_store
from registry_api.service.activity import ActivityRecorder
from registry_api.service.admin import AdminService
from registry_api.service.events import EventBus
from registry_api.service.publish import PublishWorkflow
from registry_api.service.storage_config import StorageConfigService
from registry_api.storage.factory import BlobStores

LOGGER = logging.getLogger(__name__)


@dataclass
class RegistryContext:
    settings: RegistrySettings
    metadata: MetadataStore
    blobs: BlobStores
    events: EventBus
    cipher: CredentialCipher
    tokens: TokenService
    sessions: SessionService
    workflow: PublishWorkflow
    admin: AdminService
    storage_config: StorageConfigService
    upload_slots: asyncio.Semaphore

    @classmethod
    async def open(cls, settings: RegistrySettings, *, migrate: bool = True) -> "RegistryContext":
        """Connect (with retry), migrate, resolve storage and wire subscribers."""

        metadata = create_metadata_store(settings)
        try:
            await metadata.connect()
            if migrate:
                applied = await metadata.run_migrations()
                if applied:
                    LOGGER.info("Applied %d database migration(s)", applied)
            cipher = CredentialCipher(settings.encryption_key)
            storage_config = StorageConfigService(metadata=metadata, settings=settings, cipher=cipher)
            active = await storage_config.active()
            blobs = storage_config.build(active)
            await blobs.ensure_ready()
        except BaseException:
            await metadata.close()
            raise

        events = EventBus()
        events.subscribe(ActivityRecorder(metadata))
        upload_slots = asyncio.Semaphore(settings.max_concurrent_uploads)
        LOGGER.info("Registry storage: %s (%s catalog)", blobs.describe(), metadata.dialect)
        return cls(
            settings=settings,
            metadata=metadata,
            blobs=blobs,
            events=events,
            cipher=cipher,
            tokens=TokenService(metadata),
            sessions=SessionService(metadata, settings),
            workflow=PublishWorkflow(
                metadata=metadata,
                blobs=blobs,
                events=events,
                settings=settings,
                upload_slots=upload_slots,
            ),
            admin=AdminService(metadata=metadata, blobs=blobs, events=events),
            storage_config=storage_config,
            upload_slots=upload_slots,
        )

    async def close(self) -> None:
        await self.events.drain()
        await self.metadata.close()


__all__ = ["RegistryContext"]
