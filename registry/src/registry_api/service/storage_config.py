"""Stage, inspect and activate storage backend configurations.

Operators stage a ``pending`` config, migrate and verify into it, then
activate it while the server is stopped. A running server only reads the
``active`` config at startup.
"""

from __future__ import annotations

import logging

from registry_api.auth.crypto import CredentialCipher
from registry_api.config.settings import RegistrySettings
from registry_api.domain.models import StorageConfig
from registry_api.errors import NotFoundError
from registry_api.metadata import STORAGE_VARIANT_ACTIVE, STORAGE_VARIANT_PENDING, MetadataStore
from registry_api.storage.factory import (
    BlobStores,
    build_blob_stores,
    settings_storage_config,
    validate_storage_config,
)

LOGGER = logging.getLogger(__name__)


class StorageConfigService:
    def __init__(self, *, metadata: MetadataStore, settings: RegistrySettings, cipher: CredentialCipher) -> None:
        self._metadata = metadata
        self._settings = settings
        self._cipher = cipher

    async def active(self) -> StorageConfig:
        """Stored active config, falling back to the one implied by settings."""

        stored = await self._metadata.get_storage_config(STORAGE_VARIANT_ACTIVE)
        return stored or settings_storage_config(self._settings, self._cipher)

    async def pending(self) -> StorageConfig | None:
        return await self._metadata.get_storage_config(STORAGE_VARIANT_PENDING)

    async def require_pending(self) -> StorageConfig:
        config = await self.pending()
        if config is None:
            raise NotFoundError("No pending storage configuration is staged.")
        return config

    async def stage(
        self,
        *,
        backend: str,
        local_path: str | None = None,
        s3_endpoint: str | None = None,
        s3_region: str | None = None,
        s3_bucket: str | None = None,
        s3_access_key: str | None = None,
        s3_secret_key: str | None = None,
        s3_force_path_style: bool = True,
    ) -> StorageConfig:
        config = StorageConfig(
            variant=STORAGE_VARIANT_PENDING,
            backend=backend,
            local_path=local_path,
            s3_endpoint=s3_endpoint,
            s3_region=s3_region,
            s3_bucket=s3_bucket,
            s3_access_key=s3_access_key,
            s3_secret_key=self._cipher.encrypt(s3_secret_key) if s3_secret_key else None,
            s3_force_path_style=s3_force_path_style,
        )
        validate_storage_config(config)
        saved = await self._metadata.save_storage_config(config)
        LOGGER.info("Staged pending %s storage configuration", backend)
        return saved

    async def activate(self) -> StorageConfig:
        activated = await self._metadata.activate_pending_storage_config()
        LOGGER.info("Activated %s storage configuration", activated.backend)
        return activated

    def build(self, config: StorageConfig) -> BlobStores:
        return build_blob_stores(config, settings=self._settings, cipher=self._cipher)


__all__ = ["StorageConfigService"]
