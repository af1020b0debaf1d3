"""Build blob stores from settings or a stored storage configuration."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from registry_api.auth.crypto import CredentialCipher
from registry_api.config.settings import RegistrySettings
from registry_api.domain.models import ArchiveRef, StorageConfig
from registry_api.errors import ValidationError

from .base import NAMESPACE_CACHED, NAMESPACE_PUBLISHED, BlobStore
from .local import LocalBlobStore
from .s3 import S3BlobStore

BACKEND_LOCAL = "local"
BACKEND_S3 = "s3"
STORAGE_BACKENDS = (BACKEND_LOCAL, BACKEND_S3)


@dataclass(frozen=True)
class BlobStores:
    """The published and cached namespaces of one substrate."""

    published: BlobStore
    cached: BlobStore

    def for_ref(self, ref: ArchiveRef) -> BlobStore:
        return self.cached if ref.is_upstream_cache else self.published

    async def ensure_ready(self) -> None:
        await self.published.ensure_ready()
        await self.cached.ensure_ready()

    def describe(self) -> str:
        return self.published.describe()


def settings_storage_config(settings: RegistrySettings, cipher: CredentialCipher) -> StorageConfig:
    """Storage config implied by environment settings (used when none is stored)."""

    return StorageConfig(
        variant="env",
        backend=settings.storage_backend,
        local_path=str(settings.storage_path),
        s3_endpoint=settings.s3_endpoint,
        s3_region=settings.s3_region,
        s3_bucket=settings.s3_bucket,
        s3_access_key=settings.s3_access_key,
        s3_secret_key=cipher.encrypt(settings.s3_secret_key) if settings.s3_secret_key else None,
        s3_force_path_style=settings.s3_force_path_style,
    )


def validate_storage_config(config: StorageConfig) -> None:
    if config.backend not in STORAGE_BACKENDS:
        raise ValidationError(f"Unknown storage backend '{config.backend}'.")
    if config.backend == BACKEND_LOCAL and not config.local_path:
        raise ValidationError("Local storage requires a path.")
    if config.backend == BACKEND_S3 and not config.s3_bucket:
        raise ValidationError("S3 storage requires a bucket.")


def build_blob_store(
    config: StorageConfig,
    *,
    namespace: str,
    settings: RegistrySettings,
    cipher: CredentialCipher,
) -> BlobStore:
    validate_storage_config(config)
    if config.backend == BACKEND_LOCAL:
        return LocalBlobStore(
            Path(config.local_path or settings.storage_path),
            namespace=namespace,
            base_url=settings.base_url,
            signing_secret=settings.signing_secret,
            default_ttl_seconds=settings.signed_url_ttl_seconds,
        )
    return S3BlobStore(
        config.s3_bucket or "",
        namespace=namespace,
        endpoint_url=config.s3_endpoint,
        region=config.s3_region or settings.s3_region,
        access_key=config.s3_access_key,
        secret_key=cipher.decrypt(config.s3_secret_key) if config.s3_secret_key else None,
        force_path_style=config.s3_force_path_style,
        default_ttl_seconds=settings.signed_url_ttl_seconds,
    )


def build_blob_stores(
    config: StorageConfig,
    *,
    settings: RegistrySettings,
    cipher: CredentialCipher,
) -> BlobStores:
    return BlobStores(
        published=build_blob_store(config, namespace=NAMESPACE_PUBLISHED, settings=settings, cipher=cipher),
        cached=build_blob_store(config, namespace=NAMESPACE_CACHED, settings=settings, cipher=cipher),
    )


__all__ = [
    "BACKEND_LOCAL",
    "BACKEND_S3",
    "BlobStores",
    "STORAGE_BACKENDS",
    "build_blob_store",
    "build_blob_stores",
    "settings_storage_config",
    "validate_storage_config",
]
