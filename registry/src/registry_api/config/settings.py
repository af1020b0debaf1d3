"""Registry configuration using pydantic-settings."""

from __future__ import annotations

from pathlib import Path
from typing import Any, ClassVar, Literal

from pydantic import Field, PositiveFloat, PositiveInt, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_DATA_ROOT = Path("var")
MIB = 1024 * 1024


class RegistrySettings(BaseSettings):
    """Validated, immutable settings resolved once at process start."""

    model_config: ClassVar[SettingsConfigDict] = SettingsConfigDict(
        env_prefix="REGISTRY_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        frozen=True,
    )

    host: str = Field(default="127.0.0.1", description="Bind address for the registry API.")
    port: PositiveInt = Field(default=4920, description="Port for the registry API.")
    reload: bool = Field(default=False, description="Enable uvicorn auto-reload (dev only).")
    log_level: Literal["critical", "error", "warning", "info", "debug", "trace"] = Field(
        default="info",
        description="Log level for registry API / uvicorn.",
    )
    base_url: str = Field(
        default="http://localhost:4920",
        description="Public URL clients use to reach this registry (no trailing slash).",
    )
    cors_origins: list[str] = Field(
        default_factory=list,
        description="Origins allowed to call the API from a browser.",
    )

    database_url: str = Field(
        default=f"sqlite:///{(DEFAULT_DATA_ROOT / 'data' / 'registry.db').as_posix()}",
        description="Synchronous SQLAlchemy URL; the async driver is derived from it.",
    )
    database_connect_attempts: PositiveInt = Field(
        default=30,
        description="Connection attempts at startup before giving up.",
    )
    database_connect_delay_seconds: PositiveFloat = Field(
        default=1.0,
        description="Fixed delay between startup connection attempts (seconds).",
    )

    storage_backend: Literal["local", "s3"] = Field(
        default="local",
        description="Blob backend used when no active storage config is stored in the database.",
    )
    storage_path: Path = Field(
        default=DEFAULT_DATA_ROOT / "storage",
        description="Root directory for the local blob backend.",
    )
    s3_endpoint: str | None = Field(default=None, description="S3-compatible endpoint URL.")
    s3_region: str = Field(default="us-east-1", description="S3 region.")
    s3_bucket: str | None = Field(default=None, description="S3 bucket holding archives.")
    s3_access_key: str | None = Field(default=None, description="S3 access key id.")
    s3_secret_key: str | None = Field(default=None, description="S3 secret access key.")
    s3_force_path_style: bool = Field(
        default=True,
        description="Use path-style addressing (MinIO and most self-hosted stores need it).",
    )
    signed_url_ttl_seconds: PositiveInt = Field(
        default=3600,
        description="Lifetime of signed download URLs (seconds).",
    )
    signing_secret: str = Field(
        default="dev-signing-secret",
        description="HMAC key for signed URLs served by the local blob backend.",
    )
    encryption_key: str = Field(
        default="dev-encryption-key",
        description="Key material used to encrypt stored backend credentials.",
    )

    upload_session_ttl_seconds: PositiveInt = Field(
        default=3600,
        description="Wall-clock window for one publish handshake (seconds).",
    )
    max_upload_size_bytes: PositiveInt = Field(
        default=100 * MIB,
        description="Largest archive accepted by the upload endpoint.",
    )
    max_concurrent_uploads: PositiveInt = Field(
        default=4,
        description="Uploads/finalizes allowed to hash and write blobs at the same time.",
    )
    require_download_auth: bool = Field(
        default=False,
        description="Require a read-capable token for catalog reads and downloads.",
    )
    redirect_downloads: bool = Field(
        default=False,
        description="Answer archive downloads with a redirect to a signed URL.",
    )

    user_session_ttl_seconds: PositiveInt = Field(
        default=7 * 24 * 3600,
        description="Lifetime of end-user browser sessions (seconds).",
    )
    admin_session_ttl_seconds: PositiveInt = Field(
        default=8 * 3600,
        description="Lifetime of administrator browser sessions (seconds).",
    )
    cookie_secure: bool = Field(
        default=False,
        description="Mark session cookies Secure (enable behind HTTPS).",
    )
    allow_registration: bool = Field(
        default=True,
        description="Allow end users to self-register.",
    )

    migration_concurrency: PositiveInt = Field(
        default=8,
        description="Parallel copies during storage migration.",
    )

    @field_validator("base_url")
    @classmethod
    def _strip_trailing_slash(cls, value: str) -> str:
        return value.rstrip("/")


def load_settings(**overrides: Any) -> RegistrySettings:
    """Build a fresh settings value from the environment plus explicit overrides."""

    return RegistrySettings(**overrides)


__all__ = ["RegistrySettings", "load_settings"]
