"""Frozen snapshots of catalog rows; safe to pass across session boundaries."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from .versions import select_latest, sort_versions


@dataclass(frozen=True)
class Package:
    name: str
    owner_id: str | None
    is_discontinued: bool
    replaced_by: str | None
    is_upstream_cache: bool
    created_at: datetime
    updated_at: datetime


@dataclass(frozen=True)
class PackageVersion:
    package_name: str
    version: str
    pubspec: dict[str, Any]
    archive_key: str
    archive_sha256: str
    archive_size: int | None
    published_at: datetime
    is_retracted: bool = False
    retracted_at: datetime | None = None
    retraction_message: str | None = None


@dataclass(frozen=True)
class PackageInfo:
    """A package together with every published version, oldest first."""

    package: Package
    versions: tuple[PackageVersion, ...]

    @property
    def name(self) -> str:
        return self.package.name

    @property
    def latest(self) -> PackageVersion | None:
        if not self.versions:
            return None
        by_version = {v.version: v for v in self.versions}
        retracted = [v.version for v in self.versions if v.is_retracted]
        chosen = select_latest(list(by_version), excluded=retracted)
        return by_version[chosen] if chosen else None

    def get(self, version: str) -> PackageVersion | None:
        for candidate in self.versions:
            if candidate.version == version:
                return candidate
        return None

    @classmethod
    def build(cls, package: Package, versions: list[PackageVersion]) -> "PackageInfo":
        order = {v: index for index, v in enumerate(sort_versions(x.version for x in versions))}
        ordered = sorted(versions, key=lambda item: order[item.version])
        return cls(package=package, versions=tuple(ordered))


@dataclass(frozen=True)
class PackageListResult:
    packages: tuple[PackageInfo, ...]
    total: int
    page: int
    limit: int


@dataclass(frozen=True)
class AuthToken:
    token_hash: str
    user_id: str
    label: str
    scopes: tuple[str, ...]
    created_at: datetime
    last_used_at: datetime | None = None
    expires_at: datetime | None = None

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at is not None and self.expires_at <= now

    def to_dict(self) -> dict[str, object]:
        return {
            "label": self.label,
            "scopes": list(self.scopes),
            "createdAt": self.created_at.isoformat(),
            "lastUsedAt": self.last_used_at.isoformat() if self.last_used_at else None,
            "expiresAt": self.expires_at.isoformat() if self.expires_at else None,
        }


@dataclass(frozen=True)
class UploadSession:
    id: str
    user_id: str | None
    created_at: datetime
    expires_at: datetime
    completed: bool = False
    completed_at: datetime | None = None
    staged_key: str | None = None
    archive_sha256: str | None = None
    archive_size: int | None = None
    uploaded_at: datetime | None = None
    package_name: str | None = None
    version: str | None = None
    rejected_at: datetime | None = None

    def is_expired(self, now: datetime) -> bool:
        return now >= self.expires_at

    @property
    def has_upload(self) -> bool:
        return self.staged_key is not None


@dataclass(frozen=True)
class User:
    id: str
    email: str
    name: str | None
    is_active: bool
    created_at: datetime
    last_login_at: datetime | None = None

    def to_dict(self) -> dict[str, object]:
        return {"id": self.id, "email": self.email, "name": self.name, "isActive": self.is_active}


@dataclass(frozen=True)
class AdminUser:
    id: str
    username: str
    name: str | None
    is_active: bool
    created_at: datetime
    last_login_at: datetime | None = None

    def to_dict(self) -> dict[str, object]:
        return {"id": self.id, "username": self.username, "name": self.name, "isActive": self.is_active}


@dataclass(frozen=True)
class UserSession:
    session_hash: str
    user_id: str
    is_admin: bool
    created_at: datetime
    expires_at: datetime

    def is_expired(self, now: datetime) -> bool:
        return now >= self.expires_at


@dataclass(frozen=True)
class StorageConfig:
    """Backend selection. ``s3_secret_key`` holds ciphertext, never plaintext."""

    variant: str
    backend: str
    local_path: str | None = None
    s3_endpoint: str | None = None
    s3_region: str | None = None
    s3_bucket: str | None = None
    s3_access_key: str | None = None
    s3_secret_key: str | None = None
    s3_force_path_style: bool = True
    updated_at: datetime | None = None

    def to_dict(self) -> dict[str, object]:
        return {
            "variant": self.variant,
            "backend": self.backend,
            "localPath": self.local_path,
            "s3Endpoint": self.s3_endpoint,
            "s3Region": self.s3_region,
            "s3Bucket": self.s3_bucket,
            "s3AccessKey": self.s3_access_key,
            "hasSecretKey": bool(self.s3_secret_key),
            "s3ForcePathStyle": self.s3_force_path_style,
        }


@dataclass(frozen=True)
class ArchiveRef:
    """One blob the catalog says must exist."""

    key: str
    sha256: str
    is_upstream_cache: bool = False


@dataclass(frozen=True)
class AdminStats:
    total_packages: int
    local_packages: int
    cached_packages: int
    total_versions: int
    total_users: int
    active_tokens: int

    def to_dict(self) -> dict[str, int]:
        return {
            "totalPackages": self.total_packages,
            "localPackages": self.local_packages,
            "cachedPackages": self.cached_packages,
            "totalVersions": self.total_versions,
            "totalUsers": self.total_users,
            "activeTokens": self.active_tokens,
        }


@dataclass(frozen=True)
class ActivityEntry:
    id: int
    created_at: datetime
    kind: str
    actor_id: str | None
    package_name: str | None
    version: str | None
    details: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.id,
            "createdAt": self.created_at.isoformat(),
            "kind": self.kind,
            "actorId": self.actor_id,
            "packageName": self.package_name,
            "version": self.version,
            "details": self.details,
        }
