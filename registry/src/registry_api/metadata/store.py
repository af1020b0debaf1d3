"""Catalog operations over a relational engine.

``MetadataStore`` holds every query the registry needs; subclasses only decide
how the async engine is created for their database (connection arguments,
transaction start semantics). Uniqueness (one row per package name, one row
per ``(package_name, version)``) is enforced by the engine's constraints, and
the resulting ``IntegrityError`` is translated to :class:`ConflictError` here.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timedelta
from typing import Any, AsyncIterator, Literal

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession

from registry_api.config.settings import RegistrySettings
from registry_api.db.migrations import upgrade_database
from registry_api.db.session import (
    create_session_factory,
    resolve_async_database_url,
    resolve_database_url,
    wait_for_database,
)
from registry_api.db.types import utcnow
from registry_api.domain.models import (
    ActivityEntry,
    AdminStats,
    AdminUser,
    ArchiveRef,
    AuthToken,
    Package,
    PackageInfo,
    PackageListResult,
    PackageVersion,
    StorageConfig,
    UploadSession,
    User,
    UserSession,
)
from registry_api.errors import (
    ConflictError,
    DuplicateVersionError,
    NotFoundError,
    SessionExpiredError,
    SessionNotFoundError,
    SessionRejectedError,
)
from registry_api.repo import (
    ActivityRepository,
    AdminUserRepository,
    BackupRepository,
    PackageRepository,
    StorageConfigRepository,
    TokenRepository,
    UploadSessionRepository,
    UserRepository,
    UserSessionRepository,
)
from registry_api.repo.backup import BACKUP_TABLES

from . import mappers

LOGGER = logging.getLogger(__name__)

PackageClaim = Literal["new", "unowned", "owned"]

STORAGE_VARIANT_ACTIVE = "active"
STORAGE_VARIANT_PENDING = "pending"


class MetadataStore:
    """Backend-agnostic catalog; see :func:`create_metadata_store` for the engine choice."""

    dialect = "generic"

    def __init__(self, settings: RegistrySettings) -> None:
        self._settings = settings
        self._database_url = resolve_database_url(settings.database_url)
        self._engine = self._create_engine(resolve_async_database_url(self._database_url))
        self._session_factory = create_session_factory(self._engine)
        self._packages = PackageRepository()
        self._tokens = TokenRepository()
        self._uploads = UploadSessionRepository()
        self._users = UserRepository()
        self._admins = AdminUserRepository()
        self._user_sessions = UserSessionRepository()
        self._activity = ActivityRepository()
        self._storage_config = StorageConfigRepository()
        self._backup = BackupRepository()

    def _create_engine(self, async_url: str) -> AsyncEngine:
        raise NotImplementedError

    @property
    def engine(self) -> AsyncEngine:
        return self._engine

    @asynccontextmanager
    async def _transaction(self) -> AsyncIterator[AsyncSession]:
        async with self._session_factory() as session:
            async with session.begin():
                yield session

    # lifecycle

    async def connect(self) -> None:
        await wait_for_database(
            self._engine,
            attempts=self._settings.database_connect_attempts,
            delay_seconds=self._settings.database_connect_delay_seconds,
        )

    async def run_migrations(self) -> int:
        """Apply pending schema migrations; returns how many ran (0 when current)."""

        return await asyncio.to_thread(upgrade_database, self._database_url)

    async def close(self) -> None:
        await self._engine.dispose()

    # packages and versions

    async def get_package(self, name: str) -> Package | None:
        async with self._transaction() as session:
            record = await self._packages.get(name=name, session=session)
            return mappers.package_snapshot(record) if record else None

    async def get_package_versions(self, name: str) -> list[PackageVersion]:
        async with self._transaction() as session:
            records = await self._packages.list_versions(name=name, session=session)
            return [mappers.version_snapshot(record) for record in records]

    async def get_package_info(self, name: str) -> PackageInfo | None:
        async with self._transaction() as session:
            record = await self._packages.get(name=name, session=session)
            if record is None:
                return None
            versions = await self._packages.list_versions(name=name, session=session)
            return PackageInfo.build(
                mappers.package_snapshot(record),
                [mappers.version_snapshot(v) for v in versions],
            )

    async def get_package_version(self, name: str, version: str) -> PackageVersion | None:
        async with self._transaction() as session:
            record = await self._packages.get_version(name=name, version=version, session=session)
            return mappers.version_snapshot(record) if record else None

    async def version_exists(self, name: str, version: str) -> bool:
        async with self._transaction() as session:
            return await self._packages.version_exists(name=name, version=version, session=session)

    async def create_package(
        self,
        name: str,
        *,
        owner_id: str | None = None,
        is_upstream_cache: bool = False,
    ) -> Package:
        try:
            async with self._transaction() as session:
                record = await self._packages.add_package(
                    name=name,
                    owner_id=owner_id,
                    is_upstream_cache=is_upstream_cache,
                    now=utcnow(),
                    session=session,
                )
                return mappers.package_snapshot(record)
        except IntegrityError as exc:
            raise ConflictError(f"Package '{name}' already exists.") from exc

    async def insert_version(
        self,
        *,
        name: str,
        version: str,
        pubspec: dict[str, Any],
        archive_key: str,
        archive_sha256: str,
        archive_size: int | None,
        owner_id: str | None,
        claim: PackageClaim,
        upload_session_id: str | None = None,
        is_upstream_cache: bool = False,
    ) -> PackageVersion:
        """Commit a version, its package claim and the session completion together.

        ``claim`` is what the caller observed before writing: ``new`` inserts
        the package row, ``unowned`` sets the owner only if still empty, and
        ``owned`` leaves ownership alone. Losing either race raises
        :class:`ConflictError`, as does a duplicate ``(name, version)``.
        """

        now = utcnow()
        try:
            async with self._transaction() as session:
                if claim == "new":
                    try:
                        await self._packages.add_package(
                            name=name,
                            owner_id=owner_id,
                            is_upstream_cache=is_upstream_cache,
                            now=now,
                            session=session,
                        )
                    except IntegrityError as exc:
                        raise ConflictError(
                            f"Package '{name}' was created by a concurrent publish."
                        ) from exc
                elif claim == "unowned" and owner_id is not None:
                    if not await self._packages.claim_owner(name=name, owner_id=owner_id, session=session):
                        raise ConflictError(f"Package '{name}' was claimed by a concurrent publish.")
                else:
                    await self._packages.touch(name=name, now=now, session=session)

                record = await self._packages.add_version(
                    name=name,
                    version=version,
                    pubspec=pubspec,
                    archive_key=archive_key,
                    archive_sha256=archive_sha256,
                    archive_size=archive_size,
                    now=now,
                    session=session,
                )
                if upload_session_id is not None:
                    completed = await self._uploads.complete(
                        session_id=upload_session_id,
                        package_name=name,
                        version=version,
                        now=now,
                        session=session,
                    )
                    if not completed:
                        await self._raise_session_state(upload_session_id, now, session)
                return mappers.version_snapshot(record)
        except IntegrityError as exc:
            raise DuplicateVersionError(f"Version {version} of package '{name}' already exists.") from exc

    async def _raise_session_state(self, session_id: str, now: datetime, session: AsyncSession) -> None:
        record = await self._uploads.get(session_id=session_id, session=session)
        if record is None:
            raise SessionNotFoundError(f"Upload session '{session_id}' not found.")
        if record.completed:
            raise ConflictError("Upload session has already been finalized.", code="session_completed")
        if record.rejected_at is not None:
            raise SessionRejectedError("Upload session was rejected.")
        raise SessionExpiredError("Upload session has expired.")

    async def _list(
        self,
        *,
        query: str | None,
        upstream_cache: bool | None,
        page: int,
        limit: int,
    ) -> PackageListResult:
        page = max(page, 1)
        limit = max(1, min(limit, 100))
        async with self._transaction() as session:
            records, total = await self._packages.list_packages(
                session=session,
                query=query,
                upstream_cache=upstream_cache,
                offset=(page - 1) * limit,
                limit=limit,
            )
            versions = await self._packages.list_versions_for(
                names=[record.name for record in records],
                session=session,
            )
        by_name: dict[str, list[PackageVersion]] = {}
        for version in versions:
            by_name.setdefault(version.package_name, []).append(mappers.version_snapshot(version))
        infos = tuple(
            PackageInfo.build(mappers.package_snapshot(record), by_name.get(record.name, []))
            for record in records
        )
        return PackageListResult(packages=infos, total=total, page=page, limit=limit)

    async def list_packages(self, *, page: int = 1, limit: int = 20) -> PackageListResult:
        return await self._list(query=None, upstream_cache=False, page=page, limit=limit)

    async def search_packages(self, query: str, *, page: int = 1, limit: int = 20) -> PackageListResult:
        return await self._list(query=query.strip() or None, upstream_cache=False, page=page, limit=limit)

    async def list_packages_by_type(
        self,
        *,
        upstream_cache: bool,
        page: int = 1,
        limit: int = 20,
    ) -> PackageListResult:
        return await self._list(query=None, upstream_cache=upstream_cache, page=page, limit=limit)

    # administrative catalog operations

    async def delete_package(self, name: str) -> list[str]:
        async with self._transaction() as session:
            keys = await self._packages.delete_package(name=name, session=session)
        if keys is None:
            raise NotFoundError(f"Package '{name}' not found.")
        return keys

    async def delete_package_version(self, name: str, version: str) -> str:
        async with self._transaction() as session:
            record = await self._packages.delete_version(name=name, version=version, session=session)
        if record is None:
            raise NotFoundError(f"Version {version} of package '{name}' not found.")
        return record.archive_key

    async def retract_version(self, name: str, version: str, *, message: str | None = None) -> None:
        await self._set_retraction(name, version, retracted=True, message=message)

    async def unretract_version(self, name: str, version: str) -> None:
        await self._set_retraction(name, version, retracted=False, message=None)

    async def _set_retraction(self, name: str, version: str, *, retracted: bool, message: str | None) -> None:
        async with self._transaction() as session:
            changed = await self._packages.set_retraction(
                name=name,
                version=version,
                retracted=retracted,
                message=message,
                now=utcnow(),
                session=session,
            )
        if not changed:
            raise NotFoundError(f"Version {version} of package '{name}' not found.")

    async def discontinue_package(self, name: str, *, replaced_by: str | None = None) -> None:
        await self._set_discontinued(name, discontinued=True, replaced_by=replaced_by)

    async def reactivate_package(self, name: str) -> None:
        await self._set_discontinued(name, discontinued=False, replaced_by=None)

    async def _set_discontinued(self, name: str, *, discontinued: bool, replaced_by: str | None) -> None:
        async with self._transaction() as session:
            changed = await self._packages.set_discontinued(
                name=name,
                discontinued=discontinued,
                replaced_by=replaced_by,
                now=utcnow(),
                session=session,
            )
        if not changed:
            raise NotFoundError(f"Package '{name}' not found.")

    async def clear_cached_packages(self) -> list[str]:
        async with self._transaction() as session:
            return await self._packages.delete_cached_packages(session=session)

    async def get_package_archive_keys(self, name: str) -> list[str]:
        return [v.archive_key for v in await self.get_package_versions(name)]

    async def archive_inventory(self, *, include_cached: bool = False) -> list[ArchiveRef]:
        async with self._transaction() as session:
            rows = await self._packages.archive_inventory(include_cached=include_cached, session=session)
        return [ArchiveRef(key=key, sha256=sha, is_upstream_cache=cached) for key, sha, cached in rows]

    async def get_admin_stats(self) -> AdminStats:
        async with self._transaction() as session:
            return AdminStats(
                total_packages=await self._packages.count_packages(upstream_cache=None, session=session),
                local_packages=await self._packages.count_packages(upstream_cache=False, session=session),
                cached_packages=await self._packages.count_packages(upstream_cache=True, session=session),
                total_versions=await self._packages.count_versions(session=session),
                total_users=await self._users.count(session=session),
                active_tokens=await self._tokens.count_active(now=utcnow(), session=session),
            )

    # tokens

    async def create_token(
        self,
        *,
        token_hash: str,
        user_id: str,
        label: str,
        scopes: list[str],
        expires_at: datetime | None = None,
    ) -> AuthToken:
        try:
            async with self._transaction() as session:
                record = await self._tokens.add(
                    token_hash=token_hash,
                    user_id=user_id,
                    label=label,
                    scopes=sorted(set(scopes)),
                    expires_at=expires_at,
                    now=utcnow(),
                    session=session,
                )
                return mappers.token_snapshot(record)
        except IntegrityError as exc:
            raise ConflictError(f"A token labelled '{label}' already exists.") from exc

    async def get_token_by_hash(self, token_hash: str) -> AuthToken | None:
        async with self._transaction() as session:
            record = await self._tokens.get_by_hash(token_hash=token_hash, session=session)
            return mappers.token_snapshot(record) if record else None

    async def touch_token(self, token_hash: str) -> None:
        async with self._transaction() as session:
            await self._tokens.touch(token_hash=token_hash, now=utcnow(), session=session)

    async def list_tokens(self, *, user_id: str | None = None) -> list[AuthToken]:
        async with self._transaction() as session:
            records = await self._tokens.list_for_user(user_id=user_id, session=session)
            return [mappers.token_snapshot(record) for record in records]

    async def delete_token(self, label: str, *, user_id: str | None = None) -> bool:
        async with self._transaction() as session:
            return await self._tokens.delete_by_label(user_id=user_id, label=label, session=session) > 0

    # upload sessions

    async def create_upload_session(
        self,
        *,
        session_id: str,
        user_id: str | None,
        ttl: timedelta,
    ) -> UploadSession:
        now = utcnow()
        async with self._transaction() as session:
            record = await self._uploads.add(
                session_id=session_id,
                user_id=user_id,
                now=now,
                expires_at=now + ttl,
                session=session,
            )
            return mappers.upload_session_snapshot(record)

    async def get_upload_session(self, session_id: str) -> UploadSession | None:
        async with self._transaction() as session:
            record = await self._uploads.get(session_id=session_id, session=session)
            return mappers.upload_session_snapshot(record) if record else None

    async def record_upload(
        self,
        session_id: str,
        *,
        staged_key: str,
        archive_sha256: str,
        archive_size: int,
    ) -> None:
        now = utcnow()
        async with self._transaction() as session:
            attached = await self._uploads.record_upload(
                session_id=session_id,
                staged_key=staged_key,
                archive_sha256=archive_sha256,
                archive_size=archive_size,
                now=now,
                session=session,
            )
            if attached:
                return
            record = await self._uploads.get(session_id=session_id, session=session)
        if record is None:
            raise SessionNotFoundError(f"Upload session '{session_id}' not found.")
        if record.staged_key is not None or record.completed:
            raise ConflictError("An archive was already uploaded for this session.", code="already_uploaded")
        if record.rejected_at is not None:
            raise SessionRejectedError("Upload session was rejected.")
        raise SessionExpiredError("Upload session has expired.")

    async def reject_upload_session(self, session_id: str) -> None:
        """Make an open session inert; used when finalize rejects its archive."""

        async with self._transaction() as session:
            await self._uploads.reject(session_id=session_id, now=utcnow(), session=session)

    # users, administrators, browser sessions

    async def create_user(self, *, email: str, name: str | None, password_hash: str) -> User:
        try:
            async with self._transaction() as session:
                record = await self._users.add(
                    email=email,
                    name=name,
                    password_hash=password_hash,
                    now=utcnow(),
                    session=session,
                )
                return mappers.user_snapshot(record)
        except IntegrityError as exc:
            raise ConflictError(f"User '{email}' already exists.") from exc

    async def get_user(self, user_id: str) -> User | None:
        async with self._transaction() as session:
            record = await self._users.get(user_id=user_id, session=session)
            return mappers.user_snapshot(record) if record else None

    async def get_user_credentials(self, email: str) -> tuple[User, str] | None:
        async with self._transaction() as session:
            record = await self._users.get_by_email(email=email, session=session)
            return (mappers.user_snapshot(record), record.password_hash) if record else None

    async def touch_user_login(self, user_id: str) -> None:
        async with self._transaction() as session:
            await self._users.touch_login(user_id=user_id, now=utcnow(), session=session)

    async def create_admin_user(self, *, username: str, name: str | None, password_hash: str) -> AdminUser:
        try:
            async with self._transaction() as session:
                record = await self._admins.add(
                    username=username,
                    name=name,
                    password_hash=password_hash,
                    now=utcnow(),
                    session=session,
                )
                return mappers.admin_user_snapshot(record)
        except IntegrityError as exc:
            raise ConflictError(f"Admin user '{username}' already exists.") from exc

    async def get_admin_user(self, admin_id: str) -> AdminUser | None:
        async with self._transaction() as session:
            record = await self._admins.get(admin_id=admin_id, session=session)
            return mappers.admin_user_snapshot(record) if record else None

    async def get_admin_credentials(self, username: str) -> tuple[AdminUser, str] | None:
        async with self._transaction() as session:
            record = await self._admins.get_by_username(username=username, session=session)
            return (mappers.admin_user_snapshot(record), record.password_hash) if record else None

    async def set_admin_active(self, username: str, *, active: bool) -> None:
        async with self._transaction() as session:
            changed = await self._admins.set_active(username=username, active=active, session=session)
        if not changed:
            raise NotFoundError(f"Admin user '{username}' not found.")

    async def touch_admin_login(self, admin_id: str) -> None:
        async with self._transaction() as session:
            await self._admins.touch_login(admin_id=admin_id, now=utcnow(), session=session)

    async def create_user_session(
        self,
        *,
        session_hash: str,
        user_id: str,
        is_admin: bool,
        ttl: timedelta,
    ) -> UserSession:
        now = utcnow()
        async with self._transaction() as session:
            record = await self._user_sessions.add(
                session_hash=session_hash,
                user_id=user_id,
                is_admin=is_admin,
                now=now,
                expires_at=now + ttl,
                session=session,
            )
            return mappers.user_session_snapshot(record)

    async def get_user_session(self, session_hash: str) -> UserSession | None:
        async with self._transaction() as session:
            record = await self._user_sessions.get(session_hash=session_hash, session=session)
            return mappers.user_session_snapshot(record) if record else None

    async def delete_user_session(self, session_hash: str) -> None:
        async with self._transaction() as session:
            await self._user_sessions.delete(session_hash=session_hash, session=session)

    async def purge_expired_user_sessions(self) -> int:
        async with self._transaction() as session:
            return await self._user_sessions.delete_expired(now=utcnow(), session=session)

    # activity log

    async def log_activity(
        self,
        *,
        kind: str,
        actor_id: str | None = None,
        package_name: str | None = None,
        version: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        async with self._transaction() as session:
            await self._activity.add(
                kind=kind,
                actor_id=actor_id,
                package_name=package_name,
                version=version,
                details=details,
                now=utcnow(),
                session=session,
            )

    async def recent_activity(self, *, limit: int = 50, package_name: str | None = None) -> list[ActivityEntry]:
        async with self._transaction() as session:
            records = await self._activity.recent(
                limit=max(1, min(limit, 500)),
                package_name=package_name,
                session=session,
            )
            return [mappers.activity_snapshot(record) for record in records]

    # storage configuration

    async def get_storage_config(self, variant: str = STORAGE_VARIANT_ACTIVE) -> StorageConfig | None:
        async with self._transaction() as session:
            record = await self._storage_config.get(variant=variant, session=session)
            return mappers.storage_config_snapshot(record) if record else None

    async def save_storage_config(self, config: StorageConfig) -> StorageConfig:
        values = {
            "backend": config.backend,
            "local_path": config.local_path,
            "s3_endpoint": config.s3_endpoint,
            "s3_region": config.s3_region,
            "s3_bucket": config.s3_bucket,
            "s3_access_key": config.s3_access_key,
            "s3_secret_key_encrypted": config.s3_secret_key,
            "s3_force_path_style": config.s3_force_path_style,
        }
        async with self._transaction() as session:
            record = await self._storage_config.upsert(
                variant=config.variant,
                values=values,
                now=utcnow(),
                session=session,
            )
            return mappers.storage_config_snapshot(record)

    async def activate_pending_storage_config(self) -> StorageConfig:
        """Promote the pending config to active in one transaction."""

        async with self._transaction() as session:
            pending = await self._storage_config.get(variant=STORAGE_VARIANT_PENDING, session=session)
            if pending is None:
                raise NotFoundError("No pending storage configuration is staged.")
            values = {
                column: getattr(pending, column)
                for column in (
                    "backend",
                    "local_path",
                    "s3_endpoint",
                    "s3_region",
                    "s3_bucket",
                    "s3_access_key",
                    "s3_secret_key_encrypted",
                    "s3_force_path_style",
                )
            }
            await self._storage_config.remove(variant=STORAGE_VARIANT_PENDING, session=session)
            record = await self._storage_config.upsert(
                variant=STORAGE_VARIANT_ACTIVE,
                values=values,
                now=utcnow(),
                session=session,
            )
            return mappers.storage_config_snapshot(record)

    # catalog backup

    async def export_catalog(self) -> dict[str, list[dict[str, Any]]]:
        """Dump every backed-up table as JSON-safe rows, in restore order."""

        async with self._transaction() as session:
            return {name: await self._backup.dump(name=name, session=session) for name in BACKUP_TABLES}

    async def catalog_row_counts(self) -> dict[str, int]:
        async with self._transaction() as session:
            return {name: await self._backup.count(name=name, session=session) for name in BACKUP_TABLES}

    async def import_catalog(self, tables: dict[str, list[dict[str, Any]]]) -> dict[str, int]:
        """Load a dump into an empty catalog in a single transaction."""

        async with self._transaction() as session:
            for name in BACKUP_TABLES:
                if await self._backup.count(name=name, session=session):
                    raise ConflictError(f"Catalog table '{name}' is not empty; restore needs a fresh database.")
            return {
                name: await self._backup.load(name=name, rows=tables.get(name, []), session=session)
                for name in BACKUP_TABLES
            }


__all__ = [
    "MetadataStore",
    "PackageClaim",
    "STORAGE_VARIANT_ACTIVE",
    "STORAGE_VARIANT_PENDING",
]
