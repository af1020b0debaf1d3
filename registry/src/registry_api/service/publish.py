"""Three-step publish handshake: create session, upload archive, finalize.

Session states::

    Created -> ArchiveUploaded -> Finalized
        \\            \\
         +-> Expired   +-> Rejected

Expiry is evaluated lazily whenever a session is looked up. A rejected
session (its archive failed validation at finalize) records ``rejected_at``
and has its expiry moved to "now", so it can never be uploaded to or
finalized afterwards.
"""

from __future__ import annotations

import asyncio
import logging
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import AsyncIterator

from registry_api.auth.scopes import can_publish, can_publish_any, has_admin
from registry_api.config.settings import RegistrySettings
from registry_api.db.types import utcnow
from registry_api.domain.models import AuthToken, PackageVersion, UploadSession
from registry_api.errors import (
    ChecksumMismatchError,
    ConflictError,
    DuplicateVersionError,
    ForbiddenError,
    PayloadTooLargeError,
    RegistryError,
    SessionExpiredError,
    SessionNotFoundError,
    SessionRejectedError,
    ValidationError,
)
from registry_api.metadata import MetadataStore, PackageClaim
from registry_api.storage.base import archive_key, staged_upload_key
from registry_api.storage.factory import BlobStores

from .archive import SpooledArchive, read_manifest, spool_chunks, validate_manifest
from .events import EventBus, PackagePublished

LOGGER = logging.getLogger(__name__)


class PublishState(str, Enum):
    CREATED = "created"
    ARCHIVE_UPLOADED = "archive_uploaded"
    FINALIZED = "finalized"
    EXPIRED = "expired"
    REJECTED = "rejected"


def session_state(session: UploadSession, now: datetime) -> PublishState:
    if session.completed:
        return PublishState.FINALIZED
    if session.rejected_at is not None:
        return PublishState.REJECTED
    if session.is_expired(now):
        return PublishState.EXPIRED
    if session.has_upload:
        return PublishState.ARCHIVE_UPLOADED
    return PublishState.CREATED


@dataclass(frozen=True)
class UploadTarget:
    session_id: str
    upload_url: str
    finalize_url: str
    expires_at: datetime


class PublishWorkflow:
    def __init__(
        self,
        *,
        metadata: MetadataStore,
        blobs: BlobStores,
        events: EventBus,
        settings: RegistrySettings,
        upload_slots: asyncio.Semaphore,
    ) -> None:
        self._metadata = metadata
        self._blobs = blobs
        self._events = events
        self._settings = settings
        self._slots = upload_slots

    def upload_url(self, session_id: str) -> str:
        return f"{self._settings.base_url}/api/packages/versions/upload/{session_id}"

    def finalize_url(self, session_id: str) -> str:
        return f"{self._settings.base_url}/api/packages/versions/finalize/{session_id}"

    async def create(self, token: AuthToken, *, ttl: timedelta | None = None) -> UploadTarget:
        if not can_publish_any(token.scopes):
            raise ForbiddenError("Token has no publish scope.")
        session_id = secrets.token_hex(16)
        session = await self._metadata.create_upload_session(
            session_id=session_id,
            user_id=token.user_id,
            ttl=ttl or timedelta(seconds=self._settings.upload_session_ttl_seconds),
        )
        return UploadTarget(
            session_id=session_id,
            upload_url=self.upload_url(session_id),
            finalize_url=self.finalize_url(session_id),
            expires_at=session.expires_at,
        )

    async def _open_session(self, session_id: str, token: AuthToken) -> UploadSession:
        session = await self._metadata.get_upload_session(session_id)
        if session is None:
            raise SessionNotFoundError(f"Upload session '{session_id}' not found.")
        if session.user_id and session.user_id != token.user_id and not has_admin(token.scopes):
            raise ForbiddenError("Upload session belongs to another user.")
        state = session_state(session, utcnow())
        if state is PublishState.FINALIZED:
            raise ConflictError("Upload session has already been finalized.", code="session_completed")
        if state is PublishState.REJECTED:
            raise SessionRejectedError("Upload session was rejected; start a new publish.")
        if state is PublishState.EXPIRED:
            raise SessionExpiredError("Upload session has expired.")
        return session

    async def upload(
        self,
        session_id: str,
        token: AuthToken,
        chunks: AsyncIterator[bytes],
        *,
        declared_size: int | None = None,
    ) -> UploadSession:
        """Stream one archive into staging; a session accepts a single upload."""

        session = await self._open_session(session_id, token)
        if session.has_upload:
            raise ConflictError("An archive was already uploaded for this session.", code="already_uploaded")
        limit = self._settings.max_upload_size_bytes
        if declared_size is not None and declared_size > limit:
            raise PayloadTooLargeError(f"Archive exceeds the {limit} byte upload limit.")

        staged_key = staged_upload_key(session_id, secrets.token_hex(8))
        async with self._slots:
            spooled = await spool_chunks(chunks, max_bytes=limit)
            try:
                if spooled.size == 0:
                    raise ValidationError("Uploaded archive is empty.", code="invalid_archive")
                await asyncio.to_thread(read_manifest, spooled.file)
                await self._blobs.published.put(staged_key, spooled.file)
            finally:
                spooled.close()
        try:
            await self._metadata.record_upload(
                session_id,
                staged_key=staged_key,
                archive_sha256=spooled.sha256,
                archive_size=spooled.size,
            )
        except RegistryError:
            await self._discard(staged_key)
            raise
        LOGGER.debug("Staged %d bytes for upload session %s", spooled.size, session_id)
        return await self._open_session(session_id, token)

    async def finalize(self, session_id: str, token: AuthToken) -> PackageVersion:
        session = await self._open_session(session_id, token)
        if not session.has_upload or not session.staged_key or not session.archive_sha256:
            raise ValidationError("No archive has been uploaded for this session.", code="archive_missing")

        async with self._slots:
            spooled = await spool_chunks(
                self._blobs.published.iter_chunks(session.staged_key),
                max_bytes=self._settings.max_upload_size_bytes,
            )
        try:
            try:
                if spooled.sha256 != session.archive_sha256:
                    raise ChecksumMismatchError("Staged archive does not match the uploaded digest.")
                document = await asyncio.to_thread(read_manifest, spooled.file)
                manifest = validate_manifest(document)
            except ValidationError:
                await self._metadata.reject_upload_session(session_id)
                await self._discard(session.staged_key)
                raise
            return await self._commit(session, token, manifest.name, manifest.version, manifest.to_pubspec(), spooled)
        finally:
            spooled.close()

    async def _commit(
        self,
        session: UploadSession,
        token: AuthToken,
        name: str,
        version: str,
        pubspec: dict,
        spooled: SpooledArchive,
    ) -> PackageVersion:
        if not can_publish(token.scopes, name):
            raise ForbiddenError(f"Token is not allowed to publish package '{name}'.")
        if await self._metadata.version_exists(name, version):
            raise DuplicateVersionError(f"Version {version} of package '{name}' already exists.")

        package = await self._metadata.get_package(name)
        claim: PackageClaim
        if package is None:
            claim = "new"
        elif package.is_upstream_cache:
            raise ConflictError(f"Package '{name}' is a cached upstream package.")
        elif package.owner_id is None:
            claim = "unowned"
        elif package.owner_id == token.user_id or has_admin(token.scopes):
            claim = "owned"
        else:
            raise ForbiddenError(f"Package '{name}' is owned by another user.")

        key = archive_key(name, version, spooled.sha256)
        async with self._slots:
            await self._blobs.published.put(key, spooled.file)
        try:
            published = await self._metadata.insert_version(
                name=name,
                version=version,
                pubspec=pubspec,
                archive_key=key,
                archive_sha256=spooled.sha256,
                archive_size=spooled.size,
                owner_id=token.user_id,
                claim=claim,
                upload_session_id=session.id,
            )
        except RegistryError:
            await self._discard_unreferenced(name, version, key)
            raise

        if session.staged_key:
            await self._discard(session.staged_key)
        self._events.emit(
            PackagePublished(
                package_name=name,
                version=version,
                archive_sha256=spooled.sha256,
                actor_id=token.user_id,
            )
        )
        LOGGER.info("Published %s %s (%s)", name, version, spooled.sha256)
        return published

    async def _discard_unreferenced(self, name: str, version: str, key: str) -> None:
        # A concurrent winner may have committed a row pointing at the same key.
        existing = await self._metadata.get_package_version(name, version)
        if existing is None or existing.archive_key != key:
            await self._discard(key)

    async def _discard(self, key: str) -> None:
        try:
            await self._blobs.published.delete(key)
        except RegistryError:
            LOGGER.warning("Failed to remove blob %s", key, exc_info=True)


__all__ = ["PublishState", "PublishWorkflow", "UploadTarget", "session_state"]
