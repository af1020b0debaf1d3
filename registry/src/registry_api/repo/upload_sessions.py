"""Repository for publish upload sessions."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from registry_api.db.models import UploadSessionRecord


class UploadSessionRepository:
    async def add(
        self,
        *,
        session_id: str,
        user_id: str | None,
        now: datetime,
        expires_at: datetime,
        session: AsyncSession,
    ) -> UploadSessionRecord:
        record = UploadSessionRecord(
            id=session_id,
            user_id=user_id,
            created_at=now,
            expires_at=expires_at,
            completed=False,
        )
        session.add(record)
        await session.flush()
        return record

    async def get(self, *, session_id: str, session: AsyncSession) -> UploadSessionRecord | None:
        return await session.get(UploadSessionRecord, session_id)

    async def record_upload(
        self,
        *,
        session_id: str,
        staged_key: str,
        archive_sha256: str,
        archive_size: int,
        now: datetime,
        session: AsyncSession,
    ) -> bool:
        """Attach the staged archive unless one is already attached or the session is dead."""

        stmt = (
            update(UploadSessionRecord)
            .where(
                UploadSessionRecord.id == session_id,
                UploadSessionRecord.staged_key.is_(None),
                UploadSessionRecord.completed.is_(False),
                UploadSessionRecord.expires_at > now,
            )
            .values(
                staged_key=staged_key,
                archive_sha256=archive_sha256,
                archive_size=archive_size,
                uploaded_at=now,
            )
        )
        return (await session.execute(stmt)).rowcount == 1

    async def complete(
        self,
        *,
        session_id: str,
        package_name: str,
        version: str,
        now: datetime,
        session: AsyncSession,
    ) -> bool:
        """Flip ``completed`` exactly once, and only before expiry."""

        stmt = (
            update(UploadSessionRecord)
            .where(
                UploadSessionRecord.id == session_id,
                UploadSessionRecord.completed.is_(False),
                UploadSessionRecord.expires_at > now,
            )
            .values(
                completed=True,
                completed_at=now,
                package_name=package_name,
                version=version,
            )
        )
        return (await session.execute(stmt)).rowcount == 1

    async def reject(self, *, session_id: str, now: datetime, session: AsyncSession) -> None:
        """Mark an open session rejected and close its window."""

        await session.execute(
            update(UploadSessionRecord)
            .where(
                UploadSessionRecord.id == session_id,
                UploadSessionRecord.completed.is_(False),
                UploadSessionRecord.expires_at > now,
            )
            .values(expires_at=now, rejected_at=now)
        )
