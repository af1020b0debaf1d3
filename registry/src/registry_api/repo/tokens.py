"""Repository for bearer token rows."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import delete, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from registry_api.db.models import AuthTokenRecord


class TokenRepository:
    async def get_by_hash(self, *, token_hash: str, session: AsyncSession) -> AuthTokenRecord | None:
        return await session.get(AuthTokenRecord, token_hash)

    async def add(
        self,
        *,
        token_hash: str,
        user_id: str,
        label: str,
        scopes: list[str],
        expires_at: datetime | None,
        now: datetime,
        session: AsyncSession,
    ) -> AuthTokenRecord:
        record = AuthTokenRecord(
            token_hash=token_hash,
            user_id=user_id,
            label=label,
            scopes=scopes,
            created_at=now,
            expires_at=expires_at,
        )
        session.add(record)
        await session.flush()
        return record

    async def touch(self, *, token_hash: str, now: datetime, session: AsyncSession) -> None:
        await session.execute(
            update(AuthTokenRecord)
            .where(AuthTokenRecord.token_hash == token_hash)
            .values(last_used_at=now)
        )

    async def list_for_user(self, *, user_id: str | None, session: AsyncSession) -> list[AuthTokenRecord]:
        stmt = select(AuthTokenRecord).order_by(AuthTokenRecord.created_at)
        if user_id is not None:
            stmt = stmt.where(AuthTokenRecord.user_id == user_id)
        return list((await session.execute(stmt)).scalars().all())

    async def delete_by_label(self, *, user_id: str | None, label: str, session: AsyncSession) -> int:
        stmt = delete(AuthTokenRecord).where(AuthTokenRecord.label == label)
        if user_id is not None:
            stmt = stmt.where(AuthTokenRecord.user_id == user_id)
        return (await session.execute(stmt)).rowcount

    async def count_active(self, *, now: datetime, session: AsyncSession) -> int:
        stmt = select(func.count()).select_from(AuthTokenRecord).where(
            or_(AuthTokenRecord.expires_at.is_(None), AuthTokenRecord.expires_at > now)
        )
        return int((await session.execute(stmt)).scalar_one())
