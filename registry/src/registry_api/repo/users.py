"""Repositories for end users, administrators and browser sessions."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from registry_api.db.models import AdminUserRecord, UserRecord, UserSessionRecord


class UserRepository:
    async def get(self, *, user_id: str, session: AsyncSession) -> UserRecord | None:
        return await session.get(UserRecord, user_id)

    async def get_by_email(self, *, email: str, session: AsyncSession) -> UserRecord | None:
        stmt = select(UserRecord).where(func.lower(UserRecord.email) == email.lower())
        return (await session.execute(stmt)).scalars().first()

    async def add(
        self,
        *,
        email: str,
        name: str | None,
        password_hash: str,
        now: datetime,
        session: AsyncSession,
    ) -> UserRecord:
        record = UserRecord(email=email, name=name, password_hash=password_hash, created_at=now)
        session.add(record)
        await session.flush()
        return record

    async def touch_login(self, *, user_id: str, now: datetime, session: AsyncSession) -> None:
        await session.execute(update(UserRecord).where(UserRecord.id == user_id).values(last_login_at=now))

    async def count(self, *, session: AsyncSession) -> int:
        return int((await session.execute(select(func.count()).select_from(UserRecord))).scalar_one())


class AdminUserRepository:
    async def get(self, *, admin_id: str, session: AsyncSession) -> AdminUserRecord | None:
        return await session.get(AdminUserRecord, admin_id)

    async def get_by_username(self, *, username: str, session: AsyncSession) -> AdminUserRecord | None:
        stmt = select(AdminUserRecord).where(AdminUserRecord.username == username)
        return (await session.execute(stmt)).scalars().first()

    async def add(
        self,
        *,
        username: str,
        name: str | None,
        password_hash: str,
        now: datetime,
        session: AsyncSession,
    ) -> AdminUserRecord:
        record = AdminUserRecord(username=username, name=name, password_hash=password_hash, created_at=now)
        session.add(record)
        await session.flush()
        return record

    async def set_active(self, *, username: str, active: bool, session: AsyncSession) -> bool:
        stmt = update(AdminUserRecord).where(AdminUserRecord.username == username).values(is_active=active)
        return (await session.execute(stmt)).rowcount == 1

    async def touch_login(self, *, admin_id: str, now: datetime, session: AsyncSession) -> None:
        await session.execute(
            update(AdminUserRecord).where(AdminUserRecord.id == admin_id).values(last_login_at=now)
        )


class UserSessionRepository:
    async def add(
        self,
        *,
        session_hash: str,
        user_id: str,
        is_admin: bool,
        now: datetime,
        expires_at: datetime,
        session: AsyncSession,
    ) -> UserSessionRecord:
        record = UserSessionRecord(
            session_hash=session_hash,
            user_id=user_id,
            is_admin=is_admin,
            created_at=now,
            expires_at=expires_at,
        )
        session.add(record)
        await session.flush()
        return record

    async def get(self, *, session_hash: str, session: AsyncSession) -> UserSessionRecord | None:
        return await session.get(UserSessionRecord, session_hash)

    async def delete(self, *, session_hash: str, session: AsyncSession) -> None:
        await session.execute(delete(UserSessionRecord).where(UserSessionRecord.session_hash == session_hash))

    async def delete_expired(self, *, now: datetime, session: AsyncSession) -> int:
        stmt = delete(UserSessionRecord).where(UserSessionRecord.expires_at <= now)
        return (await session.execute(stmt)).rowcount
