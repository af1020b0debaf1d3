"""Repository for activity log rows."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from registry_api.db.models import ActivityLogRecord


class ActivityRepository:
    async def add(
        self,
        *,
        kind: str,
        actor_id: str | None,
        package_name: str | None,
        version: str | None,
        details: dict[str, Any] | None,
        now: datetime,
        session: AsyncSession,
    ) -> ActivityLogRecord:
        record = ActivityLogRecord(
            kind=kind,
            actor_id=actor_id,
            package_name=package_name,
            version=version,
            details=details,
            created_at=now,
        )
        session.add(record)
        await session.flush()
        return record

    async def recent(
        self,
        *,
        limit: int,
        package_name: str | None,
        session: AsyncSession,
    ) -> list[ActivityLogRecord]:
        stmt = select(ActivityLogRecord).order_by(ActivityLogRecord.id.desc()).limit(limit)
        if package_name:
            stmt = stmt.where(ActivityLogRecord.package_name == package_name)
        return list((await session.execute(stmt)).scalars().all())
