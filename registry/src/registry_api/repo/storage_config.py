"""Repository for active/pending storage configuration rows."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import delete
from sqlalchemy.ext.asyncio import AsyncSession

from registry_api.db.models import StorageConfigRecord


class StorageConfigRepository:
    async def get(self, *, variant: str, session: AsyncSession) -> StorageConfigRecord | None:
        return await session.get(StorageConfigRecord, variant)

    async def upsert(
        self,
        *,
        variant: str,
        values: dict[str, object],
        now: datetime,
        session: AsyncSession,
    ) -> StorageConfigRecord:
        record = await self.get(variant=variant, session=session)
        if record is None:
            record = StorageConfigRecord(variant=variant)
            session.add(record)
        for name, value in values.items():
            setattr(record, name, value)
        record.updated_at = now
        await session.flush()
        return record

    async def remove(self, *, variant: str, session: AsyncSession) -> None:
        await session.execute(delete(StorageConfigRecord).where(StorageConfigRecord.variant == variant))
