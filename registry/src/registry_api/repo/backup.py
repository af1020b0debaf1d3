"""Repository for whole-table catalog dumps and restores."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import Table, func, insert, select
from sqlalchemy.ext.asyncio import AsyncSession

from registry_api.db.models import (
    ActivityLogRecord,
    AdminUserRecord,
    AuthTokenRecord,
    PackageRecord,
    PackageVersionRecord,
    UserRecord,
)
from registry_api.db.types import UTCDateTime

# Restore order; versions reference packages.
BACKUP_TABLES: dict[str, Table] = {
    "users": UserRecord.__table__,
    "admin_users": AdminUserRecord.__table__,
    "auth_tokens": AuthTokenRecord.__table__,
    "packages": PackageRecord.__table__,
    "package_versions": PackageVersionRecord.__table__,
    "activity_log": ActivityLogRecord.__table__,
}

# Integer keys the database assigns; restored rows get fresh ones.
GENERATED_KEYS = {"package_versions": "id", "activity_log": "id"}


def _encode(table: Table, row: dict[str, Any]) -> dict[str, Any]:
    encoded = {}
    for column in table.columns:
        value = row[column.name]
        encoded[column.name] = value.isoformat() if isinstance(value, datetime) else value
    return encoded


def _decode(table: Table, row: dict[str, Any]) -> dict[str, Any]:
    decoded = {}
    for column in table.columns:
        if column.name == GENERATED_KEYS.get(table.name) or column.name not in row:
            continue
        value = row[column.name]
        if isinstance(column.type, UTCDateTime) and isinstance(value, str):
            value = datetime.fromisoformat(value)
        decoded[column.name] = value
    return decoded


class BackupRepository:
    async def dump(self, *, name: str, session: AsyncSession) -> list[dict[str, Any]]:
        table = BACKUP_TABLES[name]
        stmt = select(table).order_by(*table.primary_key.columns)
        rows = (await session.execute(stmt)).mappings().all()
        return [_encode(table, dict(row)) for row in rows]

    async def count(self, *, name: str, session: AsyncSession) -> int:
        table = BACKUP_TABLES[name]
        return int((await session.execute(select(func.count()).select_from(table))).scalar_one())

    async def load(self, *, name: str, rows: list[dict[str, Any]], session: AsyncSession) -> int:
        table = BACKUP_TABLES[name]
        decoded = [_decode(table, row) for row in rows]
        if decoded:
            await session.execute(insert(table), decoded)
        return len(decoded)


__all__ = ["BACKUP_TABLES", "BackupRepository", "GENERATED_KEYS"]
