"""Repository for packages and package versions."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import Text, cast, delete, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from registry_api.db.models import PackageRecord, PackageVersionRecord


class PackageRepository:
    async def get(self, *, name: str, session: AsyncSession) -> PackageRecord | None:
        return await session.get(PackageRecord, name)

    async def list_versions(
        self,
        *,
        name: str,
        session: AsyncSession,
    ) -> list[PackageVersionRecord]:
        stmt = select(PackageVersionRecord).where(PackageVersionRecord.package_name == name)
        return list((await session.execute(stmt)).scalars().all())

    async def list_versions_for(
        self,
        *,
        names: list[str],
        session: AsyncSession,
    ) -> list[PackageVersionRecord]:
        if not names:
            return []
        stmt = select(PackageVersionRecord).where(PackageVersionRecord.package_name.in_(names))
        return list((await session.execute(stmt)).scalars().all())

    async def get_version(
        self,
        *,
        name: str,
        version: str,
        session: AsyncSession,
    ) -> PackageVersionRecord | None:
        stmt = select(PackageVersionRecord).where(
            PackageVersionRecord.package_name == name,
            PackageVersionRecord.version == version,
        )
        return (await session.execute(stmt)).scalars().first()

    async def version_exists(self, *, name: str, version: str, session: AsyncSession) -> bool:
        stmt = select(func.count()).select_from(PackageVersionRecord).where(
            PackageVersionRecord.package_name == name,
            PackageVersionRecord.version == version,
        )
        return bool((await session.execute(stmt)).scalar_one())

    async def add_package(
        self,
        *,
        name: str,
        owner_id: str | None,
        is_upstream_cache: bool,
        now: datetime,
        session: AsyncSession,
    ) -> PackageRecord:
        record = PackageRecord(
            name=name,
            owner_id=owner_id,
            is_upstream_cache=is_upstream_cache,
            created_at=now,
            updated_at=now,
        )
        session.add(record)
        await session.flush()
        return record

    async def claim_owner(self, *, name: str, owner_id: str, session: AsyncSession) -> bool:
        """Set the owner only while none is recorded; False when another writer got there first."""

        stmt = (
            update(PackageRecord)
            .where(PackageRecord.name == name, PackageRecord.owner_id.is_(None))
            .values(owner_id=owner_id)
        )
        result = await session.execute(stmt)
        return result.rowcount == 1

    async def add_version(
        self,
        *,
        name: str,
        version: str,
        pubspec: dict[str, Any],
        archive_key: str,
        archive_sha256: str,
        archive_size: int | None,
        now: datetime,
        session: AsyncSession,
    ) -> PackageVersionRecord:
        record = PackageVersionRecord(
            package_name=name,
            version=version,
            pubspec=pubspec,
            archive_key=archive_key,
            archive_sha256=archive_sha256,
            archive_size=archive_size,
            published_at=now,
        )
        session.add(record)
        await session.flush()
        return record

    async def touch(self, *, name: str, now: datetime, session: AsyncSession) -> None:
        await session.execute(
            update(PackageRecord).where(PackageRecord.name == name).values(updated_at=now)
        )

    async def list_packages(
        self,
        *,
        session: AsyncSession,
        query: str | None = None,
        upstream_cache: bool | None = False,
        offset: int = 0,
        limit: int = 50,
    ) -> tuple[list[PackageRecord], int]:
        conditions = []
        if upstream_cache is not None:
            conditions.append(PackageRecord.is_upstream_cache.is_(upstream_cache))
        if query:
            pattern = f"%{query.lower()}%"
            # Description lives in the pubspec JSON, so match it via the versions table.
            described = select(PackageVersionRecord.package_name).where(
                func.lower(cast(PackageVersionRecord.pubspec, Text)).like(pattern)
            )
            conditions.append(
                or_(func.lower(PackageRecord.name).like(pattern), PackageRecord.name.in_(described))
            )
        count_stmt = select(func.count()).select_from(PackageRecord).where(*conditions)
        total = (await session.execute(count_stmt)).scalar_one()
        stmt = (
            select(PackageRecord)
            .where(*conditions)
            .order_by(PackageRecord.updated_at.desc(), PackageRecord.name)
            .offset(offset)
            .limit(limit)
        )
        return list((await session.execute(stmt)).scalars().all()), int(total)

    async def delete_version(
        self,
        *,
        name: str,
        version: str,
        session: AsyncSession,
    ) -> PackageVersionRecord | None:
        record = await self.get_version(name=name, version=version, session=session)
        if record is None:
            return None
        await session.delete(record)
        await session.flush()
        return record

    async def delete_package(self, *, name: str, session: AsyncSession) -> list[str] | None:
        """Remove a package and its versions; returns the archive keys that were referenced."""

        record = await self.get(name=name, session=session)
        if record is None:
            return None
        versions = await self.list_versions(name=name, session=session)
        keys = [v.archive_key for v in versions]
        await session.execute(
            delete(PackageVersionRecord).where(PackageVersionRecord.package_name == name)
        )
        await session.delete(record)
        await session.flush()
        return keys

    async def delete_cached_packages(self, *, session: AsyncSession) -> list[str]:
        cached = select(PackageRecord.name).where(PackageRecord.is_upstream_cache.is_(True))
        keys_stmt = select(PackageVersionRecord.archive_key).where(
            PackageVersionRecord.package_name.in_(cached)
        )
        keys = list((await session.execute(keys_stmt)).scalars().all())
        await session.execute(
            delete(PackageVersionRecord).where(PackageVersionRecord.package_name.in_(cached))
        )
        await session.execute(delete(PackageRecord).where(PackageRecord.is_upstream_cache.is_(True)))
        return keys

    async def set_retraction(
        self,
        *,
        name: str,
        version: str,
        retracted: bool,
        message: str | None,
        now: datetime,
        session: AsyncSession,
    ) -> bool:
        stmt = (
            update(PackageVersionRecord)
            .where(
                PackageVersionRecord.package_name == name,
                PackageVersionRecord.version == version,
            )
            .values(
                is_retracted=retracted,
                retracted_at=now if retracted else None,
                retraction_message=message if retracted else None,
            )
        )
        return (await session.execute(stmt)).rowcount == 1

    async def set_discontinued(
        self,
        *,
        name: str,
        discontinued: bool,
        replaced_by: str | None,
        now: datetime,
        session: AsyncSession,
    ) -> bool:
        stmt = (
            update(PackageRecord)
            .where(PackageRecord.name == name)
            .values(
                is_discontinued=discontinued,
                replaced_by=replaced_by if discontinued else None,
                updated_at=now,
            )
        )
        return (await session.execute(stmt)).rowcount == 1

    async def archive_inventory(
        self,
        *,
        include_cached: bool,
        session: AsyncSession,
    ) -> list[tuple[str, str, bool]]:
        stmt = (
            select(
                PackageVersionRecord.archive_key,
                PackageVersionRecord.archive_sha256,
                PackageRecord.is_upstream_cache,
            )
            .join(PackageRecord, PackageRecord.name == PackageVersionRecord.package_name)
            .order_by(PackageVersionRecord.archive_key)
        )
        if not include_cached:
            stmt = stmt.where(PackageRecord.is_upstream_cache.is_(False))
        rows = (await session.execute(stmt)).all()
        return [(row[0], row[1], bool(row[2])) for row in rows]

    async def count_packages(self, *, upstream_cache: bool | None, session: AsyncSession) -> int:
        stmt = select(func.count()).select_from(PackageRecord)
        if upstream_cache is not None:
            stmt = stmt.where(PackageRecord.is_upstream_cache.is_(upstream_cache))
        return int((await session.execute(stmt)).scalar_one())

    async def count_versions(self, *, session: AsyncSession) -> int:
        stmt = select(func.count()).select_from(PackageVersionRecord)
        return int((await session.execute(stmt)).scalar_one())
