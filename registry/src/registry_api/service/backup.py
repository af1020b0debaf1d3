"""Portable JSON backups of the catalog.

A backup carries the metadata tables only. Archive blobs stay in their
storage backend and are moved with the storage migration commands.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any

from registry_api.db.types import utcnow
from registry_api.errors import NotFoundError, ValidationError
from registry_api.metadata import MetadataStore
from registry_api.repo.backup import BACKUP_TABLES

LOGGER = logging.getLogger(__name__)

BACKUP_FORMAT_VERSION = 1

# Wire names for each table in the backup document.
_DATA_KEYS = {
    "users": "users",
    "admin_users": "adminUsers",
    "auth_tokens": "authTokens",
    "packages": "packages",
    "package_versions": "packageVersions",
    "activity_log": "activityLog",
}


@dataclass(frozen=True)
class BackupData:
    created_at: datetime
    database_type: str
    tables: dict[str, list[dict[str, Any]]] = field(default_factory=dict)
    format_version: int = BACKUP_FORMAT_VERSION

    def summary(self) -> dict[str, int]:
        return {name: len(self.tables.get(name, [])) for name in BACKUP_TABLES}

    def to_dict(self) -> dict[str, Any]:
        return {
            "formatVersion": self.format_version,
            "createdAt": self.created_at.isoformat(),
            "databaseType": self.database_type,
            "data": {_DATA_KEYS[name]: self.tables.get(name, []) for name in BACKUP_TABLES},
        }

    @classmethod
    def from_dict(cls, payload: Any) -> "BackupData":
        if not isinstance(payload, dict) or not isinstance(payload.get("data"), dict):
            raise ValidationError("Backup document is missing its data section.")
        version = payload.get("formatVersion")
        if not isinstance(version, int) or version < 1:
            raise ValidationError("Backup document has no usable formatVersion.")
        if version > BACKUP_FORMAT_VERSION:
            raise ValidationError(
                f"Backup format {version} is newer than supported format {BACKUP_FORMAT_VERSION}."
            )
        try:
            created_at = datetime.fromisoformat(payload["createdAt"])
        except (KeyError, TypeError, ValueError) as exc:
            raise ValidationError("Backup document has an invalid createdAt.") from exc

        tables: dict[str, list[dict[str, Any]]] = {}
        for name, key in _DATA_KEYS.items():
            rows = payload["data"].get(key, [])
            if not isinstance(rows, list) or not all(isinstance(row, dict) for row in rows):
                raise ValidationError(f"Backup section '{key}' must be a list of objects.")
            tables[name] = rows
        return cls(
            created_at=created_at,
            database_type=str(payload.get("databaseType", "unknown")),
            tables=tables,
            format_version=version,
        )


class BackupManager:
    def __init__(self, store: MetadataStore) -> None:
        self._store = store

    async def create(self) -> BackupData:
        tables = await self._store.export_catalog()
        return BackupData(created_at=utcnow(), database_type=self._store.dialect, tables=tables)

    async def export_to_file(self, path: Path) -> BackupData:
        backup = await self.create()
        await asyncio.to_thread(_write_json, path, backup.to_dict())
        LOGGER.info("Catalog backup written to %s (%s)", path, backup.summary())
        return backup

    async def read_backup(self, path: Path) -> BackupData:
        if not path.is_file():
            raise NotFoundError(f"Backup file '{path}' not found.")
        try:
            payload = await asyncio.to_thread(_read_json, path)
        except json.JSONDecodeError as exc:
            raise ValidationError(f"Backup file '{path}' is not valid JSON: {exc}") from exc
        return BackupData.from_dict(payload)

    async def import_from_file(self, path: Path, *, dry_run: bool = False) -> dict[str, int]:
        """Restore ``path`` into an empty catalog; with ``dry_run`` only count rows."""

        backup = await self.read_backup(path)
        if dry_run:
            return backup.summary()
        restored = await self._store.import_catalog(backup.tables)
        LOGGER.info("Catalog restored from %s (%s)", path, restored)
        return restored


def _write_json(path: Path, payload: dict[str, Any]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    partial = path.with_name(path.name + ".partial")
    partial.write_text(json.dumps(payload, indent=2, sort_keys=True), encoding="utf-8")
    os.replace(partial, path)


def _read_json(path: Path) -> Any:
    return json.loads(path.read_text(encoding="utf-8"))


__all__ = ["BACKUP_FORMAT_VERSION", "BackupData", "BackupManager"]
