from __future__ import annotations

import json

import pytest

from conftest import build_archive, issue_token, make_settings
from registry_api.context import RegistryContext
from registry_api.errors import ConflictError, NotFoundError, ValidationError
from registry_api.service.backup import BACKUP_FORMAT_VERSION, BackupData, BackupManager


async def _chunks(data: bytes):
    yield data


async def _publish(context, version: str) -> None:
    _, token = await issue_token(context, "alice@example.com", ["publish:all"])
    target = await context.workflow.create(token)
    await context.workflow.upload(target.session_id, token, _chunks(build_archive("foo", version)))
    await context.workflow.finalize(target.session_id, token)


@pytest.mark.asyncio
async def test_backup_restores_catalog_into_an_empty_database(context, tmp_path):
    await _publish(context, "1.0.0")
    await _publish(context, "1.1.0")
    await context.metadata.retract_version("foo", "1.0.0", message="broken")
    path = tmp_path / "catalog.json"

    backup = await BackupManager(context.metadata).export_to_file(path)
    assert backup.summary()["package_versions"] == 2
    document = json.loads(path.read_text())
    assert document["formatVersion"] == BACKUP_FORMAT_VERSION
    assert document["databaseType"] == context.metadata.dialect
    assert set(document["data"]) == {
        "users",
        "adminUsers",
        "authTokens",
        "packages",
        "packageVersions",
        "activityLog",
    }

    restored_context = await RegistryContext.open(make_settings(tmp_path / "restored"))
    try:
        manager = BackupManager(restored_context.metadata)
        assert (await manager.import_from_file(path, dry_run=True))["packages"] == 1
        assert await restored_context.metadata.get_package("foo") is None

        counts = await manager.import_from_file(path)
        assert counts == backup.summary()
        original = await context.metadata.get_package_versions("foo")
        copied = await restored_context.metadata.get_package_versions("foo")
        assert copied == original
        assert copied[0].is_retracted
        assert copied[0].published_at.tzinfo is not None
        assert await restored_context.metadata.catalog_row_counts() == await context.metadata.catalog_row_counts()
        assert await restored_context.metadata.get_user_credentials("alice@example.com") is not None
    finally:
        await restored_context.close()


@pytest.mark.asyncio
async def test_restore_refuses_a_populated_catalog(context, tmp_path):
    await _publish(context, "1.0.0")
    path = tmp_path / "catalog.json"
    await BackupManager(context.metadata).export_to_file(path)

    with pytest.raises(ConflictError):
        await BackupManager(context.metadata).import_from_file(path)
    assert len(await context.metadata.get_package_versions("foo")) == 1


@pytest.mark.asyncio
async def test_unreadable_backups_are_rejected(context, tmp_path):
    manager = BackupManager(context.metadata)
    with pytest.raises(NotFoundError):
        await manager.read_backup(tmp_path / "missing.json")

    garbled = tmp_path / "garbled.json"
    garbled.write_text("{not json")
    with pytest.raises(ValidationError):
        await manager.read_backup(garbled)

    newer = tmp_path / "newer.json"
    newer.write_text(
        json.dumps({"formatVersion": BACKUP_FORMAT_VERSION + 1, "createdAt": "2026-01-01T00:00:00+00:00", "data": {}})
    )
    with pytest.raises(ValidationError):
        await manager.read_backup(newer)


def test_backup_sections_must_be_lists_of_rows():
    payload = {"formatVersion": 1, "createdAt": "2026-01-01T00:00:00+00:00", "data": {"packages": {"foo": {}}}}
    with pytest.raises(ValidationError):
        BackupData.from_dict(payload)

    payload["data"] = {"packages": []}
    backup = BackupData.from_dict(payload)
    assert backup.database_type == "unknown"
    assert backup.summary()["packages"] == 0
