from __future__ import annotations

import asyncio
import base64
import hashlib
import io
from typing import AsyncIterator

import boto3
import pytest
from botocore.client import Config
from botocore.response import StreamingBody
from botocore.stub import ANY, Stubber

from conftest import build_archive, issue_token
from registry_api.domain.models import StorageConfig
from registry_api.errors import NotFoundError, ValidationError
from registry_api.service.migration import StorageMigration
from registry_api.storage.base import BlobNotFoundError, BlobPayload, BlobStore, validate_key
from registry_api.storage.factory import BlobStores
from registry_api.storage.s3 import S3BlobStore


class MemoryBlobStore(BlobStore):
    backend = "memory"

    def __init__(self, namespace: str) -> None:
        super().__init__(namespace)
        self.objects: dict[str, bytes] = {}
        self.puts = 0

    async def put(self, key: str, data: BlobPayload) -> None:
        validate_key(key)
        if not isinstance(data, bytes):
            data.seek(0)
            data = data.read()
        self.objects[key] = data
        self.puts += 1

    async def get(self, key: str) -> bytes:
        try:
            return self.objects[key]
        except KeyError as exc:
            raise BlobNotFoundError(key) from exc

    async def iter_chunks(self, key: str) -> AsyncIterator[bytes]:
        yield await self.get(key)

    async def exists(self, key: str) -> bool:
        return key in self.objects

    async def delete(self, key: str) -> None:
        self.objects.pop(key, None)

    async def signed_url(self, key: str, ttl_seconds: int | None = None) -> str:
        return f"memory://{self.namespace}/{key}"

    async def ensure_ready(self) -> None:
        return None


def _memory_stores() -> BlobStores:
    return BlobStores(published=MemoryBlobStore("published"), cached=MemoryBlobStore("cached"))


async def _chunks(data: bytes):
    yield data


async def _seed(context, versions=("1.0.0", "1.1.0")):
    _, token = await issue_token(context, "alice@example.com", ["publish:all"])
    for version in versions:
        target = await context.workflow.create(token)
        await context.workflow.upload(target.session_id, token, _chunks(build_archive("foo", version)))
        await context.workflow.finalize(target.session_id, token)


@pytest.mark.asyncio
async def test_migrate_is_resumable_and_verifies(context):
    await _seed(context)
    target = _memory_stores()
    migration = StorageMigration(metadata=context.metadata, source=context.blobs, target=target, concurrency=2)

    preview = await migration.preview()
    assert preview.total_keys == 2
    assert preview.to_migrate == 2
    assert preview.already_migrated == 0

    progress = []
    migration = StorageMigration(
        metadata=context.metadata,
        source=context.blobs,
        target=target,
        progress=progress.append,
    )
    first = await migration.migrate()
    assert (first.successful, first.skipped, first.failed) == (2, 0, 0)
    assert first.ok
    assert sorted(event.outcome for event in progress) == ["copied", "copied"]
    assert progress[-1].done == 2

    second = await migration.migrate()
    assert (second.successful, second.skipped) == (0, 2)
    assert target.published.puts == 2

    report = await migration.verify()
    assert report.ok
    assert report.matched == 2


@pytest.mark.asyncio
async def test_overwrite_and_dry_run(context):
    await _seed(context, versions=("1.0.0",))
    target = _memory_stores()
    migration = StorageMigration(metadata=context.metadata, source=context.blobs, target=target)

    dry = await migration.migrate(dry_run=True)
    assert dry.dry_run
    assert dry.successful == 1
    assert target.published.objects == {}

    await migration.migrate()
    again = await migration.migrate(overwrite=True)
    assert again.successful == 1
    assert target.published.puts == 2


@pytest.mark.asyncio
async def test_verify_reports_corruption_and_gaps(context):
    await _seed(context)
    target = _memory_stores()
    migration = StorageMigration(metadata=context.metadata, source=context.blobs, target=target)
    await migration.migrate()

    keys = sorted(target.published.objects)
    target.published.objects[keys[0]] = b"tampered"
    del target.published.objects[keys[1]]

    report = await migration.verify()
    assert not report.ok
    assert report.mismatches == [keys[0]]
    assert report.missing_in_target == 1


@pytest.mark.asyncio
async def test_missing_source_blob_is_a_per_key_failure(context):
    await _seed(context)
    [ref, _] = await context.metadata.archive_inventory()
    await context.blobs.published.delete(ref.key)
    target = _memory_stores()

    report = await StorageMigration(metadata=context.metadata, source=context.blobs, target=target).migrate()
    assert report.failed == 1
    assert report.successful == 1
    assert ref.key in report.errors
    assert not report.ok


@pytest.mark.asyncio
async def test_source_digest_mismatch_is_not_copied(context):
    await _seed(context, versions=("1.0.0",))
    [ref] = await context.metadata.archive_inventory()
    await context.blobs.published.put(ref.key, b"bit rot")
    target = _memory_stores()

    report = await StorageMigration(metadata=context.metadata, source=context.blobs, target=target).migrate()
    assert report.failed == 1
    assert target.published.objects == {}


@pytest.mark.asyncio
async def test_stop_request_halts_before_new_copies(context):
    await _seed(context)
    stop = asyncio.Event()
    stop.set()
    target = _memory_stores()

    report = await StorageMigration(
        metadata=context.metadata,
        source=context.blobs,
        target=target,
        stop=stop,
    ).migrate()
    assert report.stopped
    assert report.successful == 0
    assert target.published.objects == {}


@pytest.mark.asyncio
async def test_stop_request_marks_preview_and_verify_incomplete(context):
    await _seed(context)
    target = _memory_stores()
    migration = StorageMigration(metadata=context.metadata, source=context.blobs, target=target)
    migration.request_stop()

    preview = await migration.preview()
    assert preview.stopped
    assert preview.in_both + preview.only_in_source == 0
    assert preview.to_dict()["stopped"] is True

    report = await migration.verify()
    assert report.stopped
    assert report.matched == 0
    assert not report.ok


@pytest.mark.asyncio
async def test_pending_config_lifecycle(context, tmp_path):
    service = context.storage_config
    assert (await service.active()).backend == "local"
    with pytest.raises(NotFoundError):
        await service.require_pending()
    with pytest.raises(ValidationError):
        await service.stage(backend="s3")

    staged = await service.stage(backend="s3", s3_bucket="archives", s3_secret_key="hunter22")
    assert staged.s3_secret_key != "hunter22"
    assert context.cipher.decrypt(staged.s3_secret_key) == "hunter22"
    assert staged.to_dict()["hasSecretKey"] is True

    await service.stage(backend="local", local_path=str(tmp_path / "next"))
    activated = await service.activate()
    assert activated.local_path == str(tmp_path / "next")
    assert await service.pending() is None
    stores = service.build(activated)
    assert stores.describe() == f"local:{(tmp_path / 'next' / 'published').resolve()}"


@pytest.mark.asyncio
async def test_migration_between_local_roots(context, tmp_path):
    await _seed(context, versions=("1.0.0",))
    target_config = StorageConfig(variant="pending", backend="local", local_path=str(tmp_path / "target"))
    target = context.storage_config.build(target_config)
    await target.ensure_ready()

    report = await StorageMigration(metadata=context.metadata, source=context.blobs, target=target).migrate()
    assert report.successful == 1
    [ref] = await context.metadata.archive_inventory()
    assert await target.published.digest(ref.key) == ref.sha256


@pytest.mark.asyncio
async def test_preview_reports_where_each_key_lives(context):
    await _seed(context, versions=("1.0.0", "1.1.0", "1.2.0", "1.3.0"))
    refs = {ref.key.split("/")[2]: ref for ref in await context.metadata.archive_inventory()}
    both, target_only, source_only, gone = (refs[v] for v in ("1.0.0", "1.1.0", "1.2.0", "1.3.0"))
    target = _memory_stores()
    for ref in (both, target_only):
        await target.published.put(ref.key, await context.blobs.published.get(ref.key))
    await context.blobs.published.delete(target_only.key)
    await context.blobs.published.delete(gone.key)

    preview = await StorageMigration(metadata=context.metadata, source=context.blobs, target=target).preview()
    assert preview.only_in_source == 1
    assert preview.only_in_target == 1
    assert preview.in_both == 1
    assert preview.missing_everywhere == 1
    assert preview.to_dict() == {
        "totalKeys": 4,
        "onlyInSource": 1,
        "onlyInTarget": 1,
        "inBoth": 1,
        "missingEverywhere": 1,
        "toMigrate": 1,
        "alreadyMigrated": 1,
        "missingInSource": 2,
        "stopped": False,
    }
    assert source_only.key not in target.published.objects


def _s3_stores(client) -> BlobStores:
    return BlobStores(
        published=S3BlobStore("archives", namespace="published", prefix="registry", client=client),
        cached=S3BlobStore("archives", namespace="cached", prefix="registry", client=client),
    )


@pytest.mark.asyncio
async def test_local_to_s3_migration_is_idempotent_and_verified(context):
    await _seed(context)
    refs = await context.metadata.archive_inventory()
    payloads = {ref.key: await context.blobs.published.get(ref.key) for ref in refs}
    client = boto3.client(
        "s3",
        region_name="us-east-1",
        aws_access_key_id="test",
        aws_secret_access_key="test",
        config=Config(signature_version="s3v4"),
    )
    target = _s3_stores(client)
    migration = StorageMigration(metadata=context.metadata, source=context.blobs, target=target, concurrency=1)

    with Stubber(client) as stubber:
        for ref in refs:
            object_key = f"registry/published/{ref.key}"
            raw = hashlib.sha256(payloads[ref.key]).digest()
            stubber.add_client_error(
                "head_object",
                service_error_code="404",
                http_status_code=404,
                expected_params={"Bucket": "archives", "Key": object_key},
            )
            stubber.add_response(
                "put_object",
                {},
                {
                    "Bucket": "archives",
                    "Key": object_key,
                    "Body": ANY,
                    "ContentType": "application/octet-stream",
                    "ChecksumSHA256": base64.b64encode(raw).decode("ascii"),
                    "Metadata": {"sha256": raw.hex()},
                },
            )
        first = await migration.migrate()
        stubber.assert_no_pending_responses()
    assert (first.successful, first.skipped, first.failed) == (2, 0, 0)

    with Stubber(client) as stubber:
        for ref in refs:
            stubber.add_response("head_object", {}, {"Bucket": "archives", "Key": f"registry/published/{ref.key}"})
        second = await migration.migrate()
        stubber.assert_no_pending_responses()
    assert (second.successful, second.skipped, second.failed) == (0, 2, 0)

    with Stubber(client) as stubber:
        for ref in refs:
            object_key = f"registry/published/{ref.key}"
            data = payloads[ref.key]
            stubber.add_response("head_object", {}, {"Bucket": "archives", "Key": object_key})
            stubber.add_response(
                "get_object",
                {"Body": StreamingBody(io.BytesIO(data), len(data))},
                {"Bucket": "archives", "Key": object_key},
            )
        report = await migration.verify()
        stubber.assert_no_pending_responses()
    assert report.ok
    assert report.matched == 2
    assert report.missing_in_target == 0
