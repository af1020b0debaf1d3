import asyncio
import hashlib
from datetime import timedelta

import pytest

from conftest import build_archive, issue_token
from registry_api.db.types import utcnow
from registry_api.errors import (
    ConflictError,
    DuplicateVersionError,
    ForbiddenError,
    InvalidArchiveError,
    PayloadTooLargeError,
    SessionExpiredError,
    SessionNotFoundError,
    SessionRejectedError,
    ValidationError,
)
from registry_api.service.publish import PublishState, session_state
from registry_api.storage.base import archive_key


async def _chunks(data: bytes, size: int = 1024):
    for start in range(0, len(data), size):
        yield data[start : start + size]


async def _publish(context, token, data: bytes):
    workflow = context.workflow
    target = await workflow.create(token)
    await workflow.upload(target.session_id, token, _chunks(data))
    return await workflow.finalize(target.session_id, token)


@pytest.mark.asyncio
async def test_publish_roundtrip(context):
    _, token = await issue_token(context, "alice@example.com", ["publish:all"])
    data = build_archive("foo", "1.0.0")
    digest = hashlib.sha256(data).hexdigest()

    target = await context.workflow.create(token)
    assert target.upload_url == f"http://testserver/api/packages/versions/upload/{target.session_id}"
    session = await context.workflow.upload(target.session_id, token, _chunks(data))
    assert session_state(session, session.created_at) is PublishState.ARCHIVE_UPLOADED
    staged_key = session.staged_key
    assert staged_key.startswith(f"uploads/{target.session_id}/")

    published = await context.workflow.finalize(target.session_id, token)
    assert (published.package_name, published.version) == ("foo", "1.0.0")
    assert published.archive_sha256 == digest
    assert published.archive_key == archive_key("foo", "1.0.0", digest)
    assert await context.blobs.published.get(published.archive_key) == data
    assert not await context.blobs.published.exists(staged_key)

    package = await context.metadata.get_package("foo")
    assert package.owner_id == token.user_id
    stored = await context.metadata.get_upload_session(target.session_id)
    assert stored.completed
    assert stored.package_name == "foo"

    await context.events.drain()
    kinds = [entry.kind for entry in await context.metadata.recent_activity(package_name="foo")]
    assert kinds == ["package.published"]


@pytest.mark.asyncio
async def test_concurrent_first_publish_has_one_winner(context):
    _, token = await issue_token(context, "alice@example.com", ["publish:all"])
    data = build_archive("racy", "1.0.0")
    session_ids = []
    for _ in range(5):
        target = await context.workflow.create(token)
        await context.workflow.upload(target.session_id, token, _chunks(data))
        session_ids.append(target.session_id)

    results = await asyncio.gather(
        *(context.workflow.finalize(session_id, token) for session_id in session_ids),
        return_exceptions=True,
    )
    winners = [result for result in results if not isinstance(result, BaseException)]
    losers = [result for result in results if isinstance(result, BaseException)]

    assert len(winners) == 1
    assert len(losers) == 4
    assert all(isinstance(error, ConflictError) for error in losers)
    assert [v.version for v in await context.metadata.get_package_versions("racy")] == ["1.0.0"]
    assert await context.blobs.published.get(winners[0].archive_key) == data


@pytest.mark.asyncio
async def test_duplicate_version_is_rejected(context):
    _, token = await issue_token(context, "alice@example.com", ["publish:all"])
    await _publish(context, token, build_archive("foo", "1.0.0"))
    with pytest.raises(DuplicateVersionError):
        await _publish(context, token, build_archive("foo", "1.0.0", extra={"README.md": b"changed"}))
    await _publish(context, token, build_archive("foo", "1.1.0"))
    info = await context.metadata.get_package_info("foo")
    assert info.latest.version == "1.1.0"


@pytest.mark.asyncio
async def test_session_expires(context):
    _, token = await issue_token(context, "alice@example.com", ["publish:all"])
    target = await context.workflow.create(token, ttl=timedelta(seconds=1))
    await asyncio.sleep(1.5)
    with pytest.raises(SessionExpiredError):
        await context.workflow.upload(target.session_id, token, _chunks(build_archive()))


@pytest.mark.asyncio
async def test_uploaded_session_cannot_be_finalized_after_expiry(context):
    _, token = await issue_token(context, "alice@example.com", ["publish:all"])
    target = await context.workflow.create(token, ttl=timedelta(seconds=1))
    session = await context.workflow.upload(target.session_id, token, _chunks(build_archive("late", "1.0.0")))
    assert session.has_upload

    await asyncio.sleep(2)
    with pytest.raises(SessionExpiredError):
        await context.workflow.finalize(target.session_id, token)
    assert await context.metadata.get_package("late") is None
    stored = await context.metadata.get_upload_session(target.session_id)
    assert session_state(stored, utcnow()) is PublishState.EXPIRED


@pytest.mark.asyncio
async def test_session_accepts_one_upload_and_one_finalize(context):
    _, token = await issue_token(context, "alice@example.com", ["publish:all"])
    data = build_archive("foo", "1.0.0")
    target = await context.workflow.create(token)
    await context.workflow.upload(target.session_id, token, _chunks(data))
    with pytest.raises(ConflictError) as second_upload:
        await context.workflow.upload(target.session_id, token, _chunks(data))
    assert second_upload.value.code == "already_uploaded"

    await context.workflow.finalize(target.session_id, token)
    with pytest.raises(ConflictError) as second_finalize:
        await context.workflow.finalize(target.session_id, token)
    assert second_finalize.value.code == "session_completed"

    with pytest.raises(SessionNotFoundError):
        await context.workflow.finalize("0" * 32, token)


@pytest.mark.asyncio
async def test_finalize_without_upload_is_rejected(context):
    _, token = await issue_token(context, "alice@example.com", ["publish:all"])
    target = await context.workflow.create(token)
    with pytest.raises(ValidationError) as excinfo:
        await context.workflow.finalize(target.session_id, token)
    assert excinfo.value.code == "archive_missing"


@pytest.mark.asyncio
async def test_package_scope_is_enforced_at_finalize(context):
    _, token = await issue_token(context, "alice@example.com", ["publish:pkg:foo"])
    await _publish(context, token, build_archive("foo", "1.0.0"))
    with pytest.raises(ForbiddenError):
        await _publish(context, token, build_archive("bar", "1.0.0"))
    assert await context.metadata.get_package("bar") is None


@pytest.mark.asyncio
async def test_read_only_token_cannot_open_session(context):
    _, token = await issue_token(context, "alice@example.com", ["read:all"])
    with pytest.raises(ForbiddenError):
        await context.workflow.create(token)


@pytest.mark.asyncio
async def test_owner_is_enforced_across_users(context):
    _, alice = await issue_token(context, "alice@example.com", ["publish:all"])
    _, bob = await issue_token(context, "bob@example.com", ["publish:all"])
    _, root = await issue_token(context, "root@example.com", ["admin"])
    await _publish(context, alice, build_archive("foo", "1.0.0"))

    with pytest.raises(ForbiddenError):
        await _publish(context, bob, build_archive("foo", "1.1.0"))
    await _publish(context, root, build_archive("foo", "1.2.0"))
    assert (await context.metadata.get_package("foo")).owner_id == alice.user_id


@pytest.mark.asyncio
async def test_sessions_belong_to_their_creator(context):
    _, alice = await issue_token(context, "alice@example.com", ["publish:all"])
    _, bob = await issue_token(context, "bob@example.com", ["publish:all"])
    target = await context.workflow.create(alice)
    with pytest.raises(ForbiddenError):
        await context.workflow.upload(target.session_id, bob, _chunks(build_archive()))


@pytest.mark.asyncio
async def test_unsafe_archive_is_rejected_at_upload(context):
    _, token = await issue_token(context, "alice@example.com", ["publish:all"])
    data = build_archive("foo", "1.0.0", extra={"../../etc/cron.d/evil": b"* * * * * boom"})
    target = await context.workflow.create(token)
    with pytest.raises(InvalidArchiveError):
        await context.workflow.upload(target.session_id, token, _chunks(data))
    session = await context.metadata.get_upload_session(target.session_id)
    assert session.staged_key is None


@pytest.mark.asyncio
async def test_invalid_manifest_rejects_session(context):
    _, token = await issue_token(context, "alice@example.com", ["publish:all"])
    data = build_archive(pubspec={"name": "foo", "version": "not-semver"})
    target = await context.workflow.create(token)
    session = await context.workflow.upload(target.session_id, token, _chunks(data))

    with pytest.raises(InvalidArchiveError):
        await context.workflow.finalize(target.session_id, token)
    assert not await context.blobs.published.exists(session.staged_key)

    stored = await context.metadata.get_upload_session(target.session_id)
    assert stored.rejected_at is not None
    assert session_state(stored, utcnow()) is PublishState.REJECTED
    with pytest.raises(SessionRejectedError):
        await context.workflow.finalize(target.session_id, token)
    with pytest.raises(SessionRejectedError):
        await context.workflow.upload(target.session_id, token, _chunks(build_archive()))


@pytest.mark.asyncio
async def test_oversized_upload_is_rejected(context):
    _, token = await issue_token(context, "alice@example.com", ["publish:all"])
    target = await context.workflow.create(token)
    limit = context.settings.max_upload_size_bytes
    with pytest.raises(PayloadTooLargeError):
        await context.workflow.upload(target.session_id, token, _chunks(b""), declared_size=limit + 1)
    session = await context.metadata.get_upload_session(target.session_id)
    assert session.staged_key is None


@pytest.mark.asyncio
async def test_overlong_version_is_an_invalid_archive(context):
    _, token = await issue_token(context, "alice@example.com", ["publish:all"])
    with pytest.raises(InvalidArchiveError):
        await _publish(context, token, build_archive("foo", "1.0.0-" + "x" * 80))
    assert await context.metadata.get_package("foo") is None
