import pytest

from registry_api.domain.models import StorageConfig
from registry_api.errors import ConflictError, DuplicateVersionError, NotFoundError
from registry_api.metadata import STORAGE_VARIANT_ACTIVE, STORAGE_VARIANT_PENDING, SqliteMetadataStore


async def _insert(metadata, name="foo", version="1.0.0", *, claim="new", owner_id=None, cached=False):
    return await metadata.insert_version(
        name=name,
        version=version,
        pubspec={"name": name, "version": version},
        archive_key=f"packages/{name}/{version}/{'0' * 64}.tar.gz",
        archive_sha256="0" * 64,
        archive_size=10,
        owner_id=owner_id,
        claim=claim,
        is_upstream_cache=cached,
    )


@pytest.mark.asyncio
async def test_migrations_are_idempotent(metadata):
    assert isinstance(metadata, SqliteMetadataStore)
    assert await metadata.run_migrations() == 0


@pytest.mark.asyncio
async def test_duplicate_version_is_rejected(metadata):
    await _insert(metadata)
    with pytest.raises(DuplicateVersionError):
        await _insert(metadata, claim="owned")
    assert [v.version for v in await metadata.get_package_versions("foo")] == ["1.0.0"]


@pytest.mark.asyncio
async def test_new_claim_loses_when_package_exists(metadata):
    await _insert(metadata)
    with pytest.raises(ConflictError):
        await _insert(metadata, version="1.1.0", claim="new")
    assert not await metadata.version_exists("foo", "1.1.0")


@pytest.mark.asyncio
async def test_unowned_claim_sets_owner_once(metadata):
    alice = await metadata.create_user(email="alice@example.com", name=None, password_hash="x")
    bob = await metadata.create_user(email="bob@example.com", name=None, password_hash="x")
    await metadata.create_package("foo")

    await _insert(metadata, claim="unowned", owner_id=alice.id)
    assert (await metadata.get_package("foo")).owner_id == alice.id

    with pytest.raises(ConflictError):
        await _insert(metadata, version="1.1.0", claim="unowned", owner_id=bob.id)
    assert (await metadata.get_package("foo")).owner_id == alice.id


@pytest.mark.asyncio
async def test_package_info_orders_versions_and_skips_retracted(metadata):
    await _insert(metadata, version="1.0.0")
    await _insert(metadata, version="1.10.0", claim="owned")
    await _insert(metadata, version="1.2.0", claim="owned")
    await metadata.retract_version("foo", "1.10.0", message="broken")

    info = await metadata.get_package_info("foo")
    assert [v.version for v in info.versions] == ["1.0.0", "1.2.0", "1.10.0"]
    assert info.latest.version == "1.2.0"
    assert info.get("1.10.0").retraction_message == "broken"

    await metadata.unretract_version("foo", "1.10.0")
    assert (await metadata.get_package_info("foo")).latest.version == "1.10.0"
    with pytest.raises(NotFoundError):
        await metadata.retract_version("foo", "9.9.9")


@pytest.mark.asyncio
async def test_listing_separates_cached_packages(metadata):
    await _insert(metadata, name="http_utils")
    await _insert(metadata, name="json_tools")
    await _insert(metadata, name="upstream", cached=True)

    listed = await metadata.list_packages()
    assert sorted(info.name for info in listed.packages) == ["http_utils", "json_tools"]
    assert listed.total == 2
    assert [info.name for info in (await metadata.search_packages("json")).packages] == ["json_tools"]
    cached = await metadata.list_packages_by_type(upstream_cache=True)
    assert [info.name for info in cached.packages] == ["upstream"]

    assert len(await metadata.archive_inventory()) == 2
    inventory = await metadata.archive_inventory(include_cached=True)
    assert sorted(ref.is_upstream_cache for ref in inventory) == [False, False, True]

    assert len(await metadata.clear_cached_packages()) == 1
    assert await metadata.get_package("upstream") is None


@pytest.mark.asyncio
async def test_delete_package_returns_archive_keys(metadata):
    await _insert(metadata, version="1.0.0")
    await _insert(metadata, version="2.0.0", claim="owned")
    keys = await metadata.delete_package("foo")
    assert len(keys) == 2
    assert await metadata.get_package("foo") is None
    with pytest.raises(NotFoundError):
        await metadata.delete_package("foo")


@pytest.mark.asyncio
async def test_unique_accounts_and_token_labels(metadata):
    user = await metadata.create_user(email="alice@example.com", name="Alice", password_hash="x")
    with pytest.raises(ConflictError):
        await metadata.create_user(email="alice@example.com", name=None, password_hash="y")

    await metadata.create_token(token_hash="h1", user_id=user.id, label="ci", scopes=["publish:all"])
    with pytest.raises(ConflictError):
        await metadata.create_token(token_hash="h2", user_id=user.id, label="ci", scopes=["read:all"])
    assert await metadata.delete_token("ci", user_id=user.id)
    assert not await metadata.delete_token("ci", user_id=user.id)


@pytest.mark.asyncio
async def test_storage_config_promotion(metadata):
    assert await metadata.get_storage_config() is None
    await metadata.save_storage_config(
        StorageConfig(variant=STORAGE_VARIANT_PENDING, backend="s3", s3_bucket="archives", s3_secret_key="cipher")
    )
    activated = await metadata.activate_pending_storage_config()
    assert activated.variant == STORAGE_VARIANT_ACTIVE
    assert activated.s3_bucket == "archives"
    assert activated.s3_secret_key == "cipher"
    assert await metadata.get_storage_config(STORAGE_VARIANT_PENDING) is None
    with pytest.raises(NotFoundError):
        await metadata.activate_pending_storage_config()


@pytest.mark.asyncio
async def test_activity_log_is_newest_first(metadata):
    await metadata.log_activity(kind="package.published", package_name="foo", version="1.0.0")
    await metadata.log_activity(kind="package.deleted", package_name="foo", details={"removed": 1})
    await metadata.log_activity(kind="cache.cleared")
    entries = await metadata.recent_activity(limit=10, package_name="foo")
    assert [entry.kind for entry in entries] == ["package.deleted", "package.published"]
    assert entries[0].details == {"removed": 1}
