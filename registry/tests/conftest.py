from __future__ import annotations

import io
import tarfile
from pathlib import Path
from typing import Any, Callable

import pytest
import pytest_asyncio
import yaml
from fastapi.testclient import TestClient

from registry_api.app import create_app
from registry_api.auth.passwords import hash_password
from registry_api.auth.tokens import TokenService
from registry_api.config.settings import RegistrySettings, load_settings
from registry_api.context import RegistryContext
from registry_api.domain.models import AuthToken

ArchiveFactory = Callable[..., bytes]


def build_archive(
    name: str = "foo",
    version: str = "1.0.0",
    *,
    pubspec: dict[str, Any] | None = None,
    extra: dict[str, bytes] | None = None,
) -> bytes:
    """A minimal package tarball with ``pubspec.yaml`` at its root."""

    document = pubspec if pubspec is not None else {
        "name": name,
        "version": version,
        "description": f"The {name} package.",
        "environment": {"sdk": ">=3.0.0 <4.0.0"},
    }
    files = {
        "pubspec.yaml": yaml.safe_dump(document).encode("utf-8"),
        f"lib/{name}.dart": b"void main() {}\n",
    }
    files.update(extra or {})
    buffer = io.BytesIO()
    with tarfile.open(fileobj=buffer, mode="w:gz") as archive:
        for path, data in files.items():
            info = tarfile.TarInfo(path)
            info.size = len(data)
            archive.addfile(info, io.BytesIO(data))
    return buffer.getvalue()


def registry_env(tmp_path: Path) -> dict[str, str]:
    return {
        "REGISTRY_DATABASE_URL": f"sqlite:///{(tmp_path / 'registry.db').as_posix()}",
        "REGISTRY_STORAGE_PATH": str(tmp_path / "storage"),
        "REGISTRY_BASE_URL": "http://testserver",
        "REGISTRY_SIGNING_SECRET": "test-signing-secret",
        "REGISTRY_ENCRYPTION_KEY": "test-encryption-key",
        "REGISTRY_DATABASE_CONNECT_ATTEMPTS": "1",
    }


def make_settings(tmp_path: Path, **overrides: Any) -> RegistrySettings:
    values: dict[str, Any] = {
        "database_url": f"sqlite:///{(tmp_path / 'registry.db').as_posix()}",
        "storage_path": tmp_path / "storage",
        "base_url": "http://testserver",
        "signing_secret": "test-signing-secret",
        "encryption_key": "test-encryption-key",
        "database_connect_attempts": 1,
    }
    values.update(overrides)
    return load_settings(**values)


@pytest.fixture
def archive_factory() -> ArchiveFactory:
    return build_archive


@pytest.fixture
def settings(tmp_path: Path) -> RegistrySettings:
    return make_settings(tmp_path)


@pytest_asyncio.fixture
async def context(settings: RegistrySettings):
    registry = await RegistryContext.open(settings)
    try:
        yield registry
    finally:
        await registry.close()


@pytest_asyncio.fixture
async def metadata(context: RegistryContext):
    return context.metadata


async def issue_token(
    registry: RegistryContext,
    email: str,
    scopes: list[str],
    *,
    label: str = "ci",
) -> tuple[str, AuthToken]:
    found = await registry.metadata.get_user_credentials(email)
    if found is None:
        user = await registry.metadata.create_user(
            email=email,
            name=None,
            password_hash=hash_password("correct horse battery"),
        )
    else:
        user = found[0]
    return await TokenService(registry.metadata).issue(user_id=user.id, label=label, scopes=scopes)


@pytest.fixture
def client(settings: RegistrySettings):
    app = create_app(settings)
    with TestClient(app) as test_client:
        yield test_client


def register_and_token(
    client: TestClient,
    email: str,
    scopes: list[str],
    *,
    label: str = "ci",
    password: str = "correct horse battery",
) -> str:
    """Register (if needed), log in through the cookie session and mint a token."""

    client.post("/api/auth/register", json={"email": email, "password": password})
    login = client.post("/api/auth/login", json={"email": email, "password": password})
    assert login.status_code == 200
    created = client.post("/api/tokens", json={"label": label, "scopes": scopes})
    assert created.status_code == 201, created.text
    return created.json()["token"]


def publish_over_http(client: TestClient, secret: str, archive: bytes):
    headers = {"Authorization": f"Bearer {secret}"}
    new = client.get("/api/packages/versions/new", headers=headers)
    assert new.status_code == 200, new.text
    uploaded = client.post(
        new.json()["url"],
        headers=headers,
        files={"file": ("package.tar.gz", archive, "application/octet-stream")},
    )
    assert uploaded.status_code == 204, uploaded.text
    return client.get(uploaded.headers["location"], headers=headers)
