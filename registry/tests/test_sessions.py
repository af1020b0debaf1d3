from datetime import timedelta

import pytest

from registry_api.auth.crypto import CredentialCipher
from registry_api.auth.passwords import hash_password, verify_password
from registry_api.auth.results import SessionExpired, SessionInvalid, SessionMissing, SessionValid
from registry_api.auth.sessions import SessionService, hash_session_id
from registry_api.domain.models import AdminUser, User
from registry_api.errors import BackendError

PASSWORD = "correct horse battery"


@pytest.fixture
def sessions(metadata, settings):
    return SessionService(metadata, settings)


def test_password_hashing():
    hashed = hash_password(PASSWORD)
    assert hashed != PASSWORD
    assert verify_password(PASSWORD, hashed)
    assert not verify_password("wrong password", hashed)


def test_credential_cipher_roundtrip_and_key_check():
    cipher = CredentialCipher("key-one")
    token = cipher.encrypt("s3-secret")
    assert token != "s3-secret"
    assert cipher.encrypt("s3-secret") != token
    assert cipher.decrypt(token) == "s3-secret"
    with pytest.raises(BackendError):
        CredentialCipher("key-two").decrypt(token)


@pytest.mark.asyncio
async def test_user_login_and_lookup(metadata, sessions):
    await metadata.create_user(email="alice@example.com", name="Alice", password_hash=hash_password(PASSWORD))

    assert await sessions.login_user("alice@example.com", "nope-nope") is None
    assert await sessions.login_user("nobody@example.com", PASSWORD) is None
    session_id, user = await sessions.login_user("alice@example.com", PASSWORD)

    result = await sessions.lookup_user(session_id)
    assert isinstance(result, SessionValid)
    assert isinstance(result.identity, User)
    assert result.identity.id == user.id

    missing = await sessions.lookup_user(None)
    assert isinstance(missing, SessionMissing)
    assert missing.code == "session_required"
    assert isinstance(await sessions.lookup_user("forged"), SessionInvalid)

    await sessions.logout(session_id)
    assert isinstance(await sessions.lookup_user(session_id), SessionInvalid)


@pytest.mark.asyncio
async def test_namespaces_do_not_cross(metadata, sessions):
    await metadata.create_user(email="alice@example.com", name=None, password_hash=hash_password(PASSWORD))
    await metadata.create_admin_user(username="root", name=None, password_hash=hash_password(PASSWORD))
    user_session, _ = await sessions.login_user("alice@example.com", PASSWORD)
    admin_session, admin = await sessions.login_admin("root", PASSWORD)

    assert isinstance(await sessions.lookup_admin(user_session), SessionInvalid)
    assert isinstance(await sessions.lookup_user(admin_session), SessionInvalid)
    valid = await sessions.lookup_admin(admin_session)
    assert isinstance(valid, SessionValid)
    assert isinstance(valid.identity, AdminUser)
    assert valid.identity.id == admin.id
    assert sessions.admin_policy.cookie_kwargs()["path"] == "/admin"
    assert sessions.admin_policy.cookie_kwargs()["samesite"] == "strict"


@pytest.mark.asyncio
async def test_expired_session_is_removed(metadata, sessions):
    user = await metadata.create_user(email="alice@example.com", name=None, password_hash="x")
    await metadata.create_user_session(
        session_hash=hash_session_id("stale"),
        user_id=user.id,
        is_admin=False,
        ttl=timedelta(seconds=-1),
    )
    result = await sessions.lookup_user("stale")
    assert isinstance(result, SessionExpired)
    assert result.code == "session_expired"
    assert await metadata.get_user_session(hash_session_id("stale")) is None


@pytest.mark.asyncio
async def test_deactivated_admin_cannot_log_in_or_reuse_session(metadata, sessions):
    await metadata.create_admin_user(username="root", name=None, password_hash=hash_password(PASSWORD))
    admin_session, _ = await sessions.login_admin("root", PASSWORD)

    await metadata.set_admin_active("root", active=False)
    assert await sessions.login_admin("root", PASSWORD) is None
    assert isinstance(await sessions.lookup_admin(admin_session), SessionInvalid)
