from datetime import timedelta

import pytest

from registry_api.auth.results import AuthExpired, AuthForbidden, AuthInvalid, AuthMissing, AuthSuccess
from registry_api.auth.scopes import Action
from registry_api.auth.tokens import TOKEN_PREFIX, TokenService, hash_token, parse_bearer
from registry_api.db.types import utcnow
from registry_api.errors import ValidationError


@pytest.fixture
def tokens(metadata):
    return TokenService(metadata)


async def _user(metadata, email="alice@example.com"):
    return await metadata.create_user(email=email, name=None, password_hash="x")


@pytest.mark.parametrize(
    ("header", "expected"),
    [
        (None, None),
        ("", None),
        ("Basic abc", None),
        ("Bearer ", None),
        ("Bearer rp_secret", "rp_secret"),
        ("bearer   rp_secret  ", "rp_secret"),
    ],
)
def test_parse_bearer(header, expected):
    assert parse_bearer(header) == expected


@pytest.mark.asyncio
async def test_issue_stores_only_the_hash(metadata, tokens):
    user = await _user(metadata)
    secret, token = await tokens.issue(user_id=user.id, label="ci", scopes=["publish:pkg:foo", "read:all"])

    assert secret.startswith(TOKEN_PREFIX)
    assert token.token_hash == hash_token(secret)
    assert token.token_hash != secret
    assert token.scopes == ("publish:pkg:foo", "read:all")
    [listed] = await metadata.list_tokens(user_id=user.id)
    assert secret not in repr(listed.to_dict())


@pytest.mark.asyncio
async def test_issue_validates_label_and_scopes(metadata, tokens):
    user = await _user(metadata)
    with pytest.raises(ValidationError):
        await tokens.issue(user_id=user.id, label="  ", scopes=["read:all"])
    with pytest.raises(ValidationError):
        await tokens.issue(user_id=user.id, label="ci", scopes=[])
    with pytest.raises(ValidationError, match="publish:\\*"):
        await tokens.issue(user_id=user.id, label="ci", scopes=["publish:*"])


@pytest.mark.asyncio
async def test_authenticate_outcomes(metadata, tokens):
    user = await _user(metadata)
    secret, _ = await tokens.issue(user_id=user.id, label="ci", scopes=["read:all"])
    expired, _ = await tokens.issue(
        user_id=user.id,
        label="old",
        scopes=["read:all"],
        expires_at=utcnow() - timedelta(minutes=1),
    )

    assert isinstance(await tokens.authenticate(None), AuthMissing)
    assert isinstance(await tokens.authenticate("Bearer rp_unknown"), AuthInvalid)
    assert isinstance(await tokens.authenticate(f"Bearer {expired}"), AuthExpired)
    result = await tokens.authenticate(f"Bearer {secret}")
    assert isinstance(result, AuthSuccess)
    assert result.token.user_id == user.id

    [touched] = [t for t in await metadata.list_tokens(user_id=user.id) if t.label == "ci"]
    assert touched.last_used_at is not None


@pytest.mark.asyncio
async def test_authorize_checks_package_scope(metadata, tokens):
    user = await _user(metadata)
    secret, _ = await tokens.issue(user_id=user.id, label="ci", scopes=["publish:pkg:foo"])
    header = f"Bearer {secret}"

    assert isinstance(await tokens.authorize(header, Action.PUBLISH, "foo"), AuthSuccess)
    denied = await tokens.authorize(header, Action.PUBLISH, "bar")
    assert isinstance(denied, AuthForbidden)
    assert "bar" in denied.message
    assert isinstance(await tokens.authorize(header, Action.READ), AuthForbidden)
    assert isinstance(await tokens.authorize(None, Action.PUBLISH, "foo"), AuthMissing)
