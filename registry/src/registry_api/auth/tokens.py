"""Bearer token issuance and lookup."""

from __future__ import annotations

import hashlib
import logging
import secrets
from datetime import datetime
from typing import Iterable

from typing_extensions import assert_never

from registry_api.db.types import utcnow
from registry_api.domain.models import AuthToken
from registry_api.errors import ValidationError
from registry_api.metadata import MetadataStore

from .results import AuthExpired, AuthForbidden, AuthInvalid, AuthMissing, AuthResult, AuthSuccess
from .scopes import Action, is_authorized, is_known_scope

LOGGER = logging.getLogger(__name__)

TOKEN_PREFIX = "rp_"
MAX_LABEL_LENGTH = 128


def generate_token_secret() -> str:
    return f"{TOKEN_PREFIX}{secrets.token_urlsafe(32)}"


def hash_token(secret: str) -> str:
    """One-way digest stored in place of the secret."""

    return hashlib.sha256(secret.encode("utf-8")).hexdigest()


def parse_bearer(authorization: str | None) -> str | None:
    if not authorization:
        return None
    scheme, _, value = authorization.strip().partition(" ")
    if scheme.lower() != "bearer":
        return None
    value = value.strip()
    return value or None


class TokenService:
    def __init__(self, metadata: MetadataStore) -> None:
        self._metadata = metadata

    async def issue(
        self,
        *,
        user_id: str,
        label: str,
        scopes: Iterable[str],
        expires_at: datetime | None = None,
    ) -> tuple[str, AuthToken]:
        """Create a token; the returned secret is never retrievable again."""

        label = label.strip()
        if not label or len(label) > MAX_LABEL_LENGTH:
            raise ValidationError("Token label must be 1-128 characters.")
        scope_list = [scope.strip() for scope in scopes if scope and scope.strip()]
        if not scope_list:
            raise ValidationError("At least one scope is required.")
        unknown = [scope for scope in scope_list if not is_known_scope(scope)]
        if unknown:
            raise ValidationError(f"Unknown scope(s): {', '.join(sorted(unknown))}")
        secret = generate_token_secret()
        token = await self._metadata.create_token(
            token_hash=hash_token(secret),
            user_id=user_id,
            label=label,
            scopes=scope_list,
            expires_at=expires_at,
        )
        return secret, token

    async def authenticate(self, authorization: str | None) -> AuthResult:
        secret = parse_bearer(authorization)
        if secret is None:
            return AuthMissing()
        token = await self._metadata.get_token_by_hash(hash_token(secret))
        if token is None:
            return AuthInvalid()
        if token.is_expired(utcnow()):
            LOGGER.debug("Rejected expired token %r for user %s", token.label, token.user_id)
            return AuthExpired()
        await self._metadata.touch_token(token.token_hash)
        return AuthSuccess(token)

    async def authorize(
        self,
        authorization: str | None,
        action: Action,
        target: str | None = None,
    ) -> AuthResult:
        result = await self.authenticate(authorization)
        if isinstance(result, AuthSuccess):
            if is_authorized(result.token.scopes, action, target):
                return result
            return AuthForbidden(result.token, _forbidden_message(action, target))
        if isinstance(result, (AuthMissing, AuthInvalid, AuthExpired, AuthForbidden)):
            return result
        assert_never(result)


def _forbidden_message(action: Action, target: str | None) -> str:
    if action is Action.PUBLISH and target:
        return f"Token is not allowed to publish package '{target}'."
    if action is Action.PUBLISH:
        return "Token has no publish scope."
    if action is Action.READ:
        return "Token has no read scope."
    return "Admin scope required."


__all__ = ["TOKEN_PREFIX", "TokenService", "generate_token_secret", "hash_token", "parse_bearer"]
