"""FastAPI dependencies: context access, bearer tokens and browser sessions.

This is the only place where auth and session outcomes become exceptions.
"""

from __future__ import annotations

from typing import Optional

from fastapi import Cookie, Depends, Header, Request
from typing_extensions import assert_never

from registry_api.auth.results import (
    AuthExpired,
    AuthForbidden,
    AuthInvalid,
    AuthMissing,
    AuthResult,
    AuthSuccess,
    SessionExpired,
    SessionInvalid,
    SessionMissing,
    SessionResult,
    SessionValid,
)
from registry_api.auth.scopes import Action
from registry_api.auth.sessions import ADMIN_COOKIE_NAME, USER_COOKIE_NAME
from registry_api.context import RegistryContext
from registry_api.domain.models import AdminUser, AuthToken, User
from registry_api.errors import AuthError, BackendError, ForbiddenError


def get_context(request: Request) -> RegistryContext:
    context = getattr(request.app.state, "registry", None)
    if context is None:
        raise BackendError("Registry is not initialised.")
    return context


def token_from_result(result: AuthResult) -> AuthToken:
    if isinstance(result, AuthSuccess):
        return result.token
    if isinstance(result, AuthForbidden):
        raise ForbiddenError(result.message, code="insufficient_scope")
    if isinstance(result, AuthMissing):
        raise AuthError(result.message, code="missing_token")
    if isinstance(result, AuthInvalid):
        raise AuthError(result.message, code="invalid_token")
    if isinstance(result, AuthExpired):
        raise AuthError(result.message, code="token_expired")
    assert_never(result)


def identity_from_result(result: SessionResult) -> User | AdminUser:
    if isinstance(result, SessionValid):
        return result.identity
    if isinstance(result, SessionMissing):
        raise AuthError("Login required.", code=result.code)
    if isinstance(result, SessionInvalid):
        raise AuthError(result.message, code=result.code)
    if isinstance(result, SessionExpired):
        raise AuthError("Session has expired; log in again.", code=result.code)
    assert_never(result)


async def require_publish_token(
    authorization: Optional[str] = Header(default=None),
    context: RegistryContext = Depends(get_context),
) -> AuthToken:
    return token_from_result(await context.tokens.authorize(authorization, Action.PUBLISH))


async def optional_read_token(
    authorization: Optional[str] = Header(default=None),
    context: RegistryContext = Depends(get_context),
) -> AuthToken | None:
    """Read access is open unless download auth is enabled."""

    if not context.settings.require_download_auth:
        return None
    return token_from_result(await context.tokens.authorize(authorization, Action.READ))


async def require_user(
    session_id: Optional[str] = Cookie(default=None, alias=USER_COOKIE_NAME),
    context: RegistryContext = Depends(get_context),
) -> User:
    identity = identity_from_result(await context.sessions.lookup_user(session_id))
    if not isinstance(identity, User):
        raise ForbiddenError("Not a user session.")
    return identity


async def require_admin(
    session_id: Optional[str] = Cookie(default=None, alias=ADMIN_COOKIE_NAME),
    context: RegistryContext = Depends(get_context),
) -> AdminUser:
    identity = identity_from_result(await context.sessions.lookup_admin(session_id))
    if not isinstance(identity, AdminUser):
        raise ForbiddenError("Not an admin session.")
    return identity


__all__ = [
    "get_context",
    "identity_from_result",
    "optional_read_token",
    "require_admin",
    "require_publish_token",
    "require_user",
    "token_from_result",
]
