"""Cookie-backed browser sessions for end users and administrators.

Both namespaces share the ``user_sessions`` table. Each row carries an
``is_admin`` flag that is checked on every lookup, so a session minted for
one namespace never satisfies the other even if its cookie is replayed
under the other name.
"""

from __future__ import annotations

import hashlib
import logging
import secrets
from dataclasses import dataclass
from datetime import timedelta
from typing import Literal

from registry_api.config.settings import RegistrySettings
from registry_api.db.types import utcnow
from registry_api.domain.models import AdminUser, User
from registry_api.metadata import MetadataStore

from .passwords import verify_password
from .results import SessionExpired, SessionInvalid, SessionMissing, SessionResult, SessionValid

LOGGER = logging.getLogger(__name__)

USER_COOKIE_NAME = "registry_session"
ADMIN_COOKIE_NAME = "admin_session"


@dataclass(frozen=True)
class CookiePolicy:
    name: str
    path: str
    same_site: Literal["lax", "strict"]
    ttl: timedelta
    secure: bool
    is_admin: bool
    missing_code: str
    invalid_code: str
    expired_code: str

    def cookie_kwargs(self) -> dict[str, object]:
        return {
            "key": self.name,
            "path": self.path,
            "max_age": int(self.ttl.total_seconds()),
            "httponly": True,
            "samesite": self.same_site,
            "secure": self.secure,
        }


def user_cookie_policy(settings: RegistrySettings) -> CookiePolicy:
    return CookiePolicy(
        name=USER_COOKIE_NAME,
        path="/",
        same_site="lax",
        ttl=timedelta(seconds=settings.user_session_ttl_seconds),
        secure=settings.cookie_secure,
        is_admin=False,
        missing_code="session_required",
        invalid_code="session_invalid",
        expired_code="session_expired",
    )


def admin_cookie_policy(settings: RegistrySettings) -> CookiePolicy:
    return CookiePolicy(
        name=ADMIN_COOKIE_NAME,
        path="/admin",
        same_site="strict",
        ttl=timedelta(seconds=settings.admin_session_ttl_seconds),
        secure=settings.cookie_secure,
        is_admin=True,
        missing_code="admin_login_required",
        invalid_code="admin_session_invalid",
        expired_code="admin_session_expired",
    )


def hash_session_id(session_id: str) -> str:
    return hashlib.sha256(session_id.encode("utf-8")).hexdigest()


class SessionService:
    def __init__(self, metadata: MetadataStore, settings: RegistrySettings) -> None:
        self._metadata = metadata
        self.user_policy = user_cookie_policy(settings)
        self.admin_policy = admin_cookie_policy(settings)

    async def _open(self, identity_id: str, policy: CookiePolicy) -> str:
        session_id = secrets.token_urlsafe(32)
        await self._metadata.create_user_session(
            session_hash=hash_session_id(session_id),
            user_id=identity_id,
            is_admin=policy.is_admin,
            ttl=policy.ttl,
        )
        return session_id

    async def login_user(self, email: str, password: str) -> tuple[str, User] | None:
        """Open an end-user session; ``None`` for unknown, inactive or wrong password."""

        found = await self._metadata.get_user_credentials(email)
        if found is None:
            return None
        user, password_hash = found
        if not user.is_active or not verify_password(password, password_hash):
            return None
        await self._metadata.touch_user_login(user.id)
        return await self._open(user.id, self.user_policy), user

    async def login_admin(self, username: str, password: str) -> tuple[str, AdminUser] | None:
        found = await self._metadata.get_admin_credentials(username)
        if found is None:
            LOGGER.info("Admin login failed for unknown user %s", username)
            return None
        admin, password_hash = found
        if not admin.is_active or not verify_password(password, password_hash):
            LOGGER.info("Admin login failed for %s", username)
            return None
        await self._metadata.touch_admin_login(admin.id)
        return await self._open(admin.id, self.admin_policy), admin

    async def lookup_user(self, session_id: str | None) -> SessionResult:
        return await self._lookup(session_id, self.user_policy)

    async def lookup_admin(self, session_id: str | None) -> SessionResult:
        return await self._lookup(session_id, self.admin_policy)

    async def _lookup(self, session_id: str | None, policy: CookiePolicy) -> SessionResult:
        if not session_id:
            return SessionMissing(policy.missing_code)
        session = await self._metadata.get_user_session(hash_session_id(session_id))
        if session is None:
            return SessionInvalid(policy.invalid_code, "Session not found.")
        if session.is_admin != policy.is_admin:
            message = "Not an admin session." if policy.is_admin else "Not a user session."
            return SessionInvalid(policy.invalid_code, message)
        if session.is_expired(utcnow()):
            await self._metadata.delete_user_session(session.session_hash)
            return SessionExpired(policy.expired_code)
        if policy.is_admin:
            identity: User | AdminUser | None = await self._metadata.get_admin_user(session.user_id)
        else:
            identity = await self._metadata.get_user(session.user_id)
        if identity is None or not identity.is_active:
            return SessionInvalid(policy.invalid_code, "Account is disabled.")
        return SessionValid(session, identity)

    async def logout(self, session_id: str | None) -> None:
        if session_id:
            await self._metadata.delete_user_session(hash_session_id(session_id))


__all__ = [
    "ADMIN_COOKIE_NAME",
    "CookiePolicy",
    "SessionService",
    "USER_COOKIE_NAME",
    "admin_cookie_policy",
    "hash_session_id",
    "user_cookie_policy",
]
