"""Outcome types for token and session checks.

Each check returns exactly one variant; callers handle every one of them.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Union

from registry_api.domain.models import AdminUser, AuthToken, User, UserSession


@dataclass(frozen=True)
class AuthSuccess:
    token: AuthToken


@dataclass(frozen=True)
class AuthMissing:
    message: str = "Authentication required."


@dataclass(frozen=True)
class AuthInvalid:
    message: str = "Invalid token."


@dataclass(frozen=True)
class AuthExpired:
    message: str = "Token has expired."


@dataclass(frozen=True)
class AuthForbidden:
    token: AuthToken
    message: str = "Insufficient scope."


AuthResult = Union[AuthSuccess, AuthMissing, AuthInvalid, AuthExpired, AuthForbidden]


@dataclass(frozen=True)
class SessionValid:
    session: UserSession
    identity: Union[User, AdminUser]


@dataclass(frozen=True)
class SessionMissing:
    code: str


@dataclass(frozen=True)
class SessionInvalid:
    code: str
    message: str


@dataclass(frozen=True)
class SessionExpired:
    code: str


SessionResult = Union[SessionValid, SessionMissing, SessionInvalid, SessionExpired]


__all__ = [
    "AuthExpired",
    "AuthForbidden",
    "AuthInvalid",
    "AuthMissing",
    "AuthResult",
    "AuthSuccess",
    "SessionExpired",
    "SessionInvalid",
    "SessionMissing",
    "SessionResult",
    "SessionValid",
]
