from __future__ import annotations

from datetime import timedelta

from fastapi import Response, status
from fastapi.responses import JSONResponse

from registry_api.apis.auth_api_base import BaseAuthApi
from registry_api.auth.passwords import MIN_PASSWORD_LENGTH, hash_password
from registry_api.auth.scopes import SCOPE_ADMIN
from registry_api.db.types import utcnow
from registry_api.domain.models import User
from registry_api.errors import AuthError, ForbiddenError, NotFoundError, ValidationError
from registry_api.models.requests import TokenCreateRequest, UserLoginRequest, UserRegisterRequest


class AuthApiImpl(BaseAuthApi):
    async def register(self, user_register_request: UserRegisterRequest) -> Response:
        if not self.context.settings.allow_registration:
            raise ForbiddenError("Self-registration is disabled.", code="registration_disabled")
        email = user_register_request.email.strip().lower()
        if "@" not in email:
            raise ValidationError("A valid email address is required.")
        password = user_register_request.password.get_secret_value()
        if len(password) < MIN_PASSWORD_LENGTH:
            raise ValidationError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters.")
        user = await self.context.metadata.create_user(
            email=email,
            name=user_register_request.name,
            password_hash=hash_password(password),
        )
        return JSONResponse(status_code=status.HTTP_201_CREATED, content={"user": user.to_dict()})

    async def login(self, user_login_request: UserLoginRequest) -> Response:
        sessions = self.context.sessions
        outcome = await sessions.login_user(
            user_login_request.email.strip().lower(),
            user_login_request.password.get_secret_value(),
        )
        if outcome is None:
            raise AuthError("Invalid email or password.", code="invalid_credentials")
        session_id, user = outcome
        response = JSONResponse(content={"user": user.to_dict()})
        response.set_cookie(value=session_id, **sessions.user_policy.cookie_kwargs())
        return response

    async def logout(self, session_id: str | None) -> Response:
        sessions = self.context.sessions
        await sessions.logout(session_id)
        response = JSONResponse(content={"success": True})
        response.delete_cookie(sessions.user_policy.name, path=sessions.user_policy.path)
        return response

    async def me(self, user: User) -> Response:
        return JSONResponse(content={"user": user.to_dict()})

    async def create_token(self, user: User, token_create_request: TokenCreateRequest) -> Response:
        if SCOPE_ADMIN in token_create_request.scopes:
            raise ForbiddenError("The admin scope can only be granted by an operator.")
        expires_at = None
        if token_create_request.expires_in_days:
            expires_at = utcnow() + timedelta(days=token_create_request.expires_in_days)
        secret, token = await self.context.tokens.issue(
            user_id=user.id,
            label=token_create_request.label,
            scopes=token_create_request.scopes,
            expires_at=expires_at,
        )
        return JSONResponse(
            status_code=status.HTTP_201_CREATED,
            content={
                "token": secret,
                "details": token.to_dict(),
                "message": "Token created. Save this token - it will not be shown again.",
            },
        )

    async def list_tokens(self, user: User) -> Response:
        tokens = await self.context.metadata.list_tokens(user_id=user.id)
        return JSONResponse(content={"tokens": [token.to_dict() for token in tokens]})

    async def delete_token(self, user: User, label: str) -> Response:
        if not await self.context.metadata.delete_token(label, user_id=user.id):
            raise NotFoundError(f"Token '{label}' not found.")
        return Response(status_code=status.HTTP_204_NO_CONTENT)
