"""Request bodies accepted by the JSON APIs."""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, SecretStr


class _RequestModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, protected_namespaces=())


class UserRegisterRequest(_RequestModel):
    email: str = Field(min_length=3, max_length=255)
    password: SecretStr
    name: Optional[str] = Field(default=None, max_length=255)


class UserLoginRequest(_RequestModel):
    email: str
    password: SecretStr


class AdminLoginRequest(_RequestModel):
    username: str
    password: SecretStr


class TokenCreateRequest(_RequestModel):
    label: str = Field(min_length=1, max_length=128)
    scopes: list[str] = Field(default_factory=list)
    expires_in_days: Optional[int] = Field(default=None, ge=1, le=3650, alias="expiresInDays")


class RetractRequest(_RequestModel):
    message: Optional[str] = Field(default=None, max_length=1000)


class DiscontinueRequest(_RequestModel):
    replaced_by: Optional[str] = Field(default=None, alias="replacedBy")


__all__ = [
    "AdminLoginRequest",
    "DiscontinueRequest",
    "RetractRequest",
    "TokenCreateRequest",
    "UserLoginRequest",
    "UserRegisterRequest",
]
