"""Shared error helpers and exception handlers for HTTP APIs."""

from __future__ import annotations

import logging
from typing import Any, Optional

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import DBAPIError
from starlette.exceptions import HTTPException

from registry_api.errors import RegistryError

LOGGER = logging.getLogger(__name__)

_STATUS_ERROR_CODES: dict[int, str] = {
    status.HTTP_400_BAD_REQUEST: "invalid_request",
    status.HTTP_401_UNAUTHORIZED: "unauthorized",
    status.HTTP_403_FORBIDDEN: "forbidden",
    status.HTTP_404_NOT_FOUND: "not_found",
    status.HTTP_405_METHOD_NOT_ALLOWED: "method_not_allowed",
    status.HTTP_409_CONFLICT: "conflict",
    413: "payload_too_large",
    422: "invalid_request",
    status.HTTP_500_INTERNAL_SERVER_ERROR: "internal_error",
    status.HTTP_503_SERVICE_UNAVAILABLE: "backend_unavailable",
}

PUB_CONTENT_TYPE = "application/vnd.pub.v2+json"


def error_payload(
    message: str,
    *,
    error: Optional[str] = None,
    status_code: Optional[int] = None,
    details: Optional[dict[str, Any]] = None,
) -> dict[str, Any]:
    body: dict[str, Any] = {
        "code": error or _STATUS_ERROR_CODES.get(status_code or 0, "error"),
        "message": message,
    }
    if details:
        body["details"] = details
    return {"error": body}


def bearer_challenge(message: str) -> str:
    escaped = message.replace("\\", "\\\\").replace('"', '\\"')
    return f'Bearer realm="pub", message="{escaped}"'


def error_response(
    status_code: int,
    message: str,
    *,
    error: Optional[str] = None,
    details: Optional[dict[str, Any]] = None,
    headers: Optional[dict[str, str]] = None,
) -> JSONResponse:
    response_headers = dict(headers or {})
    if status_code == status.HTTP_401_UNAUTHORIZED and "WWW-Authenticate" not in response_headers:
        response_headers["WWW-Authenticate"] = bearer_challenge(message)
    return JSONResponse(
        status_code=status_code,
        content=error_payload(message, error=error, status_code=status_code, details=details),
        headers=response_headers,
    )


async def _registry_error_handler(request: Request, exc: RegistryError) -> JSONResponse:
    if exc.status_code >= 500:
        LOGGER.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return error_response(exc.status_code, exc.message, error=exc.code)


async def _http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    detail = exc.detail
    if isinstance(detail, dict) and "message" in detail:
        message = str(detail["message"])
        error = detail.get("code") or detail.get("error")
    else:
        message = str(detail)
        error = None
    return error_response(exc.status_code, message, error=error, headers=exc.headers)


async def _validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    problems = "; ".join(
        f"{'.'.join(str(part) for part in error['loc'])}: {error['msg']}" for error in exc.errors()
    )
    return error_response(status.HTTP_400_BAD_REQUEST, problems or "Invalid request.")


async def _database_error_handler(request: Request, exc: DBAPIError) -> JSONResponse:
    LOGGER.error("Database failure during %s %s: %s", request.method, request.url.path, exc)
    return error_response(
        status.HTTP_503_SERVICE_UNAVAILABLE,
        "The package catalog is temporarily unavailable.",
    )


def install_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(RegistryError, _registry_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(HTTPException, _http_exception_handler)  # type: ignore[arg-type]
    app.add_exception_handler(RequestValidationError, _validation_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(DBAPIError, _database_error_handler)  # type: ignore[arg-type]


__all__ = [
    "PUB_CONTENT_TYPE",
    "bearer_challenge",
    "error_payload",
    "error_response",
    "install_error_handlers",
]
