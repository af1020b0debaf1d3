"""Domain error taxonomy shared by stores, services and the HTTP layer."""

from __future__ import annotations


class RegistryError(Exception):
    """Base error for registry operations."""

    code = "error"
    status_code = 500

    def __init__(self, message: str, *, code: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code


class ValidationError(RegistryError):
    """Raised for malformed manifests, archives, names or version strings."""

    code = "invalid_request"
    status_code = 400


class NotFoundError(RegistryError):
    """Raised when a package, version, session or token is absent."""

    code = "not_found"
    status_code = 404


class ConflictError(RegistryError):
    """Raised when a row already exists or a concurrent writer won."""

    code = "conflict"
    status_code = 409


class AuthError(RegistryError):
    """Raised when a credential or session is missing, invalid or expired."""

    code = "unauthorized"
    status_code = 401


class ForbiddenError(RegistryError):
    """Raised for insufficient scope or the wrong identity kind."""

    code = "forbidden"
    status_code = 403


class PayloadTooLargeError(RegistryError):
    code = "payload_too_large"
    status_code = 413


class BackendError(RegistryError):
    """Raised when the database or a blob backend cannot be reached."""

    code = "backend_unavailable"
    status_code = 503


class MigrationError(RegistryError):
    """Raised when copying or verifying a blob between backends fails."""

    code = "migration_failed"


class SessionNotFoundError(NotFoundError):
    code = "session_not_found"


class SessionExpiredError(RegistryError):
    code = "session_expired"
    status_code = 410


class SessionRejectedError(ConflictError):
    """Raised for sessions whose archive already failed validation."""

    code = "session_rejected"


class DuplicateVersionError(ConflictError):
    code = "duplicate_version"


class InvalidArchiveError(ValidationError):
    code = "invalid_archive"


class ChecksumMismatchError(ValidationError):
    code = "checksum_mismatch"


__all__ = [
    "AuthError",
    "BackendError",
    "ChecksumMismatchError",
    "ConflictError",
    "DuplicateVersionError",
    "ForbiddenError",
    "InvalidArchiveError",
    "MigrationError",
    "NotFoundError",
    "PayloadTooLargeError",
    "RegistryError",
    "SessionExpiredError",
    "SessionNotFoundError",
    "SessionRejectedError",
    "ValidationError",
]
