"""
Domain errors for PyFileHub.

Every error raised by the credential store, session authenticator, artifact
store, file catalog and storage service derives from ``FileHubError``. The
HTTP layer turns them into the standard error body using ``status_code`` and
``code``; nothing below the API layer knows about HTTP.
"""

from __future__ import annotations


class FileHubError(Exception):
    """Base class for all domain errors."""

    status_code: int = 500
    code: str = "SERVER_ERROR"

    def __init__(self, message: str, *, details: list[str] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details


class ValidationError(FileHubError):
    """Malformed or missing input."""
    status_code = 400
    code = "VALIDATION_ERROR"


class FileTooLargeError(ValidationError):
    """An uploaded file exceeds the configured size limit."""
    status_code = 413
    code = "FILE_TOO_LARGE"

    def __init__(self, filename: str, limit_bytes: int):
        super().__init__(
            f"File '{filename}' exceeds the maximum size of {limit_bytes} bytes")
        self.filename = filename
        self.limit_bytes = limit_bytes


class UploadTooLargeError(ValidationError):
    """An upload request body exceeds what any allowed batch could need."""
    status_code = 413
    code = "FILE_TOO_LARGE"

    def __init__(self, limit_bytes: int):
        super().__init__(
            f"Upload exceeds the maximum request size of {limit_bytes} bytes")
        self.limit_bytes = limit_bytes


class ConflictError(FileHubError):
    """A uniqueness constraint would be violated."""
    status_code = 409
    code = "CONFLICT"


class Unauthenticated(FileHubError):
    """No usable credentials were presented."""
    status_code = 401
    code = "AUTHENTICATION_FAILED"


class InvalidToken(Unauthenticated):
    """Token signature or structure is invalid."""
    code = "INVALID_TOKEN"


class TokenExpired(Unauthenticated):
    """Token was valid but its expiry has passed."""
    code = "TOKEN_EXPIRED"


class NotFound(FileHubError):
    """
    Resource is absent or not owned by the caller.

    The two cases are deliberately indistinguishable to the client.
    """
    status_code = 404
    code = "NOT_FOUND"


class StorageError(FileHubError):
    """Artifact storage I/O failure."""
    status_code = 500
    code = "STORAGE_ERROR"


class WriteError(StorageError):
    """Writing an artifact failed (disk full, permissions, ...)."""


class ArtifactMissing(StorageError):
    """A catalog record points at an artifact that is not on the medium."""
    status_code = 404
    code = "NOT_FOUND"


class ServerError(FileHubError):
    """Unexpected failure."""
    status_code = 500
    code = "SERVER_ERROR"


__all__ = [
    "FileHubError",
    "ValidationError",
    "FileTooLargeError",
    "UploadTooLargeError",
    "ConflictError",
    "Unauthenticated",
    "InvalidToken",
    "TokenExpired",
    "NotFound",
    "StorageError",
    "WriteError",
    "ArtifactMissing",
    "ServerError",
]
