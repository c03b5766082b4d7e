"""
Error taxonomy shared by the services, the stores and the HTTP layer.

Every error knows the HTTP status it maps to and any extra fields that are
merged into the ``{"error": ...}`` response body so the client can resync
without a follow-up read.
"""

from __future__ import annotations

from typing import Any, Optional


class RegistryError(Exception):
    status_code = 500
    message = "Internal server error"

    def __init__(self, message: Optional[str] = None, **extra: Any):
        self.message = message or self.message
        self.extra = extra
        super().__init__(self.message)

    def to_payload(self) -> dict:
        return {"error": self.message, **self.extra}


class InvalidInput(RegistryError):
    status_code = 400
    message = "Invalid input"


class AlreadyVoted(RegistryError):
    """The identity already owns a vote; carries the current truth."""

    status_code = 400
    message = "You have already voted"

    def __init__(self, counts, vote_type: str):
        self.counts = counts
        self.vote_type = vote_type
        super().__init__(None, **counts.as_dict(), voteType=vote_type)


class DuplicateMessage(RegistryError):
    """Same (name, message) seen inside the duplicate window."""

    status_code = 400
    message = "Duplicate message detected. Please wait a moment before submitting again."

    def __init__(self, existing):
        self.existing = existing
        super().__init__(None, message=existing.as_dict())


class NotFound(RegistryError):
    status_code = 404
    message = "Not found"


class InvalidCredentials(RegistryError):
    status_code = 401
    message = "Invalid email or password"

    def __init__(self, message: Optional[str] = None):
        super().__init__(message, success=False)


class AdminRequired(RegistryError):
    status_code = 403
    message = "Unauthorized: Admin access required"


class StorageUnavailable(RegistryError):
    status_code = 503
    message = "Database not available"


class StorageError(RegistryError):
    status_code = 500
    message = "Storage operation failed"


class RecordExists(Exception):
    """Raised by a store when an insert would violate a uniqueness rule."""

    def __init__(self, field: str, value: str):
        self.field = field
        self.value = value
        super().__init__(f"record with {field}={value!r} already exists")
