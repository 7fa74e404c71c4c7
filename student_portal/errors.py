"""Error taxonomy shared by the service layer and the HTTP layer.

Each error carries a stable snake_case ``code`` and the HTTP status the API
answers with. Messages of ValidationError / DuplicateError / NotFoundError are
meant for the end user. Credential and session errors are deliberately generic.
Storage and internal errors keep their detail in logs only.
"""

from __future__ import annotations


class PortalError(Exception):
    code = "error"
    status_code = 400
    default_message = "Request failed"

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(PortalError):
    code = "validation_error"
    status_code = 400
    default_message = "Invalid input"


class DuplicateError(PortalError):
    code = "duplicate"
    status_code = 409
    default_message = "Record already exists"

    def __init__(self, message: str | None = None, *, field: str | None = None):
        super().__init__(message)
        self.field = field


class InvalidCredentials(PortalError):
    """Unknown identifier or wrong password. Callers cannot tell which."""

    code = "invalid_credentials"
    status_code = 401
    default_message = "Invalid credentials"

    def __init__(self) -> None:
        super().__init__(self.default_message)


class Unauthorized(PortalError):
    """Missing, expired or mismatched session."""

    code = "unauthorized"
    status_code = 401
    default_message = "Invalid or expired session"

    def __init__(self) -> None:
        super().__init__(self.default_message)


class NotFoundError(PortalError):
    code = "not_found"
    status_code = 404
    default_message = "Student not found"


class StorageError(PortalError):
    code = "storage_error"
    status_code = 503
    default_message = "Service temporarily unavailable. Please try again."


class InternalError(PortalError):
    code = "internal_error"
    status_code = 500
    default_message = "Internal server error"


# Errors whose message is safe to show the caller verbatim.
PUBLIC_ERRORS = (ValidationError, DuplicateError, NotFoundError, InvalidCredentials, Unauthorized)
