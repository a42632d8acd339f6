"""Error taxonomy for the consent workflow.

Each error carries the HTTP status it maps to and a user-presentable
message; the app-level handler in ``consentlink.main`` renders them as
``{"error": message, **details}``.
"""

from __future__ import annotations

from typing import Any

from fastapi import status


class ConsentLinkError(Exception):
    """Base class for all errors surfaced to API callers."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)


class ValidationError(ConsentLinkError):
    """Missing or malformed input, detected before any mutation."""

    status_code = status.HTTP_400_BAD_REQUEST


class NotFoundError(ConsentLinkError):
    """Unknown token, document or record id."""

    status_code = status.HTTP_404_NOT_FOUND


class ConflictError(ConsentLinkError):
    """The request contradicts the current state of a record.

    ``reason`` lets callers tell apart the terminal cases
    (already_completed, expired, inactive, duplicate).
    """

    status_code = status.HTTP_409_CONFLICT

    ALREADY_COMPLETED = "already_completed"
    EXPIRED = "expired"
    INACTIVE = "inactive"
    DUPLICATE = "duplicate"

    def __init__(self, message: str, reason: str, details: dict[str, Any] | None = None):
        self.reason = reason
        super().__init__(message, details)


class AuthorizationError(ConsentLinkError):
    status_code = status.HTTP_403_FORBIDDEN


class TransientError(ConsentLinkError):
    """Email or storage failure. Retryable; never fatal to committed consent rows."""

    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
