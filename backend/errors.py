"""Domain error classes.

Each error carries the HTTP status and the machine-readable ``error`` value
the exception handlers in ``backend.main`` put in the response body.
"""

from __future__ import annotations

from enum import StrEnum


class LinkbridgeError(Exception):
    """Base class for domain errors.

    Attributes:
        error: Machine-readable error value (e.g. "Expired").
        message: Human-readable error message.
        status_code: HTTP status code to return.
    """

    status_code: int = 500

    def __init__(self, error: str, message: str | None = None) -> None:
        self.error = error
        self.message = message or error
        super().__init__(self.message)


class AuthReason(StrEnum):
    """Why a pairing code or ephemeral token was rejected."""

    EXPIRED = "Expired"
    NOT_FOUND = "NotFound"
    ALREADY_USED = "AlreadyUsed"
    INVALID_TOKEN = "InvalidToken"


class AuthError(LinkbridgeError):
    """Expired/unknown/used pairing code or invalid ephemeral token (401).

    Never retried automatically.
    """

    status_code = 401

    def __init__(self, reason: AuthReason, message: str | None = None) -> None:
        self.reason = reason
        super().__init__(reason.value, message)


class ValidationError(LinkbridgeError):
    """Malformed sync input (400). Rejected immediately, never retried."""

    status_code = 400

    def __init__(self, message: str) -> None:
        super().__init__("ValidationError", message)


class PersistenceError(LinkbridgeError):
    """Account write could not be completed after retrying (500)."""

    status_code = 500

    def __init__(self, message: str) -> None:
        super().__init__("PersistenceError", message)
