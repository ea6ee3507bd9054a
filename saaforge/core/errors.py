from __future__ import annotations

from typing import Any


class SaaforgeError(Exception):
    """Base error for the saaforge portal."""

    code = "INTERNAL_ERROR"
    status_code = 500

    def __init__(self, message: str | None = None, **details: Any) -> None:
        self.message = message or self.__doc__ or self.code
        self.details = {key: value for key, value in details.items() if value is not None}
        super().__init__(self.message)


class Unauthenticated(SaaforgeError):
    """No signed-in principal."""

    code = "AUTH_UNAUTHORIZED"
    status_code = 401


class Forbidden(SaaforgeError):
    """Principal lacks the role or ownership required."""

    code = "AUTH_FORBIDDEN"
    status_code = 403


class NotFound(SaaforgeError):
    """Record does not exist."""

    code = "NOT_FOUND"
    status_code = 404


class Expired(SaaforgeError):
    """Invite code has expired."""

    code = "INVITE_EXPIRED"
    status_code = 410


class AlreadyUsed(SaaforgeError):
    """Invite code has already been used."""

    code = "INVITE_ALREADY_USED"
    status_code = 409


class EmailMismatch(SaaforgeError):
    """Invite code does not match email."""

    code = "INVITE_EMAIL_MISMATCH"
    status_code = 403


class InvalidTransition(SaaforgeError):
    """Status transition is not allowed."""

    code = "INVALID_TRANSITION"
    status_code = 409


class TransientStoreFailure(SaaforgeError):
    """Store unavailable; the operation was not completed."""

    code = "STORE_UNAVAILABLE"
    status_code = 503


class ValidationFailed(SaaforgeError):
    """Request failed validation."""

    code = "VALIDATION_FAILED"
    status_code = 400


class Conflict(SaaforgeError):
    """Request conflicts with an existing record."""

    code = "CONFLICT"
    status_code = 409
