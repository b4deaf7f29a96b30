"""Exception hierarchy for the FBAR intake backend."""
from __future__ import annotations

from typing import Optional


class FbarIntakeError(Exception):
    """Base exception for all FBAR intake errors."""

    status_code = 500
    code = "internal"


class ValidationError(FbarIntakeError):
    """Raised when a required field is missing or malformed."""

    status_code = 422
    code = "validation"

    def __init__(self, message: str, field: Optional[str] = None) -> None:
        super().__init__(message)
        self.field = field


class NotFoundError(FbarIntakeError):
    """Raised when a referenced document does not exist."""

    status_code = 404
    code = "not-found"


class DraftNotFoundError(NotFoundError):
    """Raised when a resume code has no matching draft."""


class SubmissionNotFoundError(NotFoundError):
    """Raised when a submission id has no matching document."""


_AUTH_MESSAGES = {
    "invalid-credential": "Incorrect email or password. Please check your details and try again.",
    "invalid-email": "Invalid email address. Please enter a valid email address.",
    "user-disabled": "This account has been disabled. Please contact an administrator.",
    "user-not-found": "No account is registered with this email address.",
    "too-many-requests": "Too many failed sign-in attempts. Please try again later.",
    "wrong-password": "Current password is incorrect",
    "session-expired": "Your session has expired. Please sign in again.",
}

_AUTH_STATUS = {
    "user-disabled": 403,
    "too-many-requests": 429,
    "wrong-password": 400,
}


class AuthError(FbarIntakeError):
    """Raised by the identity provider; ``code`` names the cause."""

    def __init__(self, code: str, message: Optional[str] = None) -> None:
        super().__init__(message or _AUTH_MESSAGES.get(code, "An error occurred while signing in. Please try again later."))
        self.code = code
        self.status_code = _AUTH_STATUS.get(code, 401)


class PersistError(FbarIntakeError):
    """Raised when the document store cannot complete a read or write."""

    status_code = 503
    code = "unavailable"

    def __init__(self, message: str = "An error occurred. Please try again.") -> None:
        super().__init__(message)


class DuplicateKeyError(PersistError):
    """Raised when a write collides with a unique key already in the store."""


class ResourceExhaustedError(FbarIntakeError):
    """Raised when a bounded resource or retry budget is used up."""

    status_code = 503
    code = "resource-exhausted"


class DraftCodeExhaustedError(ResourceExhaustedError):
    """Raised when no unused resume code was found within the retry budget."""
