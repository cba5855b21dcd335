"""Booking error taxonomy.

Every rejected request is reported with exactly one of these, carrying a
machine-readable ``code`` so clients can render a distinct message per case
(offer re-verification, offer alternate times, ...).
"""
from typing import Any

from fastapi import status


class BookingError(Exception):
    status_code: int = status.HTTP_400_BAD_REQUEST
    default_code: str = "BookingError"

    def __init__(self, message: str, code: str | None = None, **extra: Any) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code
        self.extra = extra

    def to_dict(self) -> dict[str, Any]:
        return {"detail": self.message, "code": self.code, **self.extra}


class ValidationError(BookingError):
    """Missing or malformed input; the user can fix it and resubmit."""

    default_code = "MissingFields"


class AuthorizationError(BookingError):
    status_code = status.HTTP_401_UNAUTHORIZED
    default_code = "PhoneNotVerified"

    def __init__(self, message: str, code: str | None = None, **extra: Any) -> None:
        super().__init__(message, code, **extra)
        if self.code == "NotOwner":
            self.status_code = status.HTTP_403_FORBIDDEN


class NotFoundError(BookingError):
    status_code = status.HTTP_404_NOT_FOUND
    default_code = "NotFound"


class AvailabilityError(BookingError):
    default_code = "TimeNotAvailable"


class ConflictError(BookingError):
    """Overlap with an existing active appointment. The only race-driven
    rejection: callers may re-fetch slots and retry once."""

    status_code = status.HTTP_409_CONFLICT
    default_code = "SlotConflict"

    def __init__(self, message: str, against: int | None = None, code: str | None = None) -> None:
        super().__init__(message, code, conflicting_appointment_id=against)
        self.against = against


class RateLimitedError(BookingError):
    status_code = status.HTTP_429_TOO_MANY_REQUESTS
    default_code = "RateLimited"

    def __init__(self, message: str, retry_after: int = 60, code: str | None = None) -> None:
        super().__init__(message, code, retry_after=retry_after)
        self.retry_after = retry_after


class TransientFailure(BookingError):
    """Store or network hiccup; safe to retry."""

    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    default_code = "TransientFailure"
