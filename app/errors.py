# app/errors.py

from datetime import date
from typing import Any, Dict


class BookingError(Exception):
    """Base class for errors reported back to the caller of a single request."""

    status_code = 400

    def __init__(self, message: str, **extra: Any):
        super().__init__(message)
        self.message = message
        self.extra = extra

    def to_dict(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"detail": self.message}
        for key, value in self.extra.items():
            body[key] = value.isoformat() if isinstance(value, date) else value
        return body


class ValidationError(BookingError):
    status_code = 400


class NotBookableError(BookingError):
    status_code = 400


class InvalidTransitionError(BookingError):
    status_code = 400


class ForbiddenError(BookingError):
    status_code = 403


class PatientSuspendedError(ForbiddenError):
    def __init__(self, suspended_until: date, no_show_count: int, days_remaining: int):
        super().__init__(
            f"Your account is suspended until {suspended_until.isoformat()} "
            f"due to {no_show_count} missed appointments",
            suspended_until=suspended_until,
            no_show_count=no_show_count,
            days_remaining=days_remaining,
        )
        self.suspended_until = suspended_until
        self.no_show_count = no_show_count
        self.days_remaining = days_remaining


class NotFoundError(BookingError):
    status_code = 404


class ConflictError(BookingError):
    status_code = 409
