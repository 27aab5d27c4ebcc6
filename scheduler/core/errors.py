"""
Scheduling error taxonomy and its mapping to HTTP responses.
Services raise these; routes translate them with to_http_exception().
"""
from __future__ import annotations

import math
import time

from fastapi import HTTPException, status

MSG_SLOT_UNAVAILABLE = 'Time slot is no longer available'
MSG_NO_AVAILABILITY = 'No availability in the search horizon'
MSG_RATE_LIMITED = 'Too many requests. Please try again later.'
MSG_INTERNAL_ERROR = 'Internal error. Please try again later.'


class SchedulingError(Exception):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class BookingValidationError(SchedulingError):
    status_code = status.HTTP_400_BAD_REQUEST


class InvalidTransitionError(BookingValidationError):
    def __init__(self, current: str, requested: str) -> None:
        super().__init__(f'Cannot move appointment from {current} to {requested}.')
        self.current = current
        self.requested = requested


class SlotConflictError(SchedulingError):
    status_code = status.HTTP_409_CONFLICT

    def __init__(self, message: str = MSG_SLOT_UNAVAILABLE) -> None:
        super().__init__(message)


class NoAvailabilityError(SchedulingError):
    status_code = status.HTTP_409_CONFLICT

    def __init__(self, message: str = MSG_NO_AVAILABILITY) -> None:
        super().__init__(message)


class AppointmentNotFoundError(SchedulingError):
    status_code = status.HTTP_404_NOT_FOUND

    def __init__(self, appointment_id: str) -> None:
        super().__init__('Appointment not found.')
        self.appointment_id = appointment_id


class AvailabilityWindowNotFoundError(SchedulingError):
    status_code = status.HTTP_404_NOT_FOUND

    def __init__(self, window_id: int) -> None:
        super().__init__('Availability window not found.')
        self.window_id = window_id


class RateLimitedError(SchedulingError):
    status_code = status.HTTP_429_TOO_MANY_REQUESTS

    def __init__(self, remaining: int, reset_at: float, message: str = MSG_RATE_LIMITED) -> None:
        super().__init__(message)
        self.remaining = remaining
        self.reset_at = reset_at

    def retry_after_seconds(self, now: float | None = None) -> int:
        current = time.time() if now is None else now
        return max(0, math.ceil(self.reset_at - current))


def to_http_exception(exc: SchedulingError) -> HTTPException:
    """Map a scheduling error to the HTTPException a route should raise."""
    if isinstance(exc, RateLimitedError):
        retry_after = exc.retry_after_seconds()
        return HTTPException(
            status_code=exc.status_code,
            detail={
                'error': exc.message,
                'remaining': exc.remaining,
                'resetAt': exc.reset_at,
                'retryAfterSeconds': retry_after,
            },
            headers={'Retry-After': str(retry_after)},
        )
    return HTTPException(status_code=exc.status_code, detail=exc.message)


def internal_error() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail=MSG_INTERNAL_ERROR,
    )
