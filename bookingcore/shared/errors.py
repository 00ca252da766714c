"""Booking error taxonomy

Every outcome a caller is expected to handle is a typed exception with a stable
code. The HTTP layer maps them to status codes in one place (main.py).
"""

from typing import Optional


class BookingError(Exception):
    """Base class for all recoverable booking-engine outcomes"""

    code = "booking_error"
    status_code = 400
    default_message = "The request could not be processed."

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class NotFoundError(BookingError):
    code = "not_found"
    status_code = 404
    default_message = "The requested item was not found."


class ConflictError(BookingError):
    code = "slot_unavailable"
    status_code = 409
    default_message = (
        "This time slot is no longer available. "
        "Please refresh the available times and choose another slot."
    )


class ValidationError(BookingError):
    code = "validation_error"
    status_code = 422
    default_message = "The request is invalid."


class InvalidTransitionError(ValidationError):
    code = "invalid_transition"


class TokenExpiredError(BookingError):
    code = "token_expired"
    status_code = 410
    default_message = "This link is invalid or has expired."


class UpstreamError(BookingError):
    code = "upstream_error"
    status_code = 503
    default_message = "A dependent service is temporarily unavailable."
