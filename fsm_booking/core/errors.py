"""Domain errors raised by the services layer.

Each error carries a stable ``code`` and the HTTP status the API layer maps
it to. Handlers in ``fsm_booking.main`` turn them into
``{"success": false, "error": code, "message": ...}`` payloads.
"""

from fastapi import status


class BookingError(Exception):
    """Base class for all domain errors."""

    code = "ERROR"
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message = "Unexpected error"

    def __init__(self, message: str | None = None, **details) -> None:
        self.message = message or self.default_message
        self.details = details
        super().__init__(self.message)


class NotFound(BookingError):
    """Entity absent."""

    code = "NOT_FOUND"
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "Not found"


class Expired(BookingError):
    """Entity present but past its validity window."""

    code = "EXPIRED"
    status_code = status.HTTP_410_GONE
    default_message = "Expired"


class Inactive(BookingError):
    """Entity present but administratively disabled."""

    code = "INACTIVE"
    status_code = status.HTTP_403_FORBIDDEN
    default_message = "Inactive"


class AlreadyExists(BookingError):
    code = "ALREADY_EXISTS"
    status_code = status.HTTP_409_CONFLICT
    default_message = "Already exists"


class InvalidState(BookingError):
    """Transition not allowed from the current lifecycle state."""

    code = "INVALID_STATE"
    status_code = status.HTTP_409_CONFLICT
    default_message = "Operation not allowed in the current state"


class ValidationError(BookingError):
    code = "VALIDATION_ERROR"
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Invalid input"


class UpstreamError(BookingError):
    """Failure talking to the FSM platform or the host shell."""

    code = "UPSTREAM_ERROR"
    status_code = status.HTTP_502_BAD_GATEWAY
    default_message = "FSM platform request failed"


class StorageError(BookingError):
    code = "STORAGE_ERROR"
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message = "Storage is unavailable"
