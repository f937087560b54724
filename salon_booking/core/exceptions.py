# salon_booking/core/exceptions.py
"""Domain error taxonomy.

Every error carries a machine-readable ``code`` so API clients can react
(e.g. re-query availability after a ``slot_taken`` conflict) and an optional
``details`` mapping rendered verbatim into the response body.
"""
from typing import Any, Dict, Optional


class BookingError(Exception):
    """Base class for all booking domain errors"""

    status_code = 400
    default_code = "booking_error"

    def __init__(self, message: str, code: Optional[str] = None, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        return {"error": self.code, "message": self.message, "details": self.details}


class ValidationError(BookingError):
    """Malformed or caller-correctable request"""

    status_code = 422
    default_code = "validation_error"


class NotFoundError(BookingError):
    status_code = 404
    default_code = "not_found"


class ConflictError(BookingError):
    """Lost a race for a slot, or the slot is already held"""

    status_code = 409
    default_code = "slot_taken"


class InvalidTransitionError(BookingError):
    """Status change not allowed by the appointment state machine"""

    status_code = 409
    default_code = "invalid_transition"

    def __init__(self, from_status: str, to_status: str, code: Optional[str] = None, message: Optional[str] = None):
        super().__init__(
            message or f"Cannot move appointment from '{from_status}' to '{to_status}'",
            code=code,
            details={"from": from_status, "to": to_status},
        )
        self.from_status = from_status
        self.to_status = to_status


class ExternalSyncError(BookingError):
    """Calendar mirroring failed. Recorded and retried, never fatal to a booking."""

    status_code = 502
    default_code = "external_sync_failed"


class AuthError(BookingError):
    status_code = 401
    default_code = "unauthorized"


class StorageError(BookingError):
    """Persistence layer failure, surfaced as a server-side error"""

    status_code = 500
    default_code = "storage_error"


class ForbiddenError(AuthError):
    """Authenticated, but not allowed to do this"""

    status_code = 403
    default_code = "forbidden"
