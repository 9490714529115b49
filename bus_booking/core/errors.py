"""
Error taxonomy shared by every service.

Services raise BookingError subclasses only. Each error names its kind;
the HTTP status for a kind is decided once, in STATUS_BY_KIND, and applied
by the exception handlers registered in bus_booking.main.
"""

from enum import Enum
from typing import Any, Optional


class ErrorKind(str, Enum):
    VALIDATION_FAILURE = "validation_failure"
    UNAUTHENTICATED = "unauthenticated"
    ACCESS_DENIED = "access_denied"
    NOT_FOUND = "not_found"
    CONFLICT = "conflict"
    INVALID_STATE_TRANSITION = "invalid_state_transition"
    INSUFFICIENT_CAPACITY = "insufficient_capacity"
    UPSTREAM_FAILURE = "upstream_failure"
    UNAVAILABLE = "unavailable"
    INTERNAL_FAILURE = "internal_failure"


STATUS_BY_KIND = {
    ErrorKind.VALIDATION_FAILURE: 400,
    ErrorKind.UNAUTHENTICATED: 401,
    ErrorKind.ACCESS_DENIED: 403,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.CONFLICT: 409,
    ErrorKind.INVALID_STATE_TRANSITION: 400,
    ErrorKind.INSUFFICIENT_CAPACITY: 400,
    ErrorKind.UPSTREAM_FAILURE: 502,
    ErrorKind.UNAVAILABLE: 503,
    ErrorKind.INTERNAL_FAILURE: 500,
}


class BookingError(Exception):
    """Base class for all errors a service can report to a caller."""

    kind: ErrorKind = ErrorKind.INTERNAL_FAILURE
    reason: str = "internal_failure"

    def __init__(self, message: str, *, reason: Optional[str] = None, **details: Any):
        super().__init__(message)
        self.message = message
        if reason is not None:
            self.reason = reason
        self.details = details

    @property
    def status_code(self) -> int:
        return STATUS_BY_KIND[self.kind]

    def to_dict(self) -> dict:
        return {
            "error": self.kind.value,
            "reason": self.reason,
            "message": self.message,
            **self.details,
        }


class ValidationFailure(BookingError):
    kind = ErrorKind.VALIDATION_FAILURE
    reason = "invalid_request"


class AuthenticationRequired(BookingError):
    kind = ErrorKind.UNAUTHENTICATED
    reason = "not_authenticated"


class AccessDenied(BookingError):
    kind = ErrorKind.ACCESS_DENIED
    reason = "access_denied"


class NotFound(BookingError):
    kind = ErrorKind.NOT_FOUND
    reason = "not_found"


class Conflict(BookingError):
    kind = ErrorKind.CONFLICT
    reason = "conflict"


class SeatConflict(Conflict):
    """Requested seats are held by another PENDING or CONFIRMED booking."""

    reason = "seat_conflict"

    def __init__(self, conflicting_seats: list[str]):
        super().__init__(
            "Some seats are already booked",
            conflicting_seats=sorted(conflicting_seats),
        )
        self.conflicting_seats = sorted(conflicting_seats)


class InvalidStateTransition(BookingError):
    kind = ErrorKind.INVALID_STATE_TRANSITION
    reason = "invalid_state_transition"

    def __init__(self, entity: str, from_state: str, to_state: str, message: Optional[str] = None):
        super().__init__(
            message or f"Cannot move {entity} from {from_state} to {to_state}",
            current_status=from_state,
            requested_status=to_state,
        )


class InsufficientCapacity(BookingError):
    kind = ErrorKind.INSUFFICIENT_CAPACITY
    reason = "insufficient_capacity"

    def __init__(self, requested: int, available: int, message: Optional[str] = None):
        super().__init__(
            message or f"Not enough available seats. Requested: {requested}, Available: {available}",
            requested=requested,
            available=available,
        )


class PaymentNotSettled(BookingError):
    """The processor has not (yet) captured the funds for this payment."""

    kind = ErrorKind.VALIDATION_FAILURE
    reason = "payment_not_settled"

    def __init__(self, provider_status: str):
        super().__init__("Payment not successful", provider_status=provider_status)


class InvalidSignature(BookingError):
    kind = ErrorKind.VALIDATION_FAILURE
    reason = "invalid_signature"


class UpstreamFailure(BookingError):
    kind = ErrorKind.UPSTREAM_FAILURE
    reason = "payment_processor_unavailable"


class PaymentRejected(UpstreamFailure):
    """The processor refused the request itself (bad card, bad parameters)."""

    reason = "payment_rejected"

    @property
    def status_code(self) -> int:
        return 400


class TransientFailure(BookingError):
    kind = ErrorKind.UNAVAILABLE
    reason = "storage_busy"
