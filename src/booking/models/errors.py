"""Standard error codes and exceptions for the booking engine.

Every failure surfaced to callers is a BookingError subclass carrying an
ErrorCode. The API layer maps the exception class to an HTTP status and
renders the ErrorResponse body.
"""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict

from .calendar import Conflict


class ErrorCode(str, Enum):
    """Standard error codes."""

    # Calendar errors (ERR_001-ERR_004)
    DATES_UNAVAILABLE = "ERR_001"
    BOOKING_RACE_LOST = "ERR_002"
    INVALID_DATE_RANGE = "ERR_003"
    RENTAL_LENGTH_NOT_ALLOWED = "ERR_004"

    # Lookup errors (ERR_005-ERR_006)
    RESOURCE_NOT_FOUND = "ERR_005"
    RESERVATION_NOT_FOUND = "ERR_006"

    # Lifecycle errors (ERR_007-ERR_010)
    UNAUTHORIZED = "ERR_007"
    INVALID_STATE_TRANSITION = "ERR_008"
    PAYMENT_INTENT_MISMATCH = "ERR_009"
    PAYMENT_NOT_COMPLETED = "ERR_010"

    # Payment record errors (ERR_011)
    PAYMENT_NOT_FOUND = "ERR_011"

    # Stripe/Payment error codes (ERR_STRIPE_001-ERR_STRIPE_003)
    INVALID_WEBHOOK_SIGNATURE = "ERR_STRIPE_001"
    STRIPE_API_ERROR = "ERR_STRIPE_002"
    STRIPE_TIMEOUT = "ERR_STRIPE_003"


# Human-readable error messages
ERROR_MESSAGES: dict[ErrorCode, str] = {
    ErrorCode.DATES_UNAVAILABLE: "The requested dates are not available",
    ErrorCode.BOOKING_RACE_LOST: "The requested dates are no longer available",
    ErrorCode.INVALID_DATE_RANGE: "The requested date range is invalid",
    ErrorCode.RENTAL_LENGTH_NOT_ALLOWED: "Rental length is outside the allowed range",
    ErrorCode.RESOURCE_NOT_FOUND: "Trailer not found",
    ErrorCode.RESERVATION_NOT_FOUND: "Reservation not found",
    ErrorCode.UNAUTHORIZED: "Not authorized to change this reservation",
    ErrorCode.INVALID_STATE_TRANSITION: "Reservation cannot change to the requested state",
    ErrorCode.PAYMENT_INTENT_MISMATCH: "Payment intent ID does not match the reservation",
    ErrorCode.PAYMENT_NOT_COMPLETED: "Payment has not been completed",
    ErrorCode.PAYMENT_NOT_FOUND: "Payment record not found",
    ErrorCode.INVALID_WEBHOOK_SIGNATURE: "Invalid webhook signature",
    ErrorCode.STRIPE_API_ERROR: "Stripe API error occurred",
    ErrorCode.STRIPE_TIMEOUT: "Stripe did not respond in time",
}

# Recovery suggestions for clients
ERROR_RECOVERY: dict[ErrorCode, str] = {
    ErrorCode.DATES_UNAVAILABLE: "Pick other dates using the availability calendar",
    ErrorCode.BOOKING_RACE_LOST: "Refresh the calendar and pick other dates",
    ErrorCode.INVALID_DATE_RANGE: "Make sure the end is after the start",
    ErrorCode.RENTAL_LENGTH_NOT_ALLOWED: "Adjust the rental length to the trailer's limits",
    ErrorCode.RESOURCE_NOT_FOUND: "Verify the trailer ID",
    ErrorCode.RESERVATION_NOT_FOUND: "Verify the reservation ID",
    ErrorCode.UNAUTHORIZED: "Only the renter or the trailer owner can do this",
    ErrorCode.INVALID_STATE_TRANSITION: "Reload the reservation to see its current status",
    ErrorCode.PAYMENT_INTENT_MISMATCH: "Use the payment intent returned when the reservation was created",
    ErrorCode.PAYMENT_NOT_COMPLETED: "Complete the payment and try again",
    ErrorCode.PAYMENT_NOT_FOUND: "Contact support with the reservation ID",
    ErrorCode.INVALID_WEBHOOK_SIGNATURE: "Verify webhook secret configuration",
    ErrorCode.STRIPE_API_ERROR: "Try again or contact support",
    ErrorCode.STRIPE_TIMEOUT: "Try again in a moment",
}


class ErrorResponse(BaseModel):
    """Standard error body returned for failed operations."""

    model_config = ConfigDict(strict=True)

    success: bool = False
    error_code: ErrorCode
    message: str
    recovery: str
    details: Optional[dict[str, str]] = None
    conflicts: Optional[list[Conflict]] = None

    @classmethod
    def from_code(
        cls,
        code: ErrorCode,
        details: Optional[dict[str, str]] = None,
        conflicts: Optional[list[Conflict]] = None,
    ) -> "ErrorResponse":
        """Create an ErrorResponse from an error code.

        Args:
            code: The error code
            details: Optional additional context about the error
            conflicts: Calendar entries that made the request unavailable

        Returns:
            An ErrorResponse with the message and recovery hint for the code.
        """
        return cls(
            error_code=code,
            message=ERROR_MESSAGES[code],
            recovery=ERROR_RECOVERY[code],
            details=details,
            conflicts=conflicts,
        )


class BookingError(Exception):
    """Base exception raised by booking operations."""

    default_code: ErrorCode = ErrorCode.INVALID_STATE_TRANSITION

    def __init__(
        self,
        code: Optional[ErrorCode] = None,
        details: Optional[dict[str, str]] = None,
    ):
        self.code = code or self.default_code
        self.message = ERROR_MESSAGES[self.code]
        self.recovery = ERROR_RECOVERY[self.code]
        self.details = details
        super().__init__(self.message)

    def to_error_response(self) -> ErrorResponse:
        """Convert this exception to an ErrorResponse."""
        return ErrorResponse.from_code(self.code, self.details)


class ValidationError(BookingError):
    """Malformed input, such as a range whose end is not after its start."""

    default_code = ErrorCode.INVALID_DATE_RANGE


class NotFoundError(BookingError):
    """A referenced trailer or reservation does not exist."""

    default_code = ErrorCode.RESERVATION_NOT_FOUND


class ConflictError(BookingError):
    """The range is unavailable, or the atomic booking race was lost."""

    default_code = ErrorCode.DATES_UNAVAILABLE

    def __init__(
        self,
        code: Optional[ErrorCode] = None,
        details: Optional[dict[str, str]] = None,
        conflicts: Optional[list[Conflict]] = None,
    ):
        super().__init__(code, details)
        self.conflicts = list(conflicts or [])

    def to_error_response(self) -> ErrorResponse:
        return ErrorResponse.from_code(self.code, self.details, self.conflicts)


class AuthorizationError(BookingError):
    """The actor is neither the renter nor the trailer owner."""

    default_code = ErrorCode.UNAUTHORIZED


class InvalidStateError(BookingError):
    """The requested transition is not allowed from the current status."""

    default_code = ErrorCode.INVALID_STATE_TRANSITION


class UpstreamPaymentError(BookingError):
    """A Stripe call failed."""

    default_code = ErrorCode.STRIPE_API_ERROR

    def __init__(
        self,
        code: Optional[ErrorCode] = None,
        details: Optional[dict[str, str]] = None,
        stripe_error_code: Optional[str] = None,
    ):
        super().__init__(code, details)
        self.stripe_error_code = stripe_error_code

    @property
    def retryable(self) -> bool:
        """Whether retrying the call may succeed."""
        return self.code == ErrorCode.STRIPE_TIMEOUT or is_stripe_error_retryable(
            self.stripe_error_code
        )


# Stripe error codes that indicate the call may succeed when retried
STRIPE_RETRYABLE_ERRORS: set[str] = {
    "processing_error",
    "rate_limit",
    "lock_timeout",
    "api_connection_error",
}


def is_stripe_error_retryable(stripe_error_code: Optional[str]) -> bool:
    """Check if a Stripe error is likely transient and retryable.

    Args:
        stripe_error_code: The Stripe error code.

    Returns:
        True if the error may be resolved by retrying.
    """
    return stripe_error_code in STRIPE_RETRYABLE_ERRORS if stripe_error_code else False
