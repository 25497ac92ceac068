"""Pydantic models for trailer booking data entities."""

from .calendar import (
    AvailabilityResult,
    BlockedPeriod,
    BookingWindow,
    ConfirmedHold,
    Conflict,
    Hold,
    ManualHold,
    TemporaryHold,
    closed_date_range,
    days_touched,
)
from .enums import (
    ConflictKind,
    DayPart,
    HoldKind,
    NotificationType,
    PaymentStatus,
    RentalStatus,
    Weekday,
)
from .errors import (
    AuthorizationError,
    BookingError,
    ConflictError,
    ErrorCode,
    ErrorResponse,
    InvalidStateError,
    NotFoundError,
    UpstreamPaymentError,
    ValidationError,
)
from .payment import Payment, PaymentIntent, map_intent_status
from .pricing import PriceBreakdown
from .rental import (
    Cancellation,
    Rental,
    ReservationReceipt,
    ReservationRequest,
    SweepResult,
)
from .resource import (
    AvailabilityException,
    Resource,
    TimeSlot,
    WeeklyAvailabilityRule,
    default_part_slot,
)
from .snapshot import CalendarSnapshot

__all__ = [
    # Calendar
    "AvailabilityResult",
    "BlockedPeriod",
    "BookingWindow",
    "ConfirmedHold",
    "Conflict",
    "Hold",
    "ManualHold",
    "TemporaryHold",
    "closed_date_range",
    "days_touched",
    "CalendarSnapshot",
    # Enums
    "ConflictKind",
    "DayPart",
    "HoldKind",
    "NotificationType",
    "PaymentStatus",
    "RentalStatus",
    "Weekday",
    # Errors
    "AuthorizationError",
    "BookingError",
    "ConflictError",
    "ErrorCode",
    "ErrorResponse",
    "InvalidStateError",
    "NotFoundError",
    "UpstreamPaymentError",
    "ValidationError",
    # Payment
    "Payment",
    "PaymentIntent",
    "map_intent_status",
    "PriceBreakdown",
    # Rental
    "Cancellation",
    "Rental",
    "ReservationReceipt",
    "ReservationRequest",
    "SweepResult",
    # Resource
    "AvailabilityException",
    "Resource",
    "TimeSlot",
    "WeeklyAvailabilityRule",
    "default_part_slot",
]
