"""Enumeration types for trailer booking data models."""

import datetime as dt
from enum import Enum


class RentalStatus(str, Enum):
    """Status of a rental.

    PENDING is the persisted form of "awaiting payment".
    """

    PENDING = "pending"
    CONFIRMED = "confirmed"
    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELLED = "cancelled"

    @property
    def occupies_calendar(self) -> bool:
        """Whether a rental in this status blocks its dates."""
        return self in (RentalStatus.PENDING, RentalStatus.CONFIRMED, RentalStatus.ACTIVE)


class PaymentStatus(str, Enum):
    """Status of the payment attached to a rental."""

    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
    REFUNDED = "refunded"


class HoldKind(str, Enum):
    """Provenance of a blocked period."""

    TEMPORARY = "temporary"
    CONFIRMED = "confirmed"
    MANUAL = "manual"


class Weekday(str, Enum):
    """Day of the week a weekly availability rule applies to."""

    MONDAY = "monday"
    TUESDAY = "tuesday"
    WEDNESDAY = "wednesday"
    THURSDAY = "thursday"
    FRIDAY = "friday"
    SATURDAY = "saturday"
    SUNDAY = "sunday"

    @classmethod
    def for_date(cls, date: dt.date) -> "Weekday":
        """Get the weekday of a calendar date."""
        return list(cls)[date.weekday()]


class DayPart(str, Enum):
    """Part of a day an owner can block on its own."""

    MORNING = "morning"
    AFTERNOON = "afternoon"
    EVENING = "evening"


class ConflictKind(str, Enum):
    """What made a requested range unavailable."""

    SCHEDULE = "schedule"
    TIME_SLOT = "time_slot"
    BLOCKED_PERIOD = "blocked_period"
    TEMPORARY_HOLD = "temporary_hold"
    RENTAL = "rental"


class NotificationType(str, Enum):
    """Category of a notification sent to a renter or owner."""

    BOOKING = "booking"
    PAYMENT = "payment"
    SYSTEM = "system"
