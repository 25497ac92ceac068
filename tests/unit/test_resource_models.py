"""Unit tests for trailer, calendar and error models.

Test categories:
- Resource configuration validation (time slots, weekly rules, exceptions)
- BookingWindow and BlockedPeriod derived values
- ErrorResponse rendering
"""

import datetime as dt

import pytest
from pydantic import ValidationError as PydanticValidationError

from booking.models import (
    AvailabilityException,
    BlockedPeriod,
    BookingWindow,
    ConflictError,
    ErrorCode,
    HoldKind,
    ManualHold,
    Resource,
    TemporaryHold,
    TimeSlot,
    UpstreamPaymentError,
    WeeklyAvailabilityRule,
    closed_date_range,
    days_touched,
)

# === Test Configuration ===

BASE_RESOURCE = {
    "resource_id": "TRL-100",
    "owner_id": "owner-1",
    "price_per_day": 2000,
}


# === Resource Validation Tests ===


class TestTimeSlots:
    """Pickup/return windows."""

    def test_parses_hh_mm_strings(self):
        """Slots accept HH:MM strings."""
        slot = TimeSlot.model_validate({"start": "09:00", "end": "18:00"})

        assert slot.start == dt.time(9, 0)
        assert slot.contains(dt.time(9, 0))
        assert not slot.contains(dt.time(18, 0))
        assert slot.contains(dt.time(18, 0), closing=True)
        assert not slot.contains(dt.time(18, 1), closing=True)

    def test_end_must_follow_start(self):
        """A slot closing before it opens is rejected."""
        with pytest.raises(PydanticValidationError):
            TimeSlot.model_validate({"start": "18:00", "end": "09:00"})

    def test_at_most_three_slots(self):
        """A weekday rule holds at most three slots."""
        slots = [
            {"start": f"{hour:02d}:00", "end": f"{hour:02d}:30"} for hour in (8, 10, 12, 14)
        ]

        with pytest.raises(PydanticValidationError):
            WeeklyAvailabilityRule.model_validate({"day": "monday", "time_slots": slots})

    def test_slots_must_not_overlap(self):
        """Slots are ordered and disjoint."""
        with pytest.raises(PydanticValidationError):
            WeeklyAvailabilityRule.model_validate(
                {
                    "day": "monday",
                    "time_slots": [
                        {"start": "09:00", "end": "12:00"},
                        {"start": "11:00", "end": "14:00"},
                    ],
                }
            )


class TestResource:
    """Trailer configuration."""

    def test_one_rule_per_weekday(self):
        """Two rules for the same weekday are rejected."""
        with pytest.raises(PydanticValidationError):
            Resource.model_validate(
                {
                    **BASE_RESOURCE,
                    "weekly_availability": [{"day": "monday"}, {"day": "monday"}],
                }
            )

    def test_one_exception_per_date(self):
        """Two exceptions for the same date are rejected."""
        with pytest.raises(PydanticValidationError):
            Resource.model_validate(
                {
                    **BASE_RESOURCE,
                    "availability_exceptions": [
                        {"date": "2030-01-07"},
                        {"date": "2030-01-07", "morning": False},
                    ],
                }
            )

    def test_negative_price_rejected(self):
        """Prices are non-negative cent amounts."""
        with pytest.raises(PydanticValidationError):
            Resource.model_validate({**BASE_RESOURCE, "price_per_day": -1})

    def test_exception_default_parts(self):
        """Open parts without explicit slots use the default windows."""
        exception = AvailabilityException(date=dt.date(2030, 1, 7), morning=False)

        assert exception.available is True
        assert [(s.start, s.end) for s in exception.time_slots] == [
            (dt.time(12, 0), dt.time(17, 0)),
            (dt.time(17, 0), dt.time(22, 0)),
        ]


# === Calendar Model Tests ===


class TestBookingWindow:
    """Derived window values."""

    def test_whole_day_window(self):
        """Without times the window runs midnight to midnight."""
        window = BookingWindow(start_date=dt.date(2030, 1, 8), end_date=dt.date(2030, 1, 11))

        assert window.start == dt.datetime(2030, 1, 8)
        assert window.end == dt.datetime(2030, 1, 11)
        assert window.rental_days == 3
        assert window.is_timed is False

    def test_same_day_window(self):
        """A same-day timed window counts as one rental day."""
        window = BookingWindow(
            start_date=dt.date(2030, 1, 7),
            end_date=dt.date(2030, 1, 7),
            pickup_time=dt.time(10, 0),
            return_time=dt.time(14, 0),
        )

        assert window.rental_days == 1
        assert window.is_timed is True

    def test_window_is_strict(self):
        """Domain windows do not coerce strings."""
        with pytest.raises(PydanticValidationError):
            BookingWindow(start_date="2030-01-07", end_date="2030-01-08")  # type: ignore[arg-type]

    def test_days_touched_excludes_midnight_end(self):
        """An interval ending at midnight does not touch its end date."""
        days = days_touched(dt.datetime(2030, 1, 7, 22), dt.datetime(2030, 1, 9))

        assert days == [dt.date(2030, 1, 7), dt.date(2030, 1, 8)]

    def test_closed_date_range(self):
        """An inclusive date range becomes a half-open interval."""
        start, end = closed_date_range(dt.date(2030, 1, 7), dt.date(2030, 1, 8))

        assert start == dt.datetime(2030, 1, 7)
        assert end == dt.datetime(2030, 1, 9)


class TestBlockedPeriod:
    """Block provenance and expiry."""

    def test_temporary_hold_accessors(self):
        """A temporary hold exposes its payment intent, not a rental."""
        block = BlockedPeriod(
            block_id="BLK-1",
            resource_id="TRL-1",
            start=dt.datetime(2030, 1, 7),
            end=dt.datetime(2030, 1, 8),
            hold=TemporaryHold(payment_intent_id="pi_1"),
            created_at=dt.datetime(2030, 1, 1, tzinfo=dt.UTC),
        )

        assert block.kind == HoldKind.TEMPORARY
        assert block.payment_intent_id == "pi_1"
        assert block.rental_id is None
        assert block.end_date == dt.date(2030, 1, 7)

    def test_only_temporary_holds_expire(self):
        """Manual blocks never expire."""
        created = dt.datetime(2030, 1, 1, tzinfo=dt.UTC)
        later = created + dt.timedelta(hours=2)
        common = {
            "block_id": "BLK-1",
            "start": dt.datetime(2030, 1, 7),
            "end": dt.datetime(2030, 1, 8),
            "created_at": created,
        }
        temporary = BlockedPeriod(hold=TemporaryHold(payment_intent_id="pi_1"), **common)
        manual = BlockedPeriod(hold=ManualHold(), **common)

        assert temporary.is_expired(later, dt.timedelta(hours=1)) is True
        assert manual.is_expired(later, dt.timedelta(hours=1)) is False


# === Error Model Tests ===


class TestErrors:
    """Error bodies and retry classification."""

    def test_conflict_error_response_includes_conflicts(self):
        """ConflictError renders its conflicts into the body."""
        error = ConflictError(details={"resource_id": "TRL-1"})

        response = error.to_error_response()

        assert response.error_code == ErrorCode.DATES_UNAVAILABLE
        assert response.conflicts == []
        assert response.details == {"resource_id": "TRL-1"}
        assert response.recovery

    def test_upstream_error_retryable(self):
        """Timeouts and transient Stripe codes are retryable."""
        assert UpstreamPaymentError(ErrorCode.STRIPE_TIMEOUT).retryable is True
        assert UpstreamPaymentError(stripe_error_code="rate_limit").retryable is True
        assert UpstreamPaymentError(stripe_error_code="card_declined").retryable is False
