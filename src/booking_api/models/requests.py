"""API request bodies.

strict=False allows string-to-date and string-to-time coercion from JSON.
"""

import datetime as dt

from pydantic import BaseModel, ConfigDict, Field

from booking.models import BookingWindow, DayPart


class WindowRequest(BaseModel):
    """Rental window as sent by clients."""

    model_config = ConfigDict(strict=False)

    start_date: dt.date = Field(..., description="Pickup date (YYYY-MM-DD)", examples=["2030-07-15"])
    end_date: dt.date = Field(..., description="Return date (YYYY-MM-DD)", examples=["2030-07-18"])
    pickup_time: dt.time | None = Field(
        default=None, description="Pickup time (HH:MM)", examples=["10:00"]
    )
    return_time: dt.time | None = Field(
        default=None, description="Return time (HH:MM)", examples=["16:00"]
    )

    def to_window(self) -> BookingWindow:
        return BookingWindow(
            start_date=self.start_date,
            end_date=self.end_date,
            pickup_time=self.pickup_time,
            return_time=self.return_time,
        )


class AvailabilityCheckRequest(WindowRequest):
    """Request to check whether a window can be booked."""

    exclude_rental_id: str | None = Field(
        default=None, description="Rental being re-evaluated, ignored in the check"
    )


class ReservationCreateRequest(WindowRequest):
    """Request to reserve a trailer.

    The renter is not included; it is taken from the x-user-sub header.
    """

    model_config = ConfigDict(
        strict=False,
        json_schema_extra={
            "examples": [
                {
                    "resource_id": "TRL-001",
                    "start_date": "2030-07-15",
                    "end_date": "2030-07-18",
                    "customer_ref": "cus_123",
                }
            ]
        },
    )

    resource_id: str = Field(..., description="Trailer to reserve")
    customer_ref: str | None = Field(
        default=None, description="Stripe customer ID of the renter (cus_xxx)"
    )
    note: str | None = Field(default=None, max_length=500)


class ConfirmRequest(BaseModel):
    """Request to confirm a reservation after payment."""

    model_config = ConfigDict(strict=False)

    payment_intent_id: str = Field(..., description="Stripe PaymentIntent ID (pi_xxx)")


class CancelRequest(BaseModel):
    """Request to cancel a reservation."""

    model_config = ConfigDict(strict=False)

    reason: str = Field(..., min_length=1, max_length=500, examples=["Plans changed"])


class BlockedPeriodCreateRequest(BaseModel):
    """Request to block days of one trailer, or of all the owner's trailers.

    With all_day unset, only the flagged parts of each day are blocked.
    """

    model_config = ConfigDict(
        strict=False,
        json_schema_extra={
            "examples": [
                {
                    "resource_id": "TRL-001",
                    "start_date": "2030-08-01",
                    "end_date": "2030-08-03",
                    "reason": "Maintenance",
                },
                {
                    "start_date": "2030-08-10",
                    "end_date": "2030-08-10",
                    "all_day": False,
                    "morning": True,
                },
            ]
        },
    )

    resource_id: str | None = Field(
        default=None, description="Trailer to block; omit to block all of the owner's trailers"
    )
    start_date: dt.date = Field(..., description="First blocked day (YYYY-MM-DD)")
    end_date: dt.date = Field(..., description="Last blocked day, inclusive (YYYY-MM-DD)")
    reason: str | None = Field(default=None, max_length=500)
    all_day: bool = Field(default=True, description="Block whole days")
    morning: bool = Field(default=False, description="Block 08:00-12:00")
    afternoon: bool = Field(default=False, description="Block 12:00-17:00")
    evening: bool = Field(default=False, description="Block 17:00-22:00")

    def day_parts(self) -> list[DayPart] | None:
        """Parts of the day to block, or None for whole days."""
        if self.all_day:
            return None
        flags = {
            DayPart.MORNING: self.morning,
            DayPart.AFTERNOON: self.afternoon,
            DayPart.EVENING: self.evening,
        }
        return [part for part, selected in flags.items() if selected]
