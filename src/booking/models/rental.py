"""Rental models for the reservation lifecycle."""

import datetime as dt

from pydantic import BaseModel, ConfigDict, Field

from .calendar import BlockedPeriod, BookingWindow
from .enums import PaymentStatus, RentalStatus
from .pricing import PriceBreakdown


class Rental(BaseModel):
    """A reservation of a trailer.

    Never deleted; cancellation is a status transition. Amounts are in EUR
    cents.
    """

    model_config = ConfigDict(strict=True)

    rental_id: str = Field(..., description="Unique rental ID")
    resource_id: str = Field(..., description="Rented trailer")
    renter_id: str = Field(..., description="User renting the trailer")
    owner_id: str = Field(..., description="Trailer owner (lessor)")
    start_date: dt.date
    end_date: dt.date
    pickup_time: dt.time | None = None
    return_time: dt.time | None = None
    status: RentalStatus
    payment_intent_id: str | None = Field(
        default=None, description="Stripe PaymentIntent ID (pi_xxx)"
    )
    payment_id: str | None = Field(default=None, description="Reference to Payment")
    total_price: int = Field(..., ge=0, description="Amount charged to the renter in EUR cents")
    service_fee: int = Field(default=0, ge=0, description="Renter service fee in EUR cents")
    created_at: dt.datetime
    updated_at: dt.datetime
    confirmed_at: dt.datetime | None = None
    cancelled_at: dt.datetime | None = None
    cancellation_reason: str | None = None
    cancelled_by: str | None = None
    note: str | None = Field(default=None, max_length=500, description="Renter note to the owner")

    @property
    def window(self) -> BookingWindow:
        return BookingWindow(
            start_date=self.start_date,
            end_date=self.end_date,
            pickup_time=self.pickup_time,
            return_time=self.return_time,
        )

    def is_party(self, user_id: str) -> bool:
        """Whether the user is the renter or the trailer owner."""
        return user_id in (self.renter_id, self.owner_id)


class ReservationRequest(BaseModel):
    """Data required to start a reservation."""

    model_config = ConfigDict(strict=True)

    resource_id: str
    renter_id: str
    window: BookingWindow
    customer_ref: str | None = Field(
        default=None, description="Stripe customer ID of the renter (cus_xxx)"
    )
    note: str | None = Field(default=None, max_length=500)


class ReservationReceipt(BaseModel):
    """What a client needs to start the payment of a new reservation."""

    model_config = ConfigDict(strict=True)

    rental: Rental
    payment_id: str
    payment_intent_id: str
    client_secret: str | None = Field(
        default=None, description="PaymentIntent client secret for Stripe.js"
    )
    price: PriceBreakdown
    hold: BlockedPeriod


class Cancellation(BaseModel):
    """Result of cancelling a reservation."""

    model_config = ConfigDict(strict=True)

    rental_id: str
    status: RentalStatus
    payment_status: PaymentStatus | None = None
    reason: str
    cancelled_by: str
    cancelled_at: dt.datetime
    hold_removed: bool = Field(
        default=False, description="Whether a temporary hold was deleted"
    )
    block_released: bool = Field(
        default=False, description="Whether a confirmed block was deleted"
    )


class SweepResult(BaseModel):
    """Outcome of an expired hold sweep."""

    model_config = ConfigDict(strict=True)

    removed_count: int = 0
    removed_blocks: list[BlockedPeriod] = Field(default_factory=list)
    expired_rentals: list[str] = Field(
        default_factory=list, description="Pending rentals cancelled for non-payment"
    )
