"""Payment models for rental transactions."""

import datetime as dt
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from .enums import PaymentStatus, RentalStatus


class Payment(BaseModel):
    """Payment attached one-to-one to a rental.

    Amounts are stored in EUR cents.
    """

    model_config = ConfigDict(strict=True)

    payment_id: str = Field(..., description="Unique payment ID")
    rental_id: str = Field(..., description="Reference to Rental")
    amount: int = Field(..., ge=0, description="Amount in EUR cents")
    currency: str = Field(default="EUR", description="Currency code")
    status: PaymentStatus = Field(..., description="Payment status")
    provider_transaction_id: str = Field(
        ..., description="External transaction reference (PaymentIntent ID)"
    )
    created_at: dt.datetime = Field(..., description="Creation timestamp")
    completed_at: dt.datetime | None = Field(default=None, description="Completion timestamp")
    error_message: str | None = Field(default=None, description="Error details if failed")


class PaymentIntent(BaseModel):
    """The parts of a Stripe PaymentIntent this system relies on."""

    model_config = ConfigDict(strict=True)

    id: str = Field(..., examples=["pi_3ABC123DEF456"])
    status: str = Field(..., examples=["requires_payment_method", "succeeded"])
    amount: int | None = None
    client_secret: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)


# Stripe PaymentIntent statuses that leave the rental waiting for payment
PENDING_INTENT_STATUSES = {
    "processing",
    "requires_payment_method",
    "requires_confirmation",
    "requires_action",
    "requires_capture",
}


def map_intent_status(provider_status: str) -> tuple[PaymentStatus, RentalStatus]:
    """Map a Stripe PaymentIntent status to payment and rental statuses.

    Args:
        provider_status: PaymentIntent status string from Stripe

    Returns:
        Tuple of (payment status, rental status)
    """
    if provider_status == "succeeded":
        return PaymentStatus.COMPLETED, RentalStatus.CONFIRMED
    if provider_status in PENDING_INTENT_STATUSES or provider_status.startswith("requires_"):
        return PaymentStatus.PENDING, RentalStatus.PENDING
    return PaymentStatus.FAILED, RentalStatus.CANCELLED
