"""API response bodies not covered by the domain models."""

import datetime as dt

from pydantic import BaseModel, Field


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = Field(..., examples=["healthy"])
    timestamp: str
    version: str


class UnavailableDatesResponse(BaseModel):
    """Dates of a trailer that cannot be booked, for calendar display."""

    resource_id: str
    start: dt.date
    end: dt.date = Field(..., description="End of the horizon, exclusive")
    unavailable_dates: list[dt.date] = Field(default_factory=list)


class HoldReleaseResponse(BaseModel):
    """Outcome of releasing an abandoned checkout."""

    payment_intent_id: str
    released: bool = Field(..., description="Whether a temporary hold was removed")


class WebhookResponse(BaseModel):
    """Acknowledgement of a Stripe event."""

    received: bool
    event_id: str | None = None
    event_type: str | None = None
    processing_result: str = Field(..., examples=["success", "duplicate", "skipped", "error"])
    message: str | None = None
