"""Calendar entry models: booking windows, blocked periods and conflicts.

Calendar times are naive datetimes in the trailer's local time. Creation
timestamps are timezone-aware UTC.
"""

import datetime as dt
from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field

from .enums import ConflictKind, HoldKind


class BookingWindow(BaseModel):
    """A requested or booked rental period.

    Without times the window covers whole days, [start_date, end_date).
    With a return time the window ends on end_date at that time, so a
    same-day rental has start_date == end_date.
    """

    model_config = ConfigDict(strict=True, frozen=True)

    start_date: dt.date = Field(..., description="Pickup date")
    end_date: dt.date = Field(..., description="Return date")
    pickup_time: dt.time | None = Field(default=None, description="Pickup time of day")
    return_time: dt.time | None = Field(default=None, description="Return time of day")

    @property
    def start(self) -> dt.datetime:
        return dt.datetime.combine(self.start_date, self.pickup_time or dt.time.min)

    @property
    def end(self) -> dt.datetime:
        return dt.datetime.combine(self.end_date, self.return_time or dt.time.min)

    @property
    def is_timed(self) -> bool:
        """Whether pickup or return times were requested."""
        return self.pickup_time is not None or self.return_time is not None

    @property
    def rental_days(self) -> int:
        """Number of calendar days the window touches (at least 1)."""
        return max(1, len(days_touched(self.start, self.end)))


def days_touched(start: dt.datetime, end: dt.datetime) -> list[dt.date]:
    """List the dates an interval [start, end) touches.

    An interval ending exactly at midnight does not touch the day it ends on.
    """
    if end <= start:
        return []
    last = (end - dt.timedelta(microseconds=1)).date()
    return [
        start.date() + dt.timedelta(days=offset)
        for offset in range((last - start.date()).days + 1)
    ]


class TemporaryHold(BaseModel):
    """Hold for an in-flight payment attempt."""

    model_config = ConfigDict(strict=True, frozen=True)

    kind: Literal[HoldKind.TEMPORARY] = HoldKind.TEMPORARY
    payment_intent_id: str


class ConfirmedHold(BaseModel):
    """Permanent block backing a confirmed rental."""

    model_config = ConfigDict(strict=True, frozen=True)

    kind: Literal[HoldKind.CONFIRMED] = HoldKind.CONFIRMED
    rental_id: str


class ManualHold(BaseModel):
    """Block placed by the owner (maintenance, private use)."""

    model_config = ConfigDict(strict=True, frozen=True)

    kind: Literal[HoldKind.MANUAL] = HoldKind.MANUAL


Hold = Annotated[
    Union[TemporaryHold, ConfirmedHold, ManualHold],
    Field(discriminator="kind"),
]


class BlockedPeriod(BaseModel):
    """An explicit block on a trailer's calendar.

    Owner-wide blocks have no resource_id and apply to every trailer of
    user_id.
    """

    model_config = ConfigDict(strict=True)

    block_id: str = Field(..., description="Unique block ID")
    resource_id: str | None = Field(default=None, description="Blocked trailer")
    user_id: str | None = Field(
        default=None, description="User who placed the block, or owner for owner-wide blocks"
    )
    start: dt.datetime = Field(..., description="Start of the block (local time)")
    end: dt.datetime = Field(..., description="End of the block (local time), exclusive")
    hold: Hold = Field(..., description="Provenance of the block")
    reason: str | None = Field(default=None, description="Free-text note")
    created_at: dt.datetime = Field(..., description="Creation timestamp (UTC)")

    @property
    def start_date(self) -> dt.date:
        return self.start.date()

    @property
    def end_date(self) -> dt.date:
        """Last date covered by the block (inclusive)."""
        touched = days_touched(self.start, self.end)
        return touched[-1] if touched else self.start.date()

    @property
    def kind(self) -> HoldKind:
        return self.hold.kind

    @property
    def payment_intent_id(self) -> str | None:
        return self.hold.payment_intent_id if isinstance(self.hold, TemporaryHold) else None

    @property
    def rental_id(self) -> str | None:
        return self.hold.rental_id if isinstance(self.hold, ConfirmedHold) else None

    def is_expired(self, now: dt.datetime, ttl: dt.timedelta) -> bool:
        """Whether a temporary hold is older than the hold TTL."""
        return isinstance(self.hold, TemporaryHold) and self.created_at <= now - ttl


def closed_date_range(start_date: dt.date, end_date: dt.date) -> tuple[dt.datetime, dt.datetime]:
    """Convert an inclusive [start_date, end_date] range to a half-open interval."""
    return (
        dt.datetime.combine(start_date, dt.time.min),
        dt.datetime.combine(end_date + dt.timedelta(days=1), dt.time.min),
    )


class Conflict(BaseModel):
    """Why part of a requested window is unavailable."""

    model_config = ConfigDict(strict=True)

    kind: ConflictKind = Field(..., description="What caused the conflict")
    entity_id: str | None = Field(
        default=None, description="Conflicting block or rental ID (none for schedule rules)"
    )
    start: dt.datetime = Field(..., description="Start of the conflicting range")
    end: dt.datetime = Field(..., description="End of the conflicting range, exclusive")
    rental_id: str | None = Field(default=None, description="Related rental, if any")
    payment_intent_id: str | None = Field(default=None, description="Related payment intent, if any")
    message: str = Field(..., description="Human-readable explanation")


class AvailabilityResult(BaseModel):
    """Outcome of an availability check."""

    model_config = ConfigDict(strict=True)

    available: bool
    conflicts: list[Conflict] = Field(default_factory=list)
