"""Trailer model with its recurring weekly availability.

Owners configure these as JSON, so time-of-day values are accepted as
"HH:MM" strings and the models are not strict.
"""

import datetime as dt

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from .enums import DayPart, Weekday

MAX_SLOTS_PER_DAY = 3

# Windows used for an exception part that has no explicit times
DEFAULT_MORNING = ("08:00", "12:00")
DEFAULT_AFTERNOON = ("12:00", "17:00")
DEFAULT_EVENING = ("17:00", "22:00")

DEFAULT_PART_WINDOWS = {
    DayPart.MORNING: DEFAULT_MORNING,
    DayPart.AFTERNOON: DEFAULT_AFTERNOON,
    DayPart.EVENING: DEFAULT_EVENING,
}


class TimeSlot(BaseModel):
    """A pickup/return window [start, end) in the trailer's local time."""

    start: dt.time = Field(..., description="Window start (HH:MM)", examples=["09:00"])
    end: dt.time = Field(..., description="Window end (HH:MM), exclusive", examples=["18:00"])

    @model_validator(mode="after")
    def _check_order(self) -> "TimeSlot":
        if self.end <= self.start:
            raise ValueError("time slot end must be after its start")
        return self

    def contains(self, moment: dt.time, closing: bool = False) -> bool:
        """Whether a pickup or return time falls in this window.

        Pickups must happen before the window closes. With closing=True the
        end itself is accepted, so a return at closing time fits.
        """
        if closing:
            return self.start <= moment <= self.end
        return self.start <= moment < self.end


def default_part_slot(part: DayPart) -> TimeSlot:
    """Default window of a part of the day."""
    start, end = DEFAULT_PART_WINDOWS[part]
    return TimeSlot(start=start, end=end)


def check_slots(slots: list[TimeSlot]) -> list[TimeSlot]:
    """Enforce the per-day slot limit and slot ordering."""
    if len(slots) > MAX_SLOTS_PER_DAY:
        raise ValueError(f"at most {MAX_SLOTS_PER_DAY} time slots per day")
    for previous, current in zip(slots, slots[1:]):
        if current.start < previous.end:
            raise ValueError("time slots must be ordered and must not overlap")
    return slots


class WeeklyAvailabilityRule(BaseModel):
    """Availability of a trailer on one weekday.

    A rule without time slots means the whole day is available.
    """

    model_config = ConfigDict(
        json_schema_extra={
            "examples": [
                {
                    "day": "monday",
                    "available": True,
                    "time_slots": [{"start": "09:00", "end": "18:00"}],
                }
            ]
        }
    )

    day: Weekday = Field(..., description="Weekday the rule applies to")
    available: bool = Field(default=True, description="Whether the trailer can be rented that day")
    time_slots: list[TimeSlot] = Field(
        default_factory=list,
        description="Up to three ordered, disjoint pickup/return windows",
    )

    @field_validator("time_slots")
    @classmethod
    def _validate_slots(cls, slots: list[TimeSlot]) -> list[TimeSlot]:
        return check_slots(slots)


class AvailabilityException(BaseModel):
    """One-off override of the weekly rule for a specific date.

    The date is unavailable only when morning, afternoon and evening are all
    closed. Open parts become the day's time slots.
    """

    date: dt.date = Field(..., description="Date the override applies to")
    morning: bool = Field(default=True)
    afternoon: bool = Field(default=True)
    evening: bool = Field(default=True)
    morning_slot: TimeSlot | None = None
    afternoon_slot: TimeSlot | None = None
    evening_slot: TimeSlot | None = None

    @property
    def available(self) -> bool:
        return self.morning or self.afternoon or self.evening

    @property
    def time_slots(self) -> list[TimeSlot]:
        """Open parts of the day as pickup/return windows."""
        parts = [
            (self.morning, self.morning_slot, DayPart.MORNING),
            (self.afternoon, self.afternoon_slot, DayPart.AFTERNOON),
            (self.evening, self.evening_slot, DayPart.EVENING),
        ]
        return [slot or default_part_slot(part) for is_open, slot, part in parts if is_open]


class Resource(BaseModel):
    """A rentable trailer and its calendar configuration.

    Prices are in EUR cents.
    """

    resource_id: str = Field(..., description="Unique trailer ID")
    owner_id: str = Field(..., description="User ID of the trailer owner (lessor)")
    title: str = Field(default="", description="Listing title")
    price_per_day: int = Field(..., ge=0, description="Daily rate in EUR cents")
    price_per_week: int | None = Field(default=None, ge=0, description="Weekly rate in EUR cents")
    price_per_month: int | None = Field(
        default=None, ge=0, description="Monthly (30 day) rate in EUR cents"
    )
    min_rental_days: int | None = Field(default=None, ge=1)
    max_rental_days: int | None = Field(default=None, ge=1)
    weekly_availability: list[WeeklyAvailabilityRule] = Field(default_factory=list)
    availability_exceptions: list[AvailabilityException] = Field(default_factory=list)

    @field_validator("weekly_availability")
    @classmethod
    def _one_rule_per_day(
        cls, rules: list[WeeklyAvailabilityRule]
    ) -> list[WeeklyAvailabilityRule]:
        days = [rule.day for rule in rules]
        if len(days) != len(set(days)):
            raise ValueError("at most one weekly rule per weekday")
        return rules

    @field_validator("availability_exceptions")
    @classmethod
    def _one_exception_per_date(
        cls, exceptions: list[AvailabilityException]
    ) -> list[AvailabilityException]:
        dates = [exception.date for exception in exceptions]
        if len(dates) != len(set(dates)):
            raise ValueError("at most one availability exception per date")
        return exceptions

    def rule_for(self, day: Weekday) -> WeeklyAvailabilityRule | None:
        """Get the weekly rule for a weekday, if configured."""
        for rule in self.weekly_availability:
            if rule.day == day:
                return rule
        return None

    def exception_for(self, date: dt.date) -> AvailabilityException | None:
        """Get the availability exception for a date, if any."""
        for exception in self.availability_exceptions:
            if exception.date == date:
                return exception
        return None
