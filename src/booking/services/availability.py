"""Availability calculation for trailer calendars.

Pure functions over a CalendarSnapshot; nothing here touches DynamoDB.

Granularity: a day with time slots (from its weekly rule or its exception)
is compared at exact times, so a rental returning Monday 12:00 and one
picked up Monday 12:00 do not conflict. A day without slots is compared as a
whole day, so any entry touching it occupies all of it.
"""

import datetime as dt
import logging
import os
from collections.abc import Callable, Collection, Iterable
from typing import NamedTuple

from booking.models import (
    AvailabilityResult,
    BookingWindow,
    CalendarSnapshot,
    Conflict,
    ConflictKind,
    ErrorCode,
    HoldKind,
    Resource,
    TimeSlot,
    ValidationError,
    Weekday,
    days_touched,
)

logger = logging.getLogger(__name__)

DEFAULT_HOLD_TTL = dt.timedelta(seconds=int(os.getenv("HOLD_MAX_AGE_SECONDS", "3600")))

# Longest horizon list_unavailable_dates will enumerate
MAX_HORIZON_DAYS = 731


class DaySchedule(NamedTuple):
    """Opening hours of a trailer on one date."""

    available: bool
    time_slots: list[TimeSlot]


class Occupancy(NamedTuple):
    """A block or rental occupying part of the calendar."""

    kind: ConflictKind
    entity_id: str
    start: dt.datetime
    end: dt.datetime
    created_at: dt.datetime
    rental_id: str | None = None
    payment_intent_id: str | None = None

    def to_conflict(self) -> Conflict:
        labels = {
            ConflictKind.TEMPORARY_HOLD: "Reserved for a payment in progress",
            ConflictKind.BLOCKED_PERIOD: "Blocked by the owner",
            ConflictKind.RENTAL: "Already rented",
        }
        return Conflict(
            kind=self.kind,
            entity_id=self.entity_id,
            start=self.start,
            end=self.end,
            rental_id=self.rental_id,
            payment_intent_id=self.payment_intent_id,
            message=f"{labels[self.kind]} from {self.start:%Y-%m-%d %H:%M} to {self.end:%Y-%m-%d %H:%M}",
        )


def _midnight(day: dt.date) -> dt.datetime:
    return dt.datetime.combine(day, dt.time.min)


def _utcnow() -> dt.datetime:
    return dt.datetime.now(dt.UTC)


def day_schedule(resource: Resource, day: dt.date) -> DaySchedule:
    """Get the opening hours of a trailer on a date.

    An availability exception replaces the weekly rule. A weekday without a
    rule is closed.
    """
    exception = resource.exception_for(day)
    if exception is not None:
        return DaySchedule(exception.available, exception.time_slots)

    rule = resource.rule_for(Weekday.for_date(day))
    if rule is None or not rule.available:
        return DaySchedule(False, [])
    return DaySchedule(True, list(rule.time_slots))


class AvailabilityCalculator:
    """Decides whether a booking window is free on a trailer's calendar."""

    def __init__(
        self,
        hold_ttl: dt.timedelta = DEFAULT_HOLD_TTL,
        clock: Callable[[], dt.datetime] = _utcnow,
    ) -> None:
        """Initialize availability calculator.

        Args:
            hold_ttl: Age after which a temporary hold no longer occupies dates
            clock: Returns the current UTC time
        """
        self.hold_ttl = hold_ttl
        self.clock = clock

    def is_range_available(
        self,
        calendar: CalendarSnapshot,
        window: BookingWindow,
        exclude_rental_id: str | None = None,
        exclude_payment_intent_id: str | None = None,
        exclude_block_ids: Collection[str] = (),
    ) -> AvailabilityResult:
        """Check whether a window can be booked.

        Args:
            calendar: Snapshot of the trailer's calendar
            window: Requested rental window
            exclude_rental_id: Rental being re-evaluated (ignored, with its block)
            exclude_payment_intent_id: Payment attempt being re-evaluated
                (its hold and pending rental are ignored)
            exclude_block_ids: Blocks about to be replaced by the caller

        Returns:
            AvailabilityResult with every conflict, earliest-created first

        Raises:
            ValidationError: If the window does not end after it starts
        """
        if window.end <= window.start:
            raise ValidationError(
                ErrorCode.INVALID_DATE_RANGE,
                details={
                    "start": window.start.isoformat(),
                    "end": window.end.isoformat(),
                },
            )

        resource = calendar.resource
        conflicts = self._schedule_conflicts(resource, window)

        for entry in self.occupancies(
            calendar,
            exclude_rental_id=exclude_rental_id,
            exclude_payment_intent_id=exclude_payment_intent_id,
            exclude_block_ids=exclude_block_ids,
        ):
            if self.overlaps(resource, (window.start, window.end), (entry.start, entry.end)):
                conflicts.append(entry.to_conflict())

        if conflicts:
            logger.debug(
                "Window %s - %s on %s has %d conflict(s)",
                window.start,
                window.end,
                resource.resource_id,
                len(conflicts),
            )
        return AvailabilityResult(available=not conflicts, conflicts=conflicts)

    def list_unavailable_dates(
        self,
        calendar: CalendarSnapshot,
        start_date: dt.date,
        end_date: dt.date,
    ) -> set[dt.date]:
        """List the dates in [start_date, end_date) that cannot be booked.

        A date counts as unavailable when it is in the past, closed by the
        schedule, or touched by any block or occupying rental.

        Raises:
            ValidationError: If the horizon is empty or too long
        """
        if end_date <= start_date or (end_date - start_date).days > MAX_HORIZON_DAYS:
            raise ValidationError(
                ErrorCode.INVALID_DATE_RANGE,
                details={"start": start_date.isoformat(), "end": end_date.isoformat()},
            )

        resource = calendar.resource
        today = self.clock().date()
        horizon = days_touched(_midnight(start_date), _midnight(end_date))

        unavailable = {
            day
            for day in horizon
            if day < today or not day_schedule(resource, day).available
        }
        for entry in self.occupancies(calendar):
            unavailable.update(
                day
                for day in days_touched(entry.start, entry.end)
                if start_date <= day < end_date
            )
        return unavailable

    def occupancies(
        self,
        calendar: CalendarSnapshot,
        exclude_rental_id: str | None = None,
        exclude_payment_intent_id: str | None = None,
        exclude_block_ids: Collection[str] = (),
    ) -> list[Occupancy]:
        """Collect the entries occupying the calendar, oldest first.

        A pending rental and the temporary hold of the same payment intent
        count once, as the hold. A confirmed rental and its confirmed block
        count once, as the block.
        """
        now = self.clock()
        entries: list[Occupancy] = []
        held_intents: set[str] = set()
        blocked_rentals: set[str] = set()

        for block in calendar.blocks:
            if block.block_id in exclude_block_ids:
                continue
            if block.kind == HoldKind.TEMPORARY:
                if block.is_expired(now, self.hold_ttl):
                    continue
                if block.payment_intent_id == exclude_payment_intent_id:
                    continue
                held_intents.add(block.payment_intent_id or "")
            if block.kind == HoldKind.CONFIRMED:
                if exclude_rental_id and block.rental_id == exclude_rental_id:
                    continue
                blocked_rentals.add(block.rental_id or "")
            entries.append(
                Occupancy(
                    kind=(
                        ConflictKind.TEMPORARY_HOLD
                        if block.kind == HoldKind.TEMPORARY
                        else ConflictKind.BLOCKED_PERIOD
                    ),
                    entity_id=block.block_id,
                    start=block.start,
                    end=block.end,
                    created_at=block.created_at,
                    rental_id=block.rental_id,
                    payment_intent_id=block.payment_intent_id,
                )
            )

        rentals_by_intent = {}
        for rental in calendar.rentals:
            if not rental.status.occupies_calendar or rental.rental_id == exclude_rental_id:
                continue
            if exclude_payment_intent_id and rental.payment_intent_id == exclude_payment_intent_id:
                continue
            if rental.rental_id in blocked_rentals:
                continue
            if rental.payment_intent_id and rental.payment_intent_id in held_intents:
                rentals_by_intent[rental.payment_intent_id] = rental.rental_id
                continue
            window = rental.window
            entries.append(
                Occupancy(
                    kind=ConflictKind.RENTAL,
                    entity_id=rental.rental_id,
                    start=window.start,
                    end=window.end,
                    created_at=rental.created_at,
                    rental_id=rental.rental_id,
                    payment_intent_id=rental.payment_intent_id,
                )
            )

        entries = [
            entry._replace(rental_id=rentals_by_intent[entry.payment_intent_id])
            if entry.kind == ConflictKind.TEMPORARY_HOLD
            and entry.payment_intent_id in rentals_by_intent
            else entry
            for entry in entries
        ]
        return sorted(entries, key=lambda entry: entry.created_at)

    def _schedule_conflicts(
        self, resource: Resource, window: BookingWindow
    ) -> list[Conflict]:
        conflicts = []
        for day in days_touched(window.start, window.end):
            if not day_schedule(resource, day).available:
                conflicts.append(
                    Conflict(
                        kind=ConflictKind.SCHEDULE,
                        start=_midnight(day),
                        end=_midnight(day + dt.timedelta(days=1)),
                        message=f"Not available on {day:%A %Y-%m-%d}",
                    )
                )

        boundaries = [
            ("Pickup", window.start_date, window.pickup_time, False),
            ("Return", window.end_date, window.return_time, True),
        ]
        for label, day, moment, closing in boundaries:
            if moment is None:
                continue
            schedule = day_schedule(resource, day)
            if not schedule.available or not schedule.time_slots:
                continue
            if not any(slot.contains(moment, closing) for slot in schedule.time_slots):
                conflicts.append(
                    Conflict(
                        kind=ConflictKind.TIME_SLOT,
                        start=dt.datetime.combine(day, moment),
                        end=dt.datetime.combine(day, moment),
                        message=(
                            f"{label} time {moment:%H:%M} on {day:%Y-%m-%d} is outside "
                            f"the opening hours {_format_slots(schedule.time_slots)}"
                        ),
                    )
                )
        return conflicts

    def overlaps(
        self,
        resource: Resource,
        first: tuple[dt.datetime, dt.datetime],
        second: tuple[dt.datetime, dt.datetime],
    ) -> bool:
        """Whether two calendar intervals collide at the trailer's granularity."""
        first_start, first_end = self._expand(resource, *first)
        second_start, second_end = self._expand(resource, *second)
        return first_start < second_end and second_start < first_end

    def _expand(
        self, resource: Resource, start: dt.datetime, end: dt.datetime
    ) -> tuple[dt.datetime, dt.datetime]:
        """Widen an interval to whole days on days without time slots."""
        if not day_schedule(resource, start.date()).time_slots:
            start = _midnight(start.date())
        touched = days_touched(start, end)
        last_day = touched[-1] if touched else start.date()
        if not day_schedule(resource, last_day).time_slots:
            end = max(end, _midnight(last_day + dt.timedelta(days=1)))
        return start, end


def _format_slots(slots: Iterable[TimeSlot]) -> str:
    return ", ".join(f"{slot.start:%H:%M}-{slot.end:%H:%M}" for slot in slots)
