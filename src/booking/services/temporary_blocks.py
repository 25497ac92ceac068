"""Temporary calendar holds for in-flight payments.

A hold is a BlockedPeriod tagged {temporary, payment_intent_id}. It is
created inside the calendar's atomic check-then-insert, and afterwards only
changed by compare-and-swap on that tag: finalize rewrites it to
{confirmed, rental_id}, remove and the reaper delete it. Whichever of those
commits first wins; the others affect nothing.

Owners block dates through the same check-then-insert, for one trailer or,
with an owner-wide block, for all of theirs at once.
"""

import datetime as dt
import logging
from collections.abc import Callable, Collection
from typing import Any

from booking.models import (
    BlockedPeriod,
    BookingWindow,
    CalendarSnapshot,
    Conflict,
    ConflictError,
    ConflictKind,
    DayPart,
    ErrorCode,
    HoldKind,
    ManualHold,
    NotFoundError,
    TemporaryHold,
    ValidationError,
    default_part_slot,
)
from booking.utils.logging import log_hold_operation

from .availability import AvailabilityCalculator
from .calendar_store import CalendarStore
from .payment_service import generate_id

logger = logging.getLogger(__name__)

OCCUPANCY_CONFLICTS = (
    ConflictKind.TEMPORARY_HOLD,
    ConflictKind.BLOCKED_PERIOD,
    ConflictKind.RENTAL,
)

# Part-of-day blocks write a period per day, in one transaction
MAX_PART_BLOCK_DAYS = 31


class _ExistingHold(Exception):
    """A hold for the payment intent is already on the calendar."""

    def __init__(self, block: BlockedPeriod) -> None:
        super().__init__(block.block_id)
        self.block = block


def _block_windows(
    start_date: dt.date, end_date: dt.date, parts: Collection[DayPart] | None
) -> list[BookingWindow]:
    """Windows an owner block covers, merging adjacent parts of a day."""
    if end_date < start_date:
        raise ValidationError(
            ErrorCode.INVALID_DATE_RANGE,
            details={"start": start_date.isoformat(), "end": end_date.isoformat()},
        )
    if parts is None:
        return [BookingWindow(start_date=start_date, end_date=end_date + dt.timedelta(days=1))]

    days = (end_date - start_date).days + 1
    if not parts or days > MAX_PART_BLOCK_DAYS:
        raise ValidationError(
            ErrorCode.INVALID_DATE_RANGE,
            details={
                "start": start_date.isoformat(),
                "end": end_date.isoformat(),
                "parts": ",".join(part.value for part in parts),
            },
        )

    spans: list[list[dt.time]] = []
    for part in DayPart:
        if part not in parts:
            continue
        slot = default_part_slot(part)
        if spans and spans[-1][1] == slot.start:
            spans[-1][1] = slot.end
        else:
            spans.append([slot.start, slot.end])

    return [
        BookingWindow(start_date=day, end_date=day, pickup_time=start, return_time=end)
        for day in (start_date + dt.timedelta(days=offset) for offset in range(days))
        for start, end in spans
    ]


def _utcnow() -> dt.datetime:
    return dt.datetime.now(dt.UTC)


class TemporaryBlockManager:
    """Places, finalizes and removes calendar holds."""

    def __init__(
        self,
        store: CalendarStore,
        calculator: AvailabilityCalculator | None = None,
        clock: Callable[[], dt.datetime] = _utcnow,
    ) -> None:
        """Initialize temporary block manager.

        Args:
            store: Calendar persistence
            calculator: Availability rules, built with the same clock if omitted
            clock: Returns the current UTC time
        """
        self.store = store
        self.calculator = calculator or AvailabilityCalculator(clock=clock)
        self.clock = clock

    def find_hold(
        self, snapshot: CalendarSnapshot, payment_intent_id: str
    ) -> BlockedPeriod | None:
        """Get the live hold of a payment intent from a snapshot."""
        now = self.clock()
        for block in snapshot.blocks:
            if (
                block.payment_intent_id == payment_intent_id
                and not block.is_expired(now, self.calculator.hold_ttl)
            ):
                return block
        return None

    def prepare_hold(
        self,
        snapshot: CalendarSnapshot,
        window: BookingWindow,
        payment_intent_id: str,
        user_id: str | None = None,
        supersede: bool = False,
    ) -> tuple[BlockedPeriod, list[dict[str, Any]]]:
        """Check a window against a snapshot and build the hold's writes.

        Args:
            snapshot: Fresh calendar snapshot
            window: Window to hold
            payment_intent_id: Payment attempt the hold belongs to
            user_id: User placing the hold
            supersede: Replace this user's other live holds that overlap the
                window instead of reporting them as conflicts

        Returns:
            Tuple of (new hold, transaction items)

        Raises:
            ConflictError: If the window is not available
        """
        resource = snapshot.resource
        superseded: list[BlockedPeriod] = []
        if supersede and user_id:
            now = self.clock()
            superseded = [
                block
                for block in snapshot.blocks
                if block.kind == HoldKind.TEMPORARY
                and block.user_id == user_id
                and block.payment_intent_id != payment_intent_id
                and not block.is_expired(now, self.calculator.hold_ttl)
                and self.calculator.overlaps(
                    resource, (window.start, window.end), (block.start, block.end)
                )
            ]

        result = self.calculator.is_range_available(
            snapshot,
            window,
            exclude_block_ids={block.block_id for block in superseded},
        )
        if not result.available:
            raise ConflictError(
                ErrorCode.DATES_UNAVAILABLE,
                details={"resource_id": resource.resource_id},
                conflicts=result.conflicts,
            )

        block = BlockedPeriod(
            block_id=generate_id("BLK"),
            resource_id=resource.resource_id,
            user_id=user_id,
            start=window.start,
            end=window.end,
            hold=TemporaryHold(payment_intent_id=payment_intent_id),
            created_at=self.clock(),
        )
        ops = [self.store.put_block_op(block)]
        ops.extend(self.store.delete_temporary_block_op(old) for old in superseded)
        if superseded:
            logger.debug(
                "Hold for %s supersedes %s",
                payment_intent_id,
                ", ".join(old.block_id for old in superseded),
            )
        return block, ops

    def place_temporary_block(
        self,
        resource_id: str,
        window: BookingWindow,
        payment_intent_id: str,
        user_id: str | None = None,
    ) -> BlockedPeriod:
        """Hold a window on a trailer's calendar for a payment attempt.

        Calling it again for the same payment intent returns the existing
        hold.

        Raises:
            ConflictError: If the window is unavailable or the race was lost
            NotFoundError: If the trailer does not exist
            ValidationError: If the window does not end after it starts
        """
        placed: dict[str, BlockedPeriod] = {}

        def build(snapshot: CalendarSnapshot) -> list[dict[str, Any]]:
            existing = self.find_hold(snapshot, payment_intent_id)
            if existing is not None:
                raise _ExistingHold(existing)
            block, ops = self.prepare_hold(
                snapshot, window, payment_intent_id, user_id=user_id, supersede=True
            )
            placed["block"] = block
            return ops

        try:
            self.store.reserve(resource_id, build)
        except _ExistingHold as e:
            log_hold_operation(
                logger,
                "place",
                resource_id=resource_id,
                block_id=e.block.block_id,
                payment_intent_id=payment_intent_id,
                result="existing",
            )
            return e.block
        except ConflictError as e:
            log_hold_operation(
                logger,
                "place",
                resource_id=resource_id,
                payment_intent_id=payment_intent_id,
                result="conflict",
                conflicts=len(e.conflicts),
            )
            raise

        block = placed["block"]
        log_hold_operation(
            logger,
            "place",
            resource_id=resource_id,
            block_id=block.block_id,
            payment_intent_id=payment_intent_id,
            result="placed",
        )
        return block

    def finalize_temporary_block(
        self,
        payment_intent_id: str,
        rental_id: str,
        resource_id: str | None = None,
    ) -> bool:
        """Turn the holds of a payment intent into confirmed blocks.

        Returns:
            True if a hold was finalized now or the rental already has its
            confirmed block, False if no hold was left to finalize
        """
        now = self.clock()
        holds = [
            block
            for block in self.store.find_blocks_for_payment_intent(payment_intent_id, resource_id)
            if block.kind == HoldKind.TEMPORARY
        ]

        finalized = []
        for hold in holds:
            block = self.store.finalize_block(hold, rental_id, now)
            if block is not None:
                finalized.append(block)
                log_hold_operation(
                    logger,
                    "finalize",
                    resource_id=hold.resource_id,
                    block_id=hold.block_id,
                    payment_intent_id=payment_intent_id,
                    rental_id=rental_id,
                    result="finalized",
                )
        if finalized:
            return True

        if resource_id is None:
            rental = self.store.get_rental(rental_id)
            resource_id = rental.resource_id if rental else None
        if resource_id and self.store.find_blocks_for_rental(rental_id, resource_id):
            log_hold_operation(
                logger,
                "finalize",
                resource_id=resource_id,
                payment_intent_id=payment_intent_id,
                rental_id=rental_id,
                result="already_finalized",
            )
            return True

        log_hold_operation(
            logger,
            "finalize",
            resource_id=resource_id,
            payment_intent_id=payment_intent_id,
            rental_id=rental_id,
            result="not_found",
        )
        return False

    def remove_temporary_block(
        self, payment_intent_id: str, resource_id: str | None = None
    ) -> bool:
        """Delete the holds of a payment intent that are still temporary.

        Returns:
            True if this call removed a hold
        """
        holds = [
            block
            for block in self.store.find_blocks_for_payment_intent(payment_intent_id, resource_id)
            if block.kind == HoldKind.TEMPORARY
        ]
        removed = [hold for hold in holds if self.store.delete_temporary_block(hold)]

        for hold in removed:
            log_hold_operation(
                logger,
                "remove",
                resource_id=hold.resource_id,
                block_id=hold.block_id,
                payment_intent_id=payment_intent_id,
                result="removed",
            )
        if not removed:
            logger.debug("No temporary hold left for payment intent %s", payment_intent_id)
        return bool(removed)

    def release_confirmed_block(self, rental_id: str, resource_id: str) -> bool:
        """Delete the confirmed block of a cancelled rental.

        Returns:
            True if a block was deleted
        """
        released = [
            block
            for block in self.store.find_blocks_for_rental(rental_id, resource_id)
            if self.store.delete_confirmed_block(block)
        ]
        for block in released:
            log_hold_operation(
                logger,
                "release",
                resource_id=resource_id,
                block_id=block.block_id,
                rental_id=rental_id,
                result="released",
            )
        return bool(released)

    def block_dates(
        self,
        resource_id: str | None,
        start_date: dt.date,
        end_date: dt.date,
        reason: str | None = None,
        user_id: str | None = None,
        parts: Collection[DayPart] | None = None,
    ) -> list[BlockedPeriod]:
        """Block days [start_date, end_date] for the owner.

        Without parts the whole days are blocked, as one period. With parts
        only those parts of each day are, at their default windows, one
        period per day and run of adjacent parts. Without resource_id the
        block is owner-wide: it covers every trailer of user_id and is
        checked against all of their calendars in one commit.

        Closed days may be blocked; times occupied by holds, blocks or
        rentals may not.

        Args:
            resource_id: Trailer to block, or None for all of the owner's
            start_date: First blocked day
            end_date: Last blocked day (inclusive)
            reason: Free-text note
            user_id: Owner placing the block; required for owner-wide blocks
            parts: Parts of the day to block instead of whole days

        Returns:
            The stored blocked periods

        Raises:
            ValidationError: If the range is reversed, too long for part-day
                blocks, or parts is empty
            ConflictError: If an occupied time is in the range
            NotFoundError: If the trailer does not exist or is not user_id's
        """
        windows = _block_windows(start_date, end_date, parts)
        placed: list[BlockedPeriod] = []

        def new_blocks(owner_id: str) -> list[BlockedPeriod]:
            now = self.clock()
            return [
                BlockedPeriod(
                    block_id=generate_id("BLK"),
                    resource_id=resource_id,
                    user_id=owner_id,
                    start=window.start,
                    end=window.end,
                    hold=ManualHold(),
                    reason=reason,
                    created_at=now,
                )
                for window in windows
            ]

        def build(snapshots: list[CalendarSnapshot]) -> list[dict[str, Any]]:
            conflicts = []
            for snapshot in snapshots:
                conflicts.extend(self._occupied(snapshot, windows))
            if conflicts:
                raise ConflictError(
                    ErrorCode.DATES_UNAVAILABLE,
                    details=(
                        {"resource_id": resource_id}
                        if resource_id
                        else {"owner_id": user_id or ""}
                    ),
                    conflicts=conflicts,
                )
            placed[:] = new_blocks(user_id or snapshots[0].resource.owner_id)
            return [self.store.put_block_op(block) for block in placed]

        if resource_id is None:
            if not user_id:
                raise ValueError("owner-wide blocks need the owner's user_id")
            self.store.reserve_owner(user_id, build)
        else:

            def build_one(snapshot: CalendarSnapshot) -> list[dict[str, Any]]:
                if user_id and snapshot.resource.owner_id != user_id:
                    raise NotFoundError(
                        ErrorCode.RESOURCE_NOT_FOUND, details={"resource_id": resource_id}
                    )
                return build([snapshot])

            self.store.reserve(resource_id, build_one)

        for block in placed:
            log_hold_operation(
                logger,
                "block",
                resource_id=resource_id,
                block_id=block.block_id,
                user_id=block.user_id,
                result="placed",
            )
        return placed

    def _occupied(
        self, snapshot: CalendarSnapshot, windows: list[BookingWindow]
    ) -> list[Conflict]:
        """Occupancy conflicts of windows on one calendar, schedule aside."""
        conflicts = []
        for window in windows:
            result = self.calculator.is_range_available(snapshot, window)
            conflicts.extend(c for c in result.conflicts if c.kind in OCCUPANCY_CONFLICTS)
        return conflicts

    def get_blocks_for_payment_intent(self, payment_intent_id: str) -> list[BlockedPeriod]:
        """Get the holds of a payment intent across all trailers."""
        return self.store.find_blocks_for_payment_intent(payment_intent_id)
