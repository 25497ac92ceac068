"""Sweeper for temporary holds whose payment never completed."""

import datetime as dt
import logging
from collections.abc import Callable

from botocore.exceptions import BotoCoreError, ClientError

from booking.models import HoldKind, NotFoundError, PaymentStatus, RentalStatus, SweepResult
from booking.utils.logging import log_hold_operation

from .availability import DEFAULT_HOLD_TTL
from .calendar_store import CalendarStore
from .payment_service import PaymentService

logger = logging.getLogger(__name__)

DEFAULT_MAX_AGE = dt.timedelta(hours=1)
EXPIRY_REASON = "Payment not completed in time"


def _utcnow() -> dt.datetime:
    return dt.datetime.now(dt.UTC)


class ExpiredHoldReaper:
    """Deletes stale temporary holds and expires the rentals left behind.

    Every delete and every rental transition is conditional, so sweeps may
    overlap with each other and with finalize or remove calls. Holds younger
    than min_age are never swept, whatever max_age a caller asks for.
    """

    def __init__(
        self,
        store: CalendarStore,
        payments: PaymentService,
        clock: Callable[[], dt.datetime] = _utcnow,
        min_age: dt.timedelta = DEFAULT_HOLD_TTL,
    ) -> None:
        self.store = store
        self.payments = payments
        self.clock = clock
        self.min_age = min_age

    def sweep(
        self,
        max_age: dt.timedelta = DEFAULT_MAX_AGE,
        now: dt.datetime | None = None,
    ) -> SweepResult:
        """Remove holds created more than max_age ago.

        Args:
            max_age: Age after which a temporary hold is abandoned, raised to
                min_age if shorter
            now: Current UTC time, the clock if omitted

        Returns:
            SweepResult with the removed holds and expired rentals
        """
        if max_age < self.min_age:
            logger.warning("Sweep max age %s is below %s, using the minimum", max_age, self.min_age)
            max_age = self.min_age
        cutoff = (now or self.clock()).astimezone(dt.UTC) - max_age
        result = SweepResult()

        for hold in self.store.find_holds_created_before(cutoff):
            try:
                removed = self.store.delete_temporary_block(hold)
            except (BotoCoreError, ClientError) as e:
                log_hold_operation(
                    logger,
                    "reap",
                    resource_id=hold.resource_id,
                    block_id=hold.block_id,
                    payment_intent_id=hold.payment_intent_id,
                    error=str(e),
                )
                continue
            if removed:
                result.removed_blocks.append(hold)
                log_hold_operation(
                    logger,
                    "reap",
                    resource_id=hold.resource_id,
                    block_id=hold.block_id,
                    payment_intent_id=hold.payment_intent_id,
                    result="removed",
                )

        for rental in self.store.find_rentals_created_before(RentalStatus.PENDING, cutoff):
            try:
                if self._expire_rental(rental.rental_id, cutoff):
                    result.expired_rentals.append(rental.rental_id)
            except (BotoCoreError, ClientError, NotFoundError) as e:
                logger.error("Expiring rental %s failed: %s", rental.rental_id, e)

        result.removed_count = len(result.removed_blocks)
        logger.info(
            "Sweep before %s removed %d hold(s), expired %d rental(s)",
            cutoff.isoformat(),
            result.removed_count,
            len(result.expired_rentals),
        )
        return result

    def _expire_rental(self, rental_id: str, cutoff: dt.datetime) -> bool:
        """Cancel a pending rental whose hold is gone."""
        rental = self.store.get_rental(rental_id)
        if rental is None or rental.status != RentalStatus.PENDING:
            return False
        if rental.payment_intent_id:
            live = [
                block
                for block in self.store.find_blocks_for_payment_intent(
                    rental.payment_intent_id, rental.resource_id
                )
                if block.kind == HoldKind.TEMPORARY and block.created_at >= cutoff
            ]
            if live:
                return False

        now = self.clock()
        ops = [
            self.store.rental_transition_op(
                rental,
                (RentalStatus.PENDING,),
                RentalStatus.CANCELLED,
                now,
                cancellation_reason=EXPIRY_REASON,
                cancelled_at=now,
                cancelled_by="system",
            )
        ]
        payment = self.payments.get_rental_payment(rental)
        if payment is not None and payment.status == PaymentStatus.PENDING:
            ops.append(
                self.payments.transition_op(
                    payment.payment_id,
                    PaymentStatus.PENDING,
                    PaymentStatus.FAILED,
                    now,
                    error_message=EXPIRY_REASON,
                )
            )
        if not self.store.db.transact_write(ops):
            logger.info("Rental %s changed during expiry, skipped", rental_id)
            return False

        log_hold_operation(
            logger,
            "expire",
            resource_id=rental.resource_id,
            payment_intent_id=rental.payment_intent_id,
            rental_id=rental_id,
            result="expired",
        )
        return True
