"""Reservation lifecycle: create, confirm, cancel and fail rentals.

Rentals move PENDING (awaiting payment) -> CONFIRMED, and may leave for
CANCELLED from PENDING or CONFIRMED. Every status change is a conditional
write on the status it was read in, together with the matching payment
update, so concurrent confirms, cancels and payment events settle on one
outcome.
"""

import datetime as dt
import logging
from collections.abc import Callable
from typing import Any

from booking.models import (
    AuthorizationError,
    BlockedPeriod,
    CalendarSnapshot,
    Cancellation,
    ConflictError,
    ErrorCode,
    InvalidStateError,
    NotFoundError,
    NotificationType,
    Payment,
    PaymentStatus,
    Rental,
    RentalStatus,
    ReservationReceipt,
    ReservationRequest,
    UpstreamPaymentError,
    ValidationError,
    map_intent_status,
)

from .availability import AvailabilityCalculator
from .calendar_store import CalendarStore
from .notification_service import NotificationService
from .payment_service import PaymentService, generate_id
from .pricing import PricingService
from .stripe_service import StripeService
from .temporary_blocks import TemporaryBlockManager

logger = logging.getLogger(__name__)

SYSTEM_ACTOR = "system"
MAX_TRANSITION_ATTEMPTS = 3
CANCELLABLE = (RentalStatus.PENDING, RentalStatus.CONFIRMED)

# Payment status a cancellation moves the payment to
CANCELLED_PAYMENT_STATUS = {
    PaymentStatus.PENDING: PaymentStatus.FAILED,
    PaymentStatus.COMPLETED: PaymentStatus.REFUNDED,
}


def _utcnow() -> dt.datetime:
    return dt.datetime.now(dt.UTC)


class ReservationService:
    """Orchestrates rentals, their payments and their calendar holds."""

    def __init__(
        self,
        store: CalendarStore,
        blocks: TemporaryBlockManager,
        payments: PaymentService,
        stripe: StripeService,
        notifications: NotificationService,
        pricing: PricingService | None = None,
        clock: Callable[[], dt.datetime] = _utcnow,
    ) -> None:
        """Initialize reservation service.

        Args:
            store: Calendar persistence
            blocks: Hold manager, also providing the availability calculator
            payments: Payment records
            stripe: Payment provider
            notifications: Notification sink
            pricing: Price calculation
            clock: Returns the current UTC time
        """
        self.store = store
        self.blocks = blocks
        self.payments = payments
        self.stripe = stripe
        self.notifications = notifications
        self.pricing = pricing or PricingService()
        self.clock = clock

    @property
    def calculator(self) -> AvailabilityCalculator:
        return self.blocks.calculator

    # Creation

    def create_reservation(self, request: ReservationRequest) -> ReservationReceipt:
        """Start a reservation: price it, open a payment and hold the dates.

        The rental, its payment and the hold are written in one transaction
        with the availability re-check.

        Args:
            request: Trailer, renter and window

        Returns:
            ReservationReceipt with the client secret for the payment

        Raises:
            ValidationError: If the window is malformed, in the past or of a
                length the trailer does not allow
            NotFoundError: If the trailer does not exist
            ConflictError: If the window is unavailable or the race was lost
            UpstreamPaymentError: If the PaymentIntent cannot be created
        """
        now = self.clock()
        window = request.window
        if window.end <= window.start or window.start_date < now.date():
            raise ValidationError(
                ErrorCode.INVALID_DATE_RANGE,
                details={"start": window.start.isoformat(), "end": window.end.isoformat()},
            )

        snapshot = self.store.load_snapshot(request.resource_id)
        resource = snapshot.resource
        rental_days = window.rental_days
        too_short = resource.min_rental_days and rental_days < resource.min_rental_days
        too_long = resource.max_rental_days and rental_days > resource.max_rental_days
        if too_short or too_long:
            raise ValidationError(
                ErrorCode.RENTAL_LENGTH_NOT_ALLOWED,
                details={
                    "rental_days": str(rental_days),
                    "min_rental_days": str(resource.min_rental_days or ""),
                    "max_rental_days": str(resource.max_rental_days or ""),
                },
            )

        result = self.calculator.is_range_available(snapshot, window)
        if not result.available:
            raise ConflictError(
                ErrorCode.DATES_UNAVAILABLE,
                details={"resource_id": resource.resource_id},
                conflicts=result.conflicts,
            )

        price = self.pricing.calculate_price(resource, window)
        rental_id = generate_id("RNT")
        intent = self.stripe.create_payment_intent(
            amount_cents=price.total_price,
            customer_ref=request.customer_ref,
            metadata={
                "rental_id": rental_id,
                "resource_id": resource.resource_id,
                "renter_id": request.renter_id,
            },
            idempotency_key=f"reservation_{rental_id}",
        )

        payment = self.payments.new_pending_payment(rental_id, price.total_price, intent.id, now)
        rental = Rental(
            rental_id=rental_id,
            resource_id=resource.resource_id,
            renter_id=request.renter_id,
            owner_id=resource.owner_id,
            start_date=window.start_date,
            end_date=window.end_date,
            pickup_time=window.pickup_time,
            return_time=window.return_time,
            status=RentalStatus.PENDING,
            payment_intent_id=intent.id,
            payment_id=payment.payment_id,
            total_price=price.total_price,
            service_fee=price.renter_fee,
            created_at=now,
            updated_at=now,
            note=request.note,
        )
        placed: dict[str, BlockedPeriod] = {}

        def build(fresh: CalendarSnapshot) -> list[dict[str, Any]]:
            hold, ops = self.blocks.prepare_hold(
                fresh, window, intent.id, user_id=request.renter_id
            )
            placed["hold"] = hold
            return [
                *ops,
                self.store.put_rental_op(rental),
                self.payments.put_payment_op(payment),
            ]

        try:
            self.store.reserve(resource.resource_id, build)
        except Exception:
            logger.info("Reservation %s not stored, cancelling %s", rental_id, intent.id)
            self._cancel_intent_quietly(intent.id)
            raise

        logger.info(
            "Reservation %s created for %s (%s - %s), awaiting payment %s",
            rental_id,
            resource.resource_id,
            window.start,
            window.end,
            intent.id,
        )
        self._notify(
            rental.renter_id,
            NotificationType.BOOKING,
            f"Your reservation of {resource.title or resource.resource_id} is awaiting payment.",
            rental_id,
        )
        self._notify(
            rental.owner_id,
            NotificationType.BOOKING,
            f"New reservation request for {resource.title or resource.resource_id} "
            f"from {window.start_date} to {window.end_date}.",
            rental_id,
        )

        return ReservationReceipt(
            rental=rental,
            payment_id=payment.payment_id,
            payment_intent_id=intent.id,
            client_secret=intent.client_secret,
            price=price,
            hold=placed["hold"],
        )

    # Queries

    def get_reservation(self, rental_id: str) -> Rental:
        """Get a rental.

        Raises:
            NotFoundError: If the rental does not exist
        """
        rental = self.store.get_rental(rental_id)
        if rental is None:
            raise NotFoundError(
                ErrorCode.RESERVATION_NOT_FOUND, details={"rental_id": rental_id}
            )
        return rental

    # Transitions

    def confirm_reservation(self, rental_id: str, payment_intent_id: str) -> Rental:
        """Confirm a rental whose payment succeeded.

        The caller has verified the payment. Confirming an already confirmed
        rental returns it unchanged, after finalizing its hold again in case
        the first confirmation stopped short of that.

        Raises:
            NotFoundError: If the rental or its payment record does not exist
            ValidationError: If the payment intent is not the rental's
            InvalidStateError: If the rental is cancelled or completed
        """
        for _ in range(MAX_TRANSITION_ATTEMPTS):
            rental = self.get_reservation(rental_id)
            self._check_intent(rental, payment_intent_id)
            if rental.status in (RentalStatus.CONFIRMED, RentalStatus.ACTIVE):
                logger.info("Reservation %s already confirmed", rental_id)
                self._finalize_hold(rental, payment_intent_id)
                return rental
            if rental.status != RentalStatus.PENDING:
                raise self._invalid_state(rental, RentalStatus.CONFIRMED)

            now = self.clock()
            payment = self.payments.get_rental_payment(rental)
            ops = [
                self.store.rental_transition_op(
                    rental, (RentalStatus.PENDING,), RentalStatus.CONFIRMED, now, confirmed_at=now
                )
            ]
            if payment is not None and payment.status == PaymentStatus.PENDING:
                ops.append(
                    self.payments.transition_op(
                        payment.payment_id, PaymentStatus.PENDING, PaymentStatus.COMPLETED, now
                    )
                )
            if self.store.db.transact_write(ops):
                break
            logger.info("Confirm of %s raced with another update, re-reading", rental_id)
        else:
            raise ConflictError(ErrorCode.BOOKING_RACE_LOST, details={"rental_id": rental_id})

        confirmed = rental.model_copy(
            update={"status": RentalStatus.CONFIRMED, "confirmed_at": now, "updated_at": now}
        )
        logger.info("Reservation %s confirmed", rental_id)

        self._finalize_hold(confirmed, payment_intent_id)

        self._notify(
            confirmed.renter_id,
            NotificationType.PAYMENT,
            f"Payment received. Your rental from {confirmed.start_date} is confirmed.",
            rental_id,
        )
        self._notify(
            confirmed.owner_id,
            NotificationType.BOOKING,
            f"Rental {rental_id} from {confirmed.start_date} to {confirmed.end_date} is confirmed.",
            rental_id,
        )
        return confirmed

    def cancel_reservation(self, rental_id: str, reason: str, actor_id: str) -> Cancellation:
        """Cancel a pending or confirmed rental on behalf of a party.

        Args:
            rental_id: Rental to cancel
            reason: Why it is cancelled
            actor_id: Renter or trailer owner cancelling it

        Raises:
            NotFoundError: If the rental does not exist
            AuthorizationError: If the actor is neither renter nor owner
            InvalidStateError: If the rental cannot be cancelled any more
        """
        rental, payment_status, now = self._cancel(rental_id, reason, actor_id)

        hold_removed = False
        if rental.payment_intent_id:
            hold_removed = self.blocks.remove_temporary_block(
                rental.payment_intent_id, rental.resource_id
            )
        block_released = self.blocks.release_confirmed_block(rental_id, rental.resource_id)
        if payment_status == PaymentStatus.FAILED and rental.payment_intent_id:
            self._cancel_intent_quietly(rental.payment_intent_id)

        logger.info("Reservation %s cancelled by %s", rental_id, actor_id)
        for user_id in (rental.renter_id, rental.owner_id):
            self._notify(
                user_id,
                NotificationType.BOOKING,
                f"Rental {rental_id} from {rental.start_date} was cancelled: {reason}",
                rental_id,
            )

        return Cancellation(
            rental_id=rental_id,
            status=RentalStatus.CANCELLED,
            payment_status=payment_status,
            reason=reason,
            cancelled_by=actor_id,
            cancelled_at=now,
            hold_removed=hold_removed,
            block_released=block_released,
        )

    def fail_reservation(self, rental_id: str, payment_intent_id: str, reason: str) -> Rental:
        """Cancel a pending rental whose payment failed.

        Failing an already cancelled rental returns it unchanged.

        Raises:
            NotFoundError: If the rental does not exist
            ValidationError: If the payment intent is not the rental's
            InvalidStateError: If the rental is no longer pending
        """
        rental = self.get_reservation(rental_id)
        self._check_intent(rental, payment_intent_id)
        if rental.status == RentalStatus.CANCELLED:
            return rental
        if rental.status != RentalStatus.PENDING:
            raise self._invalid_state(rental, RentalStatus.CANCELLED)

        rental, _, _ = self._cancel(
            rental_id, reason, SYSTEM_ACTOR, from_statuses=(RentalStatus.PENDING,)
        )
        self.blocks.remove_temporary_block(payment_intent_id, rental.resource_id)

        logger.info("Reservation %s failed: %s", rental_id, reason)
        self._notify(
            rental.renter_id,
            NotificationType.PAYMENT,
            f"Payment for rental {rental_id} did not go through. The dates were released.",
            rental_id,
        )
        return rental

    def apply_payment_status(
        self, rental_id: str, payment_intent_id: str, provider_status: str
    ) -> Rental:
        """Apply a PaymentIntent status reported by the provider.

        succeeded confirms, processing and requires_* leave the rental
        pending, anything else fails it.
        """
        _, rental_status = map_intent_status(provider_status)
        if rental_status == RentalStatus.CONFIRMED:
            return self.confirm_reservation(rental_id, payment_intent_id)
        if rental_status == RentalStatus.PENDING:
            rental = self.get_reservation(rental_id)
            self._check_intent(rental, payment_intent_id)
            logger.info("Payment for %s is %s, still pending", rental_id, provider_status)
            return rental
        return self.fail_reservation(
            rental_id, payment_intent_id, f"Payment {provider_status.replace('_', ' ')}"
        )

    def abandon_checkout(self, payment_intent_id: str, user_id: str) -> bool:
        """Release the dates of a checkout the renter walked away from.

        Only a party to the reservation behind the payment, or the user who
        placed its hold, may release it. Past that check it is best effort:
        cleanup failures are logged, and if the PaymentIntent could be
        cancelled the pending rental is failed as well.

        Args:
            payment_intent_id: Payment attempt being abandoned
            user_id: User asking for the release

        Returns:
            True if a hold was removed

        Raises:
            AuthorizationError: If the user has no part in the checkout
        """
        payment = self.payments.get_payment_by_intent(payment_intent_id)
        rental = self.store.get_rental(payment.rental_id) if payment else None
        holds = self.blocks.get_blocks_for_payment_intent(payment_intent_id)
        if rental is None and not holds:
            logger.info("Nothing to release for payment intent %s", payment_intent_id)
            return False
        allowed = (
            rental.is_party(user_id)
            if rental is not None
            else all(hold.user_id == user_id for hold in holds)
        )
        if not allowed:
            logger.warning("User %s may not release payment intent %s", user_id, payment_intent_id)
            raise AuthorizationError(
                ErrorCode.UNAUTHORIZED, details={"payment_intent_id": payment_intent_id}
            )

        removed = False
        try:
            removed = self.blocks.remove_temporary_block(payment_intent_id)
        except Exception:
            logger.exception("Removing the hold of %s failed", payment_intent_id)

        try:
            cancelled = self.stripe.cancel_payment_intent(payment_intent_id)
            if cancelled is not None and rental is not None:
                payment = self.payments.get_rental_payment(rental)
                if payment is not None and payment.status == PaymentStatus.PENDING:
                    self.fail_reservation(
                        rental.rental_id, payment_intent_id, "Checkout abandoned"
                    )
        except Exception:
            logger.exception("Cleaning up abandoned checkout %s failed", payment_intent_id)

        return removed

    # Helpers

    def _cancel(
        self,
        rental_id: str,
        reason: str,
        actor_id: str,
        from_statuses: tuple[RentalStatus, ...] = CANCELLABLE,
    ) -> tuple[Rental, PaymentStatus | None, dt.datetime]:
        """Move a rental and its payment to their cancelled statuses."""
        for _ in range(MAX_TRANSITION_ATTEMPTS):
            rental = self.get_reservation(rental_id)
            if actor_id != SYSTEM_ACTOR and not rental.is_party(actor_id):
                raise AuthorizationError(
                    ErrorCode.UNAUTHORIZED, details={"rental_id": rental_id}
                )
            if rental.status not in from_statuses:
                raise self._invalid_state(rental, RentalStatus.CANCELLED)

            now = self.clock()
            payment = self.payments.get_rental_payment(rental)
            ops = [
                self.store.rental_transition_op(
                    rental,
                    (rental.status,),
                    RentalStatus.CANCELLED,
                    now,
                    cancellation_reason=reason,
                    cancelled_at=now,
                    cancelled_by=actor_id,
                )
            ]
            payment_status = self._cancel_payment_op(payment, reason, now, ops)
            if self.store.db.transact_write(ops):
                cancelled = rental.model_copy(
                    update={
                        "status": RentalStatus.CANCELLED,
                        "cancellation_reason": reason,
                        "cancelled_at": now,
                        "cancelled_by": actor_id,
                        "updated_at": now,
                    }
                )
                return cancelled, payment_status, now
            logger.info("Cancel of %s raced with another update, re-reading", rental_id)

        raise ConflictError(ErrorCode.BOOKING_RACE_LOST, details={"rental_id": rental_id})

    def _cancel_payment_op(
        self,
        payment: Payment | None,
        reason: str,
        now: dt.datetime,
        ops: list[dict[str, Any]],
    ) -> PaymentStatus | None:
        if payment is None:
            return None
        target = CANCELLED_PAYMENT_STATUS.get(payment.status)
        if target is None:
            return payment.status
        ops.append(
            self.payments.transition_op(
                payment.payment_id,
                payment.status,
                target,
                now,
                error_message=reason if target == PaymentStatus.FAILED else None,
            )
        )
        return target

    def _finalize_hold(self, rental: Rental, payment_intent_id: str) -> None:
        try:
            self.blocks.finalize_temporary_block(
                payment_intent_id, rental.rental_id, rental.resource_id
            )
        except Exception:
            logger.exception("Finalizing the hold of %s failed", rental.rental_id)

    @staticmethod
    def _check_intent(rental: Rental, payment_intent_id: str) -> None:
        if rental.payment_intent_id != payment_intent_id:
            raise ValidationError(
                ErrorCode.PAYMENT_INTENT_MISMATCH,
                details={"rental_id": rental.rental_id, "payment_intent_id": payment_intent_id},
            )

    @staticmethod
    def _invalid_state(rental: Rental, target: RentalStatus) -> InvalidStateError:
        return InvalidStateError(
            ErrorCode.INVALID_STATE_TRANSITION,
            details={
                "rental_id": rental.rental_id,
                "status": rental.status.value,
                "target": target.value,
            },
        )

    def _cancel_intent_quietly(self, payment_intent_id: str) -> None:
        try:
            self.stripe.cancel_payment_intent(payment_intent_id)
        except UpstreamPaymentError as e:
            logger.warning("Could not cancel PaymentIntent %s: %s", payment_intent_id, e)

    def _notify(
        self,
        user_id: str,
        notification_type: NotificationType,
        message: str,
        rental_id: str,
    ) -> None:
        try:
            self.notifications.notify(
                user_id, notification_type, message, action_url=f"/rentals/{rental_id}"
            )
        except Exception:
            logger.exception("Notification to %s about %s failed", user_id, rental_id)
