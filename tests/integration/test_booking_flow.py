"""Integration tests for the reservation lifecycle.

Runs the services together against moto DynamoDB, with Stripe mocked:
checkout to confirmed block, abandonment, expiry with late payment, and
two renters racing for the same window.

Run with: pytest tests/integration -m integration
"""

from unittest.mock import patch

import pytest

from booking.models import (
    ConflictError,
    ErrorCode,
    HoldKind,
    PaymentIntent,
    PaymentStatus,
    RentalStatus,
    ReservationRequest,
)
from booking.services.webhook_handler import PaymentEventHandler

from tests.conftest import OTHER_USER_ID, RENTER_ID, RESOURCE_ID

pytestmark = pytest.mark.integration


def reserve(reservations, window, renter_id: str = RENTER_ID):
    return reservations.create_reservation(
        ReservationRequest(resource_id=RESOURCE_ID, renter_id=renter_id, window=window)
    )


def succeeded(event_id: str, receipt) -> dict:
    return {
        "id": event_id,
        "type": "payment_intent.succeeded",
        "data": {
            "object": {
                "id": receipt.payment_intent_id,
                "status": "succeeded",
                "metadata": {"rental_id": receipt.rental.rental_id},
            }
        },
    }


@pytest.fixture
def events(db, reservations, payments) -> PaymentEventHandler:
    return PaymentEventHandler(db, reservations, payments)


class TestCheckoutToConfirmation:
    """A renter pays and the webhook confirms."""

    def test_paid_reservation_holds_dates(
        self, reservations, events, store, payments, calculator, clock, monday_window
    ):
        receipt = reserve(reservations, monday_window)
        clock.advance(minutes=4)

        result, _ = events.process_event(succeeded("evt_paid", receipt))
        assert result == "success"

        rental = store.get_rental(receipt.rental.rental_id)
        assert rental.status == RentalStatus.CONFIRMED
        assert payments.get_payment(receipt.payment_id).status == PaymentStatus.COMPLETED

        snapshot = store.load_snapshot(RESOURCE_ID)
        [block] = snapshot.blocks
        assert block.kind == HoldKind.CONFIRMED
        assert block.rental_id == rental.rental_id

        # Confirmed blocks do not expire
        clock.advance(days=1)
        with pytest.raises(ConflictError):
            reserve(reservations, monday_window, renter_id=OTHER_USER_ID)

        # A redelivered event changes nothing
        result, _ = events.process_event(succeeded("evt_paid", receipt))
        assert result == "duplicate"


class TestAbandonedCheckout:
    """A renter walks away from the payment form."""

    def test_dates_free_again(self, reservations, store, mock_stripe, monday_window):
        first = reserve(reservations, monday_window)
        mock_stripe.cancel_payment_intent.return_value = PaymentIntent(
            id=first.payment_intent_id, status="canceled"
        )

        assert reservations.abandon_checkout(first.payment_intent_id, RENTER_ID) is True

        assert store.get_rental(first.rental.rental_id).status == RentalStatus.CANCELLED
        second = reserve(reservations, monday_window, renter_id=OTHER_USER_ID)
        assert second.rental.status == RentalStatus.PENDING


class TestExpiry:
    """A payment that never completes."""

    def test_reaped_reservation_rejects_late_payment(
        self, reservations, reaper, events, store, clock, monday_window
    ):
        receipt = reserve(reservations, monday_window)
        clock.advance(hours=2)

        result = reaper.sweep()
        assert result.expired_rentals == [receipt.rental.rental_id]

        # The dates can be taken by someone else
        other = reserve(reservations, monday_window, renter_id=OTHER_USER_ID)
        assert other.rental.status == RentalStatus.PENDING

        late, error = events.process_event(succeeded("evt_late", receipt))
        assert late == "error"
        assert error.startswith(ErrorCode.INVALID_STATE_TRANSITION.value)
        assert store.get_rental(receipt.rental.rental_id).status == RentalStatus.CANCELLED


class TestConcurrentReservations:
    """Two renters commit for the same window."""

    def test_one_winner(self, reservations, store, mock_stripe, monday_window):
        """The renter whose calendar read went stale loses at commit."""
        stale = store.load_snapshot(RESOURCE_ID)
        winner = reserve(reservations, monday_window)

        real_load = store.load_snapshot
        stale_reads = [stale, stale]

        def load_snapshot(resource_id):
            return stale_reads.pop(0) if stale_reads else real_load(resource_id)

        with patch.object(store, "load_snapshot", side_effect=load_snapshot), patch(
            "booking.services.calendar_store.time.sleep"
        ):
            with pytest.raises(ConflictError) as exc_info:
                reserve(reservations, monday_window, renter_id=OTHER_USER_ID)

        assert exc_info.value.code == ErrorCode.DATES_UNAVAILABLE
        mock_stripe.cancel_payment_intent.assert_called_once_with("pi_test_2")

        snapshot = store.load_snapshot(RESOURCE_ID)
        assert [rental.rental_id for rental in snapshot.rentals] == [winner.rental.rental_id]
        assert [block.payment_intent_id for block in snapshot.blocks] == [
            winner.payment_intent_id
        ]
        assert snapshot.version == 1
