"""Consumer for Stripe PaymentIntent events.

Stripe delivers events at least once and in any order. Each event ID is
recorded in the payment-events table after processing, and events already
recorded are acknowledged without being applied again. Applying a status
twice is harmless as well: confirm and fail are idempotent.
"""

import datetime as dt
import hashlib
import json
import logging
from typing import TYPE_CHECKING, Any

from booking.models import BookingError
from booking.utils.logging import log_webhook_event

from .payment_service import PaymentService
from .reservations import ReservationService

if TYPE_CHECKING:
    from .dynamodb import DynamoDBService

logger = logging.getLogger(__name__)

HANDLED_EVENT_TYPES = {
    "payment_intent.succeeded",
    "payment_intent.processing",
    "payment_intent.requires_action",
    "payment_intent.payment_failed",
    "payment_intent.canceled",
}


class PaymentEventHandler:
    """Applies Stripe PaymentIntent events to reservations."""

    EVENTS_TABLE = "payment-events"

    def __init__(
        self,
        db: "DynamoDBService",
        reservations: ReservationService,
        payments: PaymentService,
    ) -> None:
        self._db = db
        self.reservations = reservations
        self.payments = payments

    def is_event_already_processed(self, event_id: str) -> bool:
        """Check if an event was already processed."""
        return self._db.get_item(self.EVENTS_TABLE, {"event_id": event_id}) is not None

    def record_event(
        self,
        event_id: str,
        event_type: str,
        payload_hash: str,
        rental_id: str | None,
        payment_intent_id: str | None,
        processing_result: str,
        error_message: str | None = None,
    ) -> None:
        """Store a processed event for de-duplication and audit."""
        item: dict[str, Any] = {
            "event_id": event_id,
            "event_type": event_type,
            "processed_at": dt.datetime.now(dt.UTC).isoformat(),
            "payload_hash": payload_hash,
            "processing_result": processing_result,
        }
        if rental_id:
            item["rental_id"] = rental_id
        if payment_intent_id:
            item["payment_intent_id"] = payment_intent_id
        if error_message:
            item["error_message"] = error_message

        self._db.put_item(self.EVENTS_TABLE, item)

    def process_event(
        self, event: dict, payload_hash: str | None = None
    ) -> tuple[str, str | None]:
        """Process a verified Stripe event.

        Args:
            event: Parsed Stripe event
            payload_hash: SHA-256 of the raw payload, computed from the event
                if omitted

        Returns:
            Tuple of (processing_result, error_message), the result being one
            of success, duplicate, skipped or error
        """
        event_id = event.get("id", "")
        event_type = event.get("type", "")
        payload_hash = payload_hash or hashlib.sha256(
            json.dumps(event, sort_keys=True, default=str).encode()
        ).hexdigest()

        if self.is_event_already_processed(event_id):
            log_webhook_event(logger, event_type, event_id, result="duplicate")
            return "duplicate", None

        if event_type not in HANDLED_EVENT_TYPES:
            log_webhook_event(logger, event_type, event_id, result="skipped")
            self.record_event(event_id, event_type, payload_hash, None, None, "skipped")
            return "skipped", None

        intent = event.get("data", {}).get("object", {})
        payment_intent_id = intent.get("id")
        provider_status = intent.get("status", "")
        rental_id = (intent.get("metadata") or {}).get("rental_id")
        if not rental_id and payment_intent_id:
            payment = self.payments.get_payment_by_intent(payment_intent_id)
            rental_id = payment.rental_id if payment else None

        if not rental_id:
            error_msg = f"No rental for PaymentIntent {payment_intent_id}"
            log_webhook_event(
                logger,
                event_type,
                event_id,
                payment_intent_id=payment_intent_id,
                result="error",
                error=error_msg,
            )
            self.record_event(
                event_id, event_type, payload_hash, None, payment_intent_id, "error", error_msg
            )
            return "error", error_msg

        try:
            rental = self.reservations.apply_payment_status(
                rental_id, payment_intent_id, provider_status
            )
        except BookingError as e:
            error_msg = f"{e.code.value}: {e.message}"
            log_webhook_event(
                logger,
                event_type,
                event_id,
                rental_id=rental_id,
                payment_intent_id=payment_intent_id,
                result="error",
                error=error_msg,
            )
            self.record_event(
                event_id,
                event_type,
                payload_hash,
                rental_id,
                payment_intent_id,
                "error",
                error_msg,
            )
            return "error", error_msg

        log_webhook_event(
            logger,
            event_type,
            event_id,
            rental_id=rental_id,
            payment_intent_id=payment_intent_id,
            result="success",
            rental_status=rental.status.value,
        )
        self.record_event(
            event_id, event_type, payload_hash, rental_id, payment_intent_id, "success"
        )
        return "success", None
