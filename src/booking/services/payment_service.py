"""Payment records for rentals.

Each rental has exactly one payment row, correlated with Stripe through the
PaymentIntent ID stored in provider_transaction_id.
"""

import datetime as dt
import uuid
from typing import TYPE_CHECKING, Any

from booking.models import ErrorCode, NotFoundError, Payment, PaymentStatus, Rental

if TYPE_CHECKING:
    from .dynamodb import DynamoDBService


def generate_id(prefix: str) -> str:
    """Generate a unique ID like PAY-ABC123DEF456."""
    return f"{prefix}-{uuid.uuid4().hex[:12].upper()}"


class PaymentService:
    """Service for payment records and their status transitions."""

    TABLE = "payments"

    def __init__(self, db: "DynamoDBService") -> None:
        """Initialize payment service.

        Args:
            db: DynamoDB service instance
        """
        self.db = db

    def new_pending_payment(
        self,
        rental_id: str,
        amount_cents: int,
        payment_intent_id: str,
        now: dt.datetime,
    ) -> Payment:
        """Build a PENDING payment for a new rental (not yet stored)."""
        return Payment(
            payment_id=generate_id("PAY"),
            rental_id=rental_id,
            amount=amount_cents,
            status=PaymentStatus.PENDING,
            provider_transaction_id=payment_intent_id,
            created_at=now,
        )

    def put_payment_op(self, payment: Payment) -> dict[str, Any]:
        """Transaction item inserting a new payment."""
        return self.db.put_op(
            self.TABLE,
            self._payment_to_item(payment),
            condition_expression="attribute_not_exists(payment_id)",
        )

    def transition_op(
        self,
        payment_id: str,
        from_status: PaymentStatus,
        to_status: PaymentStatus,
        now: dt.datetime,
        error_message: str | None = None,
    ) -> dict[str, Any]:
        """Transaction item moving a payment between statuses.

        Applies only while the payment is still in from_status.
        Moving to COMPLETED sets completed_at.
        """
        assignments = ["#status = :to_status", "updated_at = :now"]
        values: dict[str, Any] = {
            ":to_status": to_status.value,
            ":from_status": from_status.value,
            ":now": now.isoformat(),
        }
        if to_status == PaymentStatus.COMPLETED:
            assignments.append("completed_at = :now")
        if error_message:
            assignments.append("error_message = :error")
            values[":error"] = error_message

        return self.db.update_op(
            self.TABLE,
            {"payment_id": payment_id},
            "SET " + ", ".join(assignments),
            values,
            expression_attribute_names={"#status": "status"},
            condition_expression="#status = :from_status",
        )

    def get_payment(self, payment_id: str) -> Payment | None:
        """Get a payment by ID."""
        item = self.db.get_item(self.TABLE, {"payment_id": payment_id}, consistent_read=True)
        if not item:
            return None
        return self._item_to_payment(item)

    def get_rental_payment(self, rental: Rental) -> Payment | None:
        """Get the payment a rental references, with a consistent read.

        Returns None for rentals without a payment.

        Raises:
            NotFoundError: If the referenced payment row is missing
        """
        if rental.payment_id is None:
            return None
        payment = self.get_payment(rental.payment_id)
        if payment is None:
            raise NotFoundError(
                ErrorCode.PAYMENT_NOT_FOUND,
                details={"rental_id": rental.rental_id, "payment_id": rental.payment_id},
            )
        return payment

    def get_payment_by_intent(self, payment_intent_id: str) -> Payment | None:
        """Get the payment correlated with a Stripe PaymentIntent."""
        items = self.db.query_by_gsi(
            self.TABLE,
            "provider_transaction_id-index",
            "provider_transaction_id",
            payment_intent_id,
        )
        return self._item_to_payment(items[0]) if items else None

    def _payment_to_item(self, payment: Payment) -> dict[str, Any]:
        item: dict[str, Any] = {
            "payment_id": payment.payment_id,
            "rental_id": payment.rental_id,
            "amount": payment.amount,
            "currency": payment.currency,
            "status": payment.status.value,
            "provider_transaction_id": payment.provider_transaction_id,
            "created_at": payment.created_at.isoformat(),
            "updated_at": payment.created_at.isoformat(),
        }
        if payment.completed_at:
            item["completed_at"] = payment.completed_at.isoformat()
        if payment.error_message:
            item["error_message"] = payment.error_message
        return item

    def _item_to_payment(self, item: dict[str, Any]) -> Payment:
        def parse(value: str | None) -> dt.datetime | None:
            return dt.datetime.fromisoformat(value) if value else None

        return Payment(
            payment_id=item["payment_id"],
            rental_id=item["rental_id"],
            amount=int(item["amount"]),
            currency=item.get("currency", "EUR"),
            status=PaymentStatus(item["status"]),
            provider_transaction_id=item["provider_transaction_id"],
            created_at=dt.datetime.fromisoformat(item["created_at"]),
            completed_at=parse(item.get("completed_at")),
            error_message=item.get("error_message"),
        )
