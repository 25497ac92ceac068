"""Stripe payment service for PaymentIntents.

Provides integration with Stripe using the v8+ StripeClient pattern.
Retrieves API keys from SSM Parameter Store.

Reads (retrieve) are retried a bounded number of times with exponential
backoff on transient errors. Mutations (create, cancel) carry idempotency
keys and are never retried here.
"""

import hashlib
import logging
import os
import time
from functools import lru_cache
from typing import Any

import stripe
from stripe import StripeClient

from booking.models import ErrorCode, PaymentIntent, UpstreamPaymentError, ValidationError
from booking.models.errors import is_stripe_error_retryable

from .ssm_service import SSMServiceError, get_ssm_service

logger = logging.getLogger(__name__)

# Stripe error code for operations on an intent in the wrong state
UNEXPECTED_STATE = "payment_intent_unexpected_state"


class StripeService:
    """Service for Stripe PaymentIntent operations.

    Handles:
    - PaymentIntent creation, retrieval and cancellation
    - Webhook signature validation

    Usage:
        stripe_svc = get_stripe_service()
        intent = stripe_svc.create_payment_intent(
            amount_cents=15750,
            customer_ref="cus_123",
            metadata={"rental_id": "RNT-ABC123"},
            idempotency_key="reservation_RNT-ABC123",
        )
    """

    def __init__(
        self,
        environment: str | None = None,
        timeout_seconds: float | None = None,
        max_retries: int | None = None,
        backoff_seconds: float = 0.5,
    ) -> None:
        """Initialize Stripe service with credentials from SSM.

        Args:
            environment: Environment name (dev, prod). Defaults to ENVIRONMENT env var.
            timeout_seconds: Per-request timeout. Defaults to STRIPE_TIMEOUT_SECONDS (10).
            max_retries: Attempts for idempotent reads, at least 1. Defaults to
                STRIPE_MAX_RETRIES (3).
            backoff_seconds: Delay before the first retry, doubled on each retry.

        Raises:
            ValueError: If max_retries is below 1
        """
        self._environment = environment or os.environ.get("ENVIRONMENT", "dev")
        self._timeout = timeout_seconds or float(os.environ.get("STRIPE_TIMEOUT_SECONDS", "10"))
        if max_retries is None:
            max_retries = int(os.environ.get("STRIPE_MAX_RETRIES", "3"))
        if max_retries < 1:
            raise ValueError(f"max_retries must be at least 1, got {max_retries}")
        self._max_retries = max_retries
        self._backoff = backoff_seconds
        self._ssm = get_ssm_service()
        self._client: StripeClient | None = None
        self._webhook_secret: str | None = None

    def _get_client(self) -> StripeClient:
        """Get or create the Stripe client (lazy initialization).

        Raises:
            UpstreamPaymentError: If credentials cannot be retrieved.
        """
        if self._client is None:
            try:
                secret_key = self._ssm.get_parameter(
                    f"/booking/{self._environment}/stripe/secret_key"
                )
            except SSMServiceError as e:
                logger.error("Failed to initialize Stripe client: %s", e)
                raise UpstreamPaymentError(
                    ErrorCode.STRIPE_API_ERROR, details={"reason": "credentials unavailable"}
                ) from e
            self._client = StripeClient(
                secret_key,
                http_client=stripe.RequestsClient(timeout=self._timeout),
                max_network_retries=0,
            )
            logger.info("Stripe client initialized for environment: %s", self._environment)
        return self._client

    def _get_webhook_secret(self) -> str:
        if self._webhook_secret is None:
            try:
                self._webhook_secret = self._ssm.get_parameter(
                    f"/booking/{self._environment}/stripe/webhook_secret"
                )
            except SSMServiceError as e:
                raise UpstreamPaymentError(
                    ErrorCode.STRIPE_API_ERROR, details={"reason": "webhook secret unavailable"}
                ) from e
        return self._webhook_secret

    @staticmethod
    def _to_payment_intent(intent: Any) -> PaymentIntent:
        return PaymentIntent(
            id=intent.id,
            status=intent.status,
            amount=getattr(intent, "amount", None),
            client_secret=getattr(intent, "client_secret", None),
            metadata=dict(getattr(intent, "metadata", None) or {}),
        )

    @staticmethod
    def _upstream_error(e: stripe.StripeError, operation: str) -> UpstreamPaymentError:
        error_code = getattr(e, "code", None)
        code = (
            ErrorCode.STRIPE_TIMEOUT
            if isinstance(e, stripe.APIConnectionError)
            else ErrorCode.STRIPE_API_ERROR
        )
        return UpstreamPaymentError(
            code,
            details={"operation": operation, "error": str(e)},
            stripe_error_code=error_code,
        )

    def create_payment_intent(
        self,
        *,
        amount_cents: int,
        customer_ref: str | None = None,
        metadata: dict[str, str] | None = None,
        idempotency_key: str,
    ) -> PaymentIntent:
        """Create a PaymentIntent for a reservation.

        Args:
            amount_cents: Amount in EUR cents.
            customer_ref: Stripe customer ID (cus_xxx), if known.
            metadata: Metadata stored on the intent (rental_id, resource_id).
            idempotency_key: Key making retries of this call safe.

        Returns:
            PaymentIntent with id and client_secret.

        Raises:
            UpstreamPaymentError: If creation fails.
        """
        client = self._get_client()
        params: dict[str, Any] = {
            "amount": amount_cents,
            "currency": "eur",
            "automatic_payment_methods": {"enabled": True},
            "metadata": metadata or {},
        }
        if customer_ref:
            params["customer"] = customer_ref

        try:
            intent = client.payment_intents.create(
                params=params, options={"idempotency_key": idempotency_key}
            )
        except stripe.StripeError as e:
            logger.error(
                "Stripe PaymentIntent creation failed: %s (code: %s)",
                str(e),
                getattr(e, "code", None),
            )
            raise self._upstream_error(e, "create_payment_intent") from e

        logger.info("PaymentIntent %s created, amount %d cents", intent.id, amount_cents)
        return self._to_payment_intent(intent)

    def retrieve_payment_intent(self, payment_intent_id: str) -> PaymentIntent:
        """Retrieve a PaymentIntent, retrying transient failures.

        Args:
            payment_intent_id: Stripe PaymentIntent ID (pi_xxx).

        Returns:
            PaymentIntent with its current status.

        Raises:
            UpstreamPaymentError: If every attempt fails or the error is permanent.
        """
        client = self._get_client()
        for attempt in range(1, self._max_retries + 1):
            try:
                intent = client.payment_intents.retrieve(payment_intent_id)
                return self._to_payment_intent(intent)
            except stripe.StripeError as e:
                error = self._upstream_error(e, "retrieve_payment_intent")
                transient = isinstance(e, (stripe.APIConnectionError, stripe.RateLimitError))
                if attempt == self._max_retries or not (transient or error.retryable):
                    logger.error(
                        "Retrieving PaymentIntent %s failed after %d attempt(s): %s",
                        payment_intent_id,
                        attempt,
                        e,
                    )
                    raise error from e
                delay = self._backoff * 2 ** (attempt - 1)
                logger.warning(
                    "Retrieving PaymentIntent %s failed (%s), retrying in %.1fs",
                    payment_intent_id,
                    e,
                    delay,
                )
                time.sleep(delay)

        raise AssertionError("unreachable")

    def cancel_payment_intent(self, payment_intent_id: str) -> PaymentIntent | None:
        """Cancel a PaymentIntent.

        Returns:
            The cancelled PaymentIntent, or None if it could no longer be
            cancelled (already succeeded or cancelled).

        Raises:
            UpstreamPaymentError: If cancellation fails for another reason.
        """
        client = self._get_client()
        try:
            intent = client.payment_intents.cancel(
                payment_intent_id,
                options={"idempotency_key": f"cancel_{payment_intent_id}"},
            )
        except stripe.StripeError as e:
            if getattr(e, "code", None) == UNEXPECTED_STATE:
                logger.info("PaymentIntent %s is not cancellable any more", payment_intent_id)
                return None
            logger.error("Cancelling PaymentIntent %s failed: %s", payment_intent_id, e)
            raise self._upstream_error(e, "cancel_payment_intent") from e

        logger.info("PaymentIntent %s cancelled", payment_intent_id)
        return self._to_payment_intent(intent)

    def verify_webhook_signature(self, payload: bytes, signature: str) -> dict:
        """Verify a webhook signature and parse the event.

        Args:
            payload: Raw request body bytes.
            signature: Stripe-Signature header value.

        Returns:
            Parsed Stripe event dictionary.

        Raises:
            ValidationError: If the signature is invalid.
        """
        webhook_secret = self._get_webhook_secret()

        try:
            event = stripe.Webhook.construct_event(payload, signature, webhook_secret)
        except (stripe.SignatureVerificationError, ValueError) as e:
            logger.warning("Invalid webhook signature: %s", str(e))
            raise ValidationError(ErrorCode.INVALID_WEBHOOK_SIGNATURE) from e

        logger.info("Webhook signature verified for event: %s", event["id"])
        return dict(event)

    @staticmethod
    def compute_payload_hash(payload: bytes) -> str:
        """Compute SHA-256 hash of a webhook payload for the audit trail."""
        return hashlib.sha256(payload).hexdigest()


@lru_cache(maxsize=1)
def get_stripe_service() -> StripeService:
    """Get the shared StripeService instance."""
    return StripeService()
