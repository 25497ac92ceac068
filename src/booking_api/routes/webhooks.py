"""Webhook endpoint for Stripe PaymentIntent events.

Does NOT require JWT authentication: payloads are verified with the
Stripe-Signature header instead.
"""

from fastapi import APIRouter, Depends, Request

from booking.models import ErrorCode, ValidationError
from booking.services.stripe_service import StripeService
from booking.services.webhook_handler import PaymentEventHandler
from booking_api.dependencies import get_payment_event_handler, get_stripe
from booking_api.models import WebhookResponse

router = APIRouter(tags=["webhooks"])


@router.post(
    "/webhooks/stripe",
    summary="Stripe webhook",
    description="""
Receives payment_intent.* events. Events are de-duplicated by ID; events
that cannot be applied are acknowledged with processing_result=error so
Stripe does not redeliver them.
""",
    response_model=WebhookResponse,
    responses={400: {"description": "Missing or invalid signature"}},
)
async def stripe_webhook(
    request: Request,
    stripe: StripeService = Depends(get_stripe),
    handler: PaymentEventHandler = Depends(get_payment_event_handler),
) -> WebhookResponse:
    """Verify and process a Stripe event."""
    payload = await request.body()
    signature = request.headers.get("stripe-signature")
    if not signature:
        raise ValidationError(
            ErrorCode.INVALID_WEBHOOK_SIGNATURE, details={"reason": "missing header"}
        )

    event = stripe.verify_webhook_signature(payload, signature)
    result, error = handler.process_event(
        event, payload_hash=stripe.compute_payload_hash(payload)
    )
    return WebhookResponse(
        received=True,
        event_id=event.get("id"),
        event_type=event.get("type"),
        processing_result=result,
        message=error,
    )
