"""Reservation endpoints.

Provides REST endpoints for:
- Creating a reservation (holds the dates and opens a PaymentIntent)
- Retrieving a reservation (renter or owner)
- Confirming a reservation once its payment succeeded
- Cancelling a reservation (renter or owner)

API Gateway validates the JWT and passes the user identity via the
x-user-sub header.
"""

from fastapi import APIRouter, Depends, HTTPException, Request
from starlette.status import HTTP_201_CREATED, HTTP_401_UNAUTHORIZED

from booking.models import (
    AuthorizationError,
    Cancellation,
    ErrorCode,
    Rental,
    ReservationReceipt,
    ReservationRequest,
    ValidationError,
)
from booking.services.reservations import ReservationService
from booking.services.stripe_service import StripeService
from booking_api.dependencies import get_reservation_service, get_stripe
from booking_api.models import CancelRequest, ConfirmRequest, ReservationCreateRequest

router = APIRouter(tags=["reservations"])


def get_user_id(request: Request) -> str:
    """Get the authenticated user from the x-user-sub header."""
    user_sub = request.headers.get("x-user-sub")
    if not user_sub:
        raise HTTPException(status_code=HTTP_401_UNAUTHORIZED, detail="Authentication required")
    return user_sub


def _get_own_rental(service: ReservationService, rental_id: str, user_id: str) -> Rental:
    rental = service.get_reservation(rental_id)
    if not rental.is_party(user_id):
        raise AuthorizationError(ErrorCode.UNAUTHORIZED, details={"rental_id": rental_id})
    return rental


@router.post(
    "/reservations",
    summary="Create reservation",
    description="""
Reserve a trailer for a window.

The dates are held while the renter pays. Pay with the returned
client_secret through Stripe.js, then call the confirm endpoint; the
reservation is also confirmed by the Stripe webhook.
""",
    response_model=ReservationReceipt,
    status_code=HTTP_201_CREATED,
    responses={
        400: {"description": "Invalid window or rental length"},
        401: {"description": "Authentication required"},
        404: {"description": "Trailer not found"},
        409: {"description": "Dates unavailable"},
        502: {"description": "Payment provider error"},
    },
)
async def create_reservation(
    body: ReservationCreateRequest,
    user_id: str = Depends(get_user_id),
    service: ReservationService = Depends(get_reservation_service),
) -> ReservationReceipt:
    """Create a pending reservation."""
    request = ReservationRequest(
        resource_id=body.resource_id,
        renter_id=user_id,
        window=body.to_window(),
        customer_ref=body.customer_ref,
        note=body.note,
    )
    return service.create_reservation(request)


@router.get(
    "/reservations/{rental_id}",
    summary="Get reservation",
    response_model=Rental,
    responses={403: {"description": "Not a party of the rental"}, 404: {"description": "Not found"}},
)
async def get_reservation(
    rental_id: str,
    user_id: str = Depends(get_user_id),
    service: ReservationService = Depends(get_reservation_service),
) -> Rental:
    """Get a reservation of the current user."""
    return _get_own_rental(service, rental_id, user_id)


@router.post(
    "/reservations/{rental_id}/confirm",
    summary="Confirm reservation",
    description="""
Confirm a reservation after Stripe.js reported the payment.

The PaymentIntent status is verified with Stripe; only `succeeded` confirms.
Confirming twice is harmless.
""",
    response_model=Rental,
    responses={
        400: {"description": "Payment not completed or PaymentIntent mismatch"},
        409: {"description": "Reservation already cancelled"},
        502: {"description": "Payment provider error"},
    },
)
async def confirm_reservation(
    rental_id: str,
    body: ConfirmRequest,
    user_id: str = Depends(get_user_id),
    service: ReservationService = Depends(get_reservation_service),
    stripe: StripeService = Depends(get_stripe),
) -> Rental:
    """Verify the payment with Stripe and confirm the reservation."""
    _get_own_rental(service, rental_id, user_id)
    intent = stripe.retrieve_payment_intent(body.payment_intent_id)
    if intent.status != "succeeded":
        raise ValidationError(
            ErrorCode.PAYMENT_NOT_COMPLETED,
            details={"payment_intent_id": intent.id, "status": intent.status},
        )
    return service.confirm_reservation(rental_id, body.payment_intent_id)


@router.post(
    "/reservations/{rental_id}/cancel",
    summary="Cancel reservation",
    response_model=Cancellation,
    responses={
        403: {"description": "Not a party of the rental"},
        404: {"description": "Not found"},
        409: {"description": "Reservation can no longer be cancelled"},
    },
)
async def cancel_reservation(
    rental_id: str,
    body: CancelRequest,
    user_id: str = Depends(get_user_id),
    service: ReservationService = Depends(get_reservation_service),
) -> Cancellation:
    """Cancel a pending or confirmed reservation."""
    return service.cancel_reservation(rental_id, body.reason, user_id)
