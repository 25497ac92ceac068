"""Hold endpoints: checkout abandonment and the expired hold sweep."""

import datetime as dt
import logging
import secrets

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from starlette.status import (
    HTTP_202_ACCEPTED,
    HTTP_401_UNAUTHORIZED,
    HTTP_503_SERVICE_UNAVAILABLE,
)

from booking.models import SweepResult
from booking.services.reaper import ExpiredHoldReaper
from booking.services.reservations import ReservationService
from booking.services.ssm_service import SSMService, SSMServiceError
from booking_api.dependencies import get_reaper, get_reservation_service, get_ssm
from booking_api.models import HoldReleaseResponse
from booking_api.routes.reservations import get_user_id

logger = logging.getLogger(__name__)

router = APIRouter(tags=["holds"])

SWEEP_TOKEN = "sweep_token"


def require_operator(request: Request, ssm: SSMService = Depends(get_ssm)) -> None:
    """Check the operator bearer token stored in SSM."""
    auth_header = request.headers.get("authorization", "")
    if not auth_header.startswith("Bearer "):
        logger.warning("Operator call to %s without a bearer token", request.url.path)
        raise HTTPException(
            status_code=HTTP_401_UNAUTHORIZED,
            detail="Missing or invalid authorization header",
        )

    try:
        expected = ssm.get_parameter(ssm.operator_path(SWEEP_TOKEN))
    except SSMServiceError as e:
        logger.error("Operator token unavailable: %s", e)
        raise HTTPException(
            status_code=HTTP_503_SERVICE_UNAVAILABLE,
            detail="Operator authentication unavailable",
        ) from e

    if not secrets.compare_digest(auth_header[7:], expected):
        logger.warning("Invalid operator token for %s", request.url.path)
        raise HTTPException(status_code=HTTP_401_UNAUTHORIZED, detail="Invalid operator token")


@router.post(
    "/holds/{payment_intent_id}/release",
    summary="Release an abandoned checkout",
    description="""
Called by the client when the renter leaves the checkout. Only the renter
or owner of the reservation may release it. Otherwise best effort: answers
202 whether or not a hold was left to remove.
""",
    response_model=HoldReleaseResponse,
    status_code=HTTP_202_ACCEPTED,
    responses={
        401: {"description": "Authentication required"},
        403: {"description": "Not a party to this checkout"},
    },
)
async def release_hold(
    payment_intent_id: str,
    user_id: str = Depends(get_user_id),
    service: ReservationService = Depends(get_reservation_service),
) -> HoldReleaseResponse:
    """Remove the hold of an abandoned payment."""
    released = service.abandon_checkout(payment_intent_id, user_id)
    return HoldReleaseResponse(payment_intent_id=payment_intent_id, released=released)


@router.post(
    "/holds/sweep",
    summary="Sweep expired holds",
    description="""
Operator endpoint, authenticated with the bearer token stored in SSM.
Holds still within the hold TTL are kept whatever max_age_minutes says.
""",
    response_model=SweepResult,
    dependencies=[Depends(require_operator)],
    responses={
        401: {"description": "Missing or invalid operator token"},
        503: {"description": "Operator token could not be read"},
    },
)
async def sweep_expired_holds(
    max_age_minutes: int = Query(default=60, ge=1, le=7 * 24 * 60),
    reaper: ExpiredHoldReaper = Depends(get_reaper),
) -> SweepResult:
    """Delete temporary holds older than max_age_minutes."""
    return reaper.sweep(max_age=dt.timedelta(minutes=max_age_minutes))
