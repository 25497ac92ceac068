"""Owner endpoints: blocking days on the owner's own calendars.

The owner is the authenticated user from the x-user-sub header; a trailer
that belongs to someone else answers 404, as if it did not exist.
"""

from fastapi import APIRouter, Depends
from starlette.status import HTTP_201_CREATED

from booking.models import BlockedPeriod
from booking.services.temporary_blocks import TemporaryBlockManager
from booking_api.dependencies import get_block_manager
from booking_api.models import BlockedPeriodCreateRequest
from booking_api.routes.reservations import get_user_id

router = APIRouter(tags=["owners"])


@router.post(
    "/owners/me/blocked-periods",
    summary="Block days",
    description="""
Block days on one of the owner's trailers, or on all of them when
resource_id is omitted. Set all_day to false and flag morning, afternoon
or evening to block only those parts of each day.
""",
    response_model=list[BlockedPeriod],
    status_code=HTTP_201_CREATED,
    responses={
        400: {"description": "Invalid range or no part of the day selected"},
        401: {"description": "Authentication required"},
        404: {"description": "Trailer not found"},
        409: {"description": "Days already occupied"},
    },
)
async def create_blocked_periods(
    body: BlockedPeriodCreateRequest,
    user_id: str = Depends(get_user_id),
    blocks: TemporaryBlockManager = Depends(get_block_manager),
) -> list[BlockedPeriod]:
    """Block days for the authenticated owner."""
    return blocks.block_dates(
        body.resource_id,
        body.start_date,
        body.end_date,
        reason=body.reason,
        user_id=user_id,
        parts=body.day_parts(),
    )
