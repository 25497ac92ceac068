"""Availability endpoints for trailer calendars.

Provides REST endpoints for:
- Checking whether a rental window can be booked, with its conflicts
- Listing unavailable dates over a horizon for calendar display

Dates are YYYY-MM-DD, times HH:MM in the trailer's local time.
"""

import datetime as dt

from fastapi import APIRouter, Depends, Query

from booking.models import AvailabilityResult
from booking.services.availability import AvailabilityCalculator
from booking.services.calendar_store import CalendarStore
from booking_api.dependencies import get_availability_calculator, get_calendar_store
from booking_api.models import AvailabilityCheckRequest, UnavailableDatesResponse

router = APIRouter(tags=["availability"])


@router.post(
    "/resources/{resource_id}/availability/check",
    summary="Check a rental window",
    description="""
Check whether a trailer can be rented for a window.

Returns every conflict: closed days, pickup/return times outside the opening
hours, blocked periods, holds of payments in progress and existing rentals,
earliest-created first.
""",
    response_model=AvailabilityResult,
    responses={
        400: {"description": "Window does not end after it starts"},
        404: {"description": "Trailer not found"},
    },
)
async def check_availability(
    resource_id: str,
    body: AvailabilityCheckRequest,
    store: CalendarStore = Depends(get_calendar_store),
    calculator: AvailabilityCalculator = Depends(get_availability_calculator),
) -> AvailabilityResult:
    """Check availability of a window."""
    snapshot = store.load_snapshot(resource_id)
    return calculator.is_range_available(
        snapshot, body.to_window(), exclude_rental_id=body.exclude_rental_id
    )


@router.get(
    "/resources/{resource_id}/availability",
    summary="List unavailable dates",
    response_model=UnavailableDatesResponse,
    responses={
        400: {"description": "Horizon is empty or longer than two years"},
        404: {"description": "Trailer not found"},
    },
)
async def get_unavailable_dates(
    resource_id: str,
    start: dt.date = Query(..., description="First date (YYYY-MM-DD)", examples=["2030-07-01"]),
    end: dt.date = Query(
        ..., description="End of the horizon, exclusive (YYYY-MM-DD)", examples=["2030-08-01"]
    ),
    store: CalendarStore = Depends(get_calendar_store),
    calculator: AvailabilityCalculator = Depends(get_availability_calculator),
) -> UnavailableDatesResponse:
    """List the dates in [start, end) that cannot be booked."""
    snapshot = store.load_snapshot(resource_id)
    unavailable = calculator.list_unavailable_dates(snapshot, start, end)
    return UnavailableDatesResponse(
        resource_id=resource_id,
        start=start,
        end=end,
        unavailable_dates=sorted(unavailable),
    )
