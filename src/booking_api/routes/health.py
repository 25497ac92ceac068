"""Health check endpoint."""

import datetime as dt

from fastapi import APIRouter

from booking import __version__
from booking_api.models import HealthResponse

router = APIRouter(tags=["health"])


@router.get("/health", summary="Health check", response_model=HealthResponse)
async def health() -> HealthResponse:
    """Report that the API is up."""
    return HealthResponse(
        status="healthy",
        timestamp=dt.datetime.now(dt.UTC).isoformat(),
        version=__version__,
    )
