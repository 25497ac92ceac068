"""API-specific request/response models.

Domain models (Rental, BlockedPeriod, AvailabilityResult, ...) live in
booking.models and are returned directly where they fit. Request bodies here
are not strict, so dates and times arrive as ISO strings.
"""

from .requests import (
    AvailabilityCheckRequest,
    BlockedPeriodCreateRequest,
    CancelRequest,
    ConfirmRequest,
    ReservationCreateRequest,
)
from .responses import (
    HealthResponse,
    HoldReleaseResponse,
    UnavailableDatesResponse,
    WebhookResponse,
)

__all__ = [
    "AvailabilityCheckRequest",
    "BlockedPeriodCreateRequest",
    "CancelRequest",
    "ConfirmRequest",
    "ReservationCreateRequest",
    "HealthResponse",
    "HoldReleaseResponse",
    "UnavailableDatesResponse",
    "WebhookResponse",
]
