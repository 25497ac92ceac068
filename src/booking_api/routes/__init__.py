"""API routes package.

Routers are organized by domain:

- health: Health check
- availability: Window checks and calendar display
- reservations: Reservation lifecycle
- holds: Checkout abandonment and the expired hold sweep
- owners: Owner blocks on their own calendars
- webhooks: Stripe events

All routers are registered in main.py with /api prefix.
"""

from booking_api.routes.availability import router as availability_router
from booking_api.routes.health import router as health_router
from booking_api.routes.holds import router as holds_router
from booking_api.routes.owners import router as owners_router
from booking_api.routes.reservations import router as reservations_router
from booking_api.routes.webhooks import router as webhooks_router

__all__ = [
    "availability_router",
    "health_router",
    "holds_router",
    "owners_router",
    "reservations_router",
    "webhooks_router",
]
