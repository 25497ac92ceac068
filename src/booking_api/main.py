"""FastAPI application for the trailer booking REST API.

Provides REST endpoints for:
- Health checks
- Availability checks and calendar display
- Reservation lifecycle (create, confirm, cancel)
- Checkout abandonment and expired hold sweeps
- Stripe webhooks
"""

import os
from datetime import UTC, datetime
from typing import Any

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from mangum import Mangum

from booking import __version__
from booking.utils.logging import configure_logging, get_logger
from booking_api.exceptions import register_exception_handlers
from booking_api.middleware.correlation import CorrelationIdMiddleware
from booking_api.routes import (
    availability_router,
    health_router,
    holds_router,
    owners_router,
    reservations_router,
    webhooks_router,
)

configure_logging()
logger = get_logger(__name__)

DEFAULT_CORS_ORIGINS = "http://localhost:3000,http://127.0.0.1:3000"

app = FastAPI(
    title="Trailer Booking API",
    description="REST API for trailer availability and reservations",
    version=__version__,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        origin.strip()
        for origin in os.getenv("CORS_ALLOWED_ORIGINS", DEFAULT_CORS_ORIGINS).split(",")
        if origin.strip()
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(CorrelationIdMiddleware)

register_exception_handlers(app)

# Routers live under /api, matching the CloudFront /api/* behaviour
app.include_router(health_router, prefix="/api")
app.include_router(availability_router, prefix="/api")
app.include_router(reservations_router, prefix="/api")
app.include_router(holds_router, prefix="/api")
app.include_router(owners_router, prefix="/api")
app.include_router(webhooks_router, prefix="/api")


@app.get("/api/ping")
async def ping() -> dict[str, Any]:
    """Root health check endpoint at /api/ping."""
    return {
        "status": "ok",
        "timestamp": datetime.now(UTC).isoformat(),
        "service": "trailer-booking-api",
    }


# Lambda handler - Mangum wraps FastAPI for AWS Lambda + API Gateway
handler = Mangum(app, lifespan="off")


def run_server(host: str = "0.0.0.0", port: int = 8080, reload: bool = True) -> None:
    """Run the API locally with uvicorn.

    Args:
        host: Host to bind to
        port: Port to listen on
        reload: Enable hot reload for development
    """
    import uvicorn

    logger.info("Starting API on %s:%d", host, port)
    if reload:
        # Reload mode needs the app as an import string
        uvicorn.run("booking_api.main:app", host=host, port=port, reload=True, reload_dirs=["src"])
    else:
        uvicorn.run(app, host=host, port=port)


if __name__ == "__main__":
    run_server()
