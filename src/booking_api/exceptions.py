"""FastAPI exception handlers converting BookingError to HTTP responses.

The HTTP status follows the exception class:
- 400 Bad Request: ValidationError
- 403 Forbidden: AuthorizationError
- 404 Not Found: NotFoundError
- 409 Conflict: ConflictError, InvalidStateError
- 502 Bad Gateway: UpstreamPaymentError

The body is an ErrorResponse; conflicts are included for ConflictError.

Usage:
    from booking_api.exceptions import register_exception_handlers
    register_exception_handlers(app)
"""

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from starlette.status import (
    HTTP_400_BAD_REQUEST,
    HTTP_403_FORBIDDEN,
    HTTP_404_NOT_FOUND,
    HTTP_409_CONFLICT,
    HTTP_502_BAD_GATEWAY,
)

from booking.models import (
    AuthorizationError,
    BookingError,
    ConflictError,
    InvalidStateError,
    NotFoundError,
    UpstreamPaymentError,
    ValidationError,
)

logger = logging.getLogger(__name__)

ERROR_CLASS_TO_HTTP_STATUS: list[tuple[type[BookingError], int]] = [
    (ValidationError, HTTP_400_BAD_REQUEST),
    (AuthorizationError, HTTP_403_FORBIDDEN),
    (NotFoundError, HTTP_404_NOT_FOUND),
    (ConflictError, HTTP_409_CONFLICT),
    (InvalidStateError, HTTP_409_CONFLICT),
    (UpstreamPaymentError, HTTP_502_BAD_GATEWAY),
]


def get_http_status_for_error(exc: BookingError) -> int:
    """Get the HTTP status for a BookingError, 400 if its class is unmapped."""
    for error_class, status_code in ERROR_CLASS_TO_HTTP_STATUS:
        if isinstance(exc, error_class):
            return status_code
    return HTTP_400_BAD_REQUEST


async def booking_error_handler(request: Request, exc: BookingError) -> JSONResponse:
    """Convert a BookingError to a JSON error response."""
    status_code = get_http_status_for_error(exc)
    if status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.code.value)
    else:
        logger.info("%s %s rejected: %s", request.method, request.url.path, exc.code.value)

    return JSONResponse(
        status_code=status_code,
        content=exc.to_error_response().model_dump(mode="json", exclude_none=True),
    )


def register_exception_handlers(app: FastAPI) -> None:
    """Register the BookingError handler with the FastAPI app."""
    app.add_exception_handler(BookingError, booking_error_handler)  # type: ignore[arg-type]
