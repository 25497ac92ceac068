"""Scheduled Lambda handler sweeping expired temporary holds.

Triggered by an EventBridge schedule. The event may carry
{"max_age_minutes": N}; otherwise HOLD_MAX_AGE_SECONDS applies.
"""

import datetime as dt
import logging
import os
from typing import Any

from booking.services.calendar_store import CalendarStore
from booking.services.dynamodb import get_dynamodb_service
from booking.services.payment_service import PaymentService
from booking.services.reaper import ExpiredHoldReaper
from booking.utils.logging import configure_logging, set_correlation_id

configure_logging()
logger = logging.getLogger(__name__)


def _max_age(event: dict[str, Any]) -> dt.timedelta:
    minutes = event.get("max_age_minutes")
    if minutes:
        return dt.timedelta(minutes=int(minutes))
    return dt.timedelta(seconds=int(os.getenv("HOLD_MAX_AGE_SECONDS", "3600")))


def handler(event: dict[str, Any], context: Any) -> dict[str, Any]:
    """Sweep stale holds and expire the rentals left without one.

    Args:
        event: EventBridge scheduled event
        context: Lambda context

    Returns:
        Summary of the sweep
    """
    set_correlation_id(getattr(context, "aws_request_id", None))
    max_age = _max_age(event or {})
    logger.info("Hold sweep started, max age %s", max_age)

    db = get_dynamodb_service()
    reaper = ExpiredHoldReaper(CalendarStore(db), PaymentService(db))
    try:
        result = reaper.sweep(max_age=max_age)
    except Exception as e:
        logger.error("Hold sweep failed: %s", e)
        raise

    return {
        "status": "ok",
        "removed_count": result.removed_count,
        "removed_blocks": [block.block_id for block in result.removed_blocks],
        "expired_rentals": result.expired_rentals,
    }
