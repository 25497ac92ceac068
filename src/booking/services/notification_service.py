"""Notification sink for reservation events.

Stores notification records for renters and owners; delivery (email, push,
in-app) happens elsewhere and reads this table.
"""

import datetime as dt
import logging
from typing import TYPE_CHECKING

from booking.models import NotificationType

from .payment_service import generate_id

if TYPE_CHECKING:
    from .dynamodb import DynamoDBService

logger = logging.getLogger(__name__)


class NotificationService:
    """Writes notification records."""

    TABLE = "notifications"

    def __init__(self, db: "DynamoDBService") -> None:
        """Initialize notification service.

        Args:
            db: DynamoDB service instance
        """
        self.db = db

    def notify(
        self,
        user_id: str,
        notification_type: NotificationType,
        message: str,
        action_url: str | None = None,
    ) -> str:
        """Record a notification for a user.

        Args:
            user_id: Recipient
            notification_type: Category of the notification
            message: Text shown to the user
            action_url: Link the notification points to

        Returns:
            The notification ID
        """
        notification_id = generate_id("NTF")
        item = {
            "notification_id": notification_id,
            "user_id": user_id,
            "type": notification_type.value,
            "message": message,
            "read": False,
            "created_at": dt.datetime.now(dt.UTC).isoformat(),
        }
        if action_url:
            item["action_url"] = action_url

        self.db.put_item(self.TABLE, item)
        logger.debug("Notification %s stored for user %s", notification_id, user_id)
        return notification_id
