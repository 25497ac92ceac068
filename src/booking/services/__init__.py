"""Backend services for trailer booking."""

from .availability import AvailabilityCalculator, day_schedule
from .calendar_store import CalendarStore
from .dynamodb import DynamoDBService, get_dynamodb_service, reset_dynamodb_service
from .notification_service import NotificationService
from .payment_service import PaymentService
from .pricing import PricingService
from .reaper import ExpiredHoldReaper
from .reservations import ReservationService
from .ssm_service import SSMService, SSMServiceError, get_ssm_service
from .stripe_service import StripeService, get_stripe_service
from .temporary_blocks import TemporaryBlockManager
from .webhook_handler import PaymentEventHandler

__all__ = [
    "AvailabilityCalculator",
    "day_schedule",
    "CalendarStore",
    "DynamoDBService",
    "get_dynamodb_service",
    "reset_dynamodb_service",
    "ExpiredHoldReaper",
    "NotificationService",
    "PaymentEventHandler",
    "PaymentService",
    "PricingService",
    "ReservationService",
    "SSMService",
    "SSMServiceError",
    "get_ssm_service",
    "StripeService",
    "get_stripe_service",
    "TemporaryBlockManager",
]
