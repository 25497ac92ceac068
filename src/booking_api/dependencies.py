"""FastAPI dependency providers for booking services.

Services are created lazily and cached with @lru_cache, so each Lambda
container builds them once.

Service Dependency Graph:
    DynamoDBService (singleton via get_dynamodb_service)
        ├── CalendarStore
        │       ├── TemporaryBlockManager (with AvailabilityCalculator)
        │       │       └── ReservationService (+ StripeService)
        │       │               └── PaymentEventHandler
        │       └── ExpiredHoldReaper
        ├── PaymentService
        └── NotificationService
    SSMService (singleton via get_ssm_service, operator token for /holds/sweep)

Testing:
    Override providers with app.dependency_overrides, and call
    reset_services() between tests.
"""

from functools import lru_cache

from booking.services.availability import AvailabilityCalculator
from booking.services.calendar_store import CalendarStore
from booking.services.dynamodb import get_dynamodb_service, reset_dynamodb_service
from booking.services.notification_service import NotificationService
from booking.services.payment_service import PaymentService
from booking.services.pricing import PricingService
from booking.services.reaper import ExpiredHoldReaper
from booking.services.reservations import ReservationService
from booking.services.ssm_service import SSMService, get_ssm_service
from booking.services.stripe_service import StripeService, get_stripe_service
from booking.services.temporary_blocks import TemporaryBlockManager
from booking.services.webhook_handler import PaymentEventHandler


@lru_cache
def get_calendar_store() -> CalendarStore:
    """Get cached CalendarStore instance."""
    return CalendarStore(get_dynamodb_service())


@lru_cache
def get_availability_calculator() -> AvailabilityCalculator:
    """Get cached AvailabilityCalculator instance."""
    return AvailabilityCalculator()


@lru_cache
def get_block_manager() -> TemporaryBlockManager:
    """Get cached TemporaryBlockManager instance."""
    return TemporaryBlockManager(get_calendar_store(), get_availability_calculator())


@lru_cache
def get_payment_service() -> PaymentService:
    """Get cached PaymentService instance."""
    return PaymentService(get_dynamodb_service())


def get_stripe() -> StripeService:
    """Get the shared StripeService instance."""
    return get_stripe_service()


def get_ssm() -> SSMService:
    """Get the shared SSMService instance."""
    return get_ssm_service()


@lru_cache
def get_reservation_service() -> ReservationService:
    """Get cached ReservationService instance."""
    return ReservationService(
        store=get_calendar_store(),
        blocks=get_block_manager(),
        payments=get_payment_service(),
        stripe=get_stripe_service(),
        notifications=NotificationService(get_dynamodb_service()),
        pricing=PricingService(),
    )


@lru_cache
def get_reaper() -> ExpiredHoldReaper:
    """Get cached ExpiredHoldReaper instance."""
    return ExpiredHoldReaper(get_calendar_store(), get_payment_service())


@lru_cache
def get_payment_event_handler() -> PaymentEventHandler:
    """Get cached PaymentEventHandler instance."""
    return PaymentEventHandler(
        get_dynamodb_service(), get_reservation_service(), get_payment_service()
    )


def reset_services() -> None:
    """Clear all cached service instances and the DynamoDB singleton."""
    get_calendar_store.cache_clear()
    get_availability_calculator.cache_clear()
    get_block_manager.cache_clear()
    get_payment_service.cache_clear()
    get_reservation_service.cache_clear()
    get_reaper.cache_clear()
    get_payment_event_handler.cache_clear()
    get_stripe_service.cache_clear()
    reset_dynamodb_service()
