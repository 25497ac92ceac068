"""Pytest configuration and fixtures for trailer booking tests.

This module provides reusable fixtures for testing:
- DynamoDB mocking with moto (calendar, payments, notifications, payment-events)
- A controllable clock
- Sample trailers, windows and services wired to the mocked tables
"""

import datetime as dt
import os
from typing import Any, Generator
from unittest.mock import MagicMock

import boto3
import pytest
from moto import mock_aws

# === Environment Setup ===

# Set environment variables for testing before imports
os.environ.setdefault("AWS_DEFAULT_REGION", "eu-west-1")
os.environ.setdefault("DYNAMODB_TABLE_PREFIX", "test-booking")

if not os.environ.get("AWS_PROFILE") and not os.environ.get("AWS_ACCESS_KEY_ID"):
    os.environ.setdefault("AWS_ACCESS_KEY_ID", "testing")
    os.environ.setdefault("AWS_SECRET_ACCESS_KEY", "testing")

from booking.models import BookingWindow, PaymentIntent, Resource  # noqa: E402
from booking.services.availability import AvailabilityCalculator  # noqa: E402
from booking.services.calendar_store import CalendarStore  # noqa: E402
from booking.services.dynamodb import DynamoDBService  # noqa: E402
from booking.services.notification_service import NotificationService  # noqa: E402
from booking.services.payment_service import PaymentService  # noqa: E402
from booking.services.pricing import PricingService  # noqa: E402
from booking.services.reaper import ExpiredHoldReaper  # noqa: E402
from booking.services.reservations import ReservationService  # noqa: E402
from booking.services.temporary_blocks import TemporaryBlockManager  # noqa: E402

# === Test Configuration ===

OWNER_ID = "owner-123"
RENTER_ID = "renter-456"
OTHER_USER_ID = "stranger-789"
RESOURCE_ID = "TRL-001"

# Monday
MONDAY = dt.date(2030, 1, 7)
START_OF_TESTS = dt.datetime(2030, 1, 1, 9, 0, tzinfo=dt.UTC)


class FakeClock:
    """Clock returning a settable UTC time."""

    def __init__(self, now: dt.datetime = START_OF_TESTS) -> None:
        self.now = now

    def __call__(self) -> dt.datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now += dt.timedelta(**kwargs)


# === Singleton Reset ===


@pytest.fixture(autouse=True)
def reset_singletons() -> Generator[None, None, None]:
    """Reset cached services before and after each test.

    Tests using mock_aws need services created inside the mock context
    rather than ones left over from a previous test.
    """
    from booking_api.dependencies import reset_services

    reset_services()
    yield
    reset_services()


# === DynamoDB Fixtures ===


CALENDAR_TABLE: dict[str, Any] = {
    "TableName": "test-booking-calendar",
    "KeySchema": [
        {"AttributeName": "resource_id", "KeyType": "HASH"},
        {"AttributeName": "sk", "KeyType": "RANGE"},
    ],
    "AttributeDefinitions": [
        {"AttributeName": "resource_id", "AttributeType": "S"},
        {"AttributeName": "sk", "AttributeType": "S"},
        {"AttributeName": "rental_id", "AttributeType": "S"},
        {"AttributeName": "payment_intent_id", "AttributeType": "S"},
        {"AttributeName": "hold_kind", "AttributeType": "S"},
        {"AttributeName": "status", "AttributeType": "S"},
        {"AttributeName": "created_at", "AttributeType": "S"},
        {"AttributeName": "owner_id", "AttributeType": "S"},
    ],
    "GlobalSecondaryIndexes": [
        {
            "IndexName": "rental_id-index",
            "KeySchema": [{"AttributeName": "rental_id", "KeyType": "HASH"}],
            "Projection": {"ProjectionType": "ALL"},
        },
        {
            "IndexName": "payment_intent_id-index",
            "KeySchema": [
                {"AttributeName": "payment_intent_id", "KeyType": "HASH"},
                {"AttributeName": "sk", "KeyType": "RANGE"},
            ],
            "Projection": {"ProjectionType": "ALL"},
        },
        {
            "IndexName": "hold_kind-created_at-index",
            "KeySchema": [
                {"AttributeName": "hold_kind", "KeyType": "HASH"},
                {"AttributeName": "created_at", "KeyType": "RANGE"},
            ],
            "Projection": {"ProjectionType": "ALL"},
        },
        {
            "IndexName": "status-created_at-index",
            "KeySchema": [
                {"AttributeName": "status", "KeyType": "HASH"},
                {"AttributeName": "created_at", "KeyType": "RANGE"},
            ],
            "Projection": {"ProjectionType": "ALL"},
        },
        {
            "IndexName": "owner_id-index",
            "KeySchema": [
                {"AttributeName": "owner_id", "KeyType": "HASH"},
                {"AttributeName": "sk", "KeyType": "RANGE"},
            ],
            "Projection": {"ProjectionType": "ALL"},
        },
    ],
    "BillingMode": "PAY_PER_REQUEST",
}

PAYMENTS_TABLE: dict[str, Any] = {
    "TableName": "test-booking-payments",
    "KeySchema": [{"AttributeName": "payment_id", "KeyType": "HASH"}],
    "AttributeDefinitions": [
        {"AttributeName": "payment_id", "AttributeType": "S"},
        {"AttributeName": "rental_id", "AttributeType": "S"},
        {"AttributeName": "provider_transaction_id", "AttributeType": "S"},
    ],
    "GlobalSecondaryIndexes": [
        {
            "IndexName": "rental_id-index",
            "KeySchema": [{"AttributeName": "rental_id", "KeyType": "HASH"}],
            "Projection": {"ProjectionType": "ALL"},
        },
        {
            "IndexName": "provider_transaction_id-index",
            "KeySchema": [{"AttributeName": "provider_transaction_id", "KeyType": "HASH"}],
            "Projection": {"ProjectionType": "ALL"},
        },
    ],
    "BillingMode": "PAY_PER_REQUEST",
}

SIMPLE_TABLES = {
    "test-booking-notifications": "notification_id",
    "test-booking-payment-events": "event_id",
}


@pytest.fixture
def aws_credentials() -> None:
    """Mocked AWS credentials for moto."""
    if not os.environ.get("AWS_PROFILE"):
        os.environ["AWS_ACCESS_KEY_ID"] = "testing"
        os.environ["AWS_SECRET_ACCESS_KEY"] = "testing"
        os.environ["AWS_SECURITY_TOKEN"] = "testing"
        os.environ["AWS_SESSION_TOKEN"] = "testing"
    os.environ["AWS_DEFAULT_REGION"] = "eu-west-1"


@pytest.fixture
def dynamodb_tables(aws_credentials: None) -> Generator[Any, None, None]:
    """Create all booking tables in a mocked DynamoDB."""
    with mock_aws():
        os.environ["DYNAMODB_TABLE_PREFIX"] = "test-booking"
        client = boto3.client("dynamodb", region_name="eu-west-1")

        client.create_table(**CALENDAR_TABLE)
        client.create_table(**PAYMENTS_TABLE)
        for table_name, key in SIMPLE_TABLES.items():
            client.create_table(
                TableName=table_name,
                KeySchema=[{"AttributeName": key, "KeyType": "HASH"}],
                AttributeDefinitions=[{"AttributeName": key, "AttributeType": "S"}],
                BillingMode="PAY_PER_REQUEST",
            )

        yield client


@pytest.fixture
def db(dynamodb_tables: Any) -> DynamoDBService:
    """DynamoDBService bound to the mocked tables."""
    return DynamoDBService(environment="test")


# === Sample Data Fixtures ===


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def resource() -> Resource:
    """Trailer rentable Monday to Saturday; Monday has opening hours."""
    return Resource.model_validate(
        {
            "resource_id": RESOURCE_ID,
            "owner_id": OWNER_ID,
            "title": "Box trailer 750 kg",
            "price_per_day": 2500,
            "price_per_week": 15000,
            "min_rental_days": 1,
            "max_rental_days": 28,
            "weekly_availability": [
                {
                    "day": "monday",
                    "time_slots": [{"start": "09:00", "end": "18:00"}],
                },
                {"day": "tuesday"},
                {"day": "wednesday"},
                {"day": "thursday"},
                {"day": "friday"},
                {"day": "saturday"},
                {"day": "sunday", "available": False},
            ],
        }
    )


@pytest.fixture
def monday_window() -> BookingWindow:
    """Monday 10:00-14:00."""
    return BookingWindow(
        start_date=MONDAY,
        end_date=MONDAY,
        pickup_time=dt.time(10, 0),
        return_time=dt.time(14, 0),
    )


@pytest.fixture
def store(db: DynamoDBService, resource: Resource) -> CalendarStore:
    """CalendarStore with the sample trailer saved."""
    calendar_store = CalendarStore(db)
    calendar_store.save_resource(resource)
    return calendar_store


@pytest.fixture
def calculator(clock: FakeClock) -> AvailabilityCalculator:
    return AvailabilityCalculator(clock=clock)


@pytest.fixture
def blocks(
    store: CalendarStore, calculator: AvailabilityCalculator, clock: FakeClock
) -> TemporaryBlockManager:
    return TemporaryBlockManager(store, calculator, clock=clock)


@pytest.fixture
def payments(db: DynamoDBService) -> PaymentService:
    return PaymentService(db)


@pytest.fixture
def mock_stripe() -> MagicMock:
    """StripeService double handing out sequential PaymentIntents."""
    stripe = MagicMock()
    counter = {"n": 0}

    def create_payment_intent(**kwargs: Any) -> PaymentIntent:
        counter["n"] += 1
        return PaymentIntent(
            id=f"pi_test_{counter['n']}",
            status="requires_payment_method",
            amount=kwargs["amount_cents"],
            client_secret=f"pi_test_{counter['n']}_secret",
            metadata=kwargs.get("metadata") or {},
        )

    stripe.create_payment_intent.side_effect = create_payment_intent
    stripe.cancel_payment_intent.return_value = None
    return stripe


@pytest.fixture
def reservations(
    store: CalendarStore,
    blocks: TemporaryBlockManager,
    payments: PaymentService,
    mock_stripe: MagicMock,
    db: DynamoDBService,
    clock: FakeClock,
) -> ReservationService:
    return ReservationService(
        store=store,
        blocks=blocks,
        payments=payments,
        stripe=mock_stripe,
        notifications=NotificationService(db),
        pricing=PricingService(renter_fee_percent=5, owner_fee_percent=15),
        clock=clock,
    )


@pytest.fixture
def reaper(store: CalendarStore, payments: PaymentService, clock: FakeClock) -> ExpiredHoldReaper:
    return ExpiredHoldReaper(store, payments, clock=clock)
