"""Tests for the FastAPI routes.

Services are wired to the moto tables through app.dependency_overrides;
Stripe and SSM are MagicMocks. API Gateway passes the user in the
x-user-sub header; operator calls carry a bearer token.
"""

from unittest.mock import MagicMock

import pytest
from fastapi.testclient import TestClient

from booking.models import ErrorCode, PaymentIntent, ValidationError
from booking.services.ssm_service import SSMServiceError
from booking.services.webhook_handler import PaymentEventHandler
from booking_api.dependencies import (
    get_availability_calculator,
    get_block_manager,
    get_calendar_store,
    get_payment_event_handler,
    get_reaper,
    get_reservation_service,
    get_ssm,
    get_stripe,
)
from booking_api.main import app

from tests.conftest import OTHER_USER_ID, OWNER_ID, RENTER_ID, RESOURCE_ID

# === Test Configuration ===

RENTER_HEADERS = {"x-user-sub": RENTER_ID}
OWNER_HEADERS = {"x-user-sub": OWNER_ID}
STRANGER_HEADERS = {"x-user-sub": OTHER_USER_ID}
OPERATOR_TOKEN = "operator-secret"
OPERATOR_HEADERS = {"authorization": f"Bearer {OPERATOR_TOKEN}"}

MONDAY_BODY = {
    "start_date": "2030-01-07",
    "end_date": "2030-01-07",
    "pickup_time": "10:00",
    "return_time": "14:00",
}


# === Test Fixtures ===


@pytest.fixture
def mock_ssm() -> MagicMock:
    """SSM double holding the operator token."""
    ssm = MagicMock()
    ssm.operator_path.side_effect = lambda name: f"/booking/test/operator/{name}"
    ssm.get_parameter.return_value = OPERATOR_TOKEN
    return ssm


@pytest.fixture
def client(store, calculator, blocks, reservations, reaper, payments, db, mock_stripe, mock_ssm):
    """Test client with services bound to the mocked tables."""
    event_handler = PaymentEventHandler(db, reservations, payments)
    mock_stripe.compute_payload_hash.return_value = "payload-hash"
    app.dependency_overrides = {
        get_calendar_store: lambda: store,
        get_block_manager: lambda: blocks,
        get_ssm: lambda: mock_ssm,
        get_availability_calculator: lambda: calculator,
        get_reservation_service: lambda: reservations,
        get_stripe: lambda: mock_stripe,
        get_reaper: lambda: reaper,
        get_payment_event_handler: lambda: event_handler,
    }
    yield TestClient(app)
    app.dependency_overrides = {}


@pytest.fixture
def created(client: TestClient) -> dict:
    """A pending reservation of Monday 10:00-14:00, as returned by the API."""
    response = client.post(
        "/api/reservations",
        json={"resource_id": RESOURCE_ID, **MONDAY_BODY},
        headers=RENTER_HEADERS,
    )
    assert response.status_code == 201
    return response.json()


# === Health Tests ===


class TestHealth:
    """Health check endpoints."""

    def test_ping(self, client: TestClient):
        response = client.get("/api/ping")

        assert response.status_code == 200
        assert response.json()["status"] == "ok"
        assert response.json()["service"] == "trailer-booking-api"

    def test_health(self, client: TestClient):
        response = client.get("/api/health")

        assert response.status_code == 200
        assert response.json()["status"] == "healthy"
        assert response.json()["version"] == "0.1.0"

    def test_correlation_id_echoed(self, client: TestClient):
        """A client supplied correlation ID is returned."""
        response = client.get("/api/health", headers={"x-correlation-id": "corr-1"})

        assert response.headers["x-correlation-id"] == "corr-1"


# === Availability Tests ===


class TestAvailabilityRoutes:
    """Window checks and calendar display."""

    def test_check_available(self, client: TestClient):
        response = client.post(
            f"/api/resources/{RESOURCE_ID}/availability/check", json=MONDAY_BODY
        )

        assert response.status_code == 200
        assert response.json() == {"available": True, "conflicts": []}

    def test_check_closed_day(self, client: TestClient):
        """A Sunday pickup reports a schedule conflict."""
        response = client.post(
            f"/api/resources/{RESOURCE_ID}/availability/check",
            json={"start_date": "2030-01-06", "end_date": "2030-01-08"},
        )

        data = response.json()
        assert data["available"] is False
        assert data["conflicts"][0]["kind"] == "schedule"

    def test_check_unknown_trailer(self, client: TestClient):
        response = client.post("/api/resources/TRL-404/availability/check", json=MONDAY_BODY)

        assert response.status_code == 404
        assert response.json()["error_code"] == ErrorCode.RESOURCE_NOT_FOUND.value

    def test_check_reversed_window(self, client: TestClient):
        response = client.post(
            f"/api/resources/{RESOURCE_ID}/availability/check",
            json={"start_date": "2030-01-09", "end_date": "2030-01-08"},
        )

        assert response.status_code == 400
        assert response.json()["error_code"] == ErrorCode.INVALID_DATE_RANGE.value

    def test_list_unavailable_dates(self, client: TestClient, created):
        """Closed Sundays and the reserved Monday are listed."""
        response = client.get(
            f"/api/resources/{RESOURCE_ID}/availability",
            params={"start": "2030-01-06", "end": "2030-01-13"},
        )

        assert response.status_code == 200
        assert response.json()["unavailable_dates"] == ["2030-01-06", "2030-01-07"]

    def test_list_requires_horizon(self, client: TestClient):
        response = client.get(f"/api/resources/{RESOURCE_ID}/availability")

        assert response.status_code == 422


# === Reservation Tests ===


class TestReservationRoutes:
    """Reservation lifecycle endpoints."""

    def test_create(self, created):
        assert created["rental"]["status"] == "pending"
        assert created["rental"]["renter_id"] == RENTER_ID
        assert created["client_secret"] == "pi_test_1_secret"
        assert created["price"]["total_price"] == 2625

    def test_create_requires_user(self, client: TestClient):
        response = client.post("/api/reservations", json={"resource_id": RESOURCE_ID, **MONDAY_BODY})

        assert response.status_code == 401

    def test_create_taken_window(self, client: TestClient, created):
        """A second renter gets 409 with the conflicts."""
        response = client.post(
            "/api/reservations",
            json={"resource_id": RESOURCE_ID, **MONDAY_BODY},
            headers=STRANGER_HEADERS,
        )

        assert response.status_code == 409
        data = response.json()
        assert data["error_code"] == ErrorCode.DATES_UNAVAILABLE.value
        assert len(data["conflicts"]) == 1

    def test_get_by_parties(self, client: TestClient, created):
        rental_id = created["rental"]["rental_id"]

        for headers in (RENTER_HEADERS, OWNER_HEADERS):
            response = client.get(f"/api/reservations/{rental_id}", headers=headers)
            assert response.status_code == 200
            assert response.json()["rental_id"] == rental_id

    def test_get_by_stranger(self, client: TestClient, created):
        response = client.get(
            f"/api/reservations/{created['rental']['rental_id']}", headers=STRANGER_HEADERS
        )

        assert response.status_code == 403
        assert response.json()["error_code"] == ErrorCode.UNAUTHORIZED.value

    def test_get_unknown(self, client: TestClient):
        response = client.get("/api/reservations/RNT-404", headers=RENTER_HEADERS)

        assert response.status_code == 404

    def test_confirm(self, client: TestClient, mock_stripe, created):
        """A succeeded PaymentIntent confirms the reservation."""
        intent_id = created["payment_intent_id"]
        mock_stripe.retrieve_payment_intent.return_value = PaymentIntent(
            id=intent_id, status="succeeded"
        )

        response = client.post(
            f"/api/reservations/{created['rental']['rental_id']}/confirm",
            json={"payment_intent_id": intent_id},
            headers=RENTER_HEADERS,
        )

        assert response.status_code == 200
        assert response.json()["status"] == "confirmed"
        mock_stripe.retrieve_payment_intent.assert_called_once_with(intent_id)

    def test_confirm_unpaid(self, client: TestClient, mock_stripe, created):
        """An unfinished payment is not confirmed."""
        intent_id = created["payment_intent_id"]
        mock_stripe.retrieve_payment_intent.return_value = PaymentIntent(
            id=intent_id, status="requires_action"
        )

        response = client.post(
            f"/api/reservations/{created['rental']['rental_id']}/confirm",
            json={"payment_intent_id": intent_id},
            headers=RENTER_HEADERS,
        )

        assert response.status_code == 400
        assert response.json()["error_code"] == ErrorCode.PAYMENT_NOT_COMPLETED.value

    def test_cancel(self, client: TestClient, created):
        response = client.post(
            f"/api/reservations/{created['rental']['rental_id']}/cancel",
            json={"reason": "Plans changed"},
            headers=RENTER_HEADERS,
        )

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "cancelled"
        assert data["payment_status"] == "failed"
        assert data["hold_removed"] is True

    def test_cancel_twice(self, client: TestClient, created):
        url = f"/api/reservations/{created['rental']['rental_id']}/cancel"
        client.post(url, json={"reason": "Plans changed"}, headers=RENTER_HEADERS)

        response = client.post(url, json={"reason": "Again"}, headers=RENTER_HEADERS)

        assert response.status_code == 409
        assert response.json()["error_code"] == ErrorCode.INVALID_STATE_TRANSITION.value

    def test_cancel_requires_reason(self, client: TestClient, created):
        response = client.post(
            f"/api/reservations/{created['rental']['rental_id']}/cancel",
            json={"reason": ""},
            headers=RENTER_HEADERS,
        )

        assert response.status_code == 422


# === Hold Tests ===


class TestHoldRoutes:
    """Checkout abandonment and sweeps."""

    def test_release(self, client: TestClient, created):
        response = client.post(
            f"/api/holds/{created['payment_intent_id']}/release", headers=RENTER_HEADERS
        )

        assert response.status_code == 202
        assert response.json() == {
            "payment_intent_id": created["payment_intent_id"],
            "released": True,
        }

    def test_release_unknown_is_accepted(self, client: TestClient):
        response = client.post("/api/holds/pi_unknown/release", headers=RENTER_HEADERS)

        assert response.status_code == 202
        assert response.json()["released"] is False

    def test_sweep(self, client: TestClient, clock, created):
        clock.advance(hours=2)

        response = client.post(
            "/api/holds/sweep", params={"max_age_minutes": 60}, headers=OPERATOR_HEADERS
        )

        assert response.status_code == 200
        data = response.json()
        assert data["removed_count"] == 1
        assert data["expired_rentals"] == [created["rental"]["rental_id"]]

    def test_release_by_stranger(self, client: TestClient, mock_stripe, created):
        """Only parties to the reservation may abandon its checkout."""
        response = client.post(
            f"/api/holds/{created['payment_intent_id']}/release", headers=STRANGER_HEADERS
        )

        assert response.status_code == 403
        assert response.json()["error_code"] == ErrorCode.UNAUTHORIZED.value
        mock_stripe.cancel_payment_intent.assert_not_called()
        rental = client.get(
            f"/api/reservations/{created['rental']['rental_id']}", headers=RENTER_HEADERS
        ).json()
        assert rental["status"] == "pending"

    def test_sweep_requires_operator_token(self, client: TestClient, clock, created):
        clock.advance(hours=2)

        for headers in ({}, RENTER_HEADERS, {"authorization": "Bearer wrong"}):
            response = client.post("/api/holds/sweep", headers=headers)
            assert response.status_code == 401

        rental = client.get(
            f"/api/reservations/{created['rental']['rental_id']}", headers=RENTER_HEADERS
        ).json()
        assert rental["status"] == "pending"

    def test_sweep_token_unavailable(self, client: TestClient, mock_ssm):
        mock_ssm.get_parameter.side_effect = SSMServiceError("Parameter not found")

        response = client.post("/api/holds/sweep", headers=OPERATOR_HEADERS)

        assert response.status_code == 503

    def test_sweep_keeps_live_holds(self, client: TestClient, clock, created):
        """A max age below the hold TTL does not cut checkouts short."""
        clock.advance(minutes=2)

        response = client.post(
            "/api/holds/sweep", params={"max_age_minutes": 1}, headers=OPERATOR_HEADERS
        )

        assert response.status_code == 200
        assert response.json()["removed_count"] == 0
        assert response.json()["expired_rentals"] == []


# === Owner Tests ===


class TestOwnerRoutes:
    """Owner blocks on their own calendars."""

    def test_block_own_trailer(self, client: TestClient):
        response = client.post(
            "/api/owners/me/blocked-periods",
            json={
                "resource_id": RESOURCE_ID,
                "start_date": "2030-01-08",
                "end_date": "2030-01-09",
                "reason": "Maintenance",
            },
            headers=OWNER_HEADERS,
        )

        assert response.status_code == 201
        [block] = response.json()
        assert block["resource_id"] == RESOURCE_ID
        assert block["user_id"] == OWNER_ID
        assert block["reason"] == "Maintenance"

    def test_block_requires_user(self, client: TestClient):
        response = client.post(
            "/api/owners/me/blocked-periods",
            json={"start_date": "2030-01-08", "end_date": "2030-01-08"},
        )

        assert response.status_code == 401

    def test_block_someone_elses_trailer(self, client: TestClient):
        response = client.post(
            "/api/owners/me/blocked-periods",
            json={"resource_id": RESOURCE_ID, "start_date": "2030-01-08", "end_date": "2030-01-08"},
            headers=STRANGER_HEADERS,
        )

        assert response.status_code == 404
        assert response.json()["error_code"] == ErrorCode.RESOURCE_NOT_FOUND.value

    def test_owner_wide_block_stops_reservations(self, client: TestClient):
        """Without resource_id every trailer of the owner is blocked."""
        response = client.post(
            "/api/owners/me/blocked-periods",
            json={"start_date": "2030-01-07", "end_date": "2030-01-07"},
            headers=OWNER_HEADERS,
        )
        assert response.status_code == 201
        assert response.json()[0]["resource_id"] is None

        response = client.post(
            "/api/reservations",
            json={"resource_id": RESOURCE_ID, **MONDAY_BODY},
            headers=RENTER_HEADERS,
        )

        assert response.status_code == 409
        assert response.json()["conflicts"][0]["kind"] == "blocked_period"

    def test_morning_block(self, client: TestClient):
        """A morning block conflicts with a 10:00 pickup."""
        response = client.post(
            "/api/owners/me/blocked-periods",
            json={
                "resource_id": RESOURCE_ID,
                "start_date": "2030-01-07",
                "end_date": "2030-01-07",
                "all_day": False,
                "morning": True,
            },
            headers=OWNER_HEADERS,
        )
        assert response.status_code == 201
        assert len(response.json()) == 1

        response = client.post(
            f"/api/resources/{RESOURCE_ID}/availability/check", json=MONDAY_BODY
        )

        assert response.json()["available"] is False

    def test_no_part_selected(self, client: TestClient):
        response = client.post(
            "/api/owners/me/blocked-periods",
            json={
                "resource_id": RESOURCE_ID,
                "start_date": "2030-01-07",
                "end_date": "2030-01-07",
                "all_day": False,
            },
            headers=OWNER_HEADERS,
        )

        assert response.status_code == 400
        assert response.json()["error_code"] == ErrorCode.INVALID_DATE_RANGE.value

    def test_block_occupied_days(self, client: TestClient, created):
        response = client.post(
            "/api/owners/me/blocked-periods",
            json={"start_date": "2030-01-07", "end_date": "2030-01-07"},
            headers=OWNER_HEADERS,
        )

        assert response.status_code == 409
        assert response.json()["error_code"] == ErrorCode.DATES_UNAVAILABLE.value


# === Webhook Tests ===


class TestWebhookRoute:
    """Stripe webhook endpoint."""

    def test_missing_signature(self, client: TestClient):
        response = client.post("/api/webhooks/stripe", content=b"{}")

        assert response.status_code == 400
        assert response.json()["error_code"] == ErrorCode.INVALID_WEBHOOK_SIGNATURE.value

    def test_invalid_signature(self, client: TestClient, mock_stripe):
        mock_stripe.verify_webhook_signature.side_effect = ValidationError(
            ErrorCode.INVALID_WEBHOOK_SIGNATURE
        )

        response = client.post(
            "/api/webhooks/stripe", content=b"{}", headers={"stripe-signature": "bad"}
        )

        assert response.status_code == 400

    def test_payment_succeeded(self, client: TestClient, mock_stripe, created):
        """A verified success event confirms the reservation."""
        rental_id = created["rental"]["rental_id"]
        mock_stripe.verify_webhook_signature.return_value = {
            "id": "evt_1",
            "type": "payment_intent.succeeded",
            "data": {
                "object": {
                    "id": created["payment_intent_id"],
                    "status": "succeeded",
                    "metadata": {"rental_id": rental_id},
                }
            },
        }

        response = client.post(
            "/api/webhooks/stripe", content=b"{}", headers={"stripe-signature": "t=1,v1=abc"}
        )

        assert response.status_code == 200
        assert response.json()["processing_result"] == "success"
        rental = client.get(f"/api/reservations/{rental_id}", headers=RENTER_HEADERS).json()
        assert rental["status"] == "confirmed"
