"""Unit tests for PricingService.

Test categories:
- Daily, weekly and monthly rates
- Renter service fee and owner commission
- Environment configuration
"""

import datetime as dt

import pytest

from booking.models import BookingWindow
from booking.services.pricing import PricingService

# === Test Configuration ===

START = dt.date(2030, 3, 4)


def days(count: int) -> BookingWindow:
    return BookingWindow(start_date=START, end_date=START + dt.timedelta(days=count))


# === Rate Tests ===


class TestBasePrice:
    """Rate selection by rental length."""

    @pytest.mark.parametrize(
        "rental_days,expected",
        [
            (1, 2500),
            (6, 15000),
            (7, 15000),
            (9, 20000),
            (14, 30000),
        ],
    )
    def test_daily_and_weekly_rates(self, resource, rental_days, expected):
        """Full weeks use the weekly rate, the rest the daily rate."""
        assert PricingService().base_price(resource, rental_days) == expected

    def test_monthly_rate(self, resource):
        """From 30 days the monthly rate applies."""
        monthly = resource.model_copy(update={"price_per_month": 50000})

        assert PricingService().base_price(monthly, 31) == 52500

    def test_weekly_rate_missing(self, resource):
        """Without a weekly rate every day is charged daily."""
        daily_only = resource.model_copy(update={"price_per_week": None})

        assert PricingService().base_price(daily_only, 8) == 20000


# === Fee Tests ===


class TestCalculatePrice:
    """Full price breakdowns."""

    def test_breakdown(self, resource):
        """The renter pays base plus fee; the owner receives base minus commission."""
        price = PricingService(renter_fee_percent=5, owner_fee_percent=15).calculate_price(
            resource, days(3)
        )

        assert price.rental_days == 3
        assert price.base_price == 7500
        assert price.renter_fee == 375
        assert price.owner_fee == 1125
        assert price.total_price == 7875
        assert price.owner_payout == 6375

    def test_fee_rounds_half_up(self, resource):
        """Fees are rounded to whole cents, halves up."""
        odd = resource.model_copy(update={"price_per_day": 1010})

        price = PricingService(renter_fee_percent=5, owner_fee_percent=15).calculate_price(
            odd, days(1)
        )

        assert price.renter_fee == 51
        assert price.owner_fee == 152

    def test_same_day_rental_is_one_day(self, resource, monday_window):
        """A few hours are charged as one day."""
        price = PricingService().calculate_price(resource, monday_window)

        assert price.rental_days == 1
        assert price.base_price == 2500

    def test_fee_percentages_from_environment(self, monkeypatch):
        """Fee percentages default to the environment."""
        monkeypatch.setenv("RENTER_FEE_PERCENT", "10")
        monkeypatch.setenv("OWNER_FEE_PERCENT", "20")

        service = PricingService()

        assert service.renter_fee_percent == 10
        assert service.owner_fee_percent == 20
