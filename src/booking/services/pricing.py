"""Pricing service for rental price calculation."""

import os

from booking.models import BookingWindow, PriceBreakdown, Resource

DAYS_PER_WEEK = 7
DAYS_PER_MONTH = 30


def _percent_of(amount: int, percent: int) -> int:
    """Percentage of a cent amount, rounded half up."""
    return (amount * percent + 50) // 100


class PricingService:
    """Service for rental price and fee calculations.

    Monthly rates apply from 30 days, weekly rates from 7 days; remaining
    days are charged at the daily rate. The renter pays a service fee on top
    of the base price, the owner pays a commission out of it.
    """

    def __init__(
        self,
        renter_fee_percent: int | None = None,
        owner_fee_percent: int | None = None,
    ) -> None:
        """Initialize pricing service.

        Args:
            renter_fee_percent: Renter service fee. Defaults to RENTER_FEE_PERCENT env var (5).
            owner_fee_percent: Owner commission. Defaults to OWNER_FEE_PERCENT env var (15).
        """
        self.renter_fee_percent = (
            renter_fee_percent
            if renter_fee_percent is not None
            else int(os.getenv("RENTER_FEE_PERCENT", "5"))
        )
        self.owner_fee_percent = (
            owner_fee_percent
            if owner_fee_percent is not None
            else int(os.getenv("OWNER_FEE_PERCENT", "15"))
        )

    def base_price(self, resource: Resource, rental_days: int) -> int:
        """Rental price before fees in EUR cents."""
        if rental_days >= DAYS_PER_MONTH and resource.price_per_month:
            months, days = divmod(rental_days, DAYS_PER_MONTH)
            return months * resource.price_per_month + days * resource.price_per_day
        if rental_days >= DAYS_PER_WEEK and resource.price_per_week:
            weeks, days = divmod(rental_days, DAYS_PER_WEEK)
            return weeks * resource.price_per_week + days * resource.price_per_day
        return rental_days * resource.price_per_day

    def calculate_price(self, resource: Resource, window: BookingWindow) -> PriceBreakdown:
        """Calculate the price of renting a trailer for a window.

        Args:
            resource: Trailer with its rates
            window: Rental window

        Returns:
            PriceBreakdown in EUR cents
        """
        rental_days = window.rental_days
        base = self.base_price(resource, rental_days)
        renter_fee = _percent_of(base, self.renter_fee_percent)
        owner_fee = _percent_of(base, self.owner_fee_percent)

        return PriceBreakdown(
            rental_days=rental_days,
            base_price=base,
            renter_fee=renter_fee,
            owner_fee=owner_fee,
            total_price=base + renter_fee,
            owner_payout=base - owner_fee,
        )
