"""Price breakdown model for rentals."""

from pydantic import BaseModel, ConfigDict, Field


class PriceBreakdown(BaseModel):
    """Price of a rental in EUR cents."""

    model_config = ConfigDict(strict=True)

    rental_days: int = Field(..., ge=1)
    base_price: int = Field(..., ge=0, description="Rental price before fees")
    renter_fee: int = Field(..., ge=0, description="Service fee paid by the renter")
    owner_fee: int = Field(..., ge=0, description="Commission withheld from the owner")
    total_price: int = Field(..., ge=0, description="Amount charged to the renter")
    owner_payout: int = Field(..., ge=0, description="Amount paid out to the owner")
