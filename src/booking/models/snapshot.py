"""Point-in-time view of a trailer's calendar."""

from pydantic import BaseModel, ConfigDict, Field

from .calendar import BlockedPeriod
from .rental import Rental
from .resource import Resource


class CalendarSnapshot(BaseModel):
    """Everything the availability check needs for one trailer.

    version is the calendar_version read together with the rows; a write
    based on this snapshot commits only if the version is unchanged.
    """

    model_config = ConfigDict(strict=True)

    resource: Resource
    version: int = Field(default=0, ge=0)
    blocks: list[BlockedPeriod] = Field(default_factory=list)
    rentals: list[Rental] = Field(default_factory=list)
