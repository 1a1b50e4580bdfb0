from datetime import date
from typing import Dict, List, Optional
from pydantic import BaseModel, ConfigDict, Field

from rentals.core.messages import messages
from rentals.models import AvailabilityType, BookingStatus, DayStatus

_PAST_TENSE = {"withdraw": "withdrawn", "restore": "restored"}


class AvailabilityRecord(BaseModel):
    """Explicit owner record for one listing date, as read from the store."""

    listing_id: str
    date: date
    availability_type: AvailabilityType
    reason: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class AvailabilityDay(BaseModel):
    listing_id: str
    date: date
    status: DayStatus = DayStatus.AVAILABLE
    booking_id: Optional[str] = None
    booking_status: Optional[BookingStatus] = None
    is_past: bool = False


class DateBatchResult(BaseModel):
    """Outcome of a withdraw/restore batch after silent narrowing."""

    listing_id: str
    action: str
    applied_dates: List[date] = Field(default_factory=list)
    rejected: Dict[date, str] = Field(default_factory=dict)
    days: List[AvailabilityDay] = Field(default_factory=list)

    @property
    def accepted_count(self) -> int:
        return len(self.applied_dates)

    @property
    def rejected_count(self) -> int:
        return len(self.rejected)

    @property
    def message(self) -> str:
        """Toast text for the owner, e.g. "3 date(s) withdrawn, 1 skipped."."""
        return messages.dates_partially_applied(
            _PAST_TENSE.get(self.action, self.action), self.accepted_count, self.rejected_count
        )
