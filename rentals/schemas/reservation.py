from datetime import date
from decimal import Decimal
from typing import Optional
from pydantic import BaseModel, Field

from rentals.models import FulfillmentMethod


class ListingInfo(BaseModel):
    """Read-only listing metadata consumed by the reservation aggregator."""

    listing_id: str
    title: str
    image: Optional[str] = None
    price_per_day: Decimal
    currency: str = "USD"
    pickup_available: bool = True
    delivery_available: bool = False
    owner_id: str
    category_id: Optional[str] = None


class ReservationLineIn(BaseModel):
    listing_id: str
    listing_title: str
    listing_image: Optional[str] = None
    start_date: date
    end_date: date
    price_per_day: Decimal = Field(ge=0)
    currency: str = "USD"
    fulfillment_method: FulfillmentMethod = FulfillmentMethod.PICKUP
    fulfillment_address: Optional[str] = None
    meet_location: Optional[str] = None
    time_window: Optional[str] = None
    instructions: Optional[str] = None
    delivery_fee: Decimal = Field(default=Decimal("0"), ge=0)
    owner_id: str
    category_id: Optional[str] = None


class ReservationLine(ReservationLineIn):
    id: str
    duration_days: int = 1
    total_price: Decimal = Decimal("0")

    @property
    def merge_key(self) -> tuple[str, date, date]:
        return (self.listing_id, self.start_date, self.end_date)
