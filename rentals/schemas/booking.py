from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional
from pydantic import BaseModel, ConfigDict, Field

from rentals.models import (
    BookingStatus,
    FulfillmentMethod,
    OwnerConfirmationStatus,
    PaymentStatus,
    Role,
)


class BookingRecord(BaseModel):
    id: str
    booking_number: str
    product_id: str
    renter_id: str
    owner_id: str
    start_date: date
    end_date: date

    fulfillment_method: FulfillmentMethod = FulfillmentMethod.PICKUP
    fulfillment_address: Optional[str] = None
    meet_location: Optional[str] = None
    time_window: Optional[str] = None
    instructions: Optional[str] = None

    total_amount: Decimal = Decimal("0.00")
    currency: str = "USD"

    status: BookingStatus = BookingStatus.PENDING
    payment_status: PaymentStatus = PaymentStatus.PENDING
    owner_confirmation_status: OwnerConfirmationStatus = OwnerConfirmationStatus.PENDING
    cancellation_reason: Optional[str] = None
    owner_notes: Optional[str] = None
    dispute_reason: Optional[str] = None

    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    confirmed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)

    def role_of(self, user_id: str) -> Optional[Role]:
        if user_id == self.owner_id:
            return Role.OWNER
        if user_id == self.renter_id:
            return Role.RENTER
        return None


class BookingCreate(BaseModel):
    """Payload submitted to the store when a reservation line is committed."""

    product_id: str
    renter_id: str
    owner_id: str
    start_date: date
    end_date: date
    fulfillment_method: FulfillmentMethod = FulfillmentMethod.PICKUP
    fulfillment_address: Optional[str] = None
    meet_location: Optional[str] = None
    time_window: Optional[str] = None
    instructions: Optional[str] = None
    total_amount: Decimal = Decimal("0.00")
    currency: str = "USD"


class TransitionPayload(BaseModel):
    expected_status: BookingStatus
    requester_role: Role
    reason: Optional[str] = None
    notes: Optional[str] = None


class TransitionResult(BaseModel):
    booking: BookingRecord
    previous_status: BookingStatus
    effects: List[str] = Field(default_factory=list)
