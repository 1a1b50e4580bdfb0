from datetime import date
from typing import List, Protocol, Sequence

from rentals.models import BookingStatus
from rentals.schemas.availability import AvailabilityRecord
from rentals.schemas.booking import BookingCreate, BookingRecord, TransitionPayload


class BackingStore(Protocol):
    """
    Server-authoritative storage the booking core reads and writes through.

    Implementations raise ConflictError when their state moved on since the
    caller last read it, and TransportError for any infrastructure failure.
    """

    async def get_availability(
        self, listing_id: str, start: date, end: date
    ) -> List[AvailabilityRecord]: ...

    async def get_bookings(
        self, listing_id: str, statuses: Sequence[BookingStatus]
    ) -> List[BookingRecord]: ...

    async def withdraw_dates(
        self, listing_id: str, dates: Sequence[date], reason: str
    ) -> List[date]: ...

    async def restore_dates(self, listing_id: str, dates: Sequence[date]) -> List[date]: ...

    async def get_booking(self, booking_id: str) -> BookingRecord: ...

    async def create_booking(self, payload: BookingCreate) -> BookingRecord: ...

    async def transition_booking(
        self, booking_id: str, target: BookingStatus, payload: TransitionPayload
    ) -> BookingRecord: ...
