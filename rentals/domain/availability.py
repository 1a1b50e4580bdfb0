"""
Day-level availability derivation.

Pure functions: the calendar service feeds them the two store reads and
today's date, they never touch the store.
"""
import datetime
from typing import Dict, Iterable, List, Tuple

from rentals.domain.calendar import is_past, iter_dates
from rentals.models import AvailabilityType, BookingStatus, DayStatus
from rentals.schemas.availability import AvailabilityDay, AvailabilityRecord
from rentals.schemas.booking import BookingRecord

# Lower number wins when several sources claim the same day.
_PRIORITY = {
    DayStatus.IN_PROGRESS: 0,
    DayStatus.BOOKED: 1,
    DayStatus.MAINTENANCE: 2,
    DayStatus.UNAVAILABLE: 3,
    DayStatus.AVAILABLE: 4,
}

_BOOKING_DAY_STATUS = {
    BookingStatus.IN_PROGRESS: DayStatus.IN_PROGRESS,
    BookingStatus.CONFIRMED: DayStatus.BOOKED,
    BookingStatus.PENDING: DayStatus.BOOKED,
}

_OVERRIDE_DAY_STATUS = {
    AvailabilityType.MAINTENANCE: DayStatus.MAINTENANCE,
    AvailabilityType.UNAVAILABLE: DayStatus.UNAVAILABLE,
    AvailabilityType.AVAILABLE: DayStatus.AVAILABLE,
}

WITHDRAW = "withdraw"
RESTORE = "restore"

# Status a date must have before the owner may act on it, and the status it gets after.
OWNER_ACTIONS = {
    WITHDRAW: (DayStatus.AVAILABLE, DayStatus.UNAVAILABLE),
    RESTORE: (DayStatus.UNAVAILABLE, DayStatus.AVAILABLE),
}


def resolve_days(
    listing_id: str,
    start: datetime.date,
    end: datetime.date,
    bookings: Iterable[BookingRecord],
    overrides: Iterable[AvailabilityRecord],
    today: datetime.date,
) -> List[AvailabilityDay]:
    days: Dict[datetime.date, AvailabilityDay] = {
        day: AvailabilityDay(listing_id=listing_id, date=day, is_past=is_past(day, today))
        for day in iter_dates(start, end)
    }

    def claim(day: AvailabilityDay, status: DayStatus) -> bool:
        if _PRIORITY[status] < _PRIORITY[day.status]:
            day.status = status
            return True
        return False

    for booking in bookings:
        status = _BOOKING_DAY_STATUS.get(booking.status)
        if status is None:
            continue
        first = max(booking.start_date, start)
        last = min(booking.end_date, end)
        for day in iter_dates(first, last):
            if claim(days[day], status):
                days[day].booking_id = booking.id
                days[day].booking_status = booking.status

    for record in overrides:
        day = days.get(record.date)
        if day is None:
            continue
        claim(day, _OVERRIDE_DAY_STATUS[record.availability_type])

    return [days[day] for day in sorted(days)]


def partition_dates(
    days: Dict[datetime.date, AvailabilityDay],
    requested: Iterable[datetime.date],
    action: str,
    today: datetime.date,
) -> Tuple[List[datetime.date], Dict[datetime.date, str]]:
    """
    Narrow a free-form date selection to the dates the owner may act on.

    Returns (eligible, rejected) where rejected maps each skipped date to
    the reason it was skipped.
    """
    required, _ = OWNER_ACTIONS[action]
    eligible: List[datetime.date] = []
    rejected: Dict[datetime.date, str] = {}

    for day in sorted(set(requested)):
        if is_past(day, today):
            rejected[day] = "past"
            continue
        resolved = days.get(day)
        status = resolved.status if resolved else DayStatus.AVAILABLE
        if status != required:
            rejected[day] = status.value
            continue
        eligible.append(day)

    return eligible, rejected


def summarize(days: Iterable[AvailabilityDay]) -> Dict[DayStatus, int]:
    counts = {status: 0 for status in DayStatus}
    for day in days:
        counts[day.status] += 1
    return counts
