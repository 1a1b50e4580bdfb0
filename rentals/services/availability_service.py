import logging
from datetime import date
from typing import Callable, Dict, Iterable, List, Optional

from rentals.core.config import settings
from rentals.core.errors import NoEligibleDatesError, ValidationError
from rentals.core.guards import InFlightGuard
from rentals.domain.availability import (
    OWNER_ACTIONS,
    RESTORE,
    WITHDRAW,
    partition_dates,
    resolve_days,
    summarize,
)
from rentals.domain.calendar import business_today, get_month_dates, unique_sorted
from rentals.models import BLOCKING_STATUSES, DayStatus
from rentals.schemas.availability import AvailabilityDay, DateBatchResult
from rentals.services.event_service import (
    DATES_RESTORED,
    DATES_WITHDRAWN,
    EventBus,
    event_bus,
)
from rentals.stores.base import BackingStore

logger = logging.getLogger(__name__)


class AvailabilityService:
    """
    Per-listing, day-granular availability calendar.

    Statuses are derived on every read from the store's bookings and owner
    overrides. Owner withdraw/restore narrows a free-form selection to the
    actionable dates and writes only those; local state is never flipped
    before the store confirms.
    """

    def __init__(
        self,
        store: BackingStore,
        events: Optional[EventBus] = None,
        today: Callable[[], date] = business_today,
    ):
        self.store = store
        self.events = events if events is not None else event_bus
        self.today = today
        self.guard = InFlightGuard("availability")

    async def resolve(self, listing_id: str, start: date, end: date) -> List[AvailabilityDay]:
        if end < start:
            raise ValidationError("End date must not be before start date", field="end_date")

        # Two independent reads, merged locally
        overrides = await self.store.get_availability(listing_id, start, end)
        bookings = await self.store.get_bookings(listing_id, BLOCKING_STATUSES)

        return resolve_days(listing_id, start, end, bookings, overrides, self.today())

    async def resolve_month(self, listing_id: str, year: int, month: int) -> List[AvailabilityDay]:
        month_dates = get_month_dates(year, month)
        return await self.resolve(listing_id, month_dates[0], month_dates[-1])

    def is_busy(self, listing_id: str) -> bool:
        return self.guard.is_busy(listing_id)

    async def withdraw(
        self, listing_id: str, dates: Iterable[date], reason: Optional[str] = None
    ) -> Optional[DateBatchResult]:
        return await self._apply(listing_id, dates, WITHDRAW, reason or settings.default_withdrawal_reason)

    async def restore(self, listing_id: str, dates: Iterable[date]) -> Optional[DateBatchResult]:
        return await self._apply(listing_id, dates, RESTORE, None)

    async def _apply(
        self,
        listing_id: str,
        dates: Iterable[date],
        action: str,
        reason: Optional[str],
    ) -> Optional[DateBatchResult]:
        requested = unique_sorted(dates)
        if not requested:
            raise ValidationError("Please select at least one date", field="dates")

        with self.guard.claim(listing_id) as acquired:
            if not acquired:
                return None

            today = self.today()
            resolved = await self.resolve(listing_id, requested[0], requested[-1])
            by_date: Dict[date, AvailabilityDay] = {day.date: day for day in resolved}

            eligible, rejected = partition_dates(by_date, requested, action, today)
            if not eligible:
                logger.info(
                    f"Nothing to {action} for listing {listing_id}: "
                    f"{len(rejected)} date(s) rejected"
                )
                raise NoEligibleDatesError(action, rejected)

            if action == WITHDRAW:
                applied = await self.store.withdraw_dates(listing_id, eligible, reason)
            else:
                applied = await self.store.restore_dates(listing_id, eligible)

        _, new_status = OWNER_ACTIONS[action]
        applied_set = set(applied)
        days = []
        for day in eligible:
            current = by_date[day]
            if day in applied_set:
                current = current.model_copy(update={"status": new_status})
            days.append(current)

        result = DateBatchResult(
            listing_id=listing_id,
            action=action,
            applied_dates=sorted(applied_set),
            rejected=rejected,
            days=days,
        )
        logger.info(f"✅ Listing {listing_id}: {result.message}")
        self.events.publish(
            DATES_WITHDRAWN if action == WITHDRAW else DATES_RESTORED,
            {
                "listing_id": listing_id,
                "dates": [d.isoformat() for d in result.applied_dates],
                "reason": reason,
            },
        )
        return result

    @staticmethod
    def summarize(days: Iterable[AvailabilityDay]) -> Dict[DayStatus, int]:
        return summarize(days)
