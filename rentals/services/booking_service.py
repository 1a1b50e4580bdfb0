import logging
import time
from datetime import date
from typing import Callable, List, Optional

from rentals.core.config import settings
from rentals.core.errors import InvalidTransitionError, ValidationError
from rentals.core.guards import GracePeriod, InFlightGuard
from rentals.domain.calendar import business_today
from rentals.domain.transitions import available_transitions, check_transition
from rentals.models import BLOCKING_STATUSES, BookingStatus
from rentals.schemas.booking import (
    BookingCreate,
    BookingRecord,
    TransitionPayload,
    TransitionResult,
)
from rentals.services.event_service import (
    BOOKING_CREATED,
    BOOKING_TRANSITIONED,
    EventBus,
    event_bus,
)
from rentals.services.reservation_service import ReservationAggregator
from rentals.stores.base import BackingStore

logger = logging.getLogger(__name__)

NOTIFY_COUNTERPARTY = "notify_counterparty"
REFRESH_AVAILABILITY = "refresh_availability"


class BookingService:
    """
    Role-gated booking state machine.

    Callers issue commands (``request_transition``); legality is decided
    here against the booking's current state in the store, then the store
    applies the move. At most one transition per booking is in flight, and
    a fresh confirmation suppresses further confirms for a short grace period.
    """

    def __init__(
        self,
        store: BackingStore,
        events: Optional[EventBus] = None,
        today: Callable[[], date] = business_today,
        clock: Callable[[], float] = time.monotonic,
        confirm_grace_seconds: Optional[float] = None,
    ):
        self.store = store
        self.events = events if events is not None else event_bus
        self.today = today
        self.guard = InFlightGuard("booking")
        self.confirm_grace = GracePeriod(
            settings.confirm_grace_seconds
            if confirm_grace_seconds is None
            else confirm_grace_seconds,
            clock=clock,
        )

    def is_busy(self, booking_id: str) -> bool:
        return self.guard.is_busy(booking_id)

    def can_request_confirm(self, booking_id: str) -> bool:
        """Whether the UI should enable the confirm control of a pending booking right now."""
        return not self.is_busy(booking_id) and not self.confirm_grace.is_active(booking_id)

    def _confirm_suppressed(self, booking: BookingRecord, target: BookingStatus) -> bool:
        # A repeat confirm finds the booking still pending (stale view) or already confirmed;
        # denying a cancellation request is not affected.
        return (
            target == BookingStatus.CONFIRMED
            and booking.status in (BookingStatus.PENDING, BookingStatus.CONFIRMED)
            and self.confirm_grace.is_active(booking.id)
        )

    def available_actions(self, booking: BookingRecord, requester_id: str) -> List[BookingStatus]:
        targets = available_transitions(booking, booking.role_of(requester_id), self.today())
        if BookingStatus.CONFIRMED in targets and (
            self.is_busy(booking.id) or self._confirm_suppressed(booking, BookingStatus.CONFIRMED)
        ):
            targets.remove(BookingStatus.CONFIRMED)
        return targets

    async def request_transition(
        self,
        booking_id: str,
        target: BookingStatus,
        requester_id: str,
        reason: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> Optional[TransitionResult]:
        """
        Move a booking to ``target`` on behalf of ``requester_id``.

        Returns None when the request is dropped by the in-flight guard or
        the confirm grace period. Raises InvalidTransitionError or
        ValidationError before any store write, ConflictError or
        TransportError from the store; the booking is unchanged in all
        those cases.
        """
        target = BookingStatus(target)

        with self.guard.claim(booking_id) as acquired:
            if not acquired:
                return None

            booking = await self.store.get_booking(booking_id)
            if self._confirm_suppressed(booking, target):
                logger.info(f"Confirm for booking {booking_id} suppressed (grace period)")
                return None

            role = booking.role_of(requester_id)

            try:
                check_transition(booking, target, role, self.today(), reason)
            except (InvalidTransitionError, ValidationError) as e:
                logger.warning(
                    f"Rejected transition for booking {booking_id}: "
                    f"{booking.status.value} -> {target.value} by {role.value if role else requester_id}: {e}"
                )
                raise

            payload = TransitionPayload(
                expected_status=booking.status,
                requester_role=role,
                reason=reason.strip() if reason else None,
                notes=notes.strip() if notes else None,
            )
            updated = await self.store.transition_booking(booking_id, target, payload)

        if booking.status == BookingStatus.PENDING and target == BookingStatus.CONFIRMED:
            self.confirm_grace.mark(booking_id)

        effects = [NOTIFY_COUNTERPARTY]
        if (booking.status in BLOCKING_STATUSES) != (updated.status in BLOCKING_STATUSES) or (
            BookingStatus.IN_PROGRESS in (booking.status, updated.status)
        ):
            effects.append(REFRESH_AVAILABILITY)

        result = TransitionResult(booking=updated, previous_status=booking.status, effects=effects)
        self.events.publish(
            BOOKING_TRANSITIONED,
            {
                "booking_id": booking_id,
                "from": booking.status.value,
                "to": updated.status.value,
                "requester_role": role.value,
                "product_id": updated.product_id,
                "effects": effects,
            },
        )
        return result

    async def submit_reservation(
        self,
        aggregator: ReservationAggregator,
        line_id: str,
        renter_id: str,
    ) -> BookingRecord:
        """Commit one reservation line as a pending booking."""
        line = aggregator.get(line_id)
        if line is None:
            raise ValidationError("Reservation line not found", field="line_id")
        if line.owner_id == renter_id:
            raise ValidationError("You cannot rent your own listing", field="renter_id")

        payload = BookingCreate(
            product_id=line.listing_id,
            renter_id=renter_id,
            owner_id=line.owner_id,
            start_date=line.start_date,
            end_date=line.end_date,
            fulfillment_method=line.fulfillment_method,
            fulfillment_address=line.fulfillment_address,
            meet_location=line.meet_location,
            time_window=line.time_window,
            instructions=line.instructions,
            total_amount=line.total_price,
            currency=line.currency,
        )
        booking = await self.store.create_booking(payload)

        aggregator.remove(line_id)
        self.events.publish(
            BOOKING_CREATED,
            {
                "booking_id": booking.id,
                "product_id": booking.product_id,
                "renter_id": renter_id,
                "owner_id": booking.owner_id,
            },
        )
        return booking
