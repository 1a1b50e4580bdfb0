import logging
import uuid
from datetime import date, datetime, timezone
from typing import List, Optional, Sequence

from sqlalchemy import and_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from rentals.core.errors import ConflictError, TransportError
from rentals.models import (
    BLOCKING_STATUSES,
    AvailabilityOverride,
    AvailabilityType,
    Booking,
    BookingStatus,
    BookingStatusLog,
    OwnerConfirmationStatus,
    Role,
)
from rentals.schemas.availability import AvailabilityRecord
from rentals.schemas.booking import BookingCreate, BookingRecord, TransitionPayload

logger = logging.getLogger(__name__)


def _now() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _to_record(override: AvailabilityOverride) -> AvailabilityRecord:
    return AvailabilityRecord(
        listing_id=override.listing_id,
        date=override.day,
        availability_type=override.availability_type,
        reason=override.reason,
    )


class SqlBackingStore:
    """Backing store on top of the SQLAlchemy async ORM."""

    def __init__(self, session_factory: Optional[async_sessionmaker] = None):
        if session_factory is None:
            from rentals.database import AsyncSessionLocal

            session_factory = AsyncSessionLocal
        self.session_factory = session_factory

    async def get_availability(
        self, listing_id: str, start: date, end: date
    ) -> List[AvailabilityRecord]:
        try:
            async with self.session_factory() as session:
                stmt = (
                    select(AvailabilityOverride)
                    .where(
                        AvailabilityOverride.listing_id == listing_id,
                        AvailabilityOverride.day >= start,
                        AvailabilityOverride.day <= end,
                    )
                    .order_by(AvailabilityOverride.day)
                )
                result = await session.execute(stmt)
                return [_to_record(o) for o in result.scalars().all()]
        except SQLAlchemyError as e:
            logger.error(f"Error reading availability for listing {listing_id}: {e}")
            raise TransportError(f"Availability read failed: {e}") from e

    async def get_bookings(
        self, listing_id: str, statuses: Sequence[BookingStatus]
    ) -> List[BookingRecord]:
        try:
            async with self.session_factory() as session:
                stmt = select(Booking).where(Booking.product_id == listing_id)
                if statuses:
                    stmt = stmt.where(Booking.status.in_(list(statuses)))
                result = await session.execute(stmt.order_by(Booking.start_date))
                return [BookingRecord.model_validate(b) for b in result.scalars().all()]
        except SQLAlchemyError as e:
            logger.error(f"Error reading bookings for listing {listing_id}: {e}")
            raise TransportError(f"Bookings read failed: {e}") from e

    async def _blocking_bookings(
        self, session: AsyncSession, listing_id: str, first: date, last: date
    ) -> List[Booking]:
        # Both ends inclusive
        stmt = select(Booking).where(
            Booking.product_id == listing_id,
            Booking.status.in_(BLOCKING_STATUSES),
            and_(Booking.start_date <= last, Booking.end_date >= first),
        )
        result = await session.execute(stmt)
        return list(result.scalars().all())

    async def _overrides(
        self, session: AsyncSession, listing_id: str, dates: Sequence[date]
    ) -> dict:
        stmt = select(AvailabilityOverride).where(
            AvailabilityOverride.listing_id == listing_id,
            AvailabilityOverride.day.in_(list(dates)),
        )
        result = await session.execute(stmt)
        return {o.day: o for o in result.scalars().all()}

    async def withdraw_dates(
        self, listing_id: str, dates: Sequence[date], reason: str
    ) -> List[date]:
        if not dates:
            return []
        wanted = sorted(set(dates))

        try:
            async with self.session_factory() as session:
                bookings = await self._blocking_bookings(
                    session, listing_id, wanted[0], wanted[-1]
                )
                overrides = await self._overrides(session, listing_id, wanted)

                applied: List[date] = []
                for day in wanted:
                    if any(b.start_date <= day <= b.end_date for b in bookings):
                        raise ConflictError(f"{day.isoformat()} is booked for listing {listing_id}")

                    existing = overrides.get(day)
                    if existing is None:
                        session.add(
                            AvailabilityOverride(
                                listing_id=listing_id,
                                day=day,
                                availability_type=AvailabilityType.UNAVAILABLE,
                                reason=reason,
                                created_at=_now(),
                            )
                        )
                    elif existing.availability_type == AvailabilityType.MAINTENANCE:
                        raise ConflictError(
                            f"{day.isoformat()} is under maintenance for listing {listing_id}"
                        )
                    elif existing.availability_type == AvailabilityType.UNAVAILABLE:
                        # Already withdrawn
                        continue
                    else:
                        existing.availability_type = AvailabilityType.UNAVAILABLE
                        existing.reason = reason
                    applied.append(day)

                await session.commit()

            logger.info(f"Withdrew {len(applied)} date(s) for listing {listing_id}")
            return applied

        except SQLAlchemyError as e:
            logger.error(f"Error withdrawing dates for listing {listing_id}: {e}", exc_info=True)
            raise TransportError(f"Withdraw failed: {e}") from e

    async def restore_dates(self, listing_id: str, dates: Sequence[date]) -> List[date]:
        if not dates:
            return []

        try:
            async with self.session_factory() as session:
                overrides = await self._overrides(session, listing_id, sorted(set(dates)))

                applied: List[date] = []
                for day, override in sorted(overrides.items()):
                    if override.availability_type != AvailabilityType.UNAVAILABLE:
                        continue
                    await session.delete(override)
                    applied.append(day)

                await session.commit()

            logger.info(f"Restored {len(applied)} date(s) for listing {listing_id}")
            return applied

        except SQLAlchemyError as e:
            logger.error(f"Error restoring dates for listing {listing_id}: {e}", exc_info=True)
            raise TransportError(f"Restore failed: {e}") from e

    async def get_booking(self, booking_id: str) -> BookingRecord:
        try:
            async with self.session_factory() as session:
                booking = await session.get(Booking, booking_id)
                if booking is None:
                    raise ConflictError(f"Booking {booking_id} not found")
                return BookingRecord.model_validate(booking)
        except SQLAlchemyError as e:
            logger.error(f"Error reading booking {booking_id}: {e}")
            raise TransportError(f"Booking read failed: {e}") from e

    async def create_booking(self, payload: BookingCreate) -> BookingRecord:
        """
        Insert a pending booking.

        Rejects the window with ConflictError when it overlaps a blocking
        booking or an owner block on the same listing.
        """
        try:
            async with self.session_factory() as session:
                conflicts = await self._blocking_bookings(
                    session, payload.product_id, payload.start_date, payload.end_date
                )
                if conflicts:
                    raise ConflictError(
                        f"Requested dates are not available for listing {payload.product_id}"
                    )

                stmt = select(AvailabilityOverride.day).where(
                    AvailabilityOverride.listing_id == payload.product_id,
                    AvailabilityOverride.day >= payload.start_date,
                    AvailabilityOverride.day <= payload.end_date,
                    AvailabilityOverride.availability_type != AvailabilityType.AVAILABLE,
                )
                blocked = (await session.execute(stmt.limit(1))).scalars().first()
                if blocked is not None:
                    raise ConflictError(
                        f"{blocked.isoformat()} is blocked by the owner of listing {payload.product_id}"
                    )

                now = _now()
                booking_id = str(uuid.uuid4())
                booking = Booking(
                    id=booking_id,
                    booking_number=f"BK-{now:%Y%m%d}-{booking_id[:8].upper()}",
                    status=BookingStatus.PENDING,
                    created_at=now,
                    updated_at=now,
                    **payload.model_dump(),
                )
                session.add(booking)
                await session.commit()
                await session.refresh(booking)

                logger.info(f"✅ Booking {booking.booking_number} created for listing {payload.product_id}")
                return BookingRecord.model_validate(booking)

        except SQLAlchemyError as e:
            logger.error(f"Error creating booking: {e}", exc_info=True)
            raise TransportError(f"Booking creation failed: {e}") from e

    async def transition_booking(
        self, booking_id: str, target: BookingStatus, payload: TransitionPayload
    ) -> BookingRecord:
        try:
            async with self.session_factory() as session:
                booking = await session.get(Booking, booking_id)
                if booking is None:
                    raise ConflictError(f"Booking {booking_id} not found")

                # A duplicate request (two confirms racing) lands here too and never applies twice
                if booking.status != payload.expected_status:
                    raise ConflictError(
                        f"Booking {booking_id} is {booking.status.value}, "
                        f"expected {payload.expected_status.value}"
                    )

                previous = booking.status
                now = _now()
                self._apply_transition(booking, target, payload, now)
                session.add(
                    BookingStatusLog(
                        booking_id=booking.id,
                        from_status=previous,
                        to_status=target,
                        actor_role=payload.requester_role,
                        reason=payload.reason or payload.notes,
                        created_at=now,
                    )
                )
                await session.commit()
                await session.refresh(booking)

                logger.info(f"📝 Booking {booking_id}: {previous.value} -> {target.value}")
                return BookingRecord.model_validate(booking)

        except SQLAlchemyError as e:
            logger.error(f"Error transitioning booking {booking_id}: {e}", exc_info=True)
            raise TransportError(f"Booking transition failed: {e}") from e

    @staticmethod
    def _apply_transition(
        booking: Booking, target: BookingStatus, payload: TransitionPayload, now: datetime
    ) -> None:
        previous = booking.status
        booking.status = target
        booking.updated_at = now

        if target == BookingStatus.CONFIRMED:
            if previous == BookingStatus.PENDING:
                booking.owner_confirmation_status = OwnerConfirmationStatus.CONFIRMED
                booking.confirmed_at = now
                if payload.notes:
                    booking.owner_notes = payload.notes
            else:
                # Cancellation request denied
                booking.owner_notes = payload.reason
        elif target == BookingStatus.CANCELLATION_REQUESTED:
            booking.cancellation_reason = payload.reason
        elif target == BookingStatus.CANCELLED:
            booking.cancelled_at = now
            if previous == BookingStatus.PENDING and payload.requester_role == Role.OWNER:
                booking.owner_confirmation_status = OwnerConfirmationStatus.REJECTED
            if previous == BookingStatus.CANCELLATION_REQUESTED:
                # Approval keeps the renter's reason, owner remarks go to notes
                if payload.reason:
                    booking.owner_notes = payload.reason
            elif payload.reason:
                booking.cancellation_reason = payload.reason
            if payload.notes:
                booking.owner_notes = payload.notes
        elif target == BookingStatus.COMPLETED:
            booking.completed_at = now
        elif target == BookingStatus.DISPUTED:
            booking.dispute_reason = payload.reason
