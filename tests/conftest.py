"""
Pytest configuration for booking core tests
"""
import asyncio
import sys
from datetime import date
from decimal import Decimal
from pathlib import Path
from typing import Dict, List, Optional, Tuple

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

# Ensure rentals is importable without installation
sys.path.insert(0, str(Path(__file__).parent.parent))

from rentals.core.errors import ConflictError  # noqa: E402
from rentals.database import Base  # noqa: E402
from rentals.models import (  # noqa: E402
    AvailabilityType,
    BookingStatus,
    OwnerConfirmationStatus,
)
from rentals.schemas.availability import AvailabilityRecord  # noqa: E402
from rentals.schemas.booking import BookingCreate, BookingRecord  # noqa: E402
from rentals.services.event_service import EventBus  # noqa: E402

TODAY = date(2024, 7, 1)


class FakeStore:
    """In-memory backing store recording every write."""

    def __init__(self):
        self.bookings: Dict[str, BookingRecord] = {}
        self.overrides: Dict[Tuple[str, date], AvailabilityRecord] = {}
        self.writes: List[tuple] = []
        self.fail_with: Optional[Exception] = None
        self.gate: Optional[asyncio.Event] = None

    async def _enter(self):
        if self.gate is not None:
            await self.gate.wait()

    def add_booking(self, **fields) -> BookingRecord:
        data = {
            "id": f"b{len(self.bookings) + 1}",
            "booking_number": f"BK-{len(self.bookings) + 1:04d}",
            "product_id": "listing-1",
            "renter_id": "renter-1",
            "owner_id": "owner-1",
            "start_date": date(2024, 7, 10),
            "end_date": date(2024, 7, 12),
        }
        data.update(fields)
        booking = BookingRecord(**data)
        self.bookings[booking.id] = booking
        return booking

    def add_override(self, listing_id: str, day: date, kind: AvailabilityType):
        self.overrides[(listing_id, day)] = AvailabilityRecord(
            listing_id=listing_id, date=day, availability_type=kind
        )

    async def get_availability(self, listing_id, start, end):
        await self._enter()
        return [
            record
            for (lid, day), record in sorted(self.overrides.items())
            if lid == listing_id and start <= day <= end
        ]

    async def get_bookings(self, listing_id, statuses):
        await self._enter()
        return [
            b for b in self.bookings.values()
            if b.product_id == listing_id and (not statuses or b.status in statuses)
        ]

    async def withdraw_dates(self, listing_id, dates, reason):
        await self._enter()
        if self.fail_with:
            raise self.fail_with
        self.writes.append(("withdraw", listing_id, list(dates), reason))
        for day in dates:
            self.add_override(listing_id, day, AvailabilityType.UNAVAILABLE)
        return list(dates)

    async def restore_dates(self, listing_id, dates):
        await self._enter()
        if self.fail_with:
            raise self.fail_with
        self.writes.append(("restore", listing_id, list(dates)))
        applied = []
        for day in dates:
            record = self.overrides.get((listing_id, day))
            if record and record.availability_type == AvailabilityType.UNAVAILABLE:
                del self.overrides[(listing_id, day)]
                applied.append(day)
        return applied

    async def get_booking(self, booking_id):
        await self._enter()
        if booking_id not in self.bookings:
            raise ConflictError(f"Booking {booking_id} not found")
        return self.bookings[booking_id].model_copy()

    async def create_booking(self, payload: BookingCreate):
        await self._enter()
        if self.fail_with:
            raise self.fail_with
        self.writes.append(("create", payload.product_id))
        return self.add_booking(**payload.model_dump())

    async def transition_booking(self, booking_id, target, payload):
        await self._enter()
        if self.fail_with:
            raise self.fail_with
        booking = self.bookings[booking_id]
        if booking.status != payload.expected_status:
            raise ConflictError(
                f"Booking {booking_id} is {booking.status.value}, "
                f"expected {payload.expected_status.value}"
            )
        self.writes.append(("transition", booking_id, target, payload))
        update = {"status": target}
        if target == BookingStatus.CONFIRMED and booking.status == BookingStatus.PENDING:
            update["owner_confirmation_status"] = OwnerConfirmationStatus.CONFIRMED
        if payload.reason and target in (
            BookingStatus.CANCELLATION_REQUESTED,
            BookingStatus.CANCELLED,
        ):
            update["cancellation_reason"] = payload.reason
        self.bookings[booking_id] = booking.model_copy(update=update)
        return self.bookings[booking_id].model_copy()


class RecordingBus(EventBus):
    def __init__(self):
        super().__init__()
        self.published: List[dict] = []
        self.subscribe("*", self.published.append)

    def types(self) -> List[str]:
        return [event["type"] for event in self.published]


@pytest.fixture
def today():
    return TODAY


@pytest.fixture
def fake_store():
    return FakeStore()


@pytest.fixture
def bus():
    return RecordingBus()


@pytest.fixture
def listing_line():
    """Sample data for a reservation line"""
    return {
        "listing_id": "listing-1",
        "listing_title": "Cordless drill",
        "start_date": date(2024, 6, 1),
        "end_date": date(2024, 6, 4),
        "price_per_day": Decimal("50"),
        "currency": "USD",
        "fulfillment_method": "pickup",
        "owner_id": "owner-1",
    }


@pytest_asyncio.fixture
async def session_factory():
    engine = create_async_engine("sqlite+aiosqlite:///:memory:")
    Session = async_sessionmaker(engine, expire_on_commit=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield Session

    await engine.dispose()
