from datetime import date, datetime
from enum import Enum
from typing import Optional
from decimal import Decimal

from sqlalchemy import (
    Boolean,
    String,
    Date,
    DateTime,
    ForeignKey,
    Numeric,
    UniqueConstraint,
    Enum as SQLEnum,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from rentals.database import Base


class BookingStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    CANCELLATION_REQUESTED = "cancellation_requested"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    DISPUTED = "disputed"


TERMINAL_STATUSES = frozenset({BookingStatus.COMPLETED, BookingStatus.CANCELLED})

# Statuses that occupy calendar dates.
BLOCKING_STATUSES = (
    BookingStatus.PENDING,
    BookingStatus.CONFIRMED,
    BookingStatus.IN_PROGRESS,
)


class PaymentStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    REFUNDED = "refunded"


class OwnerConfirmationStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    REJECTED = "rejected"


class FulfillmentMethod(str, Enum):
    PICKUP = "pickup"
    DELIVERY = "delivery"
    MEET_PUBLIC = "meet_public"
    VISIT = "visit"


class AvailabilityType(str, Enum):
    AVAILABLE = "available"
    UNAVAILABLE = "unavailable"
    MAINTENANCE = "maintenance"


class DayStatus(str, Enum):
    AVAILABLE = "available"
    BOOKED = "booked"
    IN_PROGRESS = "in_progress"
    MAINTENANCE = "maintenance"
    UNAVAILABLE = "unavailable"


class Role(str, Enum):
    RENTER = "renter"
    OWNER = "owner"


class Listing(Base):
    __tablename__ = "listings"

    id: Mapped[str] = mapped_column(String, primary_key=True)
    owner_id: Mapped[str] = mapped_column(String, index=True)
    title: Mapped[str] = mapped_column(String)
    image: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    price_per_day: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=0)
    currency: Mapped[str] = mapped_column(String(3), default="USD")
    category_id: Mapped[Optional[str]] = mapped_column(String, nullable=True)

    # Fulfillment capabilities
    pickup_available: Mapped[bool] = mapped_column(Boolean, default=True)
    delivery_available: Mapped[bool] = mapped_column(Boolean, default=False)

    bookings: Mapped[list["Booking"]] = relationship(back_populates="listing")


class Booking(Base):
    __tablename__ = "bookings"

    id: Mapped[str] = mapped_column(String, primary_key=True)
    booking_number: Mapped[str] = mapped_column(String, unique=True, index=True)

    # Relations
    product_id: Mapped[str] = mapped_column(ForeignKey("listings.id"), index=True)
    listing: Mapped["Listing"] = relationship(back_populates="bookings")
    renter_id: Mapped[str] = mapped_column(String, index=True)
    owner_id: Mapped[str] = mapped_column(String, index=True)

    # Rental window (both dates inclusive)
    start_date: Mapped[date] = mapped_column(Date)
    end_date: Mapped[date] = mapped_column(Date)

    # Pickup / delivery
    fulfillment_method: Mapped[FulfillmentMethod] = mapped_column(
        SQLEnum(FulfillmentMethod), default=FulfillmentMethod.PICKUP
    )
    fulfillment_address: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    meet_location: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    time_window: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    instructions: Mapped[Optional[str]] = mapped_column(String, nullable=True)

    total_amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=0)
    currency: Mapped[str] = mapped_column(String(3), default="USD")

    # Lifecycle
    status: Mapped[BookingStatus] = mapped_column(
        SQLEnum(BookingStatus), default=BookingStatus.PENDING, index=True
    )
    payment_status: Mapped[PaymentStatus] = mapped_column(
        SQLEnum(PaymentStatus), default=PaymentStatus.PENDING
    )
    owner_confirmation_status: Mapped[OwnerConfirmationStatus] = mapped_column(
        SQLEnum(OwnerConfirmationStatus), default=OwnerConfirmationStatus.PENDING
    )
    cancellation_reason: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    owner_notes: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    dispute_reason: Mapped[Optional[str]] = mapped_column(String, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )
    confirmed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    cancelled_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)


class AvailabilityOverride(Base):
    """Owner-written calendar record (maintenance block or withdrawal)."""

    __tablename__ = "availability_overrides"
    __table_args__ = (UniqueConstraint("listing_id", "date", name="uq_override_listing_date"),)

    id: Mapped[int] = mapped_column(primary_key=True)
    listing_id: Mapped[str] = mapped_column(ForeignKey("listings.id"), index=True)
    day: Mapped[date] = mapped_column("date", Date, index=True)
    availability_type: Mapped[AvailabilityType] = mapped_column(
        SQLEnum(AvailabilityType), default=AvailabilityType.UNAVAILABLE
    )
    reason: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)


class BookingStatusLog(Base):
    __tablename__ = "booking_status_logs"

    id: Mapped[int] = mapped_column(primary_key=True)
    booking_id: Mapped[str] = mapped_column(ForeignKey("bookings.id"), index=True)
    from_status: Mapped[BookingStatus] = mapped_column(SQLEnum(BookingStatus))
    to_status: Mapped[BookingStatus] = mapped_column(SQLEnum(BookingStatus))
    actor_role: Mapped[Optional[Role]] = mapped_column(SQLEnum(Role), nullable=True)
    reason: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
