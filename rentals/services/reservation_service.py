import logging
import time
import uuid
from datetime import date
from decimal import Decimal
from typing import Any, Dict, List, Optional, Union

from pydantic import ValidationError as PydanticValidationError

from rentals.core.errors import ValidationError
from rentals.domain.calendar import duration_days
from rentals.models import FulfillmentMethod
from rentals.schemas.reservation import ListingInfo, ReservationLine, ReservationLineIn
from rentals.services.event_service import (
    RESERVATION_ADDED,
    RESERVATION_CLEARED,
    RESERVATION_REMOVED,
    RESERVATION_UPDATED,
    EventBus,
    event_bus,
)
from rentals.stores.reservation_store import JsonFileReservationStore, ReservationStore
from rentals.utils.validators import validate_fulfillment, validate_rental_dates

logger = logging.getLogger(__name__)

# Fields callers may not set directly
_COMPUTED_FIELDS = {"id", "duration_days", "total_price"}


def price_line(line: ReservationLine) -> ReservationLine:
    """Recompute duration and total price from dates, daily price and fee."""
    days = duration_days(line.start_date, line.end_date)
    line.duration_days = days
    line.total_price = line.price_per_day * days + line.delivery_fee
    return line


def _new_line_id(listing_id: str) -> str:
    return f"{listing_id}-{int(time.time() * 1000)}-{uuid.uuid4().hex[:8]}"


def _raise_for_pydantic(e: PydanticValidationError) -> None:
    first = e.errors()[0]
    field = ".".join(str(p) for p in first.get("loc", ())) or None
    raise ValidationError(f"Invalid {field or 'input'}: {first.get('msg')}", field=field) from e


class ReservationAggregator:
    """
    Working set of not-yet-submitted rental requests ("cart").

    Lines are keyed by (listing, start date, end date): adding the same
    window twice updates the existing line. The set is loaded from the
    injected store on first access and saved after every mutation; save
    failures are logged and never undo the in-memory change.
    """

    def __init__(
        self,
        store: Optional[ReservationStore] = None,
        events: Optional[EventBus] = None,
    ):
        self.store = store if store is not None else JsonFileReservationStore()
        self.events = events if events is not None else event_bus
        self._lines: Optional[List[ReservationLine]] = None

    # -------------------------------------------------
    # Persistence
    # -------------------------------------------------

    def _items(self) -> List[ReservationLine]:
        if self._lines is None:
            try:
                self._lines = [price_line(line) for line in self.store.load()]
                logger.info(f"Loaded {len(self._lines)} reservation line(s)")
            except Exception as e:
                logger.error(f"Failed to load reservations: {e}", exc_info=True)
                self._lines = []
        return self._lines

    def _save(self) -> None:
        try:
            self.store.save(list(self._items()))
        except Exception as e:
            logger.error(f"Failed to save reservations: {e}", exc_info=True)

    # -------------------------------------------------
    # Validation
    # -------------------------------------------------

    @staticmethod
    def _check(line: ReservationLineIn) -> None:
        ok, error = validate_rental_dates(line.start_date, line.end_date)
        if not ok:
            raise ValidationError(error, field="end_date")

        ok, error, field = validate_fulfillment(
            line.fulfillment_method, line.fulfillment_address, line.meet_location
        )
        if not ok:
            raise ValidationError(error, field=field)

    @staticmethod
    def _ingest(data: Union[ReservationLineIn, Dict[str, Any]]) -> ReservationLineIn:
        if isinstance(data, ReservationLineIn):
            data = data.model_dump()
        try:
            return ReservationLineIn.model_validate(data)
        except PydanticValidationError as e:
            _raise_for_pydantic(e)

    # -------------------------------------------------
    # Mutations
    # -------------------------------------------------

    def add_or_update(self, data: Union[ReservationLineIn, Dict[str, Any]]) -> ReservationLine:
        line_in = self._ingest(data)
        self._check(line_in)

        items = self._items()
        key = (line_in.listing_id, line_in.start_date, line_in.end_date)
        for index, existing in enumerate(items):
            if existing.merge_key == key:
                updated = price_line(existing.model_copy(update=line_in.model_dump()))
                items[index] = updated
                self._save()
                self.events.publish(RESERVATION_UPDATED, {"line_id": updated.id})
                logger.info(f"Reservation line {updated.id} updated in place")
                return updated

        line = price_line(
            ReservationLine(id=_new_line_id(line_in.listing_id), **line_in.model_dump())
        )
        items.append(line)
        self._save()
        self.events.publish(RESERVATION_ADDED, {"line_id": line.id, "listing_id": line.listing_id})
        logger.info(f"Reservation line {line.id} added")
        return line

    def add_from_listing(
        self,
        listing: ListingInfo,
        start_date: date,
        end_date: date,
        fulfillment_method: FulfillmentMethod = FulfillmentMethod.PICKUP,
        **details: Any,
    ) -> ReservationLine:
        """Build a line from listing metadata, honouring its fulfillment capabilities."""
        if fulfillment_method == FulfillmentMethod.DELIVERY and not listing.delivery_available:
            raise ValidationError("This listing does not offer delivery", field="fulfillment_method")
        if fulfillment_method == FulfillmentMethod.PICKUP and not listing.pickup_available:
            raise ValidationError("This listing does not offer pickup", field="fulfillment_method")

        return self.add_or_update(
            {
                "listing_id": listing.listing_id,
                "listing_title": listing.title,
                "listing_image": listing.image,
                "start_date": start_date,
                "end_date": end_date,
                "price_per_day": listing.price_per_day,
                "currency": listing.currency,
                "owner_id": listing.owner_id,
                "category_id": listing.category_id,
                "fulfillment_method": fulfillment_method,
                **details,
            }
        )

    def update(self, line_id: str, **fields: Any) -> Optional[ReservationLine]:
        unknown = sorted(set(fields) - set(ReservationLineIn.model_fields) - _COMPUTED_FIELDS)
        if unknown:
            raise ValidationError(f"Unknown field: {unknown[0]}", field=unknown[0])

        items = self._items()
        index = next((i for i, line in enumerate(items) if line.id == line_id), None)
        if index is None:
            return None

        current = items[index]
        changes = {k: v for k, v in fields.items() if k not in _COMPUTED_FIELDS}
        merged = {**current.model_dump(exclude=_COMPUTED_FIELDS), **changes}
        line_in = self._ingest(merged)
        self._check(line_in)

        updated = price_line(ReservationLine(id=current.id, **line_in.model_dump()))

        # An edit onto another line's window absorbs that line
        duplicates = [
            i for i, line in enumerate(items) if i != index and line.merge_key == updated.merge_key
        ]
        items[index] = updated
        for i in reversed(duplicates):
            absorbed = items.pop(i)
            logger.info(f"Reservation line {absorbed.id} merged into {updated.id}")
            self.events.publish(RESERVATION_REMOVED, {"line_id": absorbed.id})

        self._save()
        self.events.publish(RESERVATION_UPDATED, {"line_id": updated.id})
        return updated

    def remove(self, line_id: str) -> bool:
        items = self._items()
        remaining = [line for line in items if line.id != line_id]
        if len(remaining) == len(items):
            return False

        self._lines = remaining
        self._save()
        self.events.publish(RESERVATION_REMOVED, {"line_id": line_id})
        return True

    def clear(self) -> None:
        self._lines = []
        try:
            self.store.clear()
        except Exception as e:
            logger.error(f"Failed to erase persisted reservations: {e}", exc_info=True)
        self.events.publish(RESERVATION_CLEARED, {})

    # -------------------------------------------------
    # Queries
    # -------------------------------------------------

    @property
    def lines(self) -> List[ReservationLine]:
        return list(self._items())

    def get(self, line_id: str) -> Optional[ReservationLine]:
        return next((line for line in self._items() if line.id == line_id), None)

    def total_price(self) -> Decimal:
        return sum((line.total_price for line in self._items()), Decimal("0"))

    def totals_by_currency(self) -> Dict[str, Decimal]:
        totals: Dict[str, Decimal] = {}
        for line in self._items():
            totals[line.currency] = totals.get(line.currency, Decimal("0")) + line.total_price
        return totals

    def line_count(self) -> int:
        return len(self._items())

    def contains(self, listing_id: str) -> bool:
        return any(line.listing_id == listing_id for line in self._items())

    def lines_for_owner(self, owner_id: str) -> List[ReservationLine]:
        return [line for line in self._items() if line.owner_id == owner_id]

    def stale_lines(self, today: date) -> List[ReservationLine]:
        """Lines whose rental window already started; they need new dates."""
        return [line for line in self._items() if line.start_date < today]


reservation_aggregator = ReservationAggregator()
