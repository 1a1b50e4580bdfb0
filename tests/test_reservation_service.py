"""
Tests for the reservation aggregator (cart)
"""
from datetime import date
from decimal import Decimal

import pytest

from rentals.core.errors import ValidationError
from rentals.models import FulfillmentMethod
from rentals.schemas.reservation import ListingInfo
from rentals.services.event_service import (
    RESERVATION_ADDED,
    RESERVATION_CLEARED,
    RESERVATION_REMOVED,
    RESERVATION_UPDATED,
)
from rentals.services.reservation_service import ReservationAggregator
from rentals.stores.reservation_store import InMemoryReservationStore, JsonFileReservationStore


class BrokenStore(InMemoryReservationStore):
    def save(self, lines):
        raise OSError("disk full")


class CountingStore(InMemoryReservationStore):
    def __init__(self, lines=None):
        super().__init__(lines)
        self.load_count = 0

    def load(self):
        self.load_count += 1
        return super().load()


@pytest.fixture
def store():
    return InMemoryReservationStore()


@pytest.fixture
def aggregator(store, bus):
    return ReservationAggregator(store=store, events=bus)


class TestAddOrUpdate:
    def test_prices_the_line(self, aggregator, listing_line):
        """50/day from June 1 to June 4 is three days for 150"""
        line = aggregator.add_or_update(listing_line)

        assert line.duration_days == 3
        assert line.total_price == Decimal("150")
        assert aggregator.line_count() == 1
        assert aggregator.total_price() == Decimal("150")

    def test_same_window_updates_in_place(self, aggregator, listing_line, bus):
        first = aggregator.add_or_update(listing_line)
        second = aggregator.add_or_update({**listing_line, "price_per_day": Decimal("60")})

        assert aggregator.line_count() == 1
        assert second.id == first.id
        assert second.total_price == Decimal("180")
        assert bus.types() == [RESERVATION_ADDED, RESERVATION_UPDATED]

    def test_different_window_adds_new_line(self, aggregator, listing_line):
        aggregator.add_or_update(listing_line)
        aggregator.add_or_update({**listing_line, "end_date": date(2024, 6, 5)})

        assert aggregator.line_count() == 2
        assert aggregator.total_price() == Decimal("350")

    def test_delivery_fee_added_to_total(self, aggregator, listing_line):
        line = aggregator.add_or_update(
            {
                **listing_line,
                "fulfillment_method": "delivery",
                "fulfillment_address": "12 Main St",
                "delivery_fee": Decimal("15"),
            }
        )
        assert line.total_price == Decimal("165")

    def test_every_mutation_is_saved(self, aggregator, listing_line, store):
        aggregator.add_or_update(listing_line)
        assert store.save_count == 1
        assert len(store.lines) == 1


class TestValidation:
    def test_end_before_start_rejected(self, aggregator, listing_line):
        with pytest.raises(ValidationError) as exc:
            aggregator.add_or_update({**listing_line, "end_date": date(2024, 5, 30)})
        assert exc.value.field == "end_date"
        assert aggregator.line_count() == 0

    def test_same_day_window_rejected(self, aggregator, listing_line):
        with pytest.raises(ValidationError):
            aggregator.add_or_update({**listing_line, "end_date": listing_line["start_date"]})

    def test_negative_price_rejected(self, aggregator, listing_line):
        with pytest.raises(ValidationError) as exc:
            aggregator.add_or_update({**listing_line, "price_per_day": Decimal("-1")})
        assert exc.value.field == "price_per_day"

    def test_delivery_requires_address(self, aggregator, listing_line):
        with pytest.raises(ValidationError) as exc:
            aggregator.add_or_update({**listing_line, "fulfillment_method": "delivery"})
        assert exc.value.field == "fulfillment_address"

    def test_meet_public_requires_location(self, aggregator, listing_line):
        with pytest.raises(ValidationError) as exc:
            aggregator.add_or_update({**listing_line, "fulfillment_method": "meet_public"})
        assert exc.value.field == "meet_location"

    def test_missing_listing_rejected(self, aggregator, listing_line):
        data = dict(listing_line)
        del data["listing_id"]
        with pytest.raises(ValidationError):
            aggregator.add_or_update(data)


class TestUpdateAndRemove:
    def test_update_recomputes_price(self, aggregator, listing_line):
        line = aggregator.add_or_update(listing_line)
        updated = aggregator.update(line.id, end_date=date(2024, 6, 6))

        assert updated.duration_days == 5
        assert updated.total_price == Decimal("250")
        assert aggregator.get(line.id).total_price == Decimal("250")

    def test_update_ignores_computed_fields(self, aggregator, listing_line):
        line = aggregator.add_or_update(listing_line)
        updated = aggregator.update(line.id, total_price=Decimal("1"), id="other")
        assert updated.id == line.id
        assert updated.total_price == Decimal("150")

    def test_update_rejects_unknown_field(self, aggregator, listing_line):
        line = aggregator.add_or_update(listing_line)
        with pytest.raises(ValidationError) as exc:
            aggregator.update(line.id, price=Decimal("60"))
        assert exc.value.field == "price"
        assert aggregator.get(line.id).price_per_day == Decimal("50")
        assert aggregator.get(line.id).total_price == Decimal("150")

    def test_update_unknown_line(self, aggregator):
        assert aggregator.update("missing", price_per_day=Decimal("1")) is None

    def test_invalid_update_keeps_line(self, aggregator, listing_line):
        line = aggregator.add_or_update(listing_line)
        with pytest.raises(ValidationError):
            aggregator.update(line.id, end_date=date(2024, 5, 1))
        assert aggregator.get(line.id).end_date == date(2024, 6, 4)

    def test_update_onto_existing_window_merges(self, aggregator, listing_line, bus):
        first = aggregator.add_or_update(listing_line)
        second = aggregator.add_or_update({**listing_line, "end_date": date(2024, 6, 5)})

        aggregator.update(second.id, end_date=date(2024, 6, 4))

        assert aggregator.line_count() == 1
        assert aggregator.lines[0].id == second.id
        assert aggregator.get(first.id) is None
        assert RESERVATION_REMOVED in bus.types()

    def test_remove_is_idempotent(self, aggregator, listing_line, bus):
        line = aggregator.add_or_update(listing_line)

        assert aggregator.remove(line.id) is True
        assert aggregator.remove(line.id) is False
        assert aggregator.line_count() == 0
        assert bus.types().count(RESERVATION_REMOVED) == 1

    def test_clear_empties_store(self, aggregator, listing_line, store, bus):
        aggregator.add_or_update(listing_line)
        aggregator.clear()

        assert aggregator.line_count() == 0
        assert store.lines == []
        assert bus.types()[-1] == RESERVATION_CLEARED


class TestQueries:
    def test_queries(self, aggregator, listing_line):
        aggregator.add_or_update(listing_line)
        aggregator.add_or_update(
            {
                **listing_line,
                "listing_id": "listing-2",
                "owner_id": "owner-2",
                "currency": "EUR",
                "price_per_day": Decimal("10"),
            }
        )

        assert aggregator.contains("listing-2")
        assert not aggregator.contains("listing-3")
        assert [line.listing_id for line in aggregator.lines_for_owner("owner-2")] == ["listing-2"]
        assert aggregator.totals_by_currency() == {"USD": Decimal("150"), "EUR": Decimal("30")}

    def test_stale_lines(self, aggregator, listing_line):
        aggregator.add_or_update(listing_line)
        assert aggregator.stale_lines(date(2024, 6, 1)) == []
        assert len(aggregator.stale_lines(date(2024, 6, 2))) == 1


class TestPersistence:
    def test_save_failure_keeps_in_memory_change(self, listing_line, caplog):
        aggregator = ReservationAggregator(store=BrokenStore())
        line = aggregator.add_or_update(listing_line)

        assert aggregator.get(line.id) is not None
        assert "Failed to save reservations" in caplog.text

    def test_loads_once_on_first_access(self, listing_line):
        seed = ReservationAggregator(store=InMemoryReservationStore())
        line = seed.add_or_update(listing_line)

        store = CountingStore([line])
        aggregator = ReservationAggregator(store=store)
        assert store.load_count == 0

        assert aggregator.line_count() == 1
        assert aggregator.total_price() == Decimal("150")
        assert store.load_count == 1

    def test_json_store_round_trip(self, tmp_path, listing_line):
        path = tmp_path / "cart" / "reservations.json"
        aggregator = ReservationAggregator(store=JsonFileReservationStore(str(path)))
        line = aggregator.add_or_update(listing_line)

        reloaded = ReservationAggregator(store=JsonFileReservationStore(str(path)))
        assert [item.id for item in reloaded.lines] == [line.id]
        assert reloaded.lines[0].total_price == Decimal("150")

        reloaded.clear()
        assert not path.exists()

    def test_corrupt_file_starts_empty(self, tmp_path, caplog):
        path = tmp_path / "reservations.json"
        path.write_text("{not json")

        aggregator = ReservationAggregator(store=JsonFileReservationStore(str(path)))
        assert aggregator.lines == []
        assert "Failed to load reservations" in caplog.text


class TestAddFromListing:
    @pytest.fixture
    def listing(self):
        return ListingInfo(
            listing_id="listing-1",
            title="Cordless drill",
            price_per_day=Decimal("50"),
            owner_id="owner-1",
        )

    def test_pickup_line(self, aggregator, listing):
        line = aggregator.add_from_listing(listing, date(2024, 6, 1), date(2024, 6, 4))
        assert line.listing_title == "Cordless drill"
        assert line.fulfillment_method == FulfillmentMethod.PICKUP
        assert line.total_price == Decimal("150")

    def test_delivery_not_offered(self, aggregator, listing):
        with pytest.raises(ValidationError) as exc:
            aggregator.add_from_listing(
                listing,
                date(2024, 6, 1),
                date(2024, 6, 4),
                FulfillmentMethod.DELIVERY,
                fulfillment_address="12 Main St",
            )
        assert exc.value.field == "fulfillment_method"

    def test_pickup_not_offered(self, aggregator, listing):
        listing = listing.model_copy(update={"pickup_available": False, "delivery_available": True})
        with pytest.raises(ValidationError):
            aggregator.add_from_listing(listing, date(2024, 6, 1), date(2024, 6, 4))

        line = aggregator.add_from_listing(
            listing,
            date(2024, 6, 1),
            date(2024, 6, 4),
            FulfillmentMethod.DELIVERY,
            fulfillment_address="12 Main St",
        )
        assert line.fulfillment_address == "12 Main St"
