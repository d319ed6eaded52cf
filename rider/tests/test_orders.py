"""
Unit Tests for the Order Service

Tests cover:
1. Status buckets
2. Lookup and search
3. Status updates
4. Statistics
5. Recent orders and date ranges
"""

from datetime import datetime, timedelta
from decimal import Decimal

import pytest

from rider.errors import OrderNotFoundError, StorageError, ValidationError
from rider.models import OrderStatus

from .conftest import FIXED_NOW, OTHER_RIDER_ID, RIDER_ID, make_order


def mixed_orders():
    base = FIXED_NOW - timedelta(days=1)
    return [
        make_order("ORD001", "assigned", 5.00, base),
        make_order("ORD002", "picked_up", 6.00, base),
        make_order("ORD003", "in_transit", 7.00, base),
        make_order("ORD004", "delivered", 8.00, base, base + timedelta(hours=1)),
        make_order("ORD005", "cancelled", 9.00, base),
    ]


class TestStatusFilter:
    """Tests for status bucket filtering."""

    def test_all_returns_insertion_order(self, order_service, seed_orders):
        seed_orders(mixed_orders())

        orders = order_service.filter_by_status(RIDER_ID, "all")

        assert [o.order_id for o in orders] == ["ORD001", "ORD002", "ORD003", "ORD004", "ORD005"]

    def test_ongoing_and_completed_partition(self, order_service, seed_orders):
        """Test that ongoing and completed buckets split the ledger without overlap."""
        seed_orders(mixed_orders())

        ongoing = {o.order_id for o in order_service.filter_by_status(RIDER_ID, "ongoing")}
        completed = {o.order_id for o in order_service.filter_by_status(RIDER_ID, "completed")}
        everything = {o.order_id for o in order_service.list_all(RIDER_ID)}

        assert ongoing == {"ORD001", "ORD002", "ORD003"}
        assert completed == {"ORD004", "ORD005"}
        assert ongoing.isdisjoint(completed)
        assert ongoing | completed == everything

    def test_invalid_filter_rejected(self, order_service, seed_orders):
        seed_orders(mixed_orders())

        with pytest.raises(ValidationError):
            order_service.filter_by_status(RIDER_ID, "delivered")

    def test_missing_document_is_empty(self, order_service):
        assert order_service.list_all(RIDER_ID) == []


class TestLookupAndSearch:
    """Tests for order lookup and free-text search."""

    def test_get_by_id_is_case_sensitive(self, order_service, seed_orders):
        seed_orders(mixed_orders())

        assert order_service.get_by_id(RIDER_ID, "ORD004").status == OrderStatus.DELIVERED
        assert order_service.get_by_id(RIDER_ID, "ord004") is None

    def test_get_order_raises_when_missing(self, order_service, seed_orders):
        seed_orders(mixed_orders())

        with pytest.raises(OrderNotFoundError):
            order_service.get_order(RIDER_ID, "NOPE")

    def test_search_matches_any_field_case_insensitively(self, order_service, seed_orders):
        seed_orders([
            make_order("ORD100", "assigned", 5, FIXED_NOW, customerName="Alice Chen"),
            make_order("ORD101", "assigned", 5, FIXED_NOW, pickupAddress="12 Market Street"),
            make_order("ORD102", "assigned", 5, FIXED_NOW, deliveryAddress="88 Harbour View"),
            make_order("XYZ103", "assigned", 5, FIXED_NOW),
        ])

        assert [o.order_id for o in order_service.search(RIDER_ID, "alice")] == ["ORD100"]
        assert [o.order_id for o in order_service.search(RIDER_ID, "MARKET")] == ["ORD101"]
        assert [o.order_id for o in order_service.search(RIDER_ID, "harbour")] == ["ORD102"]
        assert [o.order_id for o in order_service.search(RIDER_ID, "xyz")] == ["XYZ103"]
        assert len(order_service.search(RIDER_ID, "ord1")) == 3
        assert order_service.search(RIDER_ID, "nothing here") == []

    def test_riders_are_isolated(self, order_service, seed_orders):
        seed_orders(mixed_orders())
        seed_orders([make_order("OTHER1", "assigned", 5, FIXED_NOW)], rider_id=OTHER_RIDER_ID)

        assert [o.order_id for o in order_service.list_all(OTHER_RIDER_ID)] == ["OTHER1"]
        assert order_service.get_by_id(OTHER_RIDER_ID, "ORD001") is None


class TestUpdateStatus:
    """Tests for the order status mutation."""

    def test_deliver_stamps_timestamps(self, order_service, seed_orders):
        seed_orders(mixed_orders())

        order = order_service.update_status(RIDER_ID, "ORD003", "delivered")

        assert order.status == OrderStatus.DELIVERED
        assert order.updated_at == FIXED_NOW
        assert order.delivered_at == FIXED_NOW

        # Persisted
        reloaded = order_service.get_by_id(RIDER_ID, "ORD003")
        assert reloaded.delivered_at == FIXED_NOW

    def test_non_delivery_update_leaves_delivered_at(self, order_service, seed_orders):
        seed_orders(mixed_orders())

        order = order_service.update_status(RIDER_ID, "ORD001", OrderStatus.PICKED_UP)

        assert order.status == OrderStatus.PICKED_UP
        assert order.updated_at == FIXED_NOW
        assert order.delivered_at is None

    def test_unknown_order_returns_none(self, order_service, seed_orders):
        seed_orders(mixed_orders())

        assert order_service.update_status(RIDER_ID, "NOPE", "delivered") is None

    def test_invalid_status_rejected(self, order_service, seed_orders):
        seed_orders(mixed_orders())

        with pytest.raises(ValidationError):
            order_service.update_status(RIDER_ID, "ORD001", "lost")

    def test_extra_fields_survive_update(self, order_service, seed_orders, store):
        seed_orders([make_order("ORD001", "assigned", 5, FIXED_NOW, items=["Pizza"], distance=2.5)])

        order_service.update_status(RIDER_ID, "ORD001", "in_transit")

        store.clear_cache()
        raw = store.read("rider_001.orders.json")
        assert raw["orders"][0]["items"] == ["Pizza"]
        assert raw["orders"][0]["status"] == "in_transit"


class TestStatistics:
    """Tests for order statistics."""

    def test_scenario(self, order_service, seed_orders, scenario_orders):
        seed_orders(scenario_orders)

        stats = order_service.compute_statistics(RIDER_ID)

        assert stats.total == 3
        assert stats.ongoing == 0
        assert stats.completed == 2
        assert stats.cancelled == 1
        assert stats.total_earnings == Decimal("23.50")
        assert stats.today_earnings == Decimal("15.00")
        assert stats.today_orders == 1

    def test_only_delivered_orders_earn(self, order_service, seed_orders):
        seed_orders(mixed_orders())

        stats = order_service.compute_statistics(RIDER_ID)

        assert stats.total_earnings == Decimal("8.00")
        assert stats.ongoing == 3

    def test_today_falls_back_to_created_at(self, order_service, seed_orders):
        seed_orders([make_order("ORD001", "delivered", 4.00, FIXED_NOW - timedelta(hours=3))])

        stats = order_service.compute_statistics(RIDER_ID)

        assert stats.today_orders == 1
        assert stats.today_earnings == Decimal("4.00")

    def test_rounding_is_half_up_on_output(self, order_service, seed_orders):
        seed_orders([
            make_order("A", "delivered", "0.125", FIXED_NOW, FIXED_NOW),
            make_order("B", "delivered", "0.125", FIXED_NOW - timedelta(days=2), FIXED_NOW - timedelta(days=2)),
            make_order("C", "delivered", "0.005", FIXED_NOW - timedelta(days=2), FIXED_NOW - timedelta(days=2)),
        ])

        stats = order_service.compute_statistics(RIDER_ID)

        # 0.255 accumulated, rounded once
        assert stats.total_earnings == Decimal("0.26")
        assert stats.today_earnings == Decimal("0.13")


class TestRecentAndRange:
    """Tests for recent orders and date range queries."""

    def test_recent_sorted_newest_first_and_stable(self, order_service, seed_orders):
        tie = FIXED_NOW - timedelta(hours=5)
        seed_orders([
            make_order("OLD", "assigned", 1, FIXED_NOW - timedelta(days=3)),
            make_order("TIE1", "assigned", 1, tie),
            make_order("NEW", "assigned", 1, FIXED_NOW),
            make_order("TIE2", "assigned", 1, tie),
        ])

        recent = order_service.get_recent(RIDER_ID)

        assert [o.order_id for o in recent] == ["NEW", "TIE1", "TIE2", "OLD"]
        assert [o.order_id for o in order_service.get_recent(RIDER_ID, 2)] == ["NEW", "TIE1"]

    def test_date_range_is_inclusive(self, order_service, seed_orders):
        start = FIXED_NOW - timedelta(days=2)
        end = FIXED_NOW - timedelta(days=1)
        seed_orders([
            make_order("BEFORE", "assigned", 1, start - timedelta(seconds=1)),
            make_order("START", "assigned", 1, start),
            make_order("END", "assigned", 1, end),
            make_order("AFTER", "assigned", 1, end + timedelta(seconds=1)),
        ])

        found = order_service.get_by_date_range(RIDER_ID, start, end)

        assert [o.order_id for o in found] == ["START", "END"]

    def test_date_range_accepts_naive_bounds(self, order_service, seed_orders):
        """Test that naive bounds are read as UTC."""
        seed_orders([
            make_order("IN", "assigned", 1, FIXED_NOW - timedelta(days=1)),
            make_order("OUT", "assigned", 1, FIXED_NOW - timedelta(days=5)),
        ])

        found = order_service.get_by_date_range(
            RIDER_ID, datetime(2026, 10, 16, 0, 0), datetime(2026, 10, 18, 0, 0)
        )

        assert [o.order_id for o in found] == ["IN"]


class TestIrregularRecords:
    """Tests for stored orders that do not fit the usual shape."""

    def test_unknown_status_is_kept_outside_both_buckets(self, order_service, seed_orders):
        seed_orders([
            make_order("A", "delivered", 10.00, FIXED_NOW, FIXED_NOW),
            make_order("B", "returned", 4.00, FIXED_NOW),
        ])

        everything = order_service.list_all(RIDER_ID)
        ongoing = order_service.filter_by_status(RIDER_ID, "ongoing")
        completed = order_service.filter_by_status(RIDER_ID, "completed")

        assert [o.order_id for o in everything] == ["A", "B"]
        assert everything[1].status == "returned"
        assert ongoing == []
        assert [o.order_id for o in completed] == ["A"]

        stats = order_service.compute_statistics(RIDER_ID)
        assert stats.total == 2
        assert stats.ongoing + stats.completed + stats.cancelled == 1
        assert stats.total_earnings == Decimal("10.00")

    def test_unknown_status_survives_update_of_another_order(self, order_service, seed_orders, store):
        seed_orders([
            make_order("A", "assigned", 10.00, FIXED_NOW),
            make_order("B", "returned", 4.00, FIXED_NOW),
        ])

        order_service.update_status(RIDER_ID, "A", "picked_up")

        store.clear_cache()
        raw = store.read("rider_001.orders.json")
        assert [o["status"] for o in raw["orders"]] == ["picked_up", "returned"]

    def test_null_fee_counts_as_zero(self, order_service, seed_orders):
        seed_orders([
            make_order("A", "delivered", None, FIXED_NOW, FIXED_NOW),
            make_order("B", "delivered", 6.00, FIXED_NOW, FIXED_NOW),
        ])

        stats = order_service.compute_statistics(RIDER_ID)

        assert order_service.get_by_id(RIDER_ID, "A").delivery_fee == Decimal("0")
        assert stats.completed == 2
        assert stats.total_earnings == Decimal("6.00")

    def test_invalid_record_is_a_storage_error(self, order_service, seed_orders):
        """Test that a record that cannot be read as an order surfaces as StorageError."""
        seed_orders([
            make_order("A", "delivered", 10.00, FIXED_NOW, FIXED_NOW),
            make_order("B", "delivered", -3.00, FIXED_NOW, FIXED_NOW),
        ])

        with pytest.raises(StorageError):
            order_service.list_all(RIDER_ID)
        with pytest.raises(StorageError):
            order_service.compute_statistics(RIDER_ID)
