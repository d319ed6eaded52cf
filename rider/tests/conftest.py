from datetime import datetime, timedelta, timezone

import pytest

from rider.service import IncomeService, OrderService, RiderLocks
from rider.storage import DocumentCache, JsonDocumentStore, document_key


RIDER_ID = "rider_001"
OTHER_RIDER_ID = "rider_002"
FIXED_NOW = datetime(2026, 10, 18, 12, 0, tzinfo=timezone.utc)


def iso(value: datetime) -> str:
    return value.isoformat().replace("+00:00", "Z")


def make_order(order_id, status, fee, created_at, delivered_at=None, **extra):
    order = {
        "orderId": order_id,
        "status": status,
        "deliveryFee": fee,
        "createdAt": iso(created_at),
        "customerName": extra.pop("customerName", f"Customer {order_id}"),
        "pickupAddress": extra.pop("pickupAddress", "1 Pickup Street"),
        "deliveryAddress": extra.pop("deliveryAddress", "2 Dropoff Avenue"),
    }
    if delivered_at is not None:
        order["deliveredAt"] = iso(delivered_at)
    order.update(extra)
    return order


@pytest.fixture
def store(tmp_path):
    return JsonDocumentStore(tmp_path / "data", DocumentCache())


@pytest.fixture
def seed_orders(store):
    def _seed(orders, rider_id=RIDER_ID):
        store.write(document_key(rider_id, "orders"), {"riderId": rider_id, "orders": orders})
    return _seed


@pytest.fixture
def order_service(store):
    return OrderService(store, clock=lambda: FIXED_NOW, locks=RiderLocks())


@pytest.fixture
def income_service(store, order_service):
    return IncomeService(store, order_service, clock=lambda: FIXED_NOW, locks=RiderLocks())


@pytest.fixture
def scenario_orders():
    """O1 delivered today, O2 delivered ten days ago, O3 cancelled."""
    return [
        make_order("O1", "delivered", 15.00, FIXED_NOW - timedelta(hours=2), FIXED_NOW - timedelta(hours=1)),
        make_order("O2", "delivered", 8.50, FIXED_NOW - timedelta(days=10, hours=1), FIXED_NOW - timedelta(days=10)),
        make_order("O3", "cancelled", 5.00, FIXED_NOW - timedelta(days=3)),
    ]
