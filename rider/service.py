import logging
import threading
from contextlib import nullcontext
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from typing import Callable, Optional
from uuid import uuid4

import pydantic
import pytz

from .audit import AuditLogger
from .errors import (
    RiderServiceError,
    ValidationError,
    InvalidAmountError,
    InvalidStateTransitionError,
    InsufficientBalanceError,
    NotFoundError,
    OrderNotFoundError,
    WithdrawalNotFoundError,
    StorageError,
)
from .models import (
    COMPLETED_STATUSES,
    ONGOING_STATUSES,
    IncomeDocument,
    IncomeSnapshot,
    Order,
    OrdersDocument,
    OrderStatistics,
    OrderStatus,
    OrderStatusFilter,
    TrendPeriod,
    TrendReport,
    Withdrawal,
    WithdrawalResolution,
    WithdrawalStatus,
    WithdrawalStatusFilter,
    assume_utc,
    round_money,
)
from .storage import JsonDocumentStore, document_key
from .validators import validate_account_info, validate_withdrawal_amount

__all__ = [
    "RiderServiceError", "ValidationError", "InvalidAmountError",
    "InvalidStateTransitionError", "InsufficientBalanceError", "NotFoundError",
    "OrderNotFoundError", "WithdrawalNotFoundError", "StorageError",
    "RiderLocks", "OrderService", "IncomeService",
]

log = logging.getLogger("rider.service")

WEEK = timedelta(days=7)
MONTH_WINDOW = timedelta(days=30)
DAILY_BUCKETS = 7
WEEKLY_BUCKETS = 4
MONTHLY_BUCKETS = 6


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _parse_enum(enum_cls, value, label: str):
    try:
        return enum_cls(value)
    except ValueError:
        valid = ", ".join(member.value for member in enum_cls)
        raise ValidationError(f"{label} must be one of: {valid}")


class RiderLocks:
    """One mutex per rider, created on first use."""

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: dict[str, threading.Lock] = {}

    def for_rider(self, rider_id: str) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(rider_id)
            if lock is None:
                lock = self._locks[rider_id] = threading.Lock()
            return lock


class _ClockedService:
    def __init__(
        self,
        store: JsonDocumentStore,
        tz_name: str = "UTC",
        clock: Optional[Callable[[], datetime]] = None,
        audit: Optional[AuditLogger] = None,
        locks: Optional[RiderLocks] = None,
    ):
        self.store = store
        self.tz = pytz.timezone(tz_name)
        self.clock = clock or utc_now
        self.audit = audit
        self.locks = locks

    def now(self) -> datetime:
        return self.clock()

    def local_date(self, value: datetime) -> date:
        return value.astimezone(self.tz).date()

    def today(self) -> date:
        return self.local_date(self.now())

    def _guard(self, rider_id: str):
        if self.locks is None:
            return nullcontext()
        return self.locks.for_rider(rider_id)

    def _audit(self, rider_id: str, action: str, details: Optional[dict] = None) -> None:
        if self.audit is not None:
            self.audit.log_action(rider_id, action, details)


class OrderService(_ClockedService):
    """Read side of a rider's order collection plus the one status mutation."""

    def _key(self, rider_id: str) -> str:
        return document_key(rider_id, "orders")

    def _load(self, rider_id: str) -> OrdersDocument:
        key = self._key(rider_id)
        data = self.store.read(key, {"riderId": rider_id, "orders": []})
        try:
            return OrdersDocument.model_validate(data)
        except pydantic.ValidationError as e:
            log.error("Malformed orders document %s: %s", key, e)
            raise StorageError(f"Could not load document {key}: {e}") from e

    def list_all(self, rider_id: str) -> list[Order]:
        return self._load(rider_id).orders

    def filter_by_status(self, rider_id: str, status=OrderStatusFilter.ALL) -> list[Order]:
        status = _parse_enum(OrderStatusFilter, status, "Status")
        orders = self.list_all(rider_id)
        if status == OrderStatusFilter.ALL:
            return orders

        wanted = ONGOING_STATUSES if status == OrderStatusFilter.ONGOING else COMPLETED_STATUSES
        filtered = [o for o in orders if o.status in wanted]
        self._audit(rider_id, "VIEW_ORDERS", {"status": status.value, "count": len(filtered)})
        return filtered

    def get_by_id(self, rider_id: str, order_id: str) -> Optional[Order]:
        for order in self.list_all(rider_id):
            if order.order_id == order_id:
                self._audit(rider_id, "VIEW_ORDER_DETAIL", {"orderId": order_id, "status": order.status})
                return order
        return None

    def get_order(self, rider_id: str, order_id: str) -> Order:
        order = self.get_by_id(rider_id, order_id)
        if order is None:
            raise OrderNotFoundError(f"Order {order_id} not found")
        return order

    def search(self, rider_id: str, query: str) -> list[Order]:
        needle = query.strip().lower()
        return [o for o in self.list_all(rider_id) if o.matches(needle)]

    def update_status(self, rider_id: str, order_id: str, new_status) -> Optional[Order]:
        new_status = _parse_enum(OrderStatus, new_status, "Order status")
        with self._guard(rider_id):
            document = self._load(rider_id)
            order = next((o for o in document.orders if o.order_id == order_id), None)
            if order is None:
                return None

            now = self.now()
            order.status = new_status
            order.updated_at = now
            if new_status == OrderStatus.DELIVERED:
                order.delivered_at = now

            self.store.write(self._key(rider_id), document.model_dump(by_alias=True))

        log.info("Order %s of rider %s moved to %s", order_id, rider_id, new_status.value)
        self._audit(rider_id, "UPDATE_ORDER_STATUS", {"orderId": order_id, "newStatus": new_status.value})
        return order

    def compute_statistics(self, rider_id: str) -> OrderStatistics:
        orders = self.list_all(rider_id)
        today = self.today()

        ongoing = completed = cancelled = today_orders = 0
        total_earnings = Decimal("0")
        today_earnings = Decimal("0")

        for order in orders:
            if order.status in ONGOING_STATUSES:
                ongoing += 1
            elif order.status == OrderStatus.DELIVERED:
                completed += 1
                total_earnings += order.delivery_fee
                if self.local_date(order.effective_date) == today:
                    today_orders += 1
                    today_earnings += order.delivery_fee
            elif order.status == OrderStatus.CANCELLED:
                cancelled += 1

        stats = OrderStatistics(
            total=len(orders),
            ongoing=ongoing,
            completed=completed,
            cancelled=cancelled,
            total_earnings=round_money(total_earnings),
            today_earnings=round_money(today_earnings),
            today_orders=today_orders,
        )
        self._audit(rider_id, "VIEW_STATISTICS", stats.model_dump(mode="json", by_alias=True))
        return stats

    def get_recent(self, rider_id: str, limit: int = 10) -> list[Order]:
        # sorted() stays stable with reverse=True, so equal timestamps keep input order
        ordered = sorted(self.list_all(rider_id), key=lambda o: o.created_at, reverse=True)
        return ordered[:limit]

    def get_by_date_range(self, rider_id: str, start: datetime, end: datetime) -> list[Order]:
        start, end = assume_utc(start), assume_utc(end)
        return [o for o in self.list_all(rider_id) if start <= o.created_at <= end]


class IncomeService(_ClockedService):
    """Earnings views and withdrawal lifecycle, derived from the order ledger."""

    def __init__(
        self,
        store: JsonDocumentStore,
        orders: OrderService,
        tz_name: str = "UTC",
        clock: Optional[Callable[[], datetime]] = None,
        audit: Optional[AuditLogger] = None,
        locks: Optional[RiderLocks] = None,
        min_withdrawal: Decimal = Decimal("10"),
        max_withdrawal: Decimal = Decimal("10000"),
    ):
        super().__init__(store, tz_name=tz_name, clock=clock, audit=audit, locks=locks)
        self.orders = orders
        self.min_withdrawal = Decimal(min_withdrawal)
        self.max_withdrawal = Decimal(max_withdrawal)

    def _key(self, rider_id: str) -> str:
        return document_key(rider_id, "income")

    def _load(self, rider_id: str) -> IncomeDocument:
        key = self._key(rider_id)
        data = self.store.read(key, {
            "riderId": rider_id,
            "withdrawals": [],
            "totalWithdrawn": 0,
            "lastUpdated": None,
        })
        try:
            return IncomeDocument.model_validate(data)
        except pydantic.ValidationError as e:
            log.error("Malformed income document %s: %s", key, e)
            raise StorageError(f"Could not load document {key}: {e}") from e

    def _save(self, document: IncomeDocument) -> None:
        document.last_updated = self.now()
        self.store.write(self._key(document.rider_id), document.model_dump(by_alias=True))

    def _delivered(self, rider_id: str) -> list[Order]:
        return [o for o in self.orders.list_all(rider_id) if o.is_earning()]

    def get_real_time_income(self, rider_id: str) -> IncomeSnapshot:
        delivered = self._delivered(rider_id)
        document = self._load(rider_id)

        now = self.now()
        today = self.local_date(now)
        week_ago = now - WEEK
        month_ago = now - MONTH_WINDOW

        total = today_total = week_total = month_total = Decimal("0")
        for order in delivered:
            fee = order.delivery_fee
            total += fee
            if order.delivered_at is not None and self.local_date(order.delivered_at) == today:
                today_total += fee
            effective = order.effective_date
            if effective >= week_ago:
                week_total += fee
            if effective >= month_ago:
                month_total += fee

        pending = sum(1 for w in document.withdrawals if w.status == WithdrawalStatus.PENDING)
        snapshot = IncomeSnapshot(
            rider_id=rider_id,
            total_earnings=round_money(total),
            today_earnings=round_money(today_total),
            week_earnings=round_money(week_total),
            month_earnings=round_money(month_total),
            total_withdrawn=round_money(document.total_withdrawn),
            available_balance=round_money(total - document.total_withdrawn),
            pending_withdrawals=pending,
            last_updated=now,
        )
        self._audit(rider_id, "VIEW_REALTIME_INCOME", {
            "availableBalance": str(snapshot.available_balance),
            "todayEarnings": str(snapshot.today_earnings),
        })
        return snapshot

    def get_income_trend(self, rider_id: str, period=TrendPeriod.DAILY) -> TrendReport:
        period = _parse_enum(TrendPeriod, period, "Period")
        delivered = self._delivered(rider_id)
        now = self.now()

        if period == TrendPeriod.DAILY:
            labels = self._last_days(now)
            slots = {label: i for i, label in enumerate(labels)}
            position = lambda order: slots.get(self.local_date(order.effective_date).isoformat())
        elif period == TrendPeriod.WEEKLY:
            labels = [f"Week {i}" for i in range(1, WEEKLY_BUCKETS + 1)]
            position = lambda order: self._week_position(now, order.effective_date)
        else:
            labels = self._last_months(now)
            slots = {label: i for i, label in enumerate(labels)}
            position = lambda order: slots.get(order.effective_date.astimezone(self.tz).strftime("%Y-%m"))

        earnings = [Decimal("0")] * len(labels)
        counts = [0] * len(labels)
        for order in delivered:
            slot = position(order)
            if slot is None:
                continue
            earnings[slot] += order.delivery_fee
            counts[slot] += 1

        self._audit(rider_id, "VIEW_INCOME_TREND", {"period": period.value})
        return TrendReport(
            period=period,
            labels=labels,
            earnings=[round_money(e) for e in earnings],
            order_counts=counts,
        )

    def _last_days(self, now: datetime) -> list[str]:
        today = self.local_date(now)
        return [(today - timedelta(days=i)).isoformat() for i in range(DAILY_BUCKETS - 1, -1, -1)]

    def _last_months(self, now: datetime) -> list[str]:
        local = now.astimezone(self.tz)
        base = local.year * 12 + local.month - 1
        labels = []
        for i in range(MONTHLY_BUCKETS - 1, -1, -1):
            year, month = divmod(base - i, 12)
            labels.append(f"{year:04d}-{month + 1:02d}")
        return labels

    @staticmethod
    def _week_position(now: datetime, effective: datetime) -> Optional[int]:
        # index 0 is the most recent week, labels run oldest to newest
        week_index = (now - effective) // WEEK
        if week_index < 0 or week_index >= WEEKLY_BUCKETS:
            return None
        return WEEKLY_BUCKETS - 1 - week_index

    def submit_withdrawal(self, rider_id: str, amount, account_info: Optional[str] = None) -> Withdrawal:
        amount = validate_withdrawal_amount(amount, self.min_withdrawal, self.max_withdrawal)
        account_info = validate_account_info(account_info)

        with self._guard(rider_id):
            snapshot = self.get_real_time_income(rider_id)
            if amount > snapshot.available_balance:
                raise InsufficientBalanceError(
                    f"Insufficient balance for withdrawal: requested {amount}, "
                    f"available {snapshot.available_balance}"
                )

            document = self._load(rider_id)
            withdrawal = Withdrawal(
                withdrawal_id=f"WD{uuid4().hex[:16].upper()}",
                rider_id=rider_id,
                amount=amount,
                account_info=account_info,
                status=WithdrawalStatus.PENDING,
                requested_at=self.now(),
            )
            document.withdrawals.append(withdrawal)
            self._save(document)

        log.info("Withdrawal %s of %s requested by rider %s", withdrawal.withdrawal_id, amount, rider_id)
        self._audit(rider_id, "WITHDRAWAL_REQUEST", {"amount": str(amount), "status": "pending"})
        return withdrawal

    def get_withdrawal_records(self, rider_id: str, status=WithdrawalStatusFilter.ALL) -> list[Withdrawal]:
        status = _parse_enum(WithdrawalStatusFilter, status, "Status")
        records = self._load(rider_id).withdrawals
        if status != WithdrawalStatusFilter.ALL:
            records = [w for w in records if w.status.value == status.value]

        records = sorted(records, key=lambda w: w.requested_at, reverse=True)
        self._audit(rider_id, "VIEW_WITHDRAWAL_RECORDS", {"status": status.value, "count": len(records)})
        return records

    def resolve_withdrawal(self, rider_id: str, withdrawal_id: str, new_status, notes: str = "") -> Withdrawal:
        new_status = _parse_enum(WithdrawalResolution, new_status, "Status")

        with self._guard(rider_id):
            document = self._load(rider_id)
            withdrawal = next((w for w in document.withdrawals if w.withdrawal_id == withdrawal_id), None)
            if withdrawal is None:
                raise WithdrawalNotFoundError(f"Withdrawal {withdrawal_id} not found")
            if not withdrawal.can_resolve():
                raise InvalidStateTransitionError(
                    f"Cannot move withdrawal from {withdrawal.status.value} to {new_status.value}. "
                    "Only pending withdrawals can be resolved."
                )

            withdrawal.status = WithdrawalStatus(new_status.value)
            withdrawal.processed_at = self.now()
            withdrawal.notes = notes or ""
            if withdrawal.status == WithdrawalStatus.COMPLETED:
                document.total_withdrawn += withdrawal.amount
            self._save(document)

        log.info("Withdrawal %s of rider %s resolved as %s", withdrawal_id, rider_id, new_status.value)
        self._audit(rider_id, "WITHDRAWAL_REQUEST", {"amount": str(withdrawal.amount), "status": new_status.value})
        return withdrawal
