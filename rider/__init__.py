"""
Rider Order & Income Backend

This package provides:
- Order ledger queries (status buckets, search, recent, date range, statistics)
- Real-time income snapshot and daily / weekly / monthly trends
- Withdrawal lifecycle: pending → completed / rejected
- JSON document storage with a write-through cache
- CSV audit trail of requests and actions
"""

from .models import (
    Order,
    OrderStatus,
    Withdrawal,
    WithdrawalStatus,
    IncomeSnapshot,
    OrderStatistics,
    TrendReport,
)
from .service import OrderService, IncomeService
from .storage import DocumentCache, JsonDocumentStore

__all__ = [
    "Order",
    "OrderStatus",
    "Withdrawal",
    "WithdrawalStatus",
    "IncomeSnapshot",
    "OrderStatistics",
    "TrendReport",
    "OrderService",
    "IncomeService",
    "DocumentCache",
    "JsonDocumentStore",
]
