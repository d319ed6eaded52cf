from datetime import datetime, timezone
from decimal import Decimal, ROUND_HALF_UP
from enum import Enum
from typing import Annotated, Any, Optional, Union

from pydantic import AfterValidator, BaseModel, ConfigDict, Field, PlainSerializer, field_validator
from pydantic.alias_generators import to_camel


CENTS = Decimal("0.01")


def round_money(value) -> Decimal:
    """Round half-up to 2 decimal places."""
    return Decimal(value).quantize(CENTS, rounding=ROUND_HALF_UP)


def assume_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


# Decimal in Python, plain number on the wire and in the JSON documents.
Money = Annotated[Decimal, PlainSerializer(float, return_type=float, when_used="json")]
Timestamp = Annotated[datetime, AfterValidator(assume_utc)]


class OrderStatus(str, Enum):
    ASSIGNED = "assigned"
    PICKED_UP = "picked_up"
    IN_TRANSIT = "in_transit"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


class OrderStatusFilter(str, Enum):
    ONGOING = "ongoing"
    COMPLETED = "completed"
    ALL = "all"


ONGOING_STATUSES = frozenset({OrderStatus.ASSIGNED, OrderStatus.PICKED_UP, OrderStatus.IN_TRANSIT})
COMPLETED_STATUSES = frozenset({OrderStatus.DELIVERED, OrderStatus.CANCELLED})


class WithdrawalStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    REJECTED = "rejected"


class WithdrawalStatusFilter(str, Enum):
    ALL = "all"
    PENDING = "pending"
    COMPLETED = "completed"
    REJECTED = "rejected"


class WithdrawalResolution(str, Enum):
    COMPLETED = "completed"
    REJECTED = "rejected"


class TrendPeriod(str, Enum):
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"


class CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


class Order(CamelModel):
    order_id: str
    # Unknown statuses are kept as plain strings and fall into no bucket.
    status: Union[OrderStatus, str] = Field(union_mode="left_to_right")
    delivery_fee: Money = Field(default=Decimal("0"), ge=0)
    created_at: Timestamp
    updated_at: Optional[Timestamp] = None
    delivered_at: Optional[Timestamp] = None
    customer_name: Optional[str] = ""
    pickup_address: Optional[str] = ""
    delivery_address: Optional[str] = ""

    # Seed documents carry extra fields (items, distance, ...) that must survive a rewrite.
    model_config = ConfigDict(extra="allow")

    @field_validator("delivery_fee", mode="before")
    @classmethod
    def _missing_fee_is_zero(cls, value):
        return 0 if value is None else value

    @property
    def effective_date(self) -> datetime:
        return self.delivered_at or self.created_at

    def is_earning(self) -> bool:
        return self.status == OrderStatus.DELIVERED

    def matches(self, needle: str) -> bool:
        fields = (self.order_id, self.customer_name, self.pickup_address, self.delivery_address)
        return any(needle in (value or "").lower() for value in fields)


class OrdersDocument(CamelModel):
    rider_id: Optional[str] = None
    orders: list[Order] = Field(default_factory=list)


class Withdrawal(CamelModel):
    withdrawal_id: str
    rider_id: str
    amount: Money
    account_info: str = ""
    status: WithdrawalStatus = WithdrawalStatus.PENDING
    requested_at: Timestamp
    processed_at: Optional[Timestamp] = None
    notes: str = ""

    def can_resolve(self) -> bool:
        return self.status == WithdrawalStatus.PENDING


class IncomeDocument(CamelModel):
    rider_id: str
    withdrawals: list[Withdrawal] = Field(default_factory=list)
    total_withdrawn: Money = Decimal("0")
    last_updated: Optional[Timestamp] = None


class OrderStatistics(CamelModel):
    total: int = 0
    ongoing: int = 0
    completed: int = 0
    cancelled: int = 0
    total_earnings: Money = Decimal("0.00")
    today_earnings: Money = Decimal("0.00")
    today_orders: int = 0


class IncomeSnapshot(CamelModel):
    rider_id: str
    total_earnings: Money
    today_earnings: Money
    week_earnings: Money
    month_earnings: Money
    total_withdrawn: Money
    available_balance: Money
    pending_withdrawals: int
    last_updated: datetime


class TrendReport(CamelModel):
    period: TrendPeriod
    labels: list[str]
    earnings: list[Money]
    order_counts: list[int]


# --- Request bodies ---

class WithdrawalRequest(CamelModel):
    # Left untyped so the boundary validator reports its own messages.
    amount: Any = None
    account_info: Optional[Any] = None

    model_config = ConfigDict(json_schema_extra={
        "example": {"amount": 25.50, "accountInfo": "Bank Account: **** 9999"}
    })


class ResolveWithdrawalRequest(CamelModel):
    status: WithdrawalResolution
    notes: str = ""


class UpdateOrderStatusRequest(CamelModel):
    status: OrderStatus


# --- Responses ---

class OrderListResponse(CamelModel):
    status: OrderStatusFilter
    count: int
    total: int
    page: int
    limit: int
    orders: list[Order]


class OrderSearchResponse(CamelModel):
    query: str
    count: int
    orders: list[Order]


class RecentOrdersResponse(CamelModel):
    limit: int
    count: int
    orders: list[Order]


class DateRangeResponse(CamelModel):
    start_date: datetime
    end_date: datetime
    count: int
    orders: list[Order]


class WithdrawalListResponse(CamelModel):
    status: WithdrawalStatusFilter
    count: int
    records: list[Withdrawal]
