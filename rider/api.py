import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from fastapi import APIRouter, Depends, FastAPI, HTTPException, Query, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .audit import AuditLogger, install_audit_middleware
from .config import Settings, settings as default_settings
from .models import (
    DateRangeResponse,
    IncomeSnapshot,
    Order,
    OrderListResponse,
    OrderSearchResponse,
    OrderStatistics,
    OrderStatusFilter,
    RecentOrdersResponse,
    ResolveWithdrawalRequest,
    TrendPeriod,
    TrendReport,
    UpdateOrderStatusRequest,
    Withdrawal,
    WithdrawalListResponse,
    WithdrawalRequest,
    WithdrawalStatusFilter,
)
from .service import (
    IncomeService,
    InsufficientBalanceError,
    NotFoundError,
    OrderService,
    RiderLocks,
    StorageError,
    ValidationError,
)
from .storage import DocumentCache, JsonDocumentStore
from .validators import (
    validate_date_range,
    validate_identifier,
    validate_pagination,
    validate_search_query,
)

log = logging.getLogger("rider.api")

router = APIRouter()


def get_order_service(request: Request) -> OrderService:
    return request.app.state.order_service


def get_income_service(request: Request) -> IncomeService:
    return request.app.state.income_service


@router.get("/health", tags=["System"])
def health_check():
    return {"status": "healthy", "service": "rider-backend"}


@router.get("/api", tags=["System"])
def api_info(request: Request):
    cfg: Settings = request.app.state.settings
    return {
        "message": f"Welcome to {cfg.PROJECT_NAME}",
        "version": cfg.VERSION,
        "endpoints": {
            "orders": "/riders/{rider_id}/orders",
            "income": "/riders/{rider_id}/income",
        },
        "defaultRider": cfg.DEFAULT_RIDER_ID,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


@router.get("/audit/summary", tags=["System"])
def audit_summary(request: Request):
    return request.app.state.audit.summary()


# --- Orders ---

@router.get("/riders/{rider_id}/orders", response_model=OrderListResponse, tags=["Orders"])
def get_orders(
    rider_id: str,
    status_filter: OrderStatusFilter = Query(OrderStatusFilter.ALL, alias="status"),
    page: Optional[int] = None,
    limit: Optional[int] = None,
    orders: OrderService = Depends(get_order_service),
) -> OrderListResponse:
    page, limit = validate_pagination(page, limit)
    matched = orders.filter_by_status(rider_id, status_filter)
    window = matched[(page - 1) * limit:page * limit]
    return OrderListResponse(
        status=status_filter, count=len(window), total=len(matched),
        page=page, limit=limit, orders=window,
    )


@router.get("/riders/{rider_id}/orders/statistics", response_model=OrderStatistics, tags=["Orders"])
def get_order_statistics(rider_id: str, orders: OrderService = Depends(get_order_service)) -> OrderStatistics:
    return orders.compute_statistics(rider_id)


@router.get("/riders/{rider_id}/orders/recent", response_model=RecentOrdersResponse, tags=["Orders"])
def get_recent_orders(
    rider_id: str,
    limit: int = 10,
    orders: OrderService = Depends(get_order_service),
) -> RecentOrdersResponse:
    _, limit = validate_pagination(1, limit)
    recent = orders.get_recent(rider_id, limit)
    return RecentOrdersResponse(limit=limit, count=len(recent), orders=recent)


@router.get("/riders/{rider_id}/orders/search", response_model=OrderSearchResponse, tags=["Orders"])
def search_orders(
    rider_id: str,
    query: Optional[str] = None,
    orders: OrderService = Depends(get_order_service),
) -> OrderSearchResponse:
    query = validate_search_query(query)
    found = orders.search(rider_id, query)
    return OrderSearchResponse(query=query, count=len(found), orders=found)


@router.get("/riders/{rider_id}/orders/range", response_model=DateRangeResponse, tags=["Orders"])
def get_orders_by_date_range(
    rider_id: str,
    start_date: Optional[str] = Query(None, alias="startDate"),
    end_date: Optional[str] = Query(None, alias="endDate"),
    orders: OrderService = Depends(get_order_service),
) -> DateRangeResponse:
    start, end = validate_date_range(start_date, end_date)
    found = orders.get_by_date_range(rider_id, start, end)
    return DateRangeResponse(start_date=start, end_date=end, count=len(found), orders=found)


@router.get("/riders/{rider_id}/orders/{order_id}", response_model=Order, tags=["Orders"])
def get_order(rider_id: str, order_id: str, orders: OrderService = Depends(get_order_service)) -> Order:
    validate_identifier(order_id, "Order ID")
    try:
        return orders.get_order(rider_id, order_id)
    except NotFoundError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Order {order_id} not found")


@router.put("/riders/{rider_id}/orders/{order_id}/status", response_model=Order, tags=["Orders"])
def update_order_status(
    rider_id: str,
    order_id: str,
    request: UpdateOrderStatusRequest,
    orders: OrderService = Depends(get_order_service),
) -> Order:
    order = orders.update_status(rider_id, order_id, request.status)
    if order is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Order {order_id} not found")
    return order


# --- Income ---

@router.get("/riders/{rider_id}/income/realtime", response_model=IncomeSnapshot, tags=["Income"])
def get_real_time_income(rider_id: str, income: IncomeService = Depends(get_income_service)) -> IncomeSnapshot:
    return income.get_real_time_income(rider_id)


@router.get("/riders/{rider_id}/income/trend", response_model=TrendReport, tags=["Income"])
def get_income_trend(
    rider_id: str,
    period: TrendPeriod = TrendPeriod.DAILY,
    income: IncomeService = Depends(get_income_service),
) -> TrendReport:
    return income.get_income_trend(rider_id, period)


@router.post(
    "/riders/{rider_id}/income/withdraw",
    response_model=Withdrawal,
    status_code=status.HTTP_201_CREATED,
    tags=["Income"],
)
def submit_withdrawal(
    rider_id: str,
    request: WithdrawalRequest,
    income: IncomeService = Depends(get_income_service),
) -> Withdrawal:
    try:
        return income.submit_withdrawal(rider_id, request.amount, request.account_info)
    except InsufficientBalanceError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))


@router.get("/riders/{rider_id}/income/records", response_model=WithdrawalListResponse, tags=["Income"])
def get_withdrawal_records(
    rider_id: str,
    status_filter: WithdrawalStatusFilter = Query(WithdrawalStatusFilter.ALL, alias="status"),
    income: IncomeService = Depends(get_income_service),
) -> WithdrawalListResponse:
    records = income.get_withdrawal_records(rider_id, status_filter)
    return WithdrawalListResponse(status=status_filter, count=len(records), records=records)


@router.put("/riders/{rider_id}/income/withdraw/{withdrawal_id}", response_model=Withdrawal, tags=["Income"])
def resolve_withdrawal(
    rider_id: str,
    withdrawal_id: str,
    request: ResolveWithdrawalRequest,
    income: IncomeService = Depends(get_income_service),
) -> Withdrawal:
    validate_identifier(withdrawal_id, "Withdrawal ID")
    try:
        return income.resolve_withdrawal(rider_id, withdrawal_id, request.status, request.notes)
    except NotFoundError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Withdrawal {withdrawal_id} not found")


def install_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(ValidationError)
    async def validation_error_handler(request: Request, exc: ValidationError):
        return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"detail": str(exc)})

    @app.exception_handler(NotFoundError)
    async def not_found_handler(request: Request, exc: NotFoundError):
        return JSONResponse(status_code=status.HTTP_404_NOT_FOUND, content={"detail": str(exc)})

    @app.exception_handler(StorageError)
    async def storage_error_handler(request: Request, exc: StorageError):
        log.error("Storage failure on %s %s: %s", request.method, request.url.path, exc)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"detail": "Data store unavailable"},
        )


def create_app(cfg: Optional[Settings] = None) -> FastAPI:
    cfg = cfg or default_settings
    logging.basicConfig(
        level=cfg.LOG_LEVEL.upper(),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )

    app = FastAPI(
        title=cfg.PROJECT_NAME,
        description="Order management and income statistics for delivery riders",
        version=cfg.VERSION,
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    store = JsonDocumentStore(cfg.DATA_DIR, DocumentCache() if cfg.CACHE_ENABLED else None)
    audit = AuditLogger(Path(cfg.AUDIT_LOG_FILE))
    locks = RiderLocks() if cfg.WITHDRAWAL_LOCKING else None
    order_service = OrderService(store, tz_name=cfg.TIMEZONE, audit=audit, locks=locks)

    app.state.settings = cfg
    app.state.audit = audit
    app.state.order_service = order_service
    app.state.income_service = IncomeService(
        store,
        order_service,
        tz_name=cfg.TIMEZONE,
        audit=audit,
        locks=locks,
        min_withdrawal=cfg.MIN_WITHDRAWAL,
        max_withdrawal=cfg.MAX_WITHDRAWAL,
    )

    install_error_handlers(app)
    install_audit_middleware(app, audit)
    app.include_router(router)
    log.info("%s ready (data dir: %s)", cfg.PROJECT_NAME, cfg.DATA_DIR)
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
