import csv
import json
import logging
import threading
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

from fastapi import Request, Response
from fastapi.concurrency import run_in_threadpool

log = logging.getLogger("rider.audit")

HEADERS = [
    "Timestamp", "Endpoint", "Method", "ResponseTime(ms)",
    "StatusCode", "RiderId", "Action", "Details",
]


class AuditLogger:
    """Append-only CSV audit trail of API requests and service actions."""

    def __init__(self, path):
        self.path = Path(path)
        self._lock = threading.Lock()

    def _ensure_file(self) -> None:
        if self.path.exists():
            return
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with self.path.open("w", newline="", encoding="utf-8") as f:
            csv.writer(f).writerow(HEADERS)
        log.info("Initialized audit log: %s", self.path)

    def log_request(
        self,
        endpoint: str = "",
        method: str = "",
        response_time: float = 0,
        status_code: int = 0,
        rider_id: Optional[str] = None,
        action: Optional[str] = None,
        details: Any = "",
    ) -> None:
        if not isinstance(details, str):
            details = json.dumps(details, default=str)
        row = [
            datetime.now(timezone.utc).isoformat(),
            endpoint,
            method,
            round(response_time, 2),
            status_code,
            rider_id or "N/A",
            action or "N/A",
            details,
        ]
        try:
            with self._lock:
                self._ensure_file()
                with self.path.open("a", newline="", encoding="utf-8") as f:
                    csv.writer(f).writerow(row)
        except OSError as e:
            log.warning("Could not write audit entry to %s: %s", self.path, e)
            return

        log.info("%s %s - %s (%sms) rider=%s action=%s", method, endpoint, status_code,
                 row[3], row[5], row[6])

    def log_action(self, rider_id: str, action: str, details: Optional[dict] = None) -> None:
        self.log_request(
            endpoint="service",
            method="CALL",
            status_code=200,
            rider_id=rider_id,
            action=action,
            details=details or {},
        )

    def summary(self) -> dict:
        if not self.path.exists():
            return {"totalRequests": 0, "avgResponseTime": 0}

        with self._lock, self.path.open("r", newline="", encoding="utf-8") as f:
            rows = list(csv.DictReader(f))

        times = []
        for row in rows:
            try:
                times.append(float(row.get("ResponseTime(ms)") or ""))
            except ValueError:
                continue

        return {
            "totalRequests": len(rows),
            "avgResponseTime": round(sum(times) / len(times), 2) if times else 0,
        }


def install_audit_middleware(app, audit: AuditLogger) -> None:
    @app.middleware("http")
    async def audit_requests(request: Request, call_next) -> Response:
        start = time.perf_counter()
        response = await call_next(request)
        elapsed_ms = (time.perf_counter() - start) * 1000

        endpoint = request.scope.get("endpoint")
        action = endpoint.__name__.upper() if endpoint else "NOT_FOUND"
        # File I/O and the audit lock stay off the event loop
        await run_in_threadpool(
            audit.log_request,
            endpoint=request.url.path,
            method=request.method,
            response_time=elapsed_ms,
            status_code=response.status_code,
            rider_id=request.path_params.get("rider_id"),
            action=action,
            details=str(request.query_params),
        )
        return response
