"""
FILE: src/api/observability.py

Structured JSON logging and request correlation for the product sync API.

Every log line carries the ids of the HTTP request that caused it and, while
a sync is running, the ``sync_run_id`` of that run. The sync run id is set by
``ProductSyncService.run_sync`` and follows the persistence worker thread, so
fetch, reconciliation and persistence logs of one run can be joined on it.
"""

import json
import logging
import os
import time
from contextvars import ContextVar
from datetime import UTC, datetime
from typing import Awaitable, Callable, Optional
from uuid import uuid4

from fastapi import FastAPI, Request, Response
from prometheus_fastapi_instrumentator import Instrumentator

from src.core.product_sync.service import sync_run_id_var

correlation_id_var: ContextVar[str] = ContextVar("correlation_id", default="")
request_id_var: ContextVar[str] = ContextVar("request_id", default="")
trace_id_var: ContextVar[str] = ContextVar("trace_id", default="")

_LOG_CONTEXT = (
    ("correlation_id", correlation_id_var),
    ("request_id", request_id_var),
    ("trace_id", trace_id_var),
    ("sync_run_id", sync_run_id_var),
)


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "timestamp": datetime.now(UTC).isoformat(),
            "level": record.levelname,
            "service": os.getenv("SERVICE_NAME", "product-sync"),
            "environment": os.getenv("ENVIRONMENT", "local"),
            "logger": record.name,
            "message": record.getMessage(),
        }
        for field, context_var in _LOG_CONTEXT:
            payload[field] = context_var.get() or None
        extra_fields = getattr(record, "extra_fields", None)
        if isinstance(extra_fields, dict):
            payload.update(extra_fields)
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(
            {key: value for key, value in payload.items() if value is not None},
            default=str,
        )


def configure_logging() -> None:
    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.setLevel(os.getenv("LOG_LEVEL", "INFO").upper())
    handler = logging.StreamHandler()
    handler.setFormatter(JsonFormatter())
    root_logger.addHandler(handler)
    logging.getLogger("httpx").setLevel(logging.WARNING)


def trace_id_from_traceparent(traceparent: Optional[str]) -> Optional[str]:
    parts = (traceparent or "").split("-")
    if len(parts) >= 4 and len(parts[1]) == 32:
        return parts[1]
    return None


def setup_observability(app: FastAPI) -> None:
    configure_logging()
    Instrumentator(excluded_handlers=["/metrics"]).instrument(app).expose(app)

    access_logger = logging.getLogger("http.access")

    @app.middleware("http")
    async def _request_observability_middleware(
        request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:
        started = time.perf_counter()
        correlation_id = request.headers.get("X-Correlation-Id") or f"corr_{uuid4().hex[:12]}"
        request_id = request.headers.get("X-Request-Id") or f"req_{uuid4().hex[:12]}"
        trace_id = trace_id_from_traceparent(request.headers.get("traceparent")) or uuid4().hex

        tokens = [
            (correlation_id_var, correlation_id_var.set(correlation_id)),
            (request_id_var, request_id_var.set(request_id)),
            (trace_id_var, trace_id_var.set(trace_id)),
        ]
        status_code = 500
        try:
            response = await call_next(request)
            status_code = response.status_code
        finally:
            access_logger.info(
                "request.completed",
                extra={
                    "extra_fields": {
                        "http_method": request.method,
                        "endpoint": request.url.path,
                        "status_code": status_code,
                        "latency_ms": round((time.perf_counter() - started) * 1000, 2),
                    }
                },
            )
            for context_var, token in reversed(tokens):
                context_var.reset(token)

        response.headers.setdefault("X-Correlation-Id", correlation_id)
        response.headers["X-Request-Id"] = request_id
        response.headers["X-Trace-Id"] = trace_id
        response.headers["traceparent"] = f"00-{trace_id}-0000000000000001-01"
        return response
