"""FastAPI plumbing shared by the ledger and invoicing apps.

Request metrics middleware, API key enforcement, and the error handler that
renders `PayLedgerError` subclasses.
"""

from time import perf_counter
from uuid import uuid4

from fastapi import FastAPI, HTTPException, Request

from payledger.common.config import settings
from payledger.common.errors import PayLedgerError, payledger_error_handler
from payledger.common.logging import trace_id_ctx
from payledger.common.metrics import http_request_duration_seconds, http_requests_total


async def metrics_middleware(request: Request, call_next):
    """Record request count and latency for every HTTP call."""

    start = perf_counter()
    route = request.url.path
    method = request.method
    status_code = 500
    trace_id_ctx.set(request.headers.get("x-correlation-id") or str(uuid4()))
    try:
        response = await call_next(request)
        status_code = response.status_code
        route_obj = request.scope.get("route")
        if route_obj is not None and getattr(route_obj, "path", None):
            route = route_obj.path
        return response
    finally:
        elapsed = max(0.0, perf_counter() - start)
        http_request_duration_seconds.labels(
            service=settings.service_name,
            route=route,
            method=method,
        ).observe(elapsed)
        http_requests_total.labels(
            service=settings.service_name,
            route=route,
            method=method,
            status_code=str(status_code),
        ).inc()


def install_common_handlers(app: FastAPI) -> None:
    """Attach request metrics and structured error rendering to `app`."""

    app.middleware("http")(metrics_middleware)
    app.add_exception_handler(PayLedgerError, payledger_error_handler)


def enforce_api_key(x_api_key: str | None) -> None:
    """Reject requests that do not provide the configured API key."""

    if x_api_key != settings.api_key:
        raise HTTPException(status_code=401, detail="invalid API key")
