"""Ledger service API + lifecycle.

Derives payroll ledger entries from upstream duty and loan records and exposes
the ledger for querying and salary summaries.
"""

import asyncio
from contextlib import asynccontextmanager

import redis
from fastapi import FastAPI, Header

from payledger.common.config import settings
from payledger.common.db import SessionLocal
from payledger.common.event_source import HttpEventSource
from payledger.common.http import enforce_api_key, install_common_handlers
from payledger.common.logging import configure_logging
from payledger.common.metrics import metrics_response
from payledger.common.startup import log_startup_config
from payledger.common.tracing import instrument_app, setup_tracing
from payledger.services.ledger.schemas import DeriveResponse, LedgerEntryResponse, LedgerSummaryResponse
from payledger.services.ledger.service import DERIVE_LOCK_NAME, LedgerDeriver, summarize_entries

configure_logging()
setup_tracing(settings.service_name)
log_startup_config(
    settings.service_name,
    ["SERVICE_NAME", "DATABASE_URL", "UPSTREAM_URL", "UPSTREAM_API_KEY", "KAFKA_BOOTSTRAP_SERVERS", "REDIS_URL"],
)
service = LedgerDeriver(SessionLocal, HttpEventSource())
rdb = redis.Redis.from_url(settings.redis_url)


def derive_lock():
    """Cross-process lock serializing derivation runs."""

    return rdb.lock(DERIVE_LOCK_NAME, timeout=settings.derive_lock_timeout_seconds)


@asynccontextmanager
async def lifespan(_: FastAPI):
    """Run the ledger outbox publisher with app lifecycle."""

    publisher_task = asyncio.create_task(service.outbox.run_forever())
    yield
    publisher_task.cancel()
    await service.outbox.close()


app = FastAPI(title="PayLedger Ledger Service", lifespan=lifespan)
install_common_handlers(app)
instrument_app(app)


@app.post("/ledger/derive", response_model=DeriveResponse)
def derive(x_api_key: str | None = Header(default=None)):
    """Convert all unprocessed upstream events into ledger entries."""

    enforce_api_key(x_api_key)
    result = service.derive_exclusive(derive_lock())
    return DeriveResponse.model_validate(result.model_dump())


@app.get("/ledger", response_model=list[LedgerEntryResponse])
def list_ledger(employeeId: str | None = None, month: str | None = None):
    """List ledger entries filtered by employee (id or name) and `YYYY-MM` month."""

    entries = service.list_entries(employee_filter=employeeId, month=month)
    return [LedgerEntryResponse.model_validate(e) for e in entries]


@app.get("/ledger/summary", response_model=LedgerSummaryResponse)
def ledger_summary(employeeId: str | None = None, month: str | None = None):
    """Total earned, total deducted, net and latest running balance."""

    entries = service.list_entries(employee_filter=employeeId, month=month)
    return LedgerSummaryResponse.model_validate(summarize_entries(entries).model_dump())


@app.get("/metrics")
def metrics():
    """Prometheus scrape endpoint."""

    return metrics_response()


@app.get("/health")
def health():
    """Container health probe endpoint."""

    return {"ok": True}
