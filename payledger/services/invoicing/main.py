"""HTTP surface for client invoices and their lifecycle."""

import asyncio
import datetime
from contextlib import asynccontextmanager

from fastapi import FastAPI, Header, Response, status

from payledger.common.config import settings
from payledger.common.db import SessionLocal
from payledger.common.event_source import HttpEventSource
from payledger.common.http import enforce_api_key, install_common_handlers
from payledger.common.logging import configure_logging
from payledger.common.metrics import metrics_response
from payledger.common.startup import log_startup_config
from payledger.common.tracing import instrument_app, setup_tracing
from payledger.services.invoicing.schemas import InvoiceCreateRequest, InvoiceResponse, InvoiceSummaryResponse
from payledger.services.invoicing.service import InvoiceAggregator, InvoiceLifecycleManager, status_summary

configure_logging()
setup_tracing(settings.service_name)
log_startup_config(
    settings.service_name,
    ["SERVICE_NAME", "DATABASE_URL", "UPSTREAM_URL", "UPSTREAM_API_KEY", "KAFKA_BOOTSTRAP_SERVERS"],
)
aggregator = InvoiceAggregator(SessionLocal, HttpEventSource())
lifecycle = InvoiceLifecycleManager(SessionLocal)


@asynccontextmanager
async def lifespan(_: FastAPI):
    """Run the invoicing outbox publisher with app lifecycle."""

    publisher_task = asyncio.create_task(lifecycle.outbox.run_forever())
    yield
    publisher_task.cancel()
    await lifecycle.outbox.close()


app = FastAPI(title="PayLedger Invoicing Service", lifespan=lifespan)
install_common_handlers(app)
instrument_app(app)


@app.post("/invoices", response_model=InvoiceResponse, status_code=status.HTTP_201_CREATED)
def create_invoice(req: InvoiceCreateRequest, x_api_key: str | None = Header(default=None)):
    """Generate a Draft invoice for one client and period."""

    enforce_api_key(x_api_key)
    invoice = aggregator.generate_invoice(
        client_id=req.client_id,
        client_name=req.client_name,
        period_start=req.period_start,
        period_end=req.period_end,
        contact_rate=req.contact_rate,
        vat_percent=req.vat_percent,
    )
    return InvoiceResponse.model_validate(invoice)


@app.get("/invoices", response_model=list[InvoiceResponse])
def list_invoices(
    clientId: str | None = None,
    startDate: datetime.date | None = None,
    endDate: datetime.date | None = None,
):
    """List invoices by client (id or name) overlapping an optional period."""

    invoices = lifecycle.query(client_filter=clientId, period_start=startDate, period_end=endDate)
    return [InvoiceResponse.model_validate(i) for i in invoices]


@app.get("/invoices/summary", response_model=InvoiceSummaryResponse)
def invoice_summary(
    clientId: str | None = None,
    startDate: datetime.date | None = None,
    endDate: datetime.date | None = None,
):
    """Invoice counts per lifecycle state for the same filters as `GET /invoices`."""

    invoices = lifecycle.query(client_filter=clientId, period_start=startDate, period_end=endDate)
    return InvoiceSummaryResponse.model_validate(status_summary(invoices).model_dump())


@app.get("/invoices/{invoice_id}", response_model=InvoiceResponse)
def get_invoice(invoice_id: str):
    return InvoiceResponse.model_validate(lifecycle.get(invoice_id))


@app.post("/invoices/{invoice_id}/finalize", response_model=InvoiceResponse)
def finalize_invoice(invoice_id: str, x_api_key: str | None = Header(default=None)):
    """Lock a Draft invoice for billing."""

    enforce_api_key(x_api_key)
    return InvoiceResponse.model_validate(lifecycle.finalize(invoice_id))


@app.post("/invoices/{invoice_id}/pay", response_model=InvoiceResponse)
def pay_invoice(invoice_id: str, x_api_key: str | None = Header(default=None)):
    """Record payment of a Finalized invoice."""

    enforce_api_key(x_api_key)
    return InvoiceResponse.model_validate(lifecycle.mark_paid(invoice_id))


@app.delete("/invoices/{invoice_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_invoice(invoice_id: str, x_api_key: str | None = Header(default=None)):
    """Delete a Draft invoice; finalized and paid invoices are kept."""

    enforce_api_key(x_api_key)
    lifecycle.delete(invoice_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@app.get("/metrics")
def metrics():
    """Prometheus scrape endpoint."""

    return metrics_response()


@app.get("/health")
def health():
    """Container health probe endpoint."""

    return {"ok": True}
