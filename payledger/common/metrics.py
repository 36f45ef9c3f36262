"""Prometheus metric definitions shared across services."""

from prometheus_client import Counter, Gauge, Histogram, generate_latest
from starlette.responses import Response


ledger_entries_generated_total = Counter(
    "ledger_entries_generated_total",
    "Ledger entries appended by derivation runs",
    ["service", "source_module"],
)
ledger_events_skipped_total = Counter(
    "ledger_events_skipped_total",
    "Upstream events skipped by derivation (already processed or ineligible)",
    ["service", "source_module", "reason"],
)
ledger_fields_coerced_total = Counter(
    "ledger_fields_coerced_total",
    "Numeric upstream fields coerced to zero during derivation",
    ["service", "source_module"],
)
upstream_records_rejected_total = Counter(
    "upstream_records_rejected_total",
    "Upstream rows dropped because they failed record validation",
    ["service", "collection"],
)
ledger_derivation_seconds = Histogram(
    "ledger_derivation_seconds",
    "Duration of one full ledger derivation run",
    ["service"],
)
invoices_generated_total = Counter("invoices_generated_total", "Draft invoices generated", ["service"])
invoice_transitions_total = Counter(
    "invoice_transitions_total",
    "Successful invoice lifecycle steps",
    ["service", "action"],
)
invoice_transition_rejected_total = Counter(
    "invoice_transition_rejected_total",
    "Invoice lifecycle steps refused because of the current state",
    ["service", "action"],
)
http_requests_total = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["service", "route", "method", "status_code"],
)
http_request_duration_seconds = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration seconds",
    ["service", "route", "method"],
)
outbox_pending_total = Gauge(
    "outbox_pending_total",
    "Current count of outbox events not yet sent",
    ["service"],
)
outbox_oldest_pending_age_seconds = Gauge(
    "outbox_oldest_pending_age_seconds",
    "Age in seconds of the oldest pending outbox event",
    ["service"],
)


def metrics_response() -> Response:
    """Expose all registered Prometheus metrics in text format."""

    return Response(content=generate_latest(), media_type="text/plain")
