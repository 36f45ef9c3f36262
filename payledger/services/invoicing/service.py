"""Invoice generation and lifecycle logic.

Invoices are aggregated from upstream guard, day-labor and escort records for
one client and period, then moved Draft -> Finalized -> Paid. Each step is a
compare-and-set write that records a timeline row and an outbox event in the
same transaction.
"""

from datetime import date
from decimal import Decimal
from typing import Any

from pydantic import BaseModel

from payledger.common.config import settings
from payledger.common.errors import InvalidStateError, ValidationError
from payledger.common.event_source import EventSource
from payledger.common.logging import invoice_id_ctx, logger
from payledger.common.metrics import (
    invoice_transition_rejected_total,
    invoice_transitions_total,
    invoices_generated_total,
)
from payledger.common.money import ZERO, parse_decimal, round2
from payledger.common.outbox import OutboxRelay, enqueue_outbox_event
from payledger.common.state_machine import DRAFT, FINALIZED, PAID, validate_deletion, validate_transition
from payledger.common.tracing import tracer
from payledger.services.invoicing.models import Invoice, OutboxEvent, format_invoice_number
from payledger.services.invoicing.store import InvoiceStore

HUNDRED = Decimal("100")
# Largest value the invoices.vat_percent column (Numeric(5, 2)) holds.
MAX_VAT_PERCENT = Decimal("999.99")


class InvoiceStatusSummary(BaseModel):
    """Counts per lifecycle state (invoice summary panel)."""

    total: int = 0
    draft: int = 0
    finalized: int = 0
    paid: int = 0


def status_summary(invoices: list[Invoice]) -> InvoiceStatusSummary:
    return InvoiceStatusSummary(
        total=len(invoices),
        draft=sum(1 for i in invoices if i.status == DRAFT),
        finalized=sum(1 for i in invoices if i.status == FINALIZED),
        paid=sum(1 for i in invoices if i.status == PAID),
    )


def invoice_event_payload(invoice: Invoice) -> dict[str, Any]:
    return {
        "invoice_id": invoice.invoice_id,
        "invoice_number": invoice.invoice_number,
        "client_id": invoice.client_id,
        "client_name": invoice.client_name,
        "status": invoice.status,
        "total_amount": str(invoice.total_amount),
    }


def _require_amount(name: str, value: Any, maximum: Decimal | None = None, exact_cents: bool = False) -> Decimal:
    parsed = parse_decimal(value)
    details = {"field": name, "value": str(value)}
    if parsed is None:
        raise ValidationError(f"{name} must be a number", details=details)
    if parsed < 0:
        raise ValidationError(f"{name} must not be negative", details=details)
    if maximum is not None and parsed > maximum:
        raise ValidationError(f"{name} must not exceed {maximum}", details=details)
    if exact_cents and parsed != round2(parsed):
        raise ValidationError(f"{name} allows at most 2 decimal places", details=details)
    return parsed


class InvoiceAggregator:
    """Builds Draft invoices from upstream records; never touches the ledger."""

    def __init__(self, session_factory, source: EventSource, service_name: str = "invoicing") -> None:
        self.session_factory = session_factory
        self.source = source
        self.service_name = service_name

    def generate_invoice(
        self,
        client_id: str,
        client_name: str,
        period_start: date,
        period_end: date,
        contact_rate,
        vat_percent,
    ) -> Invoice:
        """Aggregate billable escort, guard and labor work into a new Draft invoice.

        Escort is billed as days x contact rate (conveyance is payroll-only),
        guards as present shifts x rate, labor as hours / 9 x rate. Upstream
        failures raise `UpstreamError` and nothing is persisted.
        """

        client_name = (client_name or "").strip()
        if not client_name:
            raise ValidationError("client name is required", details={"field": "client_name"})
        if period_start > period_end:
            raise ValidationError(
                "period start must not be after period end",
                details={"period_start": period_start.isoformat(), "period_end": period_end.isoformat()},
            )
        rate = _require_amount("contact_rate", contact_rate)
        vat = round2(_require_amount("vat_percent", vat_percent, maximum=MAX_VAT_PERCENT, exact_cents=True))

        with tracer.start_as_current_span("invoicing.fetch_billable", attributes={"payledger.client_name": client_name}):
            escort_records = self.source.escort_duty_for_client(client_name, period_start, period_end)
            guard_records = self.source.guard_duty_for_client(client_name, period_start, period_end)
            labor_records = self.source.day_labor_for_client(client_name, period_start, period_end)

        # Quantities are stored at cent scale; bill exactly what is stored.
        total_escort_days = round2(sum((r.total_days for r in escort_records), ZERO))
        total_guard_days = len(guard_records)
        total_labor_hours = round2(sum((r.hours_worked for r in labor_records), ZERO))

        escort_amount = round2(total_escort_days * rate)
        guard_amount = round2(total_guard_days * rate)
        labor_amount = round2(total_labor_hours / settings.labor_hours_per_day * rate)
        subtotal = round2(escort_amount + guard_amount + labor_amount)
        vat_amount = round2(subtotal * vat / HUNDRED)
        total_amount = round2(subtotal + vat_amount)

        with self.session_factory() as db:
            store = InvoiceStore(db)
            store.ensure_counter()
            seq = store.next_invoice_seq()
            invoice = store.add(
                Invoice(
                    invoice_seq=seq,
                    invoice_number=format_invoice_number(seq),
                    client_id=(client_id or "").strip(),
                    client_name=client_name,
                    period_start=period_start,
                    period_end=period_end,
                    total_escort_days=total_escort_days,
                    escort_amount=escort_amount,
                    total_guard_days=total_guard_days,
                    guard_amount=guard_amount,
                    total_labor_hours=total_labor_hours,
                    labor_amount=labor_amount,
                    subtotal=subtotal,
                    vat_percent=vat,
                    vat_amount=vat_amount,
                    total_amount=total_amount,
                    status=DRAFT,
                    state_version=0,
                    created_at=date.today(),
                )
            )
            store.record_step(invoice, "created", None, DRAFT)
            enqueue_outbox_event(
                db,
                OutboxEvent,
                aggregate_type="invoice",
                aggregate_id=invoice.invoice_id,
                event_type="invoices.generated",
                payload=invoice_event_payload(invoice),
            )
            db.commit()

        invoices_generated_total.labels(service=self.service_name).inc()
        logger.info(
            "invoice_generated invoice_id=%s invoice_number=%s client_id=%s subtotal=%s total_amount=%s",
            invoice.invoice_id,
            invoice.invoice_number,
            invoice.client_id,
            subtotal,
            total_amount,
        )
        return invoice


class InvoiceLifecycleManager:
    """Owns Draft -> Finalized -> Paid progression and the invoicing outbox."""

    def __init__(self, session_factory, service_name: str = "invoicing") -> None:
        self.session_factory = session_factory
        self.service_name = service_name
        self.outbox = OutboxRelay(session_factory, OutboxEvent, service_name)

    def _rejected(self, action: str, exc: InvalidStateError) -> None:
        invoice_transition_rejected_total.labels(service=self.service_name, action=action).inc()
        logger.warning("invoice_transition_rejected action=%s invoice_id=%s reason=%s", action, exc.entity_id, exc)

    def _step(self, invoice_id: str, action: str, new_status: str, event_type: str) -> Invoice:
        token = invoice_id_ctx.set(invoice_id)
        try:
            with self.session_factory() as db:
                store = InvoiceStore(db)
                invoice = store.get(invoice_id)
                from_status = invoice.status
                try:
                    validate_transition(from_status, new_status, invoice_id)
                    store.compare_and_set_status(invoice, from_status, new_status, action)
                except InvalidStateError as exc:
                    self._rejected(action, exc)
                    raise
                store.record_step(invoice, action, from_status, new_status)
                enqueue_outbox_event(
                    db,
                    OutboxEvent,
                    aggregate_type="invoice",
                    aggregate_id=invoice.invoice_id,
                    event_type=event_type,
                    payload=invoice_event_payload(invoice),
                )
                db.commit()

            invoice_transitions_total.labels(service=self.service_name, action=action).inc()
            logger.info(
                "invoice_transition action=%s invoice_number=%s from=%s to=%s",
                action,
                invoice.invoice_number,
                from_status,
                new_status,
            )
            return invoice
        finally:
            invoice_id_ctx.reset(token)

    def finalize(self, invoice_id: str) -> Invoice:
        """Draft -> Finalized; any other starting state raises `InvalidStateError`."""

        return self._step(invoice_id, "finalized", FINALIZED, "invoices.finalized")

    def mark_paid(self, invoice_id: str) -> Invoice:
        """Finalized -> Paid; Draft and Paid invoices raise `InvalidStateError`."""

        return self._step(invoice_id, "paid", PAID, "invoices.paid")

    def delete(self, invoice_id: str) -> None:
        """Remove a Draft invoice. Its number stays consumed."""

        token = invoice_id_ctx.set(invoice_id)
        try:
            with self.session_factory() as db:
                store = InvoiceStore(db)
                invoice = store.get(invoice_id)
                try:
                    validate_deletion(invoice.status, invoice_id)
                    store.record_step(invoice, "deleted", invoice.status, None)
                    enqueue_outbox_event(
                        db,
                        OutboxEvent,
                        aggregate_type="invoice",
                        aggregate_id=invoice.invoice_id,
                        event_type="invoices.deleted",
                        payload=invoice_event_payload(invoice),
                    )
                    store.delete_if_status(invoice, DRAFT)
                except InvalidStateError as exc:
                    db.rollback()
                    self._rejected("deleted", exc)
                    raise
                db.commit()
            invoice_transitions_total.labels(service=self.service_name, action="deleted").inc()
            logger.info("invoice_deleted invoice_number=%s", invoice.invoice_number)
        finally:
            invoice_id_ctx.reset(token)

    def get(self, invoice_id: str) -> Invoice:
        with self.session_factory() as db:
            return InvoiceStore(db).get(invoice_id)

    def query(
        self,
        client_filter: str | None = None,
        period_start: date | None = None,
        period_end: date | None = None,
    ) -> list[Invoice]:
        with self.session_factory() as db:
            return InvoiceStore(db).query(client_filter, period_start, period_end)
