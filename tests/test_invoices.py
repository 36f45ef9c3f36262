"""Invoice aggregation arithmetic, numbering, and lifecycle transitions."""

import datetime
from decimal import Decimal

import pytest
from sqlalchemy import select

from conftest import escort_row, guard_row, labor_row
from payledger.common.errors import InvalidStateError, NotFoundError, ValidationError
from payledger.common.event_source import StaticEventSource
from payledger.common.money import round2
from payledger.services.invoicing.models import InvoiceTimeline, OutboxEvent
from payledger.services.invoicing.service import InvoiceAggregator, InvoiceLifecycleManager, status_summary

JAN_1 = datetime.date(2026, 1, 1)
JAN_31 = datetime.date(2026, 1, 31)


@pytest.fixture
def billing_source():
    """Acme: 3 escort days (+200 conveyance), 2 present guard shifts, 9 labor hours.
    Beta: 3 escort days and 2 present guard shifts, no labor."""

    return StaticEventSource(
        guard=[
            guard_row("G1"),
            guard_row("G2"),
            guard_row("G3", status="Absent"),
            guard_row("G4", clientName="Beta Traders"),
            guard_row("G5", clientName="Beta Traders"),
        ],
        labor=[labor_row("L1", 9)],
        escort=[
            escort_row("S1", 3, conveyance=200),
            escort_row("S2", 3, clientName="Beta Traders"),
        ],
    )


@pytest.fixture
def aggregator(session_factory, billing_source):
    return InvoiceAggregator(session_factory, billing_source)


@pytest.fixture
def lifecycle(session_factory):
    return InvoiceLifecycleManager(session_factory)


def test_invoice_arithmetic_excludes_conveyance(aggregator):
    invoice = aggregator.generate_invoice("C-1", "Acme Logistics", JAN_1, JAN_31, Decimal("500"), Decimal("0"))

    assert invoice.total_escort_days == Decimal("3")
    assert invoice.escort_amount == Decimal("1500.00")
    assert invoice.total_guard_days == 2
    assert invoice.guard_amount == Decimal("1000.00")
    assert invoice.total_labor_hours == Decimal("9")
    assert invoice.labor_amount == Decimal("500.00")
    assert invoice.subtotal == Decimal("3000.00")
    assert invoice.vat_amount == Decimal("0.00")
    assert invoice.total_amount == Decimal("3000.00")
    assert invoice.status == "Draft"
    assert invoice.created_at == datetime.date.today()


def test_vat_is_applied_to_subtotal(aggregator):
    invoice = aggregator.generate_invoice("C-2", "Beta Traders", JAN_1, JAN_31, 500, 15)

    assert invoice.subtotal == Decimal("2500.00")
    assert invoice.vat_amount == Decimal("375.00")
    assert invoice.total_amount == Decimal("2875.00")


@pytest.mark.parametrize(
    "kwargs",
    [
        {"client_name": "   "},
        {"period_start": JAN_31, "period_end": JAN_1},
        {"contact_rate": -1},
        {"vat_percent": "-5"},
        {"contact_rate": "lots"},
        {"vat_percent": "12.345"},
        {"vat_percent": 1000},
    ],
)
def test_invalid_requests_are_rejected(aggregator, kwargs):
    params = {
        "client_id": "C-1",
        "client_name": "Acme Logistics",
        "period_start": JAN_1,
        "period_end": JAN_31,
        "contact_rate": 500,
        "vat_percent": 0,
    }
    params.update(kwargs)
    with pytest.raises(ValidationError):
        aggregator.generate_invoice(**params)


def test_stored_invoice_matches_returned_invoice(session_factory, lifecycle):
    """Fractional hours are billed at the scale they are stored with."""

    source = StaticEventSource(labor=[labor_row("L1", "4.333")])
    invoice = InvoiceAggregator(session_factory, source).generate_invoice(
        "C-1", "Acme Logistics", JAN_1, JAN_31, 500, "12.35"
    )
    stored = lifecycle.get(invoice.invoice_id)

    for field in (
        "total_escort_days",
        "escort_amount",
        "total_guard_days",
        "guard_amount",
        "total_labor_hours",
        "labor_amount",
        "subtotal",
        "vat_percent",
        "vat_amount",
        "total_amount",
    ):
        assert getattr(stored, field) == getattr(invoice, field), field
    assert stored.total_labor_hours == Decimal("4.33")
    assert stored.labor_amount == Decimal("240.56")
    assert stored.vat_amount == Decimal("29.71")
    assert stored.total_amount == Decimal("270.27")
    assert stored.vat_amount == round2(stored.subtotal * stored.vat_percent / 100)


def test_numbers_increase_and_are_never_reused(aggregator, lifecycle):
    first = aggregator.generate_invoice("C-1", "Acme Logistics", JAN_1, JAN_31, 500, 0)
    assert first.invoice_number == "INV-1001"

    lifecycle.delete(first.invoice_id)
    second = aggregator.generate_invoice("C-1", "Acme Logistics", JAN_1, JAN_31, 500, 0)
    third = aggregator.generate_invoice("C-2", "Beta Traders", JAN_1, JAN_31, 500, 0)

    assert [second.invoice_number, third.invoice_number] == ["INV-1002", "INV-1003"]


def test_finalize_then_pay(aggregator, lifecycle, session_factory):
    invoice = aggregator.generate_invoice("C-1", "Acme Logistics", JAN_1, JAN_31, 500, 0)

    assert lifecycle.finalize(invoice.invoice_id).status == "Finalized"
    paid = lifecycle.mark_paid(invoice.invoice_id)
    assert paid.status == "Paid"
    assert paid.state_version == 2
    assert paid.total_amount == invoice.total_amount

    with session_factory() as db:
        steps = db.execute(
            select(InvoiceTimeline.action).where(InvoiceTimeline.invoice_id == invoice.invoice_id)
        ).scalars().all()
        events = db.execute(select(OutboxEvent.event_type)).scalars().all()
    assert sorted(steps) == ["created", "finalized", "paid"]
    assert sorted(events) == ["invoices.finalized", "invoices.generated", "invoices.paid"]


def test_illegal_steps_raise_invalid_state(aggregator, lifecycle):
    invoice = aggregator.generate_invoice("C-1", "Acme Logistics", JAN_1, JAN_31, 500, 0)

    with pytest.raises(InvalidStateError):
        lifecycle.mark_paid(invoice.invoice_id)

    lifecycle.finalize(invoice.invoice_id)
    with pytest.raises(InvalidStateError):
        lifecycle.finalize(invoice.invoice_id)
    with pytest.raises(InvalidStateError):
        lifecycle.delete(invoice.invoice_id)

    lifecycle.mark_paid(invoice.invoice_id)
    with pytest.raises(InvalidStateError):
        lifecycle.mark_paid(invoice.invoice_id)
    assert lifecycle.get(invoice.invoice_id).status == "Paid"


def test_unknown_invoice_raises_not_found(lifecycle):
    for action in (lifecycle.finalize, lifecycle.mark_paid, lifecycle.delete, lifecycle.get):
        with pytest.raises(NotFoundError):
            action("missing")


def test_deleted_draft_is_gone(aggregator, lifecycle):
    invoice = aggregator.generate_invoice("C-1", "Acme Logistics", JAN_1, JAN_31, 500, 0)
    lifecycle.delete(invoice.invoice_id)

    with pytest.raises(NotFoundError):
        lifecycle.get(invoice.invoice_id)
    assert lifecycle.query() == []


def test_query_and_status_summary(aggregator, lifecycle):
    acme = aggregator.generate_invoice("C-1", "Acme Logistics", JAN_1, JAN_31, 500, 0)
    beta = aggregator.generate_invoice("C-2", "Beta Traders", JAN_1, datetime.date(2026, 1, 15), 500, 0)
    lifecycle.finalize(beta.invoice_id)

    assert [i.invoice_id for i in lifecycle.query(client_filter="acme")] == [acme.invoice_id]
    assert [i.invoice_id for i in lifecycle.query(client_filter="C-2")] == [beta.invoice_id]
    late_january = lifecycle.query(period_start=datetime.date(2026, 1, 20))
    assert [i.invoice_id for i in late_january] == [acme.invoice_id]

    summary = status_summary(lifecycle.query())
    assert (summary.total, summary.draft, summary.finalized, summary.paid) == (2, 1, 1, 0)
