"""HTTP surface: auth, camelCase payloads, error mapping."""

import pytest
from fastapi.testclient import TestClient

from conftest import guard_row, labor_row, loan_row
from payledger.common.event_source import StaticEventSource
from payledger.services.invoicing import main as invoicing_main
from payledger.services.invoicing.service import InvoiceAggregator, InvoiceLifecycleManager
from payledger.services.ledger import main as ledger_main
from payledger.services.ledger.service import LedgerDeriver

AUTH = {"x-api-key": "test-key"}


class FakeLock:
    def __init__(self, held=False):
        self.held = held
        self.released = False

    def acquire(self, blocking=True):
        return not self.held

    def release(self):
        self.released = True


@pytest.fixture
def ledger_client(session_factory, monkeypatch):
    source = StaticEventSource(guard=[guard_row("G1")], labor=[labor_row("L1", 18)], loans=[loan_row("A1", 2000)])
    monkeypatch.setattr(ledger_main, "service", LedgerDeriver(session_factory, source))
    lock = FakeLock()
    monkeypatch.setattr(ledger_main, "derive_lock", lambda: lock)
    client = TestClient(ledger_main.app)
    client.lock = lock
    return client


@pytest.fixture
def invoicing_client(session_factory, monkeypatch):
    source = StaticEventSource(guard=[guard_row("G1"), guard_row("G2")], labor=[labor_row("L1", 9)])
    monkeypatch.setattr(invoicing_main, "aggregator", InvoiceAggregator(session_factory, source))
    monkeypatch.setattr(invoicing_main, "lifecycle", InvoiceLifecycleManager(session_factory))
    return TestClient(invoicing_main.app)


def test_derive_requires_api_key(ledger_client):
    assert ledger_client.post("/ledger/derive").status_code == 401
    assert ledger_client.post("/ledger/derive", headers={"x-api-key": "wrong"}).status_code == 401


def test_derive_then_query_ledger(ledger_client):
    resp = ledger_client.post("/ledger/derive", headers=AUTH)
    assert resp.status_code == 200
    assert resp.json() == {"entriesGenerated": 3, "eventsSkipped": 0, "fieldsCoerced": 0, "recordsRejected": 0}
    assert ledger_client.lock.released

    again = ledger_client.post("/ledger/derive", headers=AUTH).json()
    assert again["entriesGenerated"] == 0

    rows = ledger_client.get("/ledger", params={"employeeId": "karim", "month": "2026-01"}).json()
    assert [(r["sourceModule"], r["runningBalance"]) for r in rows] == [("DayLabor", 1000.0), ("LoanAdvance", -1000.0)]
    assert rows[0]["shiftOrHours"] == "18 hrs"

    summary = ledger_client.get("/ledger/summary", params={"employeeId": "E2"}).json()
    assert summary["totalEarned"] == 1000.0
    assert summary["totalDeducted"] == 2000.0
    assert summary["runningBalance"] == -1000.0


def test_derive_conflict_when_lock_held(ledger_client):
    ledger_client.lock.held = True
    resp = ledger_client.post("/ledger/derive", headers=AUTH)
    assert resp.status_code == 409
    assert resp.json()["error_code"] == "DERIVATION_IN_PROGRESS"


def test_invoice_lifecycle_over_http(invoicing_client):
    body = {
        "clientId": "C-1",
        "clientName": "Acme Logistics",
        "periodStart": "2026-01-01",
        "periodEnd": "2026-01-31",
        "contactRate": 500,
        "vatPercent": 15,
    }
    assert invoicing_client.post("/invoices", json=body).status_code == 401

    created = invoicing_client.post("/invoices", json=body, headers=AUTH)
    assert created.status_code == 201
    invoice = created.json()
    assert invoice["invoiceNumber"] == "INV-1001"
    assert invoice["subtotal"] == 1500.0
    assert invoice["vatAmount"] == 225.0
    assert invoice["totalAmount"] == 1725.0
    invoice_id = invoice["invoiceId"]

    paid_early = invoicing_client.post(f"/invoices/{invoice_id}/pay", headers=AUTH)
    assert paid_early.status_code == 409
    assert paid_early.json()["error_code"] == "INVALID_STATE"

    assert invoicing_client.post(f"/invoices/{invoice_id}/finalize", headers=AUTH).json()["status"] == "Finalized"
    assert invoicing_client.delete(f"/invoices/{invoice_id}", headers=AUTH).status_code == 409
    assert invoicing_client.post(f"/invoices/{invoice_id}/pay", headers=AUTH).json()["status"] == "Paid"

    summary = invoicing_client.get("/invoices/summary", params={"clientId": "acme"}).json()
    assert summary == {"total": 1, "draft": 0, "finalized": 0, "paid": 1}


def test_invoice_errors_are_structured(invoicing_client):
    missing = invoicing_client.get("/invoices/nope")
    assert missing.status_code == 404
    assert missing.json()["error_code"] == "NOT_FOUND"

    blank = {"clientName": " ", "periodStart": "2026-01-01", "periodEnd": "2026-01-31", "contactRate": 500}
    resp = invoicing_client.post("/invoices", json=blank, headers=AUTH)
    assert resp.status_code == 422
    assert resp.json()["error_code"] == "VALIDATION_ERROR"


def test_delete_draft_returns_no_content(invoicing_client):
    body = {"clientName": "Acme Logistics", "periodStart": "2026-01-01", "periodEnd": "2026-01-31", "contactRate": 500}
    invoice_id = invoicing_client.post("/invoices", json=body, headers=AUTH).json()["invoiceId"]

    assert invoicing_client.delete(f"/invoices/{invoice_id}", headers=AUTH).status_code == 204
    assert invoicing_client.get(f"/invoices/{invoice_id}").status_code == 404
    assert invoicing_client.get("/invoices").json() == []


def test_health_and_metrics(ledger_client, invoicing_client):
    assert ledger_client.get("/health").json() == {"ok": True}
    assert invoicing_client.get("/health").json() == {"ok": True}
    assert b"ledger_entries_generated_total" in ledger_client.get("/metrics").content
