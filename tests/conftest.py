"""Shared fixtures: in-memory database, upstream rows, and sources."""

import os

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("API_KEY", "test-key")
os.environ.setdefault("TRACING_ENABLED", "false")
os.environ.setdefault("SERVICE_NAME", "payledger-test")

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from payledger.common.db import Base
from payledger.common.event_source import StaticEventSource
import payledger.services.invoicing.models  # noqa: F401  (registers invoicing tables)
import payledger.services.ledger.models  # noqa: F401  (registers ledger tables)


@pytest.fixture
def session_factory():
    """Fresh in-memory SQLite database per test, shared across sessions."""

    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
    Base.metadata.drop_all(engine)
    engine.dispose()


def guard_row(record_id, employee_id="E1", employee_name="Asha Rahman", status="Present", **extra):
    row = {
        "id": record_id,
        "employeeId": employee_id,
        "employeeName": employee_name,
        "clientName": "Acme Logistics",
        "date": "2026-01-05",
        "shift": "Day",
        "status": status,
    }
    row.update(extra)
    return row


def labor_row(record_id, hours, employee_id="E2", employee_name="Karim Uddin", **extra):
    row = {
        "id": record_id,
        "employeeId": employee_id,
        "employeeName": employee_name,
        "clientName": "Acme Logistics",
        "date": "2026-01-06",
        "hoursWorked": hours,
    }
    row.update(extra)
    return row


def escort_row(record_id, total_days, conveyance=0, employee_id="E3", status="Active", **extra):
    row = {
        "id": record_id,
        "employeeId": employee_id,
        "employeeName": "Nadia Islam",
        "clientName": "Acme Logistics",
        "startDate": "2026-01-10",
        "endDate": "2026-01-12",
        "status": status,
        "totalDays": total_days,
        "conveyance": conveyance,
    }
    row.update(extra)
    return row


def loan_row(record_id, amount, employee_id="E2", status="Active", **extra):
    row = {
        "id": record_id,
        "employeeId": employee_id,
        "employeeName": "Karim Uddin",
        "issueDate": "2026-01-20",
        "type": "Advance",
        "amount": amount,
        "status": status,
    }
    row.update(extra)
    return row


@pytest.fixture
def payroll_source():
    """One Present guard shift, 18 labor hours, and a 2000 loan for the laborer."""

    return StaticEventSource(
        guard=[guard_row("G1")],
        labor=[labor_row("L1", 18)],
        loans=[loan_row("A1", 2000)],
    )
