"""Invoicing database models.

This DB is the source of truth for client invoices, the invoice number
counter, the lifecycle timeline, and the service-local outbox.
"""

from datetime import date, datetime
from decimal import Decimal
from uuid import uuid4

from sqlalchemy import Date, DateTime, Integer, Numeric, String, func
from sqlalchemy.orm import Mapped, mapped_column

from payledger.common.db import Base, JSONPayload

INVOICE_NUMBER_COUNTER = "invoice_number"


def format_invoice_number(seq: int) -> str:
    return f"INV-{seq}"


class Invoice(Base):
    """Billable summary of one client's services over an inclusive date range."""

    __tablename__ = "invoices"

    invoice_id: Mapped[str] = mapped_column(String, primary_key=True, default=lambda: str(uuid4()))
    invoice_seq: Mapped[int] = mapped_column(Integer, unique=True)
    invoice_number: Mapped[str] = mapped_column(String, unique=True, index=True)
    client_id: Mapped[str] = mapped_column(String, index=True, default="")
    client_name: Mapped[str] = mapped_column(String)
    period_start: Mapped[date] = mapped_column(Date)
    period_end: Mapped[date] = mapped_column(Date)
    total_escort_days: Mapped[Decimal] = mapped_column(Numeric(14, 2))
    escort_amount: Mapped[Decimal] = mapped_column(Numeric(14, 2))
    total_guard_days: Mapped[int] = mapped_column(Integer)
    guard_amount: Mapped[Decimal] = mapped_column(Numeric(14, 2))
    total_labor_hours: Mapped[Decimal] = mapped_column(Numeric(14, 2))
    labor_amount: Mapped[Decimal] = mapped_column(Numeric(14, 2))
    subtotal: Mapped[Decimal] = mapped_column(Numeric(14, 2))
    vat_percent: Mapped[Decimal] = mapped_column(Numeric(5, 2))
    vat_amount: Mapped[Decimal] = mapped_column(Numeric(14, 2))
    total_amount: Mapped[Decimal] = mapped_column(Numeric(14, 2))
    status: Mapped[str] = mapped_column(String, index=True)
    state_version: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_at: Mapped[date] = mapped_column(Date)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )


class InvoiceCounter(Base):
    """Monotonic counter row; numbers are handed out once and never reused."""

    __tablename__ = "invoice_counters"

    name: Mapped[str] = mapped_column(String, primary_key=True)
    value: Mapped[int] = mapped_column(Integer, nullable=False)


class InvoiceTimeline(Base):
    """Operator trail of every invoice lifecycle step, kept after deletion."""

    __tablename__ = "invoice_timeline"

    timeline_id: Mapped[str] = mapped_column(String, primary_key=True, default=lambda: str(uuid4()))
    invoice_id: Mapped[str] = mapped_column(String, index=True)
    invoice_number: Mapped[str] = mapped_column(String)
    action: Mapped[str] = mapped_column(String)
    from_state: Mapped[str | None] = mapped_column(String, nullable=True)
    to_state: Mapped[str | None] = mapped_column(String, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())


class OutboxEvent(Base):
    """Events waiting to be published by the invoicing outbox worker."""

    __tablename__ = "invoice_outbox_events"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=lambda: str(uuid4()))
    aggregate_type: Mapped[str] = mapped_column(String)
    aggregate_id: Mapped[str] = mapped_column(String, index=True)
    event_type: Mapped[str] = mapped_column(String, index=True)
    topic: Mapped[str] = mapped_column(String)
    payload: Mapped[dict] = mapped_column(JSONPayload)
    status: Mapped[str] = mapped_column(String, default="PENDING", index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    sent_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
