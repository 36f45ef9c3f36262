"""Ledger database models: entries, processed-event markers, balance index, outbox."""

from datetime import date, datetime
from decimal import Decimal
from uuid import uuid4

from sqlalchemy import Date, DateTime, Integer, Numeric, String, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column

from payledger.common.db import Base, JSONPayload

SOURCE_GUARD = "Guard"
SOURCE_DAY_LABOR = "DayLabor"
SOURCE_ESCORT = "Escort"
SOURCE_LOAN_ADVANCE = "LoanAdvance"

# Derivation order; also the order in which same-run entries hit each balance.
SOURCE_MODULES = (SOURCE_GUARD, SOURCE_DAY_LABOR, SOURCE_ESCORT, SOURCE_LOAN_ADVANCE)


def event_key(source_module: str, source_id: str) -> str:
    return f"{source_module}-{source_id}"


class LedgerEntry(Base):
    """Immutable earning or deduction for one employee from one upstream event."""

    __tablename__ = "ledger_entries"
    __table_args__ = (
        UniqueConstraint("source_module", "source_id", name="uq_ledger_entries_source"),
        UniqueConstraint("employee_id", "employee_seq", name="uq_ledger_entries_employee_seq"),
    )

    entry_id: Mapped[str] = mapped_column(String, primary_key=True, default=lambda: str(uuid4()))
    employee_id: Mapped[str] = mapped_column(String, index=True)
    employee_name: Mapped[str] = mapped_column(String)
    employee_seq: Mapped[int] = mapped_column(Integer)
    source_module: Mapped[str] = mapped_column(String, index=True)
    source_id: Mapped[str] = mapped_column(String)
    date: Mapped[date] = mapped_column(Date)
    month: Mapped[str] = mapped_column(String(7), index=True)
    shift_or_hours: Mapped[str] = mapped_column(String, default="")
    earned_amount: Mapped[Decimal] = mapped_column(Numeric(14, 2))
    deducted_amount: Mapped[Decimal] = mapped_column(Numeric(14, 2))
    net_change: Mapped[Decimal] = mapped_column(Numeric(14, 2))
    running_balance: Mapped[Decimal] = mapped_column(Numeric(14, 2))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    @property
    def event_key(self) -> str:
        return event_key(self.source_module, self.source_id)


class ProcessedEvent(Base):
    """Exactly-once marker for one `{source_module}-{source_id}` event key."""

    __tablename__ = "processed_events"

    event_key: Mapped[str] = mapped_column(String, primary_key=True)
    entry_id: Mapped[str] = mapped_column(String, index=True)
    processed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())


class EmployeeBalance(Base):
    """Current balance per employee; `entry_count` doubles as the CAS version."""

    __tablename__ = "employee_balances"

    employee_id: Mapped[str] = mapped_column(String, primary_key=True)
    balance: Mapped[Decimal] = mapped_column(Numeric(14, 2), default=Decimal("0"))
    entry_count: Mapped[int] = mapped_column(Integer, default=0)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )


class OutboxEvent(Base):
    """Events waiting to be published by the ledger outbox worker."""

    __tablename__ = "ledger_outbox_events"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=lambda: str(uuid4()))
    aggregate_type: Mapped[str] = mapped_column(String)
    aggregate_id: Mapped[str] = mapped_column(String, index=True)
    event_type: Mapped[str] = mapped_column(String, index=True)
    topic: Mapped[str] = mapped_column(String)
    payload: Mapped[dict] = mapped_column(JSONPayload)
    status: Mapped[str] = mapped_column(String, default="PENDING", index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    sent_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
