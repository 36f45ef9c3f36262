"""API response schemas for ledger endpoints."""

import datetime

from payledger.common.schemas import CamelModel, Money


class DeriveResponse(CamelModel):
    """Counters for one `POST /ledger/derive` run."""

    entries_generated: int
    events_skipped: int
    fields_coerced: int
    records_rejected: int


class LedgerEntryResponse(CamelModel):
    """One ledger entry as listed by `GET /ledger`."""

    entry_id: str
    employee_id: str
    employee_name: str
    employee_seq: int
    source_module: str
    source_id: str
    date: datetime.date
    month: str
    shift_or_hours: str
    earned_amount: Money
    deducted_amount: Money
    net_change: Money
    running_balance: Money
    created_at: datetime.datetime | None = None


class LedgerSummaryResponse(CamelModel):
    total_earned: Money
    total_deducted: Money
    net: Money
    running_balance: Money | None = None
    entry_count: int
