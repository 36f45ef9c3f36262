"""Append-only ledger persistence bound to one SQLAlchemy session.

The store owns three tables that must move together: `ledger_entries`,
`processed_events` and `employee_balances`. `append` stages all three in the
caller's transaction; committing is the caller's job so one event's entry,
marker and balance land atomically.
"""

from datetime import datetime, timezone
from decimal import Decimal
from uuid import uuid4

from sqlalchemy import delete, func, or_, select, update
from sqlalchemy.exc import IntegrityError

from payledger.common.errors import DuplicateEventError, InvalidStateError
from payledger.common.money import ZERO
from payledger.services.ledger.models import EmployeeBalance, LedgerEntry, ProcessedEvent, event_key


class LedgerStore:
    """Ledger entries, processed-event keys and the per-employee balance index."""

    def __init__(self, db) -> None:
        self.db = db

    def is_processed(self, source_module: str, source_id: str) -> bool:
        return self.db.get(ProcessedEvent, event_key(source_module, source_id)) is not None

    def current_balance(self, employee_id: str) -> Decimal:
        """Balance after the employee's most recent entry, or 0."""

        row = self.db.get(EmployeeBalance, employee_id)
        return row.balance if row is not None else ZERO

    def append(self, entry: LedgerEntry) -> LedgerEntry:
        """Stage `entry` with its processed marker and balance update.

        `entry.running_balance` must already hold the post-entry balance.
        Raises `DuplicateEventError` when the entry's event key was already
        processed, independently of any check the caller made.
        """

        key = event_key(entry.source_module, entry.source_id)
        if self.db.get(ProcessedEvent, key) is not None:
            raise DuplicateEventError(key)

        balance_row = self.db.get(EmployeeBalance, entry.employee_id)
        expected_count = balance_row.entry_count if balance_row is not None else 0
        entry.employee_seq = expected_count + 1
        if entry.entry_id is None:
            entry.entry_id = str(uuid4())
        if entry.created_at is None:
            entry.created_at = datetime.now(timezone.utc)

        self.db.add(ProcessedEvent(event_key=key, entry_id=entry.entry_id))
        try:
            self.db.flush()
        except IntegrityError as exc:
            self.db.rollback()
            raise DuplicateEventError(key) from exc

        self.db.add(entry)
        if balance_row is None:
            self.db.add(
                EmployeeBalance(
                    employee_id=entry.employee_id,
                    balance=entry.running_balance,
                    entry_count=1,
                )
            )
        else:
            result = self.db.execute(
                update(EmployeeBalance)
                .where(
                    EmployeeBalance.employee_id == entry.employee_id,
                    EmployeeBalance.entry_count == expected_count,
                )
                .values(
                    balance=entry.running_balance,
                    entry_count=expected_count + 1,
                    updated_at=datetime.now(timezone.utc),
                )
                .execution_options(synchronize_session="fetch")
            )
            if result.rowcount != 1:
                self._balance_conflict(entry.employee_id, expected_count)
        try:
            self.db.flush()
        except IntegrityError as exc:
            # Another writer took this employee_seq or created the balance row first.
            self._balance_conflict(entry.employee_id, expected_count, exc)
        return entry

    def _balance_conflict(self, employee_id: str, expected_count: int, cause: Exception | None = None) -> None:
        self.db.rollback()
        raise InvalidStateError(
            f"balance for employee {employee_id} moved concurrently (expected entry_count {expected_count})",
            entity_id=employee_id,
            action="append",
        ) from cause

    def query(self, employee_filter: str | None = None, month: str | None = None) -> list[LedgerEntry]:
        """Entries matching an employee id (exact) or name (substring) and a `YYYY-MM` month."""

        stmt = select(LedgerEntry)
        if employee_filter:
            stmt = stmt.where(
                or_(
                    LedgerEntry.employee_id == employee_filter,
                    func.lower(LedgerEntry.employee_name).contains(employee_filter.lower(), autoescape=True),
                )
            )
        if month:
            stmt = stmt.where(LedgerEntry.month == month)
        stmt = stmt.order_by(LedgerEntry.created_at, LedgerEntry.employee_id, LedgerEntry.employee_seq)
        return list(self.db.execute(stmt).scalars().all())

    def rebuild_indexes(self) -> int:
        """Recompute `employee_balances` by replaying the ledger; returns employee count."""

        self.db.execute(delete(EmployeeBalance))
        balances: dict[str, tuple[Decimal, int]] = {}
        entries = self.db.execute(
            select(LedgerEntry).order_by(LedgerEntry.employee_id, LedgerEntry.employee_seq)
        ).scalars()
        for entry in entries:
            balance, count = balances.get(entry.employee_id, (ZERO, 0))
            balances[entry.employee_id] = (balance + entry.net_change, count + 1)
        for employee_id, (balance, count) in balances.items():
            self.db.add(EmployeeBalance(employee_id=employee_id, balance=balance, entry_count=count))
        self.db.flush()
        return len(balances)
