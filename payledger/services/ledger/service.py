"""Ledger derivation: turn upstream duty and loan events into ledger entries.

Each upstream event is converted at most once. The processed marker, the
entry and the employee balance update commit in one transaction per event, so
an interrupted run resumes cleanly on the next call.
"""

import datetime
from decimal import Decimal
from uuid import uuid4

from pydantic import BaseModel
from redis.exceptions import LockNotOwnedError

from payledger.common.config import settings
from payledger.common.errors import DerivationInProgressError, DuplicateEventError
from payledger.common.event_source import EventSource
from payledger.common.logging import logger, run_id_ctx
from payledger.common.metrics import (
    ledger_derivation_seconds,
    ledger_entries_generated_total,
    ledger_events_skipped_total,
    ledger_fields_coerced_total,
)
from payledger.common.money import ZERO, round2
from payledger.common.outbox import OutboxRelay, enqueue_outbox_event
from payledger.common.records import (
    ESCORT_ACTIVE,
    GUARD_PRESENT,
    LOAN_ACTIVE,
    DayLaborRecord,
    EscortDutyRecord,
    GuardDutyRecord,
    LoanAdvanceRecord,
)
from payledger.common.tracing import tracer
from payledger.services.ledger.models import (
    SOURCE_DAY_LABOR,
    SOURCE_ESCORT,
    SOURCE_GUARD,
    SOURCE_LOAN_ADVANCE,
    LedgerEntry,
    OutboxEvent,
)
from payledger.services.ledger.store import LedgerStore

DERIVE_LOCK_NAME = "ledger:derive"


class DeriveResult(BaseModel):
    """Counters reported by one derivation run."""

    entries_generated: int = 0
    events_skipped: int = 0
    fields_coerced: int = 0
    records_rejected: int = 0


class EntryPlan(BaseModel):
    """Monetary effect of one eligible event, before balance assignment."""

    date: datetime.date
    shift_or_hours: str
    earned: Decimal = ZERO
    deducted: Decimal = ZERO


class LedgerSummary(BaseModel):
    """Totals over a set of ledger entries (salary summary panel)."""

    total_earned: Decimal = ZERO
    total_deducted: Decimal = ZERO
    net: Decimal = ZERO
    # Only meaningful when every summarized entry belongs to one employee.
    running_balance: Decimal | None = None
    entry_count: int = 0


def _plain(value: Decimal) -> str:
    # 18.0 -> "18", 4.50 -> "4.5"
    return format(value.normalize(), "f")


def plan_guard(record: GuardDutyRecord) -> EntryPlan | None:
    if record.status != GUARD_PRESENT:
        return None
    return EntryPlan(date=record.date, shift_or_hours=record.shift, earned=round2(settings.guard_daily_rate))


def plan_day_labor(record: DayLaborRecord) -> EntryPlan:
    earned = round2(record.hours_worked / settings.labor_hours_per_day * settings.labor_daily_rate)
    return EntryPlan(date=record.date, shift_or_hours=f"{_plain(record.hours_worked)} hrs", earned=earned)


def plan_escort(record: EscortDutyRecord) -> EntryPlan | None:
    if record.status != ESCORT_ACTIVE:
        return None
    earned = round2(settings.escort_daily_rate * record.total_days + record.conveyance)
    return EntryPlan(date=record.start_date, shift_or_hours=f"{_plain(record.total_days)} days", earned=earned)


def plan_loan_advance(record: LoanAdvanceRecord) -> EntryPlan | None:
    if record.status != LOAN_ACTIVE:
        return None
    return EntryPlan(date=record.issue_date, shift_or_hours=record.type, deducted=round2(record.amount))


def summarize_entries(entries: list[LedgerEntry]) -> LedgerSummary:
    """Total earned/deducted/net over `entries`.

    `running_balance` is the last entry's balance when all entries belong to
    one employee, and None otherwise (empty, or a name filter matching
    several employees), since balances of different employees do not add up.
    """

    total_earned = sum((e.earned_amount for e in entries), ZERO)
    total_deducted = sum((e.deducted_amount for e in entries), ZERO)
    single_employee = len({e.employee_id for e in entries}) == 1
    return LedgerSummary(
        total_earned=round2(total_earned),
        total_deducted=round2(total_deducted),
        net=round2(total_earned - total_deducted),
        running_balance=entries[-1].running_balance if single_employee else None,
        entry_count=len(entries),
    )


class LedgerDeriver:
    """Derives ledger entries from an `EventSource` and owns the ledger outbox."""

    def __init__(self, session_factory, source: EventSource, service_name: str = "ledger") -> None:
        self.session_factory = session_factory
        self.source = source
        self.service_name = service_name
        self.outbox = OutboxRelay(session_factory, OutboxEvent, service_name)

    def _passes(self):
        # Fixed source order; entries for one employee follow it within a run.
        return (
            (SOURCE_GUARD, self.source.guard_duty, plan_guard),
            (SOURCE_DAY_LABOR, self.source.day_labor, plan_day_labor),
            (SOURCE_ESCORT, self.source.escort_duty, plan_escort),
            (SOURCE_LOAN_ADVANCE, self.source.loan_advance, plan_loan_advance),
        )

    def _skip(self, result: DeriveResult, source_module: str, source_id: str, reason: str) -> None:
        result.events_skipped += 1
        ledger_events_skipped_total.labels(
            service=self.service_name, source_module=source_module, reason=reason
        ).inc()
        logger.debug("ledger_event_skipped source_module=%s source_id=%s reason=%s", source_module, source_id, reason)

    def _derive_event(self, source_module: str, record, planner, result: DeriveResult) -> None:
        with self.session_factory() as db:
            store = LedgerStore(db)
            if store.is_processed(source_module, record.id):
                self._skip(result, source_module, record.id, "processed")
                return
            plan = planner(record)
            if plan is None:
                # Not marked processed: a later status correction is picked up next run.
                self._skip(result, source_module, record.id, "ineligible")
                return

            if record.coerced_fields:
                logger.warning(
                    "ledger_fields_coerced source_module=%s source_id=%s fields=%s",
                    source_module,
                    record.id,
                    ",".join(record.coerced_fields),
                )
                result.fields_coerced += len(record.coerced_fields)
                ledger_fields_coerced_total.labels(service=self.service_name, source_module=source_module).inc(
                    len(record.coerced_fields)
                )

            employee_id = record.resolved_employee_id
            net_change = plan.earned - plan.deducted
            entry = LedgerEntry(
                entry_id=str(uuid4()),
                employee_id=employee_id,
                employee_name=record.employee_name,
                source_module=source_module,
                source_id=record.id,
                date=plan.date,
                month=plan.date.isoformat()[:7],
                shift_or_hours=plan.shift_or_hours,
                earned_amount=plan.earned,
                deducted_amount=plan.deducted,
                net_change=net_change,
                running_balance=round2(store.current_balance(employee_id) + net_change),
            )
            try:
                store.append(entry)
                db.commit()
            except DuplicateEventError:
                # Another run appended this event between our check and insert.
                self._skip(result, source_module, record.id, "processed")
                return

        result.entries_generated += 1
        ledger_entries_generated_total.labels(service=self.service_name, source_module=source_module).inc()
        logger.info(
            "ledger_entry_appended source_module=%s source_id=%s employee_id=%s net_change=%s running_balance=%s",
            source_module,
            record.id,
            employee_id,
            net_change,
            entry.running_balance,
        )

    def derive_ledger(self) -> DeriveResult:
        """Convert every unprocessed, eligible upstream event into a ledger entry.

        Sources are processed Guard, DayLabor, Escort, LoanAdvance. Upstream
        failures raise `UpstreamError`; entries committed before the failure
        stay committed.
        """

        run_id = str(uuid4())
        token = run_id_ctx.set(run_id)
        result = DeriveResult()
        rejected_before = self.source.records_rejected
        try:
            logger.info("ledger_derivation_started run_id=%s", run_id)
            with (
                tracer.start_as_current_span("ledger.derive", attributes={"payledger.run_id": run_id}) as span,
                ledger_derivation_seconds.labels(service=self.service_name).time(),
            ):
                for source_module, fetch, planner in self._passes():
                    for record in fetch():
                        self._derive_event(source_module, record, planner, result)
                span.set_attribute("payledger.entries_generated", result.entries_generated)
            result.records_rejected = self.source.records_rejected - rejected_before

            if result.entries_generated > 0:
                with self.session_factory() as db:
                    enqueue_outbox_event(
                        db,
                        OutboxEvent,
                        aggregate_type="ledger_run",
                        aggregate_id=run_id,
                        event_type="ledger.derivation.completed",
                        payload=result.model_dump(),
                    )
                    db.commit()
            logger.info(
                "ledger_derivation_completed run_id=%s entries_generated=%s events_skipped=%s "
                "fields_coerced=%s records_rejected=%s",
                run_id,
                result.entries_generated,
                result.events_skipped,
                result.fields_coerced,
                result.records_rejected,
            )
            return result
        finally:
            run_id_ctx.reset(token)

    def derive_exclusive(self, lock) -> DeriveResult:
        """Run `derive_ledger` while holding `lock` (a redis-py `Lock`)."""

        if not lock.acquire(blocking=False):
            raise DerivationInProgressError("a ledger derivation run is already in progress", entity_id=DERIVE_LOCK_NAME)
        try:
            return self.derive_ledger()
        finally:
            try:
                lock.release()
            except LockNotOwnedError:
                # The run outlived the lock timeout; its entries are already committed.
                logger.warning(
                    "ledger_derive_lock_expired lock=%s timeout_seconds=%s",
                    DERIVE_LOCK_NAME,
                    settings.derive_lock_timeout_seconds,
                )

    def list_entries(self, employee_filter: str | None = None, month: str | None = None) -> list[LedgerEntry]:
        with self.session_factory() as db:
            return LedgerStore(db).query(employee_filter=employee_filter, month=month)
