"""Invoice persistence bound to one SQLAlchemy session."""

from datetime import date, datetime, timezone

from sqlalchemy import delete, func, or_, select, update
from sqlalchemy.exc import IntegrityError

from payledger.common.config import settings
from payledger.common.errors import InvalidStateError, NotFoundError
from payledger.services.invoicing.models import INVOICE_NUMBER_COUNTER, Invoice, InvoiceCounter, InvoiceTimeline


class InvoiceStore:
    """Invoices, the invoice number counter, and the lifecycle timeline."""

    def __init__(self, db) -> None:
        self.db = db

    def ensure_counter(self) -> None:
        """Create the invoice number counter row if it does not exist yet."""

        if self.db.get(InvoiceCounter, INVOICE_NUMBER_COUNTER) is not None:
            return
        self.db.add(InvoiceCounter(name=INVOICE_NUMBER_COUNTER, value=settings.invoice_number_start))
        try:
            self.db.commit()
        except IntegrityError:
            # Another process created it first; its row is equivalent.
            self.db.rollback()

    def next_invoice_seq(self) -> int:
        """Atomically take the next invoice number inside the open transaction."""

        result = self.db.execute(
            update(InvoiceCounter)
            .where(InvoiceCounter.name == INVOICE_NUMBER_COUNTER)
            .values(value=InvoiceCounter.value + 1)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise RuntimeError("invoice number counter missing; call ensure_counter() first")
        return self.db.execute(
            select(InvoiceCounter.value).where(InvoiceCounter.name == INVOICE_NUMBER_COUNTER)
        ).scalar_one()

    def get(self, invoice_id: str) -> Invoice:
        invoice = self.db.get(Invoice, invoice_id)
        if invoice is None:
            raise NotFoundError("invoice", invoice_id)
        return invoice

    def add(self, invoice: Invoice) -> Invoice:
        self.db.add(invoice)
        self.db.flush()
        return invoice

    def record_step(self, invoice: Invoice, action: str, from_state: str | None, to_state: str | None) -> None:
        self.db.add(
            InvoiceTimeline(
                invoice_id=invoice.invoice_id,
                invoice_number=invoice.invoice_number,
                action=action,
                from_state=from_state,
                to_state=to_state,
            )
        )

    def compare_and_set_status(self, invoice: Invoice, from_status: str, new_status: str, action: str) -> None:
        """Move `invoice` to `new_status` only if nobody changed it since it was read.

        The write is guarded by `(invoice_id, status, state_version)`.
        """

        current_version = invoice.state_version
        result = self.db.execute(
            update(Invoice)
            .where(
                Invoice.invoice_id == invoice.invoice_id,
                Invoice.status == from_status,
                Invoice.state_version == current_version,
            )
            .values(
                status=new_status,
                state_version=current_version + 1,
                updated_at=datetime.now(timezone.utc),
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise InvalidStateError(
                f"invoice {invoice.invoice_id} changed concurrently (expected version {current_version})",
                entity_id=invoice.invoice_id,
                current=from_status,
                action=action,
            )
        invoice.status = new_status
        invoice.state_version = current_version + 1

    def delete_if_status(self, invoice: Invoice, status: str) -> None:
        result = self.db.execute(
            delete(Invoice)
            .where(
                Invoice.invoice_id == invoice.invoice_id,
                Invoice.status == status,
                Invoice.state_version == invoice.state_version,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise InvalidStateError(
                f"invoice {invoice.invoice_id} changed concurrently and cannot be deleted",
                entity_id=invoice.invoice_id,
                current=status,
                action="delete",
            )
        self.db.expunge(invoice)

    def query(
        self,
        client_filter: str | None = None,
        period_start: date | None = None,
        period_end: date | None = None,
    ) -> list[Invoice]:
        """Invoices for a client (id exact, name substring) overlapping the period."""

        stmt = select(Invoice)
        if client_filter:
            stmt = stmt.where(
                or_(
                    Invoice.client_id == client_filter,
                    func.lower(Invoice.client_name).contains(client_filter.lower(), autoescape=True),
                )
            )
        if period_start is not None:
            stmt = stmt.where(Invoice.period_end >= period_start)
        if period_end is not None:
            stmt = stmt.where(Invoice.period_start <= period_end)
        return list(self.db.execute(stmt.order_by(Invoice.invoice_seq)).scalars().all())
