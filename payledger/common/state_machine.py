"""Invoice lifecycle transitions enforced by the lifecycle manager."""

from payledger.common.errors import InvalidStateError

DRAFT = "Draft"
FINALIZED = "Finalized"
PAID = "Paid"

ALLOWED_TRANSITIONS: dict[str, set[str]] = {
    DRAFT: {FINALIZED},
    FINALIZED: {PAID},
    PAID: set(),
}

# States from which the record may be removed entirely.
DELETABLE_STATES: set[str] = {DRAFT}


def validate_transition(current: str, new: str, invoice_id: str | None = None) -> None:
    """Raise when a transition is not allowed by the state machine."""

    if new not in ALLOWED_TRANSITIONS.get(current, set()):
        raise InvalidStateError(
            f"Invalid transition: {current} -> {new}",
            entity_id=invoice_id,
            current=current,
            action=new,
        )


def validate_deletion(current: str, invoice_id: str | None = None) -> None:
    """Raise unless an invoice in `current` state may be deleted."""

    if current not in DELETABLE_STATES:
        raise InvalidStateError(
            f"Only draft invoices can be deleted (current={current})",
            entity_id=invoice_id,
            current=current,
            action="delete",
        )
