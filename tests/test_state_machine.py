"""Unit tests for invoice lifecycle guardrails."""

import pytest

from payledger.common.errors import InvalidStateError
from payledger.common.state_machine import DRAFT, FINALIZED, PAID, validate_deletion, validate_transition


def test_valid_transitions():
    """Draft -> Finalized -> Paid is the only legal path."""

    validate_transition(DRAFT, FINALIZED)
    validate_transition(FINALIZED, PAID)


@pytest.mark.parametrize(
    "current,new",
    [(DRAFT, PAID), (FINALIZED, DRAFT), (PAID, FINALIZED), (PAID, DRAFT), (DRAFT, DRAFT)],
)
def test_invalid_transition(current, new):
    """Skipping or reversing a step must raise with the offending state attached."""

    with pytest.raises(InvalidStateError) as excinfo:
        validate_transition(current, new, invoice_id="inv-1")
    assert excinfo.value.entity_id == "inv-1"
    assert excinfo.value.details["current_state"] == current


def test_only_drafts_are_deletable():
    validate_deletion(DRAFT)
    for state in (FINALIZED, PAID):
        with pytest.raises(InvalidStateError):
            validate_deletion(state)
