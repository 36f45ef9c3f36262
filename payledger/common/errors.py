"""Typed errors for ledger and invoicing operations plus the HTTP handler.

Every error carries a machine-readable `code` and the affected entity id so a
caller can decide whether to retry, ignore, or alert an operator without
parsing messages.
"""

from typing import Any

from fastapi import Request, status
from fastapi.responses import JSONResponse


class PayLedgerError(Exception):
    """Base error for the payroll ledger and billing engine."""

    code = "PAYLEDGER_ERROR"
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str, entity_id: str | None = None, details: dict[str, Any] | None = None):
        self.message = message
        self.entity_id = entity_id
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        return {
            "error_code": self.code,
            "message": self.message,
            "entity_id": self.entity_id,
            "details": self.details,
        }


class ValidationError(PayLedgerError):
    """Malformed input to a public operation."""

    code = "VALIDATION_ERROR"
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY


class NotFoundError(PayLedgerError):
    """Unknown invoice or ledger entry id."""

    code = "NOT_FOUND"
    status_code = status.HTTP_404_NOT_FOUND

    def __init__(self, resource: str, entity_id: str):
        super().__init__(f"{resource} {entity_id} not found", entity_id=entity_id, details={"resource": resource})


class InvalidStateError(PayLedgerError):
    """Lifecycle step attempted from a state that does not allow it."""

    code = "INVALID_STATE"
    status_code = status.HTTP_409_CONFLICT

    def __init__(self, message: str, entity_id: str | None = None, current: str | None = None, action: str | None = None):
        super().__init__(message, entity_id=entity_id, details={"current_state": current, "action": action})
        self.current = current
        self.action = action


class DuplicateEventError(PayLedgerError):
    """An already-processed upstream event was offered to the ledger again."""

    code = "DUPLICATE_EVENT"
    status_code = status.HTTP_409_CONFLICT

    def __init__(self, event_key: str):
        super().__init__(f"event {event_key} already processed", entity_id=event_key)
        self.event_key = event_key


class UpstreamError(PayLedgerError):
    """The upstream record API failed or answered with `success=false`."""

    code = "UPSTREAM_ERROR"
    status_code = status.HTTP_502_BAD_GATEWAY


class DerivationInProgressError(PayLedgerError):
    """Another derivation run holds the run lock."""

    code = "DERIVATION_IN_PROGRESS"
    status_code = status.HTTP_409_CONFLICT


async def payledger_error_handler(request: Request, exc: PayLedgerError) -> JSONResponse:
    """Render any `PayLedgerError` as a structured JSON error response."""

    del request
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())
