"""Read-only access to upstream guard, labor, escort and loan records.

Two sources are provided: `HttpEventSource` speaks the upstream record API's
action protocol, and `StaticEventSource` serves in-memory collections (JSON
exports, fixtures). Both parse raw rows into typed records and drop rows that
cannot be parsed at all, so a single broken row never aborts a payroll pass.
"""

import datetime
import json
from pathlib import Path
from typing import Any, Iterable, TypeVar

import httpx
from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from payledger.common.config import settings
from payledger.common.errors import UpstreamError
from payledger.common.logging import logger
from payledger.common.metrics import upstream_records_rejected_total
from payledger.common.records import (
    ESCORT_ACTIVE,
    GUARD_PRESENT,
    DayLaborRecord,
    EscortDutyRecord,
    GuardDutyRecord,
    LoanAdvanceRecord,
)

RecordT = TypeVar("RecordT", bound=BaseModel)


class EventSource:
    """Base view over the upstream collections with client/period filters."""

    def __init__(self) -> None:
        self.records_rejected = 0

    def parse_records(self, collection: str, rows: Iterable[Any], model: type[RecordT]) -> list[RecordT]:
        """Validate raw rows into `model`, logging and counting rejected rows."""

        records: list[RecordT] = []
        for index, row in enumerate(rows):
            try:
                records.append(model.model_validate(row))
            except PydanticValidationError as exc:
                row_id = row.get("id") if isinstance(row, dict) else None
                logger.warning(
                    "upstream_record_rejected collection=%s index=%s id=%s errors=%s",
                    collection,
                    index,
                    row_id,
                    exc.error_count(),
                )
                self.records_rejected += 1
                upstream_records_rejected_total.labels(service=settings.service_name, collection=collection).inc()
        return records

    def guard_duty(self) -> list[GuardDutyRecord]:
        raise NotImplementedError

    def day_labor(self) -> list[DayLaborRecord]:
        raise NotImplementedError

    def escort_duty(self) -> list[EscortDutyRecord]:
        raise NotImplementedError

    def loan_advance(self) -> list[LoanAdvanceRecord]:
        raise NotImplementedError

    def guard_duty_for_client(
        self, client_name: str, start: datetime.date, end: datetime.date
    ) -> list[GuardDutyRecord]:
        """Present guard shifts for one client dated inside [start, end]."""

        return [
            r
            for r in self.guard_duty()
            if r.client_name == client_name and start <= r.date <= end and r.status == GUARD_PRESENT
        ]

    def day_labor_for_client(self, client_name: str, start: datetime.date, end: datetime.date) -> list[DayLaborRecord]:
        """Day-labor rows for one client dated inside [start, end]."""

        return [r for r in self.day_labor() if r.client_name == client_name and start <= r.date <= end]

    def escort_duty_for_client(
        self, client_name: str, start: datetime.date, end: datetime.date
    ) -> list[EscortDutyRecord]:
        """Active escort assignments for one client overlapping [start, end]."""

        return [
            r
            for r in self.escort_duty()
            if r.client_name == client_name
            and r.start_date <= end
            and r.end_date >= start
            and r.status == ESCORT_ACTIVE
        ]


class HttpEventSource(EventSource):
    """Fetch records from the upstream record API.

    The API takes `POST {"action", "payload", "token"}` and answers
    `{"success", "data", "message"}`.
    """

    def __init__(
        self,
        base_url: str | None = None,
        api_key: str | None = None,
        timeout: float | None = None,
        client: httpx.Client | None = None,
    ) -> None:
        super().__init__()
        self.base_url = base_url or settings.upstream_url
        self.api_key = api_key if api_key is not None else settings.upstream_api_key
        self.timeout = timeout or settings.upstream_timeout_seconds
        self._client = client

    def _request(self, action: str, payload: dict[str, Any] | None = None) -> list[Any]:
        body = {"action": action, "payload": payload or {}, "token": self.api_key}
        try:
            if self._client is not None:
                resp = self._client.post(self.base_url, content=json.dumps(body), timeout=self.timeout)
            else:
                with httpx.Client(timeout=self.timeout, follow_redirects=True) as client:
                    resp = client.post(self.base_url, content=json.dumps(body))
        except httpx.HTTPError as exc:
            raise UpstreamError(f"upstream request failed action={action}: {exc}", entity_id=action) from exc
        if resp.status_code >= 400:
            raise UpstreamError(
                f"upstream rejected action={action} status={resp.status_code}",
                entity_id=action,
                details={"status_code": resp.status_code},
            )
        try:
            result = resp.json()
        except ValueError as exc:
            raise UpstreamError(f"upstream returned non-JSON body for action={action}", entity_id=action) from exc
        if not isinstance(result, dict) or not result.get("success"):
            message = result.get("message") if isinstance(result, dict) else None
            raise UpstreamError(
                f"upstream action={action} failed: {message or 'no message'}",
                entity_id=action,
            )
        data = result.get("data") or []
        if not isinstance(data, list):
            raise UpstreamError(f"upstream action={action} returned non-list data", entity_id=action)
        return data

    def guard_duty(self) -> list[GuardDutyRecord]:
        return self.parse_records("guard_duty", self._request("getGuardDuty"), GuardDutyRecord)

    def day_labor(self) -> list[DayLaborRecord]:
        return self.parse_records("day_labor", self._request("getDayLabor"), DayLaborRecord)

    def escort_duty(self) -> list[EscortDutyRecord]:
        return self.parse_records("escort_duty", self._request("getEscortDuty"), EscortDutyRecord)

    def loan_advance(self) -> list[LoanAdvanceRecord]:
        return self.parse_records("loan_advance", self._request("getLoanAdvance"), LoanAdvanceRecord)


class StaticEventSource(EventSource):
    """Serve fixed collections of raw rows (dicts in upstream camelCase)."""

    def __init__(
        self,
        guard: list[dict] | None = None,
        labor: list[dict] | None = None,
        escort: list[dict] | None = None,
        loans: list[dict] | None = None,
    ) -> None:
        super().__init__()
        self.guard = list(guard or [])
        self.labor = list(labor or [])
        self.escort = list(escort or [])
        self.loans = list(loans or [])

    @classmethod
    def from_file(cls, path: str | Path) -> "StaticEventSource":
        """Load `{"guardDuty": [...], "dayLabor": [...], "escortDuty": [...], "loanAdvance": [...]}`."""

        document = json.loads(Path(path).read_text())
        return cls(
            guard=document.get("guardDuty"),
            labor=document.get("dayLabor"),
            escort=document.get("escortDuty"),
            loans=document.get("loanAdvance"),
        )

    def guard_duty(self) -> list[GuardDutyRecord]:
        return self.parse_records("guard_duty", self.guard, GuardDutyRecord)

    def day_labor(self) -> list[DayLaborRecord]:
        return self.parse_records("day_labor", self.labor, DayLaborRecord)

    def escort_duty(self) -> list[EscortDutyRecord]:
        return self.parse_records("escort_duty", self.escort, EscortDutyRecord)

    def loan_advance(self) -> list[LoanAdvanceRecord]:
        return self.parse_records("loan_advance", self.loans, LoanAdvanceRecord)
