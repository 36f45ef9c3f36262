"""Typed views of the four upstream record collections.

The upstream record API speaks camelCase JSON (`employeeId`, `hoursWorked`);
models accept those aliases as well as the Python field names. Numeric fields
that are missing, negative, or unparseable become zero and are listed in
`coerced_fields` so derivation can count them without failing the pass.
"""

import datetime
from decimal import Decimal
from typing import Any, ClassVar

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from payledger.common.money import ZERO, parse_decimal

GUARD_PRESENT = "Present"
ESCORT_ACTIVE = "Active"
LOAN_ACTIVE = "Active"

SHIFT_NUMBERS = {"Day": 1, "Night": 2}


def escort_total_days(start_date: datetime.date, start_shift: str, end_date: datetime.date, end_shift: str) -> Decimal:
    """Escort duration in days from start/end dates and shifts.

    Day is shift 1 and Night is shift 2; two shifts make one day, so results
    move in 0.5 steps.
    """

    days_between = (end_date - start_date).days
    start_num = SHIFT_NUMBERS.get(start_shift, 2)
    end_num = SHIFT_NUMBERS.get(end_shift, 2)
    half_days = days_between * 2 + (end_num - start_num + 1)
    return Decimal(half_days) / 2


class UpstreamRecord(BaseModel):
    """Fields shared by every employee-linked upstream record."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
        coerce_numbers_to_str=True,
    )

    NUMERIC_FIELDS: ClassVar[tuple[str, ...]] = ()

    id: str = Field(min_length=1)
    employee_id: str = ""
    employee_name: str = ""
    coerced_fields: list[str] = Field(default_factory=list, exclude=True)

    @model_validator(mode="before")
    @classmethod
    def _coerce_numeric_fields(cls, data: Any) -> Any:
        if not isinstance(data, dict) or not cls.NUMERIC_FIELDS:
            return data
        data = dict(data)
        coerced: list[str] = []
        for name in cls.NUMERIC_FIELDS:
            alias = to_camel(name)
            raw = data.pop(alias) if alias in data else data.get(name)
            parsed = parse_decimal(raw)
            if parsed is None or parsed < 0:
                parsed = ZERO
                coerced.append(name)
            data[name] = parsed
        data["coerced_fields"] = coerced
        return data

    @field_validator("employee_id", "employee_name", mode="before")
    @classmethod
    def _blank_when_missing(cls, value: Any) -> Any:
        return "" if value is None else value

    @field_validator("employee_id", "employee_name")
    @classmethod
    def _strip(cls, value: str) -> str:
        return value.strip()

    @staticmethod
    def _date_part(value: Any) -> Any:
        # Sheet-backed APIs sometimes send full ISO timestamps for date cells.
        if isinstance(value, str) and len(value) > 10:
            return value[:10]
        return value

    @property
    def resolved_employee_id(self) -> str:
        """Explicit employee id, or a stable fallback derived from the name."""

        return self.employee_id or f"EMP-{self.employee_name}"


class GuardDutyRecord(UpstreamRecord):
    """One guard shift attendance row."""

    client_name: str = ""
    date: datetime.date
    shift: str = ""
    status: str = ""

    @field_validator("date", mode="before")
    @classmethod
    def _date_only(cls, value: Any) -> Any:
        return cls._date_part(value)


class DayLaborRecord(UpstreamRecord):
    """One day-labor row; 9 hours count as one standard day."""

    NUMERIC_FIELDS = ("hours_worked",)

    client_name: str = ""
    date: datetime.date
    hours_worked: Decimal = ZERO

    @field_validator("date", mode="before")
    @classmethod
    def _date_only(cls, value: Any) -> Any:
        return cls._date_part(value)


class EscortDutyRecord(UpstreamRecord):
    """One escort assignment spanning a date range."""

    NUMERIC_FIELDS = ("total_days", "conveyance")

    client_name: str = ""
    start_date: datetime.date
    end_date: datetime.date
    start_shift: str | None = None
    end_shift: str | None = None
    status: str = ""
    total_days: Decimal = ZERO
    conveyance: Decimal = ZERO

    @field_validator("start_date", "end_date", mode="before")
    @classmethod
    def _date_only(cls, value: Any) -> Any:
        return cls._date_part(value)

    @model_validator(mode="after")
    def _derive_total_days(self) -> "EscortDutyRecord":
        # Rows captured before totalDays existed still carry their shifts.
        if "total_days" in self.coerced_fields and self.start_shift and self.end_shift:
            computed = escort_total_days(self.start_date, self.start_shift, self.end_date, self.end_shift)
            if computed >= 0:
                self.total_days = computed
                self.coerced_fields.remove("total_days")
        return self


class LoanAdvanceRecord(UpstreamRecord):
    """A loan or salary advance; active ones are deducted from pay."""

    NUMERIC_FIELDS = ("amount",)

    issue_date: datetime.date
    type: str = ""
    amount: Decimal = ZERO
    status: str = ""

    @field_validator("issue_date", mode="before")
    @classmethod
    def _date_only(cls, value: Any) -> Any:
        return cls._date_part(value)
