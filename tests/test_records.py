"""Upstream record parsing: aliases, numeric coercion, escort day math."""

import datetime
from decimal import Decimal

import pytest
from pydantic import ValidationError

from payledger.common.money import parse_decimal, round2
from payledger.common.records import DayLaborRecord, EscortDutyRecord, GuardDutyRecord, escort_total_days


def test_camel_case_aliases_and_date_truncation():
    record = GuardDutyRecord.model_validate(
        {
            "id": 7,
            "employeeId": " E1 ",
            "employeeName": "Asha",
            "clientName": "Acme",
            "date": "2026-01-05T00:00:00.000Z",
            "shift": "Night",
            "status": "Present",
        }
    )
    assert record.id == "7"
    assert record.employee_id == "E1"
    assert record.date == datetime.date(2026, 1, 5)


def test_missing_employee_id_falls_back_to_name():
    record = GuardDutyRecord.model_validate({"id": "G1", "employeeName": "Ravi", "date": "2026-01-05"})
    assert record.resolved_employee_id == "EMP-Ravi"


@pytest.mark.parametrize("raw", [None, "", "abc", -4, "NaN"])
def test_bad_hours_are_coerced_to_zero(raw):
    record = DayLaborRecord.model_validate({"id": "L1", "date": "2026-01-06", "hoursWorked": raw})
    assert record.hours_worked == Decimal("0")
    assert record.coerced_fields == ["hours_worked"]


def test_numeric_strings_parse():
    record = DayLaborRecord.model_validate({"id": "L1", "date": "2026-01-06", "hoursWorked": "1,012.5"})
    assert record.hours_worked == Decimal("1012.5")
    assert record.coerced_fields == []


def test_missing_id_or_date_is_rejected():
    with pytest.raises(ValidationError):
        GuardDutyRecord.model_validate({"date": "2026-01-05"})
    with pytest.raises(ValidationError):
        GuardDutyRecord.model_validate({"id": "G1", "date": "not-a-date"})


@pytest.mark.parametrize(
    "start,start_shift,end,end_shift,expected",
    [
        ("2026-01-01", "Day", "2026-01-01", "Day", "0.5"),
        ("2026-01-01", "Day", "2026-01-01", "Night", "1"),
        ("2026-01-01", "Night", "2026-01-02", "Day", "1"),
        ("2026-01-01", "Day", "2026-01-03", "Night", "3"),
    ],
)
def test_escort_total_days(start, start_shift, end, end_shift, expected):
    result = escort_total_days(
        datetime.date.fromisoformat(start), start_shift, datetime.date.fromisoformat(end), end_shift
    )
    assert result == Decimal(expected)


def test_escort_days_computed_from_shifts_when_total_missing():
    record = EscortDutyRecord.model_validate(
        {
            "id": "S1",
            "startDate": "2026-01-01",
            "endDate": "2026-01-03",
            "startShift": "Day",
            "endShift": "Night",
            "status": "Active",
            "conveyance": 150,
        }
    )
    assert record.total_days == Decimal("3")
    assert record.coerced_fields == []


def test_round2_is_half_up():
    assert round2(Decimal("0.125")) == Decimal("0.13")
    assert round2(Decimal("-0.125")) == Decimal("-0.13")
    assert parse_decimal(True) is None
