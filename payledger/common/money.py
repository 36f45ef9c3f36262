"""Decimal helpers for monetary arithmetic."""

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any

CENTS = Decimal("0.01")
ZERO = Decimal("0")


def round2(value: Decimal) -> Decimal:
    """Round to 2 decimal places, half away from zero."""

    return value.quantize(CENTS, rounding=ROUND_HALF_UP)


def parse_decimal(value: Any) -> Decimal | None:
    """Parse an upstream numeric field; `None` when missing or unparseable.

    Upstream sheets send numbers, numeric strings, empty strings, or junk.
    Booleans are rejected even though `bool` is an `int` subclass.
    """

    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, Decimal):
        parsed = value
    elif isinstance(value, (int, float)):
        parsed = Decimal(str(value))
    elif isinstance(value, str):
        text = value.strip().replace(",", "")
        if not text:
            return None
        try:
            parsed = Decimal(text)
        except InvalidOperation:
            return None
    else:
        return None
    if not parsed.is_finite():
        return None
    return parsed
