"""Utility functions for the fund loan engine.

This module provides helpers for parsing user input into Python data types
(money amounts, rates and timestamps), rounding money to cents and handling
month arithmetic for repayment schedules.
"""

from __future__ import annotations

import calendar
from datetime import date, datetime, timezone
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Optional

CENT = Decimal("0.01")


def decimal_from_str(value: str) -> Decimal:
    """Convert a numeric string into a ``Decimal``.

    The function strips any commas and surrounding whitespace and handles
    both integer and float-like strings. It raises ``ValueError`` if
    conversion fails or the value is not finite.
    """
    try:
        cleaned = value.replace(",", "").strip()
        result = Decimal(cleaned)
    except (InvalidOperation, AttributeError) as exc:
        raise ValueError(f"Invalid numeric value: {value}") from exc
    if not result.is_finite():
        raise ValueError(f"Invalid numeric value: {value}")
    return result


def to_decimal(value: Any) -> Optional[Decimal]:
    """Coerce a JSON-ish value (number, string or ``None``) to ``Decimal``.

    Empty strings and ``None`` become ``None``. Floats go through ``str`` so
    ``0.1`` stays ``Decimal("0.1")``. Booleans are rejected.
    """
    if value is None:
        return None
    if isinstance(value, bool):
        raise ValueError(f"Invalid numeric value: {value!r}")
    if isinstance(value, Decimal):
        if not value.is_finite():
            raise ValueError(f"Invalid numeric value: {value}")
        return value
    if isinstance(value, (int, float)):
        return decimal_from_str(str(value))
    if isinstance(value, str):
        if not value.strip():
            return None
        return decimal_from_str(value)
    raise ValueError(f"Invalid numeric value: {value!r}")


def quantize_money(value: Decimal, rounding: str = ROUND_HALF_UP) -> Decimal:
    """Round a money amount to cents."""
    return value.quantize(CENT, rounding=rounding)


def parse_timestamp(value: Optional[str]) -> datetime:
    """Parse an ISO 8601 timestamp, defaulting to now (UTC).

    A trailing ``Z`` is accepted, as produced by JavaScript's
    ``Date.toISOString``. Naive timestamps are assumed to be UTC.
    """
    if value is None or value == "":
        return datetime.now(timezone.utc)
    try:
        cleaned = value.strip()
        if cleaned.endswith("Z"):
            cleaned = cleaned[:-1] + "+00:00"
        parsed = datetime.fromisoformat(cleaned)
    except (ValueError, AttributeError) as exc:
        raise ValueError(f"Invalid timestamp: {value}") from exc
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def parse_year_month(ym: str) -> date:
    """Parse a YYYY-MM string into a ``date`` object (first day of month).

    Raises
    ------
    ValueError
        If the string is not a valid year-month.
    """
    try:
        parts = ym.split("-")
        if len(parts) < 2:
            raise ValueError
        return date(int(parts[0]), int(parts[1]), 1)
    except (ValueError, AttributeError) as exc:
        raise ValueError(f"Invalid year-month string: {ym}") from exc


def add_months(dt: date, months: int) -> date:
    """Return a new date a number of months after ``dt``.

    The day of the month is clamped to the last valid day if needed (e.g.,
    adding one month to Jan 31 yields Feb 28 or 29).
    """
    year = dt.year + (dt.month - 1 + months) // 12
    month = (dt.month - 1 + months) % 12 + 1
    day = min(dt.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)
