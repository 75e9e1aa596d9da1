"""Utility functions for the ledger.

This module provides helpers for parsing user input into Python data types,
rounding currency amounts and handling dates. Money is always carried as
``Decimal`` and rounded half-up to cents after every arithmetic step so that
repeated partial payments do not accumulate drift.
"""

from __future__ import annotations

import math
from datetime import date
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation, getcontext
from typing import Any, Union

getcontext().prec = 28  # increase decimal precision to avoid rounding errors

CENT = Decimal("0.01")
TOLERANCE = Decimal("0.01")
ZERO = Decimal("0.00")

Number = Union[Decimal, int, float, str]


def round_money(value: Number) -> Decimal:
    """Round ``value`` to two decimal places (half-up).

    Raises ``ValueError`` when the value has too many digits to be carried
    to cents within the decimal context.
    """
    try:
        return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)
    except InvalidOperation as exc:
        raise ValueError(f"Amount out of range: {value!r}") from exc


def to_decimal(value: Any) -> Decimal:
    """Convert ``value`` into a ``Decimal``.

    Floats go through ``str`` so that ``0.1`` becomes ``Decimal("0.1")`` rather
    than its binary expansion. Strings may contain thousands separators.

    Raises
    ------
    ValueError
        If the value is not a finite number.
    """
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, bool):
        raise ValueError(f"Invalid numeric value: {value!r}")
    elif isinstance(value, (int, float)):
        result = Decimal(str(value))
    elif isinstance(value, str):
        try:
            result = Decimal(value.strip().replace(",", ""))
        except InvalidOperation as exc:
            raise ValueError(f"Invalid numeric value: {value!r}") from exc
    else:
        raise ValueError(f"Invalid numeric value: {value!r}")
    if not result.is_finite():
        raise ValueError(f"Invalid numeric value: {value!r}")
    return result


def is_settled(remaining: Decimal) -> bool:
    """True when a remaining balance is zero within tolerance."""
    return remaining <= TOLERANCE


def parse_date(value: Union[str, date]) -> date:
    """Parse a ``YYYY-MM-DD`` string (or pass a ``date`` through)."""
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(value.strip()[:10])
    except (AttributeError, ValueError) as exc:
        raise ValueError(f"Invalid date string: {value}") from exc


def duration_in_months(issue_date: date, due_date: date) -> int:
    """Return the billed duration between two dates in whole 30-day months.

    Any started month counts as a full one and the result is never below one,
    so a due date on (or before) the issue date still bills a single period.
    """
    days = (due_date - issue_date).days
    return max(1, math.ceil(days / 30))
