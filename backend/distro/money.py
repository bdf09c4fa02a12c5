# Overview: Fixed-point currency helpers; all arithmetic happens on integer minor units (cents).

"""
Money is stored and computed as integer cents. Decimal strings exist only at
the API boundary: `to_cents` on the way in, `format_cents` on the way out.
"""

from __future__ import annotations

from decimal import Decimal, InvalidOperation
from typing import Iterable

from .validation import ValidationError

CENTS_PER_UNIT = 100

# 12 integer digits + 2 fractional, matching numeric(14, 2)
MAX_AMOUNT_CENTS = 999_999_999_999_99


def to_cents(value, field: str = "amount") -> int:
    """
    Convert a decimal-like API value ("8000", "8000.50", 8000, Decimal) to cents.

    Floats are routed through str() so 0.1 stays 0.1 rather than its binary
    expansion. More than two fractional digits is rejected, not rounded.
    """
    if value is None or isinstance(value, bool):
        raise ValidationError(f"{field} must be a number")
    if isinstance(value, int):
        cents = value * CENTS_PER_UNIT
    else:
        try:
            dec = Decimal(str(value).strip())
        except InvalidOperation:
            raise ValidationError(f"{field} must be a number")
        if not dec.is_finite():
            raise ValidationError(f"{field} must be a finite number")
        scaled = dec * CENTS_PER_UNIT
        if scaled != scaled.to_integral_value():
            raise ValidationError(f"{field} must have at most 2 decimal places")
        cents = int(scaled)
    if abs(cents) > MAX_AMOUNT_CENTS:
        raise ValidationError(f"{field} is out of range")
    return cents


def format_cents(cents: int | None) -> str | None:
    """21000_00 -> "21000.00"."""
    if cents is None:
        return None
    sign = "-" if cents < 0 else ""
    whole, frac = divmod(abs(int(cents)), CENTS_PER_UNIT)
    return f"{sign}{whole}.{frac:02d}"


def add_cents(a: int, b: int) -> int:
    return int(a) + int(b)


def sub_cents(a: int, b: int) -> int:
    return int(a) - int(b)


def sum_cents(values: Iterable[int | None]) -> int:
    return sum((int(v) for v in values if v is not None), 0)


def line_total_cents(unit_price_cents: int, quantity: int) -> int:
    """Subtotal of one line; exact because both operands are integers."""
    return int(unit_price_cents) * int(quantity)
