"""Decimal helpers for commodity quantities and conversion rates.

All quantities are carried as ``Decimal`` so repeated split/merge/transform
steps never accumulate binary floating-point error.
"""
from __future__ import annotations

from decimal import Decimal, ROUND_HALF_EVEN
from typing import Iterable

QUANTITY_PLACES = Decimal("0.0001")
ZERO = Decimal("0")


def to_decimal(value: object) -> Decimal:
    """Coerce ints, strings, floats and Decimals to Decimal.

    Floats go through ``str`` so 0.21 becomes Decimal("0.21"), not its
    binary expansion. ``None`` maps to zero.
    """
    if value is None:
        return ZERO
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        return Decimal(str(value))
    return Decimal(value)


def quantize(value: Decimal) -> Decimal:
    return value.quantize(QUANTITY_PLACES, rounding=ROUND_HALF_EVEN)


def total(values: Iterable[object]) -> Decimal:
    return sum((to_decimal(v) for v in values), ZERO)


def percentage(part: Decimal, whole: Decimal) -> Decimal | None:
    """part/whole × 100, or None when whole is zero."""
    if whole == 0:
        return None
    return part / whole * 100
