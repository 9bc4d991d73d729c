"""Tests for decimal quantity helpers."""
from __future__ import annotations

from decimal import Decimal

from palmtrace.utils.quantity import percentage, quantize, to_decimal, total


def test_float_goes_through_str():
    assert to_decimal(0.21) == Decimal("0.21")
    assert to_decimal(None) == 0
    assert to_decimal("12.5") == Decimal("12.5")


def test_quantize_rounds_half_even():
    assert quantize(Decimal("1.00005")) == Decimal("1.0000")
    assert quantize(Decimal("1.00015")) == Decimal("1.0002")


def test_total_mixes_input_types():
    assert total([1, "2.5", 0.1, None]) == Decimal("3.6")


def test_percentage_of_zero_is_none():
    assert percentage(Decimal("5"), Decimal("0")) is None
    assert percentage(Decimal("126"), Decimal("600")) == Decimal("21")
