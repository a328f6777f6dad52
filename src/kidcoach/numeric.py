"""Rounding helpers shared by the metric and insight modules."""

from __future__ import annotations

from decimal import Decimal, ROUND_HALF_UP
from typing import Union

WHOLE = Decimal("1")
TENTH = Decimal("0.1")

NumberLike = Union[Decimal, int, float]


def to_decimal(value: NumberLike) -> Decimal:
    """Convert ``value`` to :class:`~decimal.Decimal` without binary noise."""

    if isinstance(value, Decimal):
        return value
    if isinstance(value, (int, float)):
        return Decimal(str(value))
    raise TypeError(f"Unsupported number type: {type(value)!r}")


def round_half_up(value: NumberLike) -> int:
    """Round to the nearest integer, halves away from zero (``2.5 -> 3``, ``-2.5 -> -3``)."""

    return int(to_decimal(value).quantize(WHOLE, rounding=ROUND_HALF_UP))


def round_tenths(value: NumberLike) -> Decimal:
    """Round to one decimal place, halves away from zero."""

    return to_decimal(value).quantize(TENTH, rounding=ROUND_HALF_UP)


def safe_ratio(numerator: float, denominator: float) -> float:
    """Return ``numerator / denominator`` or ``0.0`` when the denominator is not positive."""

    if denominator <= 0:
        return 0.0
    return numerator / denominator


def clamp(value: float, lower: float, upper: float) -> float:
    return max(lower, min(upper, value))


def percent(ratio: float) -> int:
    """Express a 0-1 ratio as a whole percentage."""

    return round_half_up(ratio * 100)


__all__ = ["clamp", "percent", "round_half_up", "round_tenths", "safe_ratio", "to_decimal"]
