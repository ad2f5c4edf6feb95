"""Earnings arithmetic.

Amounts stay unrounded through aggregation and are rounded to cents only
when written to the store, so sums do not accumulate rounding error.
"""
from decimal import Decimal, ROUND_HALF_UP, InvalidOperation

_CENTS = Decimal("0.01")


def earnings(hours: float, hourly_rate: float) -> float:
    """hours * rate. Zero or negative hours, or a non-positive rate, yield 0."""
    try:
        hours = float(hours or 0)
        hourly_rate = float(hourly_rate or 0)
    except (TypeError, ValueError):
        return 0.0
    if hours <= 0 or hourly_rate <= 0:
        return 0.0
    return hours * hourly_rate


def _round2(value: float) -> float:
    try:
        return float(Decimal(str(value)).quantize(_CENTS, rounding=ROUND_HALF_UP))
    except (InvalidOperation, ValueError, TypeError):
        return 0.0


def round_currency(amount: float) -> float:
    """Round a monetary amount to 2 decimal places, half up."""
    return _round2(amount)


def round_hours(hours: float) -> float:
    """Round decimal hours to 2 decimal places, half up."""
    return _round2(hours)
