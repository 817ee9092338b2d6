from __future__ import annotations

from decimal import Decimal, ROUND_HALF_UP

CENT = Decimal("0.01")


def to_decimal(v) -> Decimal:
    return Decimal(str(v or 0)).quantize(CENT, rounding=ROUND_HALF_UP)


def to_minor(amount) -> int:
    """Major units to integer cents/paise."""
    return int((to_decimal(amount) * 100).to_integral_value(rounding=ROUND_HALF_UP))


def to_float(v) -> float:
    return float(to_decimal(v))
