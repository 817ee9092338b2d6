from __future__ import annotations

from decimal import Decimal

from myzo.utils.money import to_decimal

FREE_SHIPPING_THRESHOLD = Decimal("500.00")
FLAT_SHIPPING = Decimal("25.00")
TAX_RATE = Decimal("0.08")


def shipping_for(subtotal: Decimal) -> Decimal:
    # Free only strictly above the threshold.
    return Decimal("0.00") if subtotal > FREE_SHIPPING_THRESHOLD else FLAT_SHIPPING


def compute_totals(subtotal) -> dict:
    """
    Order money breakdown. 480.00 -> shipping 25.00, tax 38.40, total 543.40.
    """
    sub = to_decimal(subtotal)
    shipping = shipping_for(sub)
    tax = to_decimal(sub * TAX_RATE)
    return {
        "subtotal": sub,
        "shipping": shipping,
        "tax": tax,
        "total": to_decimal(sub + shipping + tax),
    }
