"""
Branch price calculation.

A branch pays ``base_price * (1 + percent / 100) + extra_amount`` rounded
half-up to a whole currency unit, never less than 1. Percent and extra amount
are range-checked where they are stored, so the functions here trust their
inputs.
"""
from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, Iterable, List, Any, Union

Number = Union[int, float, Decimal, str]

PRICE_FLOOR = Decimal(1)
_HUNDRED = Decimal(100)
_UNIT = Decimal(1)


def to_decimal(value: Number) -> Decimal:
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def adjusted_price(base_price: Number, percent: Number = 0, extra_amount: Number = 0) -> Decimal:
    base = to_decimal(base_price)
    factor = 1 + to_decimal(percent) / _HUNDRED
    raw = base * factor + to_decimal(extra_amount)
    rounded = raw.quantize(_UNIT, rounding=ROUND_HALF_UP)
    return max(rounded, PRICE_FLOOR)


def price_branch_catalog(products: Iterable, percent: Number, extras: Dict[int, Decimal]) -> List[Dict[str, Any]]:
    """Quote every product for a branch with its adjustments applied."""
    quoted = []
    for product in products:
        extra = extras.get(product.id, Decimal(0))
        quoted.append({
            "id": product.id,
            "code": product.code,
            "name": product.name,
            "base_price": to_decimal(product.base_price),
            "extra_amount": to_decimal(extra),
            "adjusted_price": adjusted_price(product.base_price, percent, extra),
            "is_active": product.is_active,
        })
    return quoted
