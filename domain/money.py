"""
Domain: Money helpers.

All monetary values are Decimal. Every computed figure that ends up on a
document is rounded to 2 decimal places with ROUND_HALF_UP.
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Iterable, Optional

ZERO = Decimal("0.00")
PENNY = Decimal("0.01")


def to_decimal(value: Any) -> Decimal:
    """Coerce a stored number (int, float, str, Decimal) into a Decimal without float noise."""

    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool):
        raise TypeError("bool is not a monetary value")
    return Decimal(str(value))


def optional_decimal(value: Any) -> Optional[Decimal]:
    if value is None:
        return None
    return to_decimal(value)


def round_money(value: Decimal) -> Decimal:
    """Round to pennies, half-up."""

    return to_decimal(value).quantize(PENNY, rounding=ROUND_HALF_UP)


def sum_money(values: Iterable[Decimal]) -> Decimal:
    total = ZERO
    for value in values:
        total += to_decimal(value)
    return total
