"""Money conversions between Stripe cents and stored decimals."""

from decimal import ROUND_HALF_UP, Decimal
from typing import Any

TWO_PLACES = Decimal("0.01")


def to_decimal(value: Any) -> Decimal:
    if value is None:
        return Decimal("0.00")
    return Decimal(str(value)).quantize(TWO_PLACES, rounding=ROUND_HALF_UP)


def cents_to_decimal(cents: int | None) -> Decimal:
    if cents is None:
        return Decimal("0.00")
    return (Decimal(cents) / Decimal("100")).quantize(TWO_PLACES)


def to_cents(value: Any) -> int:
    if value is None:
        return 0
    cents = to_decimal(value) * 100
    return int(cents.to_integral_value(rounding=ROUND_HALF_UP))


def format_money(value: Any) -> str:
    return f"{to_decimal(value):.2f}"
