"""Decimal helpers for euro amounts.

All money is held as Decimal quantized to cents.  Settings and JSON
bodies may carry floats; convert through str() so 0.1 stays 0.10.
"""

from decimal import ROUND_HALF_UP, Decimal

CENTS = Decimal("0.01")


def to_money(value) -> Decimal:
    if isinstance(value, Decimal):
        return value.quantize(CENTS, rounding=ROUND_HALF_UP)
    return Decimal(str(value)).quantize(CENTS, rounding=ROUND_HALF_UP)


def to_minor_units(value) -> int:
    """Euro amount → integer cents, as the payment provider expects."""
    return int((to_money(value) * 100).to_integral_value(rounding=ROUND_HALF_UP))


def format_eur(value) -> str:
    return f"€{to_money(value):.2f}"
