"""
Money helpers.

All amounts are Decimal quantized to cents, rounded half-up. Every service
rounds at each computation boundary (line, net, vat, total, payment split)
so float drift never accumulates across lines.
"""

from __future__ import annotations

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

MONEY_QUANT = Decimal("0.01")
ZERO_MONEY = Decimal("0.00")

# Rounding slack when comparing paid amounts against document totals
MONEY_TOLERANCE = Decimal("0.01")


def to_money(value) -> Decimal:
    """Round any numeric-ish value to cents. None and "" read as zero."""
    if value is None or value == "":
        return ZERO_MONEY
    if isinstance(value, bool):
        raise InvalidOperation(f"Not a money amount: {value!r}")
    return Decimal(str(value)).quantize(MONEY_QUANT, rounding=ROUND_HALF_UP)


def to_decimal(value, default: Decimal = ZERO_MONEY) -> Decimal:
    """Unrounded Decimal conversion, for rates and percentages."""
    if value is None or value == "":
        return default
    return Decimal(str(value))


def money_float(value) -> float | None:
    """JSON-friendly rendering of a stored amount."""
    if value is None:
        return None
    return float(to_money(value))
