# ledger/money.py
"""
Single conversion boundary for currency and rate values.

Every amount that enters the ledger (request bodies, Numeric columns) goes
through ``to_money`` / ``to_rate`` and every amount that leaves it goes
through ``as_number``. Commission products are quantized to cents with
ROUND_HALF_UP in ``commission_for``; nothing else in the code base rounds.
"""
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

CENT = Decimal("0.01")
ZERO = Decimal("0")


def to_decimal(value, field: str = "value") -> Decimal:
    """Convert JSON numbers / strings / column values into Decimal without float noise."""
    if value is None:
        return ZERO
    if isinstance(value, bool):
        raise ValueError(f"{field} must be a number")
    if isinstance(value, Decimal):
        result = value
    else:
        try:
            result = Decimal(str(value))
        except (InvalidOperation, TypeError, ValueError):
            raise ValueError(f"{field} must be a number")
    if not result.is_finite():
        raise ValueError(f"{field} must be a finite number")
    return result


def to_money(value, field: str = "amount") -> Decimal:
    return to_decimal(value, field)


def to_rate(value, field: str = "rate") -> Decimal:
    return to_decimal(value, field)


def quantize_money(value: Decimal) -> Decimal:
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def commission_for(amount, rate) -> Decimal:
    """amount x rate, rounded to cents."""
    return quantize_money(to_money(amount) * to_rate(rate))


def as_number(value):
    """Render a stored Decimal for JSON output."""
    if value is None:
        return None
    return float(value)
