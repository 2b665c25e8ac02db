"""
Money and entry calculations.

All monetary arithmetic is done in Decimal so that summed totals carry no
floating-point drift. Inputs may arrive as int, float, str or Decimal.
"""

from datetime import date, datetime
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Dict, Optional

ZERO = Decimal("0")
CENT = Decimal("0.01")


def to_money(value: Any) -> Decimal:
    """
    Convert a raw amount to Decimal.

    None and blank strings count as zero (absent-as-zero).

    Raises:
        ValueError: value is not numeric
    """
    if value is None:
        return ZERO
    if isinstance(value, Decimal):
        amount = value
    elif isinstance(value, bool):
        raise ValueError(f"Invalid monetary amount: {value!r}")
    elif isinstance(value, (int, float)):
        amount = Decimal(str(value))
    elif isinstance(value, str):
        if not value.strip():
            return ZERO
        try:
            amount = Decimal(value.strip())
        except InvalidOperation:
            raise ValueError(f"Invalid monetary amount: {value!r}")
    else:
        raise ValueError(f"Invalid monetary amount: {value!r}")

    if not amount.is_finite():
        raise ValueError(f"Invalid monetary amount: {value!r}")
    return amount


def round_currency(amount: Decimal) -> Decimal:
    """Round to 2 decimal places for currency."""
    return amount.quantize(CENT, rounding=ROUND_HALF_UP)


def format_currency(amount: Decimal) -> str:
    """Render an amount as $X.XX (sign before the dollar sign)."""
    rounded = round_currency(amount)
    if rounded < 0:
        return f"-${-rounded:.2f}"
    return f"${rounded:.2f}"


def parse_entry_date(value: Any) -> Optional[date]:
    """
    Parse an entry date (day granularity).

    Accepts date, datetime or ISO 'YYYY-MM-DD' strings (a time part is
    dropped). None or blank yields None.

    Raises:
        ValueError: unparseable date string
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        try:
            return date.fromisoformat(text[:10])
        except ValueError:
            raise ValueError(f"Invalid date: {value!r} (expected YYYY-MM-DD)")
    raise ValueError(f"Invalid date: {value!r}")


def derive_entry_fields(
    opening_cash: Decimal,
    cash_sales: Decimal,
    card_sales: Decimal,
    returns_refunds: Decimal,
    cash_drops: Decimal,
    closing_cash: Decimal,
) -> Dict[str, Decimal]:
    """
    Derived cash fields for one entry.

    expected_cash = opening + cash sales - returns - drops
    cash_difference = closing - expected (negative = shortfall)
    """
    expected_cash = opening_cash + cash_sales - returns_refunds - cash_drops
    return {
        "total_sales": cash_sales + card_sales,
        "expected_cash": expected_cash,
        "cash_difference": closing_cash - expected_cash,
    }


def percentage(part: Decimal, whole: Decimal) -> Decimal:
    """part / whole * 100, zero when whole is not positive."""
    if whole > 0:
        return part / whole * 100
    return ZERO
