"""
Payrecon - Money and Period Helpers
"""

from calendar import monthrange
from datetime import date, datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import Tuple, Union

TWO_PLACES = Decimal("0.01")
ZERO = Decimal("0.00")


def to_decimal(value: Union[Decimal, int, float, str, None]) -> Decimal:
    """Convert a numeric value to Decimal without float artefacts."""
    if value is None:
        return ZERO
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def round_money(value: Union[Decimal, int, float, str, None]) -> Decimal:
    """Round to 2 decimal places using half-up rounding."""
    return to_decimal(value).quantize(TWO_PLACES, rounding=ROUND_HALF_UP)


def period_bounds(month: int, year: int) -> Tuple[date, date]:
    """First and last calendar day of a payroll month."""
    last_day = monthrange(year, month)[1]
    return date(year, month, 1), date(year, month, last_day)


def calendar_date(value: Union[date, datetime]) -> date:
    """Drop the time part of a datetime; dates pass through."""
    if isinstance(value, datetime):
        return value.date()
    return value
