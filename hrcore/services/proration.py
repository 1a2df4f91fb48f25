"""
Leave proration and day counting.

Pure functions: no database access, deterministic for a given input.
All arithmetic is done in Decimal so half-day values never drift.
"""
from datetime import date, datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional, Union

from hrcore.core.exceptions import ValidationError
from hrcore.models.leave_request import DayType

DateLike = Union[date, datetime, str]
Number = Union[int, float, str, Decimal]

HALF_DAY = Decimal("0.5")
ZERO = Decimal("0")


def to_decimal(value: Number) -> Decimal:
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        # str() keeps the shortest repr, so 1.1 becomes Decimal("1.1")
        return Decimal(str(value))
    return Decimal(value)


def _coerce_date(value: Optional[DateLike]) -> Optional[date]:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(value[:10])
    except ValueError:
        raise ValidationError(f"Invalid date: {value!r}")


def round_to_half(value: Number) -> Decimal:
    """Round to the nearest 0.5: round(x * 2) / 2, halves rounded up."""
    doubled = to_decimal(value) * 2
    return doubled.quantize(Decimal("1"), rounding=ROUND_HALF_UP) / 2


def completed_months(hire_date: Optional[DateLike], as_of_date: DateLike) -> int:
    """
    Months counted towards this year's entitlement.

    Employees who started after Jan 1 of the as-of year accrue only fully
    completed calendar months (the hire month itself never counts).
    Everyone else, including employees without a recorded hire date,
    accrues every month up to and including the current one.
    """
    as_of = _coerce_date(as_of_date)
    hired = _coerce_date(hire_date)
    year_start = date(as_of.year, 1, 1)

    if hired is not None and hired > year_start:
        if hired > as_of:
            return 0
        return as_of.month - hired.month
    return as_of.month


def prorate(annual_entitlement: Number, hire_date: Optional[DateLike] = None, as_of_date: Optional[DateLike] = None) -> Decimal:
    """
    Entitlement accrued so far this year, in half-day steps.

    >>> prorate(14, date(2020, 6, 15), date(2026, 3, 15))
    Decimal('3.5')
    """
    as_of = _coerce_date(as_of_date) or date.today()
    entitlement = to_decimal(annual_entitlement)
    months = completed_months(hire_date, as_of)
    if months <= 0 or entitlement <= 0:
        return ZERO

    prorated = round_to_half(entitlement * months / 12)
    return min(prorated, entitlement)


def inclusive_days(start: date, end: date) -> int:
    return (end - start).days + 1


def count_leave_days(
    start_date: date,
    end_date: date,
    day_type: Union[DayType, str] = DayType.FULL_DAY,
    half_day_position: Optional[str] = None,
    submitted_days: Optional[Number] = None,
) -> Decimal:
    """
    Days charged for a request.

    Single day: 1, or 0.5 for an AM/PM half day. Multi-day with a half-day
    position ("first"/"last"): inclusive days minus 0.5. Otherwise the
    submitted day count if given, else inclusive calendar days.
    """
    if end_date < start_date:
        raise ValidationError("End date must be on or after start date")

    span = inclusive_days(start_date, end_date)
    day_type = DayType(day_type)

    if span == 1:
        return HALF_DAY if day_type != DayType.FULL_DAY else Decimal("1")

    if half_day_position:
        if half_day_position not in ("first", "last"):
            raise ValidationError("half_day_position must be 'first' or 'last'")
        return round_to_half(span - HALF_DAY)

    if submitted_days is not None:
        days = round_to_half(submitted_days)
        if days < HALF_DAY:
            raise ValidationError("Minimum 0.5 days")
        if days > span:
            raise ValidationError(
                "Submitted days exceed the requested date range",
                details={"submitted": str(days), "calendar_days": span},
            )
        return days

    return Decimal(span)
