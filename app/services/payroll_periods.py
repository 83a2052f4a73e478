"""
Payroll period arithmetic.

A period labelled "YYYY-MM" starts on the configured start day of that month.
It ends on the configured end day: in the same month when the end day is not
before the start day, otherwise in the following month. End days past the
month's length are clamped to its last day. With start 26 and end 25,
"2024-03" covers 2024-03-26 .. 2024-04-25. Without an end day the period
runs to the day before the next start.
"""

from calendar import monthrange
from datetime import date, timedelta
from typing import Optional, Tuple
import re

from app.core.exceptions import InvalidDateRange

_LABEL = re.compile(r"^(\d{4})-(\d{2})$")


def _add_month(year: int, month: int) -> Tuple[int, int]:
    return (year + 1, 1) if month == 12 else (year, month + 1)


def _clamped(year: int, month: int, day: int) -> date:
    return date(year, month, min(day, monthrange(year, month)[1]))


def period_for_year_month(label: str, start_day: int = 26, end_day: Optional[int] = None) -> Tuple[date, date]:
    match = _LABEL.match(label or "")
    if not match:
        raise InvalidDateRange(f"Invalid payroll period '{label}', expected YYYY-MM")
    year, month = int(match.group(1)), int(match.group(2))
    if not 1 <= month <= 12:
        raise InvalidDateRange(f"Invalid payroll period '{label}', month must be 01-12")

    start = _clamped(year, month, start_day)
    next_year, next_month = _add_month(year, month)
    if end_day is None:
        end = _clamped(next_year, next_month, start_day) - timedelta(days=1)
    elif end_day >= start_day:
        end = _clamped(year, month, end_day)
    else:
        end = _clamped(next_year, next_month, end_day)
    return start, end


def validate_range(period_start: date, period_end: date) -> None:
    if period_start > period_end:
        raise InvalidDateRange(
            f"Period start {period_start.isoformat()} is after period end {period_end.isoformat()}"
        )
