"""
Leave aggregation for one employee and payroll period.

Only approved leave is consumed. A half-day request counts 0.5 on its start
date; full-day leave counts one day per scheduled workday it covers inside
the period, so weekly-off days and holidays are never charged as leave.
"""

from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Callable, Dict, Iterable, Iterator
import logging

from app.models.leave_request import HALF_DAY_COUNT, LeaveRequest, LeaveStatus, LeaveType

logger = logging.getLogger(__name__)

PAID_LEAVE_TYPES = (LeaveType.SICK, LeaveType.BUSINESS, LeaveType.ANNUAL)


def iter_dates(start: date, end: date) -> Iterator[date]:
    current = start
    while current <= end:
        yield current
        current += timedelta(days=1)


@dataclass
class LeaveSummary:
    paid_leave_days: float = 0.0
    unpaid_leave_days: float = 0.0
    holiday_days: float = 0.0
    days_by_type: Dict[str, float] = field(
        default_factory=lambda: {t.value: 0.0 for t in PAID_LEAVE_TYPES}
    )
    days_by_date: Dict[date, float] = field(default_factory=dict)

    @property
    def total_leave_days(self) -> float:
        return self.paid_leave_days + self.unpaid_leave_days

    def leave_on(self, on_date: date) -> float:
        return min(self.days_by_date.get(on_date, 0.0), 1.0)

    def _add(self, leave_type: LeaveType, on_date: date, days: float) -> None:
        if leave_type == LeaveType.UNPAID:
            self.unpaid_leave_days += days
        else:
            self.paid_leave_days += days
            self.days_by_type[leave_type.value] += days
        self.days_by_date[on_date] = self.days_by_date.get(on_date, 0.0) + days


def aggregate_leave(
    leave_requests: Iterable[LeaveRequest],
    period_start: date,
    period_end: date,
    is_workday: Callable[[date], bool],
    holiday_dates: Iterable[date] = (),
) -> LeaveSummary:
    summary = LeaveSummary()
    summary.holiday_days = float(sum(1 for d in set(holiday_dates) if period_start <= d <= period_end))

    for request in leave_requests:
        if request.status != LeaveStatus.APPROVED.value:
            continue
        # Unknown leave types raise here rather than being counted under a guessed bucket
        leave_type = LeaveType(request.leave_type)

        if request.is_half_day:
            if period_start <= request.start_date <= period_end:
                summary._add(leave_type, request.start_date, HALF_DAY_COUNT)
            continue

        first = max(request.start_date, period_start)
        last = min(request.end_date or request.start_date, period_end)
        for day in iter_dates(first, last):
            if is_workday(day):
                summary._add(leave_type, day, 1.0)

    logger.debug(
        f"Leave summary {period_start}..{period_end}: "
        f"paid={summary.paid_leave_days} unpaid={summary.unpaid_leave_days} holidays={summary.holiday_days}"
    )
    return summary
