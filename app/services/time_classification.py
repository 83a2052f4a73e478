"""
Time Classification

Turns the intervals worked on one date, its resolved shift and day type, and
at most one approved overtime request into regular hours plus hours in the
five overtime buckets. Pure functions: no database access.

All intervals of the date are merged first and overtime rounding is applied
once per bucket per day, so splitting the same presence across several time
entries does not change the result.

Every worked minute ends up in exactly one of: regular, an overtime bucket,
or unpaid (presence outside an approved overtime window, and minutes lost
to overtime rounding).
"""

from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Iterable, List, Optional, Tuple
import math

from app.models.overtime_request import OvertimeRequest
from app.schemas.payroll import OvertimeBuckets
from app.services.shift_resolver import DayType, ResolvedDay, parse_clock

Interval = Tuple[datetime, datetime]

# (inside-shift bucket, outside-shift bucket) per day type
_BUCKETS_BY_DAY_TYPE = {
    DayType.WORKDAY: (None, "workday_outside"),
    DayType.WEEKLY_OFF: ("weekend_inside", "weekend_outside"),
    DayType.HOLIDAY: ("holiday_regular", "holiday_overtime"),
}


@dataclass(frozen=True)
class RoundingPolicy:
    minimum_minutes: int = 30
    increment_minutes: int = 30

    def apply(self, minutes: float) -> float:
        """Drop overtime below the minimum, then round down to the increment."""
        if minutes <= 0 or minutes < self.minimum_minutes:
            return 0.0
        return float(math.floor(minutes / self.increment_minutes) * self.increment_minutes)


@dataclass
class DayClassification:
    date: date
    day_type: DayType
    worked_hours: float = 0.0
    regular_hours: float = 0.0
    unpaid_hours: float = 0.0
    overtime_hours: OvertimeBuckets = field(default_factory=OvertimeBuckets)
    late_minutes: int = 0
    early_departure: bool = False

    @property
    def classified_hours(self) -> float:
        return self.regular_hours + self.overtime_hours.total() + self.unpaid_hours


def overlap_minutes(a: Interval, b: Interval) -> float:
    start = max(a[0], b[0])
    end = min(a[1], b[1])
    return max(0.0, (end - start).total_seconds() / 60)


def overtime_window(request: OvertimeRequest, on_date: date) -> Interval:
    start = datetime.combine(on_date, parse_clock(request.start_time))
    end = datetime.combine(on_date, parse_clock(request.end_time))
    if end <= start:
        end += timedelta(days=1)
    return start, end


def approved_overtime(requests: Iterable[OvertimeRequest]) -> Optional[OvertimeRequest]:
    """The request that may contribute hours: approved and accepted by the employee."""
    for request in requests:
        if request.counts_toward_pay:
            return request
    return None


def merge_intervals(intervals: Iterable[Interval]) -> List[Interval]:
    """Sorted, non-overlapping union of the valid intervals."""
    merged: List[Interval] = []
    for start, end in sorted(i for i in intervals if i[0] is not None and i[1] is not None and i[1] > i[0]):
        if merged and start <= merged[-1][1]:
            merged[-1] = (merged[-1][0], max(merged[-1][1], end))
        else:
            merged.append((start, end))
    return merged


def _minutes(interval: Interval) -> float:
    return (interval[1] - interval[0]).total_seconds() / 60


def classify_intervals(
    day: ResolvedDay,
    intervals: Iterable[Interval],
    overtime_request: Optional[OvertimeRequest] = None,
    policy: RoundingPolicy = RoundingPolicy(),
    punctuality: Optional[Interval] = None,
    recorded_late_minutes: Optional[int] = None,
) -> DayClassification:
    """
    Classify everything worked on one date.

    `punctuality` is the (first check-in, last check-out) pair that late
    minutes and early departure are measured against; without it the day
    carries neither.
    """
    result = DayClassification(date=day.date, day_type=day.day_type)
    worked = merge_intervals(intervals)
    if not worked:
        return result

    shift_start, shift_end = day.shift.bounds(day.date)
    inside_segments = [
        (max(start, shift_start), min(end, shift_end)) for start, end in worked
        if start < shift_end and end > shift_start
    ]
    outside_segments = [
        seg for start, end in worked
        for seg in ((start, min(end, shift_start)), (max(start, shift_end), end))
        if seg[1] > seg[0]
    ]
    inside_minutes = sum(_minutes(seg) for seg in inside_segments)
    outside_minutes = sum(_minutes(seg) for seg in outside_segments)

    request = overtime_request if overtime_request is not None and overtime_request.counts_toward_pay else None
    window = overtime_window(request, day.date) if request is not None else None

    inside_bucket, outside_bucket = _BUCKETS_BY_DAY_TYPE[day.day_type]
    buckets = {}
    regular_minutes = 0.0
    unpaid_minutes = 0.0

    if inside_bucket is None:
        # Workday: time inside the shift is regular whether or not an overtime window covers it
        regular_minutes = inside_minutes
    else:
        raw = sum(overlap_minutes(seg, window) for seg in inside_segments) if window else 0.0
        paid = policy.apply(raw)
        buckets[inside_bucket] = paid
        unpaid_minutes += inside_minutes - paid

    raw_outside = sum(overlap_minutes(seg, window) for seg in outside_segments) if window else 0.0
    paid_outside = policy.apply(raw_outside)
    buckets[outside_bucket] = paid_outside
    unpaid_minutes += outside_minutes - paid_outside

    result.worked_hours = (inside_minutes + outside_minutes) / 60
    result.regular_hours = regular_minutes / 60
    result.unpaid_hours = unpaid_minutes / 60
    result.overtime_hours = OvertimeBuckets(**{k: v / 60 for k, v in buckets.items()})

    if day.day_type == DayType.WORKDAY and punctuality is not None:
        check_in, check_out = punctuality
        if recorded_late_minutes is not None:
            result.late_minutes = recorded_late_minutes
        elif check_in > shift_start:
            result.late_minutes = int((check_in - shift_start).total_seconds() // 60)
        result.early_departure = check_out < shift_end

    return result


def classify_day(
    day: ResolvedDay,
    check_in: Optional[datetime],
    check_out: Optional[datetime],
    overtime_request: Optional[OvertimeRequest] = None,
    policy: RoundingPolicy = RoundingPolicy(),
    recorded_late_minutes: Optional[int] = None,
) -> DayClassification:
    """Single check-in/check-out pair."""
    if check_in is None or check_out is None or check_out <= check_in:
        return DayClassification(date=day.date, day_type=day.day_type)
    worked = (check_in, check_out)
    return classify_intervals(day, [worked], overtime_request, policy, worked, recorded_late_minutes)
