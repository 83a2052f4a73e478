"""
Effective Shift & Day-Type Resolver

Answers two questions for an employee and a calendar date:
- which shift window is in force (the default assignment, or an approved
  date-specific adjustment), and
- whether the date is a workday, a weekly-off day or a holiday for that shift.

Shift definitions and holidays are read-through cached in the injected
TTLCache; definitions resolve from the cache, then the static catalog of
well-known codes, then the database. Per-employee data (the default shift
and approved adjustments) is read fresh for every resolver instance, so a
reassignment or a newly approved adjustment applies to the next calculation.
"""

from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta
from typing import Dict, FrozenSet, Optional, Tuple
import enum
import logging

from sqlalchemy.orm import Session

from app.core.cache import TTLCache
from app.core.exceptions import ShiftNotAssigned
from app.models.employee import Employee
from app.models.holiday import Holiday
from app.models.shift import Shift, ShiftAdjustmentRequest, ShiftAdjustmentStatus

logger = logging.getLogger(__name__)


class DayType(str, enum.Enum):
    WORKDAY = "workday"
    WEEKLY_OFF = "weeklyOff"
    HOLIDAY = "holiday"


def weekday_index(d: date) -> int:
    """Weekday as stored on shifts: 0 = Sunday ... 6 = Saturday."""
    return (d.weekday() + 1) % 7


def parse_clock(value: str) -> time:
    hours, minutes = value.split(":")[:2]
    return time(int(hours), int(minutes))


@dataclass(frozen=True)
class ShiftWindow:
    shift_code: str
    name: str
    start_time: time
    end_time: time
    work_days: FrozenSet[int]
    holiday_offset_days: int = 0

    @property
    def is_overnight(self) -> bool:
        return self.end_time <= self.start_time

    def bounds(self, on_date: date) -> Tuple[datetime, datetime]:
        start = datetime.combine(on_date, self.start_time)
        end = datetime.combine(on_date, self.end_time)
        if self.is_overnight:
            end += timedelta(days=1)
        return start, end

    def works_on(self, on_date: date) -> bool:
        return weekday_index(on_date) in self.work_days

    @classmethod
    def from_model(cls, shift: Shift) -> "ShiftWindow":
        return cls(
            shift_code=shift.shift_code,
            name=shift.name,
            start_time=parse_clock(shift.start_time),
            end_time=parse_clock(shift.end_time),
            work_days=frozenset(int(d) for d in (shift.work_days or [])),
            holiday_offset_days=shift.holiday_offset_days or 0,
        )


def _catalog_shift(code, name, start, end, work_days, holiday_offset_days=0) -> ShiftWindow:
    return ShiftWindow(code, name, parse_clock(start), parse_clock(end), frozenset(work_days), holiday_offset_days)


# Well-known shift codes, resolved without a database round trip
STATIC_SHIFT_CATALOG: Dict[str, ShiftWindow] = {
    s.shift_code: s
    for s in (
        _catalog_shift("SHIFT101", "Morning 06:00", "06:00", "15:00", [1, 2, 3, 4, 5, 6]),
        _catalog_shift("SHIFT102", "Morning 07:00", "07:00", "16:00", [1, 2, 3, 4, 5, 6]),
        _catalog_shift("SHIFT103", "Regular hours", "08:00", "17:00", [1, 2, 3, 4, 5, 6]),
        # Sunday-to-Friday afternoon shift observes each holiday on the calendar day before it
        _catalog_shift("SHIFT104", "Afternoon 14:00", "14:00", "23:00", [0, 1, 2, 3, 4, 5], holiday_offset_days=-1),
    )
}


@dataclass(frozen=True)
class ResolvedDay:
    date: date
    shift: ShiftWindow
    day_type: DayType
    is_adjusted: bool = False
    holiday_name: Optional[str] = None

    @property
    def is_workday(self) -> bool:
        return self.day_type == DayType.WORKDAY


@dataclass
class _YearCalendar:
    common: Dict[date, str] = field(default_factory=dict)
    by_shift: Dict[str, Dict[date, str]] = field(default_factory=dict)


class HolidayCalendar:
    """Read-only holiday lookup, cached per calendar year."""

    def __init__(self, db: Session, cache: TTLCache, ttl: Optional[float] = None):
        self.db = db
        self.cache = cache
        self.ttl = ttl

    def _year(self, year: int) -> _YearCalendar:
        return self.cache.get_or_set(f"holidays:{year}", lambda: self._load_year(year), self.ttl)

    def _load_year(self, year: int) -> _YearCalendar:
        rows = self.db.query(Holiday).filter(
            Holiday.date >= date(year, 1, 1),
            Holiday.date <= date(year, 12, 31)
        ).all()
        calendar = _YearCalendar()
        for row in rows:
            if row.shift_code:
                calendar.by_shift.setdefault(row.shift_code, {})[row.date] = row.name
            else:
                calendar.common[row.date] = row.name
        logger.debug(f"Loaded {len(rows)} holidays for {year}")
        return calendar

    def holiday_on(self, on_date: date, shift: ShiftWindow) -> Optional[str]:
        """Name of the holiday the shift observes on this date, if any."""
        specific = self._year(on_date.year).by_shift.get(shift.shift_code, {}).get(on_date)
        if specific:
            return specific
        source = on_date - timedelta(days=shift.holiday_offset_days)
        return self._year(source.year).common.get(source)


class EffectiveShiftResolver:
    """
    One instance serves one calculation or batch run. Approved adjustments
    are loaded once per employee and month and memoised on the instance.
    """

    def __init__(
        self,
        db: Session,
        cache: TTLCache,
        holidays: Optional[HolidayCalendar] = None,
        ttl: Optional[float] = None,
    ):
        self.db = db
        self.cache = cache
        self.ttl = ttl
        self.holidays = holidays or HolidayCalendar(db, cache)
        self._adjustments: Dict[Tuple[str, int, int], Dict[date, str]] = {}

    # --- shift definitions ---

    def shift_by_code(self, shift_code: str) -> Optional[ShiftWindow]:
        key = f"shift-def:code:{shift_code}"
        cached = self.cache.get(key)
        if cached is not None:
            return cached
        window = STATIC_SHIFT_CATALOG.get(shift_code)
        if window is None:
            row = self.db.query(Shift).filter(Shift.shift_code == shift_code).first()
            window = ShiftWindow.from_model(row) if row else None
        if window is not None:
            self.cache.set(key, window, self.ttl)
        return window

    def default_shift_code(self, employee_id: str) -> Optional[str]:
        row = self.db.query(Employee.shift_code).filter(Employee.employee_id == employee_id).first()
        return row[0] if row else None

    def _approved_adjustments(self, employee_id: str, on_date: date) -> Dict[date, str]:
        key = (employee_id, on_date.year, on_date.month)
        if key not in self._adjustments:
            first = on_date.replace(day=1)
            last = (first + timedelta(days=32)).replace(day=1) - timedelta(days=1)
            rows = self.db.query(ShiftAdjustmentRequest).filter(
                ShiftAdjustmentRequest.employee_id == employee_id,
                ShiftAdjustmentRequest.date >= first,
                ShiftAdjustmentRequest.date <= last,
                ShiftAdjustmentRequest.status == ShiftAdjustmentStatus.APPROVED.value
            ).order_by(ShiftAdjustmentRequest.id).all()
            # Later approvals win for the same date
            self._adjustments[key] = {
                row.date: row.requested_shift.shift_code for row in rows if row.requested_shift is not None
            }
        return self._adjustments[key]

    def effective_shift(
        self,
        employee_id: str,
        on_date: date,
        default_shift_code: Optional[str] = None,
    ) -> Tuple[Optional[ShiftWindow], bool]:
        adjusted_code = self._approved_adjustments(employee_id, on_date).get(on_date)
        if adjusted_code is not None:
            return self.shift_by_code(adjusted_code), True

        code = default_shift_code or self.default_shift_code(employee_id)
        return (self.shift_by_code(code) if code else None), False

    # --- day type ---

    def resolve_day(
        self,
        employee_id: str,
        on_date: date,
        default_shift_code: Optional[str] = None,
    ) -> ResolvedDay:
        shift, is_adjusted = self.effective_shift(employee_id, on_date, default_shift_code)
        if shift is None:
            raise ShiftNotAssigned(employee_id, on_date.isoformat())

        holiday_name = self.holidays.holiday_on(on_date, shift)
        if holiday_name:
            day_type = DayType.HOLIDAY
        elif not shift.works_on(on_date):
            day_type = DayType.WEEKLY_OFF
        else:
            day_type = DayType.WORKDAY
        return ResolvedDay(on_date, shift, day_type, is_adjusted, holiday_name)
