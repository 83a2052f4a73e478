"""
Payroll Calculation Engine

Computes one employee's PayrollResult for a period from already-loaded
attendance, leave and overtime inputs. Collaborators are injected:

- day_resolver:    resolve_day(employee_id, date, default_shift_code) -> ResolvedDay
- rate_resolver:   resolve_rates(employee_type) -> ResolvedRates
- overtime_lookup: (employee_id, start, end) -> list of OvertimeRequest

The engine never writes to the database. Probation adjustment is applied
afterwards by the caller (see probation_adjustment).
"""

from collections import defaultdict
from datetime import date
from typing import Callable, Dict, Iterable, List
import logging

from app.core.exceptions import AppException, CalculationFailure
from app.models.employee import Employee, SalaryType
from app.models.leave_request import LeaveRequest
from app.models.overtime_request import OvertimeRequest
from app.models.time_entry import PeriodType, TimeEntry, TimeEntryStatus
from app.schemas.payroll import (
    OVERTIME_BUCKETS,
    AllowanceAmounts,
    DeductionAmounts,
    OvertimeBuckets,
    PayrollResult,
)
from app.schemas.settings import DeductionSettings, ResolvedRates, TaxBracket
from app.services.leave_aggregator import aggregate_leave, iter_dates
from app.services.payroll_periods import validate_range
from app.services.shift_resolver import DayType, ResolvedDay
from app.services.time_classification import (
    DayClassification,
    RoundingPolicy,
    approved_overtime,
    classify_intervals,
)

logger = logging.getLogger(__name__)

OvertimeLookup = Callable[[str, date, date], List[OvertimeRequest]]


def money(value: float) -> float:
    return round(value, 2)


def social_security_contribution(base_pay: float, deductions: DeductionSettings) -> float:
    """Rate applied to base pay clamped into [min base, max base]."""
    base = min(max(base_pay, deductions.social_security_min_base), deductions.social_security_max_base)
    return money(base * deductions.social_security_rate)


def progressive_tax(gross: float, brackets: Iterable[TaxBracket]) -> float:
    tax = 0.0
    for bracket in brackets:
        if gross <= bracket.lower_bound:
            continue
        upper = gross if bracket.upper_bound is None else min(gross, bracket.upper_bound)
        tax += max(0.0, upper - bracket.lower_bound) * bracket.rate
    return money(tax)


def compute_deductions(
    base_pay: float,
    gross_pay: float,
    unpaid_leave_deduction: float,
    rates: ResolvedRates,
) -> DeductionAmounts:
    return DeductionAmounts(
        social_security=social_security_contribution(base_pay, rates.deductions),
        tax=progressive_tax(gross_pay, rates.tax_brackets),
        unpaid_leave_deduction=money(unpaid_leave_deduction),
    )


def regular_hourly_rate(employee: Employee, rates: ResolvedRates) -> float:
    if employee.base_salary is None:
        raise CalculationFailure(
            f"Employee {employee.employee_id} has no base salary configured",
            details={"employee_id": employee.employee_id},
        )
    if (employee.salary_type or SalaryType.MONTHLY.value) == SalaryType.HOURLY.value:
        return float(employee.base_salary)
    return float(employee.base_salary) / rates.rules.standard_monthly_hours


def totals(result: PayrollResult) -> PayrollResult:
    """Fill the derived totals and net payable from the component amounts."""
    result.total_overtime_hours = round(result.overtime_hours_by_type.total(), 4)
    result.total_overtime_pay = money(result.overtime_pay_by_type.total())
    result.total_allowances = money(result.allowances.total())
    result.total_deductions = money(result.deductions.total())
    result.net_payable = money(
        result.base_pay + result.total_overtime_pay + result.total_allowances - result.total_deductions
    )
    return result


class PayrollCalculationEngine:
    def __init__(self, day_resolver, rate_resolver, overtime_lookup: OvertimeLookup):
        self.day_resolver = day_resolver
        self.rate_resolver = rate_resolver
        self.overtime_lookup = overtime_lookup

    def calculate(
        self,
        employee: Employee,
        time_entries: Iterable[TimeEntry],
        leave_requests: Iterable[LeaveRequest],
        period_start: date,
        period_end: date,
    ) -> PayrollResult:
        validate_range(period_start, period_end)
        try:
            return self._calculate(employee, list(time_entries), list(leave_requests), period_start, period_end)
        except AppException:
            raise
        except Exception as e:
            logger.exception(
                "Payroll calculation failed",
                extra={"employee_id": employee.employee_id, "period_start": str(period_start)},
            )
            raise CalculationFailure(
                f"Failed to calculate payroll for {employee.employee_id}: {e}",
                details={"employee_id": employee.employee_id},
            ) from e

    def resolve_days(self, employee: Employee, period_start: date, period_end: date) -> Dict[date, ResolvedDay]:
        return {
            d: self.day_resolver.resolve_day(employee.employee_id, d, employee.shift_code)
            for d in iter_dates(period_start, period_end)
        }

    def classify_attendance(
        self,
        days: Dict[date, ResolvedDay],
        time_entries: List[TimeEntry],
        overtime_requests: List[OvertimeRequest],
        policy: RoundingPolicy,
    ) -> Dict[date, DayClassification]:
        overtime_by_date: Dict[date, List[OvertimeRequest]] = defaultdict(list)
        for request in overtime_requests:
            overtime_by_date[request.date].append(request)

        entries_by_date: Dict[date, List[TimeEntry]] = defaultdict(list)
        for entry in time_entries:
            if entry.date in days and entry.status == TimeEntryStatus.COMPLETED.value:
                entries_by_date[entry.date].append(entry)

        classified = {}
        for on_date, entries in entries_by_date.items():
            day = days[on_date]
            request = approved_overtime(overtime_by_date.get(on_date, []))
            # Punctuality is measured on the regular entries only
            regular = sorted(
                (e for e in entries if e.period_type != PeriodType.OVERTIME.value and e.start_time and e.end_time),
                key=lambda e: e.start_time,
            )
            punctuality = (regular[0].start_time, max(e.end_time for e in regular)) if regular else None
            classified[on_date] = classify_intervals(
                day,
                [(e.start_time, e.end_time) for e in entries],
                request,
                policy,
                punctuality,
                regular[0].actual_minutes_late if regular else None,
            )
        return classified

    def _calculate(
        self,
        employee: Employee,
        time_entries: List[TimeEntry],
        leave_requests: List[LeaveRequest],
        period_start: date,
        period_end: date,
    ) -> PayrollResult:
        rates = self.rate_resolver.resolve_rates(employee.employee_type)
        policy = RoundingPolicy(rates.rules.overtime_minimum_minutes, rates.rules.round_overtime_to)

        days = self.resolve_days(employee, period_start, period_end)
        overtime_requests = self.overtime_lookup(employee.employee_id, period_start, period_end)
        classified = self.classify_attendance(days, time_entries, overtime_requests, policy)

        leave = aggregate_leave(
            leave_requests,
            period_start,
            period_end,
            is_workday=lambda d: days[d].is_workday,
            holiday_dates=[d for d, day in days.items() if day.day_type == DayType.HOLIDAY],
        )

        regular_hours = 0.0
        unpaid_hours = 0.0
        overtime_hours = OvertimeBuckets()
        late_minutes = 0
        early_departures = 0
        present = 0.0
        for on_date, day_result in classified.items():
            regular_hours += day_result.regular_hours
            unpaid_hours += day_result.unpaid_hours
            overtime_hours = overtime_hours.add(day_result.overtime_hours)
            late_minutes += day_result.late_minutes
            early_departures += int(day_result.early_departure)
            if days[on_date].is_workday and day_result.worked_hours > 0:
                present += max(0.0, 1.0 - leave.leave_on(on_date))

        workdays = sum(1 for day in days.values() if day.is_workday)
        hourly_rate = regular_hourly_rate(employee, rates)
        multipliers = rates.overtime_rates

        base_pay = money(hourly_rate * regular_hours)
        overtime_pay = OvertimeBuckets(**{
            b: money(getattr(overtime_hours, b) * hourly_rate * getattr(multipliers, b))
            for b in OVERTIME_BUCKETS
        })
        allowances = AllowanceAmounts(
            transportation=money(rates.allowances.transportation),
            meal=money(rates.allowances.meal_per_day * present),
            housing=money(rates.allowances.housing),
        )
        gross = base_pay + overtime_pay.total() + allowances.total()

        unpaid_leave_deduction = 0.0
        if (employee.salary_type or SalaryType.MONTHLY.value) == SalaryType.MONTHLY.value:
            unpaid_leave_deduction = leave.unpaid_leave_days * hourly_rate * rates.rules.standard_hours_per_day

        result = PayrollResult(
            employee_id=employee.employee_id,
            employee_type=rates.employee_type,
            period_start=period_start,
            period_end=period_end,
            regular_hours=round(regular_hours, 4),
            unpaid_hours=round(unpaid_hours, 4),
            overtime_hours_by_type=OvertimeBuckets(**{
                b: round(getattr(overtime_hours, b), 4) for b in OVERTIME_BUCKETS
            }),
            overtime_rates_by_type=OvertimeBuckets(**multipliers.model_dump()),
            overtime_pay_by_type=overtime_pay,
            base_pay=base_pay,
            regular_hourly_rate=money(hourly_rate),
            allowances=allowances,
            deductions=compute_deductions(base_pay, gross, unpaid_leave_deduction, rates),
            sick_leave_days=leave.days_by_type["sick"],
            business_leave_days=leave.days_by_type["business"],
            annual_leave_days=leave.days_by_type["annual"],
            unpaid_leave_days=leave.unpaid_leave_days,
            holidays=leave.holiday_days,
            total_working_days=present + leave.paid_leave_days + leave.holiday_days,
            total_present=present,
            total_absent=max(0.0, workdays - present - leave.paid_leave_days),
            total_late_minutes=late_minutes,
            early_departures=early_departures,
        )
        totals(result)
        logger.info(
            f"Calculated payroll for {employee.employee_id}: net {result.net_payable}",
            extra={"employee_id": employee.employee_id, "settings_version": rates.settings_version},
        )
        return result
