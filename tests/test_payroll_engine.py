import pytest
from datetime import date

from app.core.exceptions import CalculationFailure, InvalidDateRange
from app.models.employee import Employee, EmployeeType, SalaryType
from app.models.leave_request import LeaveFormat, LeaveRequest, LeaveStatus, LeaveType
from app.models.time_entry import PeriodType
from app.schemas.settings import DEFAULT_SETTINGS
from app.services.payroll_engine import (
    PayrollCalculationEngine,
    progressive_tax,
    social_security_contribution,
)

PERIOD_START = date(2024, 3, 26)
PERIOD_END = date(2024, 4, 25)


def employee(**overrides):
    fields = dict(
        employee_id="EMP001",
        name="Scenario",
        employee_type=EmployeeType.FULLTIME.value,
        base_salary=11000.0,
        salary_type=SalaryType.MONTHLY.value,
        shift_code="SHIFT103",
    )
    fields.update(overrides)
    return Employee(**fields)


@pytest.fixture
def scenario_inputs(make_entry, make_overtime, workdays):
    days = workdays()
    entries = [make_entry("EMP001", d) for d in days]
    entries.append(make_entry("EMP001", days[0], "17:00", "22:00", period_type=PeriodType.OVERTIME.value))
    overtime = [make_overtime("EMP001", days[0], "17:00", "22:00", duration_minutes=300)]
    return days, entries, overtime


@pytest.fixture
def engine_for(day_resolver, rate_resolver):
    def _engine_for(overtime_requests=(), resolver=None):
        return PayrollCalculationEngine(
            resolver or day_resolver,
            rate_resolver,
            lambda employee_id, start, end: list(overtime_requests),
        )
    return _engine_for


def assert_net_identity(result):
    expected = result.base_pay + result.total_overtime_pay + result.total_allowances - result.total_deductions
    assert result.net_payable == pytest.approx(expected, abs=0.01)


def test_scenario_a_fulltime_monthly(engine_for, scenario_inputs):
    _, entries, overtime = scenario_inputs
    result = engine_for(overtime).calculate(employee(), entries, [], PERIOD_START, PERIOD_END)

    assert result.regular_hours == pytest.approx(160.0)
    assert result.regular_hourly_rate == 62.5
    assert result.base_pay == 10000.00
    assert result.overtime_hours_by_type.workday_outside == pytest.approx(5.0)
    assert result.overtime_rates_by_type.workday_outside == 1.5
    assert result.overtime_pay_by_type.workday_outside == 468.75
    assert result.total_overtime_pay == 468.75
    assert result.overtime_pay_by_type.weekend_inside == 0
    assert result.overtime_pay_by_type.holiday_overtime == 0

    assert result.total_present == 20
    assert result.total_working_days == 20
    # 27 Monday-to-Saturday dates in the period
    assert result.total_absent == 7
    assert result.early_departures == 20
    assert result.total_late_minutes == 0

    assert result.deductions.social_security == 500.0
    assert result.deductions.tax == 0
    assert result.net_payable == 9968.75
    assert result.status == "draft"
    assert_net_identity(result)


def test_scenario_a_hourly_rate(engine_for, scenario_inputs):
    _, entries, overtime = scenario_inputs
    result = engine_for(overtime).calculate(
        employee(base_salary=62.5, salary_type=SalaryType.HOURLY.value),
        entries, [], PERIOD_START, PERIOD_END,
    )

    assert result.regular_hourly_rate == 62.5
    assert result.base_pay == 10000.00
    assert result.total_overtime_pay == 468.75


def test_unapproved_overtime_earns_nothing(engine_for, scenario_inputs, make_overtime, workdays):
    _, entries, _ = scenario_inputs
    pending = [make_overtime("EMP001", workdays()[0], "17:00", "22:00", status="pending")]
    result = engine_for(pending).calculate(employee(), entries, [], PERIOD_START, PERIOD_END)

    assert result.total_overtime_hours == 0
    assert result.total_overtime_pay == 0
    assert result.unpaid_hours == pytest.approx(5.0)


def test_holiday_work_is_paid_in_holiday_buckets(engine_for, make_day_resolver, make_entry, make_overtime):
    holiday = date(2024, 4, 2)
    resolver = make_day_resolver(holidays={holiday: "Test Holiday"})
    entries = [make_entry("EMP001", holiday, "08:00", "17:00")]
    overtime = [make_overtime("EMP001", holiday, "08:00", "17:00")]
    result = engine_for(overtime, resolver).calculate(employee(), entries, [], PERIOD_START, PERIOD_END)

    assert result.holidays == 1
    assert result.regular_hours == 0
    assert result.overtime_hours_by_type.holiday_regular == pytest.approx(9.0)
    assert result.overtime_pay_by_type.holiday_regular == 562.5


def test_leave_feeds_attendance_and_unpaid_deduction(engine_for, make_entry, workdays):
    days = workdays(3)
    entries = [make_entry("EMP001", d) for d in days]
    leave_requests = [
        LeaveRequest(employee_id="EMP001", leave_type=LeaveType.SICK.value,
                     leave_format=LeaveFormat.HALF_DAY.value, start_date=days[0], end_date=days[0],
                     status=LeaveStatus.APPROVED.value),
        LeaveRequest(employee_id="EMP001", leave_type=LeaveType.UNPAID.value,
                     leave_format=LeaveFormat.FULL_DAY.value, start_date=date(2024, 4, 10),
                     end_date=date(2024, 4, 10), status=LeaveStatus.APPROVED.value),
    ]
    result = engine_for().calculate(employee(), entries, leave_requests, PERIOD_START, PERIOD_END)

    assert result.total_present == 2.5
    assert result.sick_leave_days == 0.5
    assert result.unpaid_leave_days == 1
    # one day at 62.5/h x 8h
    assert result.deductions.unpaid_leave_deduction == 500.0
    assert_net_identity(result)


def test_hourly_employee_has_no_unpaid_leave_deduction(engine_for):
    leave_requests = [
        LeaveRequest(employee_id="EMP001", leave_type=LeaveType.UNPAID.value,
                     leave_format=LeaveFormat.FULL_DAY.value, start_date=date(2024, 4, 10),
                     end_date=date(2024, 4, 11), status=LeaveStatus.APPROVED.value),
    ]
    result = engine_for().calculate(
        employee(base_salary=62.5, salary_type=SalaryType.HOURLY.value),
        [], leave_requests, PERIOD_START, PERIOD_END,
    )
    assert result.unpaid_leave_days == 2
    assert result.deductions.unpaid_leave_deduction == 0


def test_parttime_meal_allowance_per_present_day(engine_for, make_entry, workdays):
    entries = [make_entry("EMP001", d) for d in workdays(10)]
    result = engine_for().calculate(
        employee(employee_type=EmployeeType.PARTTIME.value), entries, [], PERIOD_START, PERIOD_END,
    )
    assert result.allowances.meal == 300.0
    assert result.total_allowances == 300.0
    assert_net_identity(result)


def test_inverted_period_is_rejected(engine_for):
    with pytest.raises(InvalidDateRange):
        engine_for().calculate(employee(), [], [], PERIOD_END, PERIOD_START)


def test_missing_base_salary_is_surfaced(engine_for):
    with pytest.raises(CalculationFailure):
        engine_for().calculate(employee(base_salary=None), [], [], PERIOD_START, PERIOD_END)


def test_social_security_is_clamped():
    deductions = DEFAULT_SETTINGS.deductions
    assert social_security_contribution(1000, deductions) == 82.5
    assert social_security_contribution(20000, deductions) == 750.0
    assert social_security_contribution(10000, deductions) == 500.0


@pytest.mark.parametrize("gross,expected", [
    (15000, 0.0),
    (25000, 250.0),
    (40000, 1500.0),
    (60000, 4000.0),
])
def test_progressive_tax(gross, expected):
    assert progressive_tax(gross, DEFAULT_SETTINGS.tax_brackets) == expected


def test_high_earner_pays_tax(engine_for, scenario_inputs):
    _, entries, overtime = scenario_inputs
    result = engine_for(overtime).calculate(
        employee(base_salary=44000.0), entries, [], PERIOD_START, PERIOD_END,
    )
    # 250/h: base 40000, overtime 5 x 250 x 1.5
    assert result.base_pay == 40000.0
    assert result.total_overtime_pay == 1875.0
    assert result.deductions.tax == progressive_tax(41875.0, DEFAULT_SETTINGS.tax_brackets)
    assert result.deductions.social_security == 750.0
    assert_net_identity(result)


def test_split_entries_are_classified_as_one_day(engine_for, make_entry, make_overtime):
    day = date(2024, 3, 26)
    entries = [
        make_entry("EMP001", day, "08:10", "12:00"),
        make_entry("EMP001", day, "13:00", "17:00"),
        make_entry("EMP001", day, "17:00", "17:20", period_type=PeriodType.OVERTIME.value),
        make_entry("EMP001", day, "17:20", "18:00", period_type=PeriodType.OVERTIME.value),
    ]
    overtime = [make_overtime("EMP001", day, "17:00", "18:00", duration_minutes=60)]

    result = engine_for(overtime).calculate(employee(), entries, [], PERIOD_START, PERIOD_END)

    assert result.overtime_hours_by_type.workday_outside == 1.0
    assert result.total_late_minutes == 10
    assert result.early_departures == 0
    assert_net_identity(result)
