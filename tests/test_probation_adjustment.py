import pytest
from datetime import date

from app.models.employee import Employee, EmployeeType, SalaryType
from app.models.time_entry import PeriodType
from app.schemas.settings import ProbationConfig
from app.services.payroll_engine import PayrollCalculationEngine
from app.services.probation_adjustment import ProbationAdjustment

PERIOD_START = date(2024, 3, 26)
PERIOD_END = date(2024, 4, 25)


@pytest.fixture
def probation_result(day_resolver, rate_resolver, make_entry, make_overtime, workdays):
    days = workdays()
    entries = [make_entry("PRB001", d) for d in days]
    entries.append(make_entry("PRB001", days[0], "17:00", "22:00", period_type=PeriodType.OVERTIME.value))
    overtime = [make_overtime("PRB001", days[0], "17:00", "22:00")]
    engine = PayrollCalculationEngine(day_resolver, rate_resolver, lambda *args: overtime)
    employee = Employee(
        employee_id="PRB001",
        name="Probationer",
        employee_type=EmployeeType.PROBATION.value,
        base_salary=11000.0,
        salary_type=SalaryType.MONTHLY.value,
        shift_code="SHIFT103",
    )
    return engine.calculate(employee, entries, [], PERIOD_START, PERIOD_END)


@pytest.fixture
def adjustment(rate_resolver):
    return ProbationAdjustment(rate_resolver.resolve_rates(EmployeeType.PROBATION.value))


def test_scenario_b(probation_result, adjustment):
    assert probation_result.base_pay == 10000.0
    assert probation_result.total_overtime_pay == 468.75

    config = ProbationConfig(base_pay_adjustment_rate=0.9, overtime_eligible=True)
    adjusted = adjustment.adjust(probation_result, config)

    assert adjusted.base_pay == 9000.0
    assert adjusted.total_overtime_pay == 468.75
    assert adjusted.deductions.social_security == 450.0
    assert adjusted.net_payable == pytest.approx(9000.0 + 468.75 - 450.0)
    assert adjusted.probation_adjustment.original_base_pay == 10000.0


def test_adjustment_is_idempotent(probation_result, adjustment):
    config = ProbationConfig(base_pay_adjustment_rate=0.9)
    once = adjustment.adjust(probation_result, config)
    twice = adjustment.adjust(once, config)

    assert twice.base_pay == 9000.0
    assert twice.model_dump() == once.model_dump()


def test_ineligible_components_are_zeroed(probation_result, adjustment):
    config = ProbationConfig(base_pay_adjustment_rate=0.8, overtime_eligible=False, allowances_eligible=False)
    adjusted = adjustment.adjust(probation_result, config)

    assert adjusted.base_pay == 8000.0
    assert adjusted.total_overtime_pay == 0
    assert adjusted.overtime_pay_by_type.workday_outside == 0
    assert adjusted.total_allowances == 0
    # Hours stay as worked; only pay is waived
    assert adjusted.total_overtime_hours == pytest.approx(5.0)
    assert adjusted.net_payable == pytest.approx(
        adjusted.base_pay + adjusted.total_overtime_pay + adjusted.total_allowances - adjusted.total_deductions
    )


def test_reapplying_with_new_config_starts_from_original(probation_result, adjustment):
    first = adjustment.adjust(probation_result, ProbationConfig(base_pay_adjustment_rate=0.5))
    second = adjustment.adjust(first, ProbationConfig(base_pay_adjustment_rate=0.9))
    assert second.base_pay == 9000.0


def test_applies_only_to_probation():
    assert ProbationAdjustment.applies_to("probation")
    assert not ProbationAdjustment.applies_to("fulltime")
