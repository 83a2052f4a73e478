import pytest
from datetime import date

from sqlalchemy.exc import IntegrityError

from app.core.config import settings
from app.core.exceptions import (
    EmployeeNotFound,
    InvalidDateRange,
    InvalidStatusTransition,
    PayrollLocked,
    PayrollNotFound,
    PayrollPeriodNotFound,
)
from app.models.payroll import Payroll, PayrollStatus
from app.services import payroll_service

PERIOD_START = date(2024, 3, 26)
PERIOD_END = date(2024, 4, 25)


def test_calculate_and_store_scenario_a(db_session, payroll_engine, scenario_a):
    scenario_a()
    record = payroll_service.calculate_and_store(db_session, payroll_engine, "EMP001", PERIOD_START, PERIOD_END)

    assert record.base_pay == 10000.0
    assert record.total_overtime_pay == 468.75
    assert record.net_payable == 9968.75
    assert record.period_start == PERIOD_START
    assert record.employee_type == "fulltime"


def test_recalculation_overwrites_the_same_row(db_session, payroll_engine, scenario_a):
    scenario_a()
    first = payroll_service.calculate_and_store(db_session, payroll_engine, "EMP001", PERIOD_START, PERIOD_END)
    second = payroll_service.calculate_and_store(db_session, payroll_engine, "EMP001", PERIOD_START, PERIOD_END)

    assert db_session.query(Payroll).count() == 1
    assert second.id == first.id
    assert second.model_dump(exclude={"updated_at"}) == first.model_dump(exclude={"updated_at"})


def test_unknown_employee(db_session, payroll_engine):
    with pytest.raises(EmployeeNotFound):
        payroll_service.calculate_and_store(db_session, payroll_engine, "NOBODY", PERIOD_START, PERIOD_END)


def test_inverted_range(db_session, payroll_engine, scenario_a):
    scenario_a()
    with pytest.raises(InvalidDateRange):
        payroll_service.calculate_payroll(db_session, payroll_engine, "EMP001", PERIOD_END, PERIOD_START)


def test_probation_adjustment_is_persisted(db_session, payroll_engine, scenario_a):
    scenario_a("PRB001", employee_type="probation")
    payroll_service.calculate_and_store(db_session, payroll_engine, "PRB001", PERIOD_START, PERIOD_END)

    record = payroll_service.get_employee_payroll(db_session, "PRB001", PERIOD_START, PERIOD_END)
    assert record.base_pay == 8000.0
    assert record.probation_adjustment is not None
    assert record.probation_adjustment.original_base_pay == 10000.0
    assert record.probation_adjustment.config.base_pay_adjustment_rate == 0.8
    assert record.net_payable == pytest.approx(
        record.base_pay + record.total_overtime_pay + record.total_allowances - record.total_deductions
    )


def test_stored_payroll_round_trips(db_session, payroll_engine, scenario_a):
    scenario_a()
    stored = payroll_service.calculate_and_store(db_session, payroll_engine, "EMP001", PERIOD_START, PERIOD_END)
    record = payroll_service.get_employee_payroll(db_session, "EMP001", PERIOD_START, PERIOD_END)

    assert record.id == stored.id
    assert record.overtime_pay_by_type.workday_outside == 468.75
    assert record.overtime_rates_by_type.workday_outside == 1.5
    assert record.deductions.social_security == 500.0
    assert record.total_absent == 7


def test_missing_payroll_lookup(db_session, payroll_engine, scenario_a):
    with pytest.raises(PayrollPeriodNotFound):
        payroll_service.get_employee_payroll(db_session, "EMP001", PERIOD_START, PERIOD_END)

    scenario_a()
    payroll_service.calculate_and_store(db_session, payroll_engine, "EMP001", PERIOD_START, PERIOD_END)
    with pytest.raises(PayrollPeriodNotFound):
        payroll_service.get_employee_payroll(db_session, "EMP002", PERIOD_START, PERIOD_END)


def test_list_period_payrolls(db_session, payroll_engine, scenario_a):
    scenario_a("EMP001")
    scenario_a("EMP002")
    record = payroll_service.calculate_and_store(db_session, payroll_engine, "EMP002", PERIOD_START, PERIOD_END)
    payroll_service.calculate_and_store(db_session, payroll_engine, "EMP001", PERIOD_START, PERIOD_END)

    records = payroll_service.list_period_payrolls(db_session, record.payroll_period_id)
    assert [r.employee_id for r in records] == ["EMP001", "EMP002"]
    assert len(payroll_service.list_periods(db_session)) == 1

    with pytest.raises(PayrollPeriodNotFound):
        payroll_service.list_period_payrolls(db_session, 999)


def test_validation_flags_negative_net(db_session, payroll_engine, make_employee):
    # No attendance: social security still applies on its minimum base
    make_employee("EMP001")
    result = payroll_service.calculate_payroll(db_session, payroll_engine, "EMP001", PERIOD_START, PERIOD_END)
    validation = payroll_service.validate_payroll_result(result)

    assert result.net_payable == -82.5
    assert validation["valid"] is False
    assert "Negative net payable" in validation["errors"][0]


def _flaky_commit(db_session, monkeypatch, failures):
    real_commit = db_session.commit
    calls = {"count": 0}

    def commit():
        calls["count"] += 1
        if calls["count"] <= failures:
            raise IntegrityError("INSERT INTO payrolls", {}, Exception("UNIQUE constraint failed"))
        real_commit()

    monkeypatch.setattr(db_session, "commit", commit)
    return calls


def test_upsert_retries_on_concurrent_insert(db_session, payroll_engine, scenario_a, monkeypatch):
    scenario_a()
    result = payroll_service.calculate_payroll(db_session, payroll_engine, "EMP001", PERIOD_START, PERIOD_END)
    period = payroll_service.get_or_create_period(db_session, PERIOD_START, PERIOD_END)

    calls = _flaky_commit(db_session, monkeypatch, failures=1)
    payroll = payroll_service.upsert_payroll(db_session, period, result)

    assert calls["count"] == 2
    assert payroll.net_payable == 9968.75
    assert db_session.query(Payroll).count() == 1


def test_upsert_gives_up_after_max_attempts(db_session, payroll_engine, scenario_a, monkeypatch):
    scenario_a()
    result = payroll_service.calculate_payroll(db_session, payroll_engine, "EMP001", PERIOD_START, PERIOD_END)
    period = payroll_service.get_or_create_period(db_session, PERIOD_START, PERIOD_END)

    calls = _flaky_commit(db_session, monkeypatch, failures=100)
    with pytest.raises(IntegrityError):
        payroll_service.upsert_payroll(db_session, period, result)
    assert calls["count"] == settings.upsert_max_attempts


def test_status_moves_through_the_review_lifecycle(db_session, payroll_engine, scenario_a):
    scenario_a()
    record = payroll_service.calculate_and_store(db_session, payroll_engine, "EMP001", PERIOD_START, PERIOD_END)
    assert record.status == "draft"

    for status in ("processing", "completed", "approved", "paid"):
        record = payroll_service.update_payroll_status(db_session, record.id, PayrollStatus(status))
        assert record.status == status


@pytest.mark.parametrize("path,rejected", [
    (("completed", "approved", "paid"), "draft"),
    ((), "paid"),
    ((), "approved"),
    (("completed", "approved"), "draft"),
])
def test_status_skips_are_rejected(db_session, payroll_engine, scenario_a, path, rejected):
    scenario_a()
    record = payroll_service.calculate_and_store(db_session, payroll_engine, "EMP001", PERIOD_START, PERIOD_END)
    for status in path:
        payroll_service.update_payroll_status(db_session, record.id, PayrollStatus(status))

    with pytest.raises(InvalidStatusTransition):
        payroll_service.update_payroll_status(db_session, record.id, PayrollStatus(rejected))


def test_unknown_payroll_status_update(db_session):
    with pytest.raises(PayrollNotFound):
        payroll_service.update_payroll_status(db_session, 999, PayrollStatus.COMPLETED)


@pytest.mark.parametrize("locked", ["approved", "paid"])
def test_recalculation_refuses_locked_payroll(db_session, payroll_engine, scenario_a, locked):
    scenario_a()
    record = payroll_service.calculate_and_store(db_session, payroll_engine, "EMP001", PERIOD_START, PERIOD_END)
    row = db_session.query(Payroll).one()
    row.status = locked
    row.net_payable = 1.0
    db_session.commit()

    with pytest.raises(PayrollLocked) as excinfo:
        payroll_service.calculate_and_store(db_session, payroll_engine, "EMP001", PERIOD_START, PERIOD_END)
    assert excinfo.value.status_code == 409

    db_session.expire_all()
    row = db_session.query(Payroll).one()
    assert row.id == record.id
    assert row.status == locked
    assert row.net_payable == 1.0


def test_recalculation_keeps_an_unlocked_status(db_session, payroll_engine, scenario_a):
    scenario_a()
    record = payroll_service.calculate_and_store(db_session, payroll_engine, "EMP001", PERIOD_START, PERIOD_END)
    payroll_service.update_payroll_status(db_session, record.id, PayrollStatus.COMPLETED)

    again = payroll_service.calculate_and_store(db_session, payroll_engine, "EMP001", PERIOD_START, PERIOD_END)
    assert again.status == "completed"
