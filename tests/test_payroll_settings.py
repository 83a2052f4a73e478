import pytest

from app.core.cache import TTLCache
from app.core.exceptions import MissingOvertimeRatesForType, SettingsNotFound
from app.dependencies import ServiceContainer
from app.models.payroll_settings import DEFAULT_SETTINGS_ID, PayrollSettings
from app.schemas.settings import DEFAULT_SETTINGS
from app.services.payroll_settings_service import SETTINGS_CACHE_KEY, PayrollSettingsService


@pytest.fixture
def service(db_session, cache):
    return PayrollSettingsService(db_session, cache)


def stored_row(db_session):
    return db_session.query(PayrollSettings).filter(PayrollSettings.id == DEFAULT_SETTINGS_ID).one()


def test_defaults_are_seeded_on_first_read(db_session, service):
    assert db_session.query(PayrollSettings).count() == 0

    settings = service.get_settings()

    assert settings.version == 1
    assert db_session.query(PayrollSettings).count() == 1
    assert settings.overtime_rates["fulltime"].workday_outside == 1.5
    assert settings.deductions.social_security_min_base == 1650.0


def test_resolve_rates_per_type(service):
    fulltime = service.resolve_rates("fulltime")
    parttime = service.resolve_rates("parttime")

    assert fulltime.overtime_rates.workday_outside == 1.5
    assert fulltime.overtime_rates.holiday_overtime == 3.0
    assert fulltime.allowances.meal_per_day == 0.0
    assert parttime.overtime_rates.weekend_inside == 2.0
    assert parttime.allowances.meal_per_day == 30.0
    assert parttime.rules.payroll_period_start == 26
    assert parttime.settings_version == 1


def test_missing_type_is_reported(db_session, service):
    service.ensure_settings()
    row = stored_row(db_session)
    row.overtime_rates = {k: v for k, v in row.overtime_rates.items() if k != "probation"}
    db_session.commit()

    with pytest.raises(MissingOvertimeRatesForType) as excinfo:
        service.resolve_rates("probation")
    assert excinfo.value.details["employee_type"] == "probation"


def test_unassigned_type_is_reported(service):
    with pytest.raises(MissingOvertimeRatesForType) as excinfo:
        service.resolve_rates(None)
    assert excinfo.value.details["employee_type"] == "unassigned"


def test_invalid_rate_table_affects_only_its_type(db_session, service):
    service.ensure_settings()
    row = stored_row(db_session)
    rates = dict(row.overtime_rates)
    rates["parttime"] = {"workdayOutside": -1}
    row.overtime_rates = rates
    db_session.commit()

    with pytest.raises(MissingOvertimeRatesForType):
        service.resolve_rates("parttime")
    assert service.resolve_rates("fulltime").overtime_rates.workday_outside == 1.5


def test_invalid_document_section_is_rejected(db_session, service):
    service.ensure_settings()
    row = stored_row(db_session)
    row.deductions = {"socialSecurityRate": "lots"}
    db_session.commit()

    with pytest.raises(SettingsNotFound):
        service.resolve_rates("fulltime")


def test_update_bumps_version_and_invalidates_snapshot(service, cache):
    assert service.resolve_rates("fulltime").overtime_rates.workday_outside == 1.5
    assert cache.get(SETTINGS_CACHE_KEY) is not None

    data = DEFAULT_SETTINGS.model_copy(deep=True)
    data.overtime_rates["fulltime"].workday_outside = 2.0
    updated = service.update_settings(data)

    assert updated.version == 2
    assert cache.get(SETTINGS_CACHE_KEY) is None
    rates = service.resolve_rates("fulltime")
    assert rates.overtime_rates.workday_outside == 2.0
    assert rates.settings_version == 2


def test_snapshot_is_served_from_cache(db_session, service):
    service.resolve_rates("fulltime")
    row = stored_row(db_session)
    rates = dict(row.overtime_rates)
    rates["fulltime"] = dict(rates["fulltime"], workdayOutside=9.0)
    row.overtime_rates = rates
    db_session.commit()

    # Direct writes are not seen until the snapshot is dropped
    assert service.resolve_rates("fulltime").overtime_rates.workday_outside == 1.5
    service.invalidate()
    assert service.resolve_rates("fulltime").overtime_rates.workday_outside == 9.0


def test_empty_injected_cache_is_shared(db_session, session_factory):
    shared = TTLCache()
    container = ServiceContainer(session_factory, shared)
    assert container.cache is shared

    service = container.settings_service(db_session)
    assert service.cache is shared
    service.get_snapshot()
    assert shared.get(SETTINGS_CACHE_KEY) is not None
