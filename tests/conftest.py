import pytest
import os
from datetime import date, datetime, timedelta
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

# Set env before importing app components
os.environ["APP_ENV"] = "testing"
os.environ["DATABASE_URL"] = "sqlite:///:memory:"

from app.core.cache import TTLCache
from app.database import Base, get_db
from app.dependencies import ServiceContainer, get_container
from app.main import app
from app.models.employee import Employee, EmployeeRole, EmployeeType, SalaryType
from app.models.overtime_request import EmployeeResponse, OvertimeRequest, OvertimeStatus
from app.models.time_entry import PeriodType, TimeEntry, TimeEntryStatus
from app.schemas.settings import DEFAULT_SETTINGS, ResolvedAllowances, ResolvedRates
from app.services.shift_resolver import STATIC_SHIFT_CATALOG, DayType, ResolvedDay
from fastapi.testclient import TestClient

# Scenario period used across the suite
PERIOD_START = date(2024, 3, 26)
PERIOD_END = date(2024, 4, 25)

ADMIN_LINE_ID = "U-admin"
STAFF_LINE_ID = "U-staff"


@pytest.fixture(scope="function")
def engine():
    """Fresh in-memory database per test."""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture(scope="function")
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture(scope="function")
def db_session(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture(scope="function")
def cache():
    return TTLCache()


@pytest.fixture(scope="function")
def container(session_factory, cache):
    return ServiceContainer(session_factory, cache)


@pytest.fixture(scope="function")
def payroll_engine(container, db_session):
    """Calculation engine wired the way the application wires it."""
    return container.payroll_engine(db_session)


@pytest.fixture(scope="function")
def client(session_factory, container):
    """TestClient wired to the test database and container via dependency overrides."""
    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_container] = lambda: container
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


# ----------------------------------------------------------------------------
# Data factories
# ----------------------------------------------------------------------------

@pytest.fixture(scope="function")
def make_employee(db_session):
    """Helper fixture creating employees with a payroll profile."""
    def _make_employee(employee_id, **overrides):
        fields = dict(
            employee_id=employee_id,
            name=f"Employee {employee_id}",
            role=EmployeeRole.EMPLOYEE.value,
            employee_type=EmployeeType.FULLTIME.value,
            base_salary=11000.0,
            salary_type=SalaryType.MONTHLY.value,
            shift_code="SHIFT103",
            is_active=True,
        )
        fields.update(overrides)
        employee = Employee(**fields)
        db_session.add(employee)
        db_session.commit()
        return employee
    return _make_employee


@pytest.fixture(scope="function")
def admin(make_employee):
    return make_employee(
        "ADM001", role=EmployeeRole.ADMIN.value, line_user_id=ADMIN_LINE_ID, employee_type=None
    )


@pytest.fixture(scope="function")
def admin_headers(admin):
    return {"X-Line-UserId": ADMIN_LINE_ID}


@pytest.fixture(scope="function")
def staff_headers(make_employee):
    make_employee("EMP900", line_user_id=STAFF_LINE_ID)
    return {"X-Line-UserId": STAFF_LINE_ID}


def scenario_workdays(count=20, start=PERIOD_START):
    """First `count` Monday-to-Saturday dates from start."""
    days = []
    current = start
    while len(days) < count:
        if current.weekday() != 6:
            days.append(current)
        current += timedelta(days=1)
    return days


def entry(employee_id, on_date, start="08:00", end="16:00", period_type=PeriodType.REGULAR.value, **kw):
    start_h, start_m = map(int, start.split(":"))
    end_h, end_m = map(int, end.split(":"))
    check_in = datetime(on_date.year, on_date.month, on_date.day, start_h, start_m)
    check_out = datetime(on_date.year, on_date.month, on_date.day, end_h, end_m)
    if check_out <= check_in:
        check_out += timedelta(days=1)
    return TimeEntry(
        employee_id=employee_id,
        date=on_date,
        period_type=period_type,
        start_time=check_in,
        end_time=check_out,
        status=kw.pop("status", TimeEntryStatus.COMPLETED.value),
        **kw,
    )


def approved_overtime(employee_id, on_date, start, end, **kw):
    return OvertimeRequest(
        employee_id=employee_id,
        date=on_date,
        start_time=start,
        end_time=end,
        status=kw.pop("status", OvertimeStatus.APPROVED.value),
        employee_response=kw.pop("employee_response", EmployeeResponse.APPROVE.value),
        **kw,
    )


@pytest.fixture(scope="function")
def scenario_a(db_session, make_employee):
    """
    Fulltime employee on SHIFT103 (08:00-17:00, Mon-Sat): 20 days of 8h
    regular work plus one approved 5h evening overtime.
    Returns a factory so the employee profile can vary per test.
    """
    def _scenario_a(employee_id="EMP001", **profile):
        employee = make_employee(employee_id, **profile)
        days = scenario_workdays()
        for d in days:
            db_session.add(entry(employee_id, d))
        overtime_day = days[0]
        db_session.add(approved_overtime(employee_id, overtime_day, "17:00", "22:00", duration_minutes=300))
        db_session.add(entry(employee_id, overtime_day, "17:00", "22:00", period_type=PeriodType.OVERTIME.value))
        db_session.commit()
        return employee
    return _scenario_a


# ----------------------------------------------------------------------------
# In-memory collaborators for engine tests
# ----------------------------------------------------------------------------

class FixedDayResolver:
    """Resolves every date against one catalog shift, with optional holidays."""

    def __init__(self, shift_code="SHIFT103", holidays=None):
        self.shift = STATIC_SHIFT_CATALOG[shift_code]
        self.holidays = holidays or {}

    def resolve_day(self, employee_id, on_date, default_shift_code=None):
        if on_date in self.holidays:
            return ResolvedDay(on_date, self.shift, DayType.HOLIDAY, holiday_name=self.holidays[on_date])
        if not self.shift.works_on(on_date):
            return ResolvedDay(on_date, self.shift, DayType.WEEKLY_OFF)
        return ResolvedDay(on_date, self.shift, DayType.WORKDAY)


class DefaultRates:
    """Rate resolver backed by the default settings document."""

    def __init__(self, settings=DEFAULT_SETTINGS):
        self.settings = settings

    def resolve_rates(self, employee_type):
        return ResolvedRates(
            employee_type=employee_type,
            overtime_rates=self.settings.overtime_rates[employee_type],
            allowances=ResolvedAllowances(
                transportation=self.settings.allowances.transportation,
                meal_per_day=getattr(self.settings.allowances.meal, employee_type),
                housing=self.settings.allowances.housing,
            ),
            deductions=self.settings.deductions,
            tax_brackets=self.settings.tax_brackets,
            rules=self.settings.rules,
            probation=self.settings.probation,
        )


@pytest.fixture
def day_resolver():
    return FixedDayResolver()


@pytest.fixture
def rate_resolver():
    return DefaultRates()


@pytest.fixture
def make_day_resolver():
    return FixedDayResolver


@pytest.fixture
def make_entry():
    return entry


@pytest.fixture
def make_overtime():
    return approved_overtime


@pytest.fixture
def workdays():
    return scenario_workdays
