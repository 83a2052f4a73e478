"""
Payroll Service Layer

This module provides the business logic layer for payroll operations.
It encapsulates all database access around the calculation engine, keeping
the router focused on HTTP request/response handling.

Architecture:
- Router -> Service (this module) -> Engine / Models
- Inputs are loaded here, the engine computes, results are upserted here
- One Payroll row per (employee, period); recalculation overwrites it
  until the row is approved or paid
"""

from datetime import date
from typing import Any, Dict, List, Optional
import logging

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from app.core.config import settings
from app.core.exceptions import (
    AppException,
    CalculationFailure,
    EmployeeNotFound,
    InvalidStatusTransition,
    PayrollLocked,
    PayrollNotFound,
    PayrollPeriodNotFound,
)
from app.models.employee import Employee
from app.models.leave_request import LeaveRequest, LeaveStatus
from app.models.overtime_request import OvertimeRequest
from app.models.payroll import Payroll, PayrollPeriod, PayrollStatus
from app.models.time_entry import TimeEntry
from app.schemas.payroll import (
    AllowanceAmounts,
    DeductionAmounts,
    OvertimeBuckets,
    PayrollRecord,
    PayrollResult,
    ProbationAdjustmentRecord,
)
from app.services.payroll_engine import PayrollCalculationEngine
from app.services.payroll_periods import validate_range
from app.services.probation_adjustment import ProbationAdjustment

logger = logging.getLogger(__name__)

# Reviewed rows are frozen: recalculation refuses to overwrite them
LOCKED_STATUSES = frozenset({PayrollStatus.APPROVED.value, PayrollStatus.PAID.value})

ALLOWED_STATUS_TRANSITIONS: Dict[str, frozenset] = {
    PayrollStatus.DRAFT.value: frozenset({PayrollStatus.PROCESSING.value, PayrollStatus.COMPLETED.value}),
    PayrollStatus.PROCESSING.value: frozenset({PayrollStatus.COMPLETED.value, PayrollStatus.DRAFT.value}),
    PayrollStatus.COMPLETED.value: frozenset({PayrollStatus.APPROVED.value, PayrollStatus.DRAFT.value}),
    PayrollStatus.APPROVED.value: frozenset({PayrollStatus.PAID.value, PayrollStatus.COMPLETED.value}),
    PayrollStatus.PAID.value: frozenset(),
}

# Scalar columns copied verbatim between PayrollResult and Payroll
_SCALAR_FIELDS = (
    "employee_type", "regular_hours", "unpaid_hours", "total_overtime_hours",
    "regular_hourly_rate", "total_overtime_pay", "base_pay", "total_allowances", "total_deductions",
    "sick_leave_days", "business_leave_days", "annual_leave_days", "unpaid_leave_days",
    "holidays", "total_working_days", "total_present", "total_absent",
    "total_late_minutes", "early_departures", "net_payable",
)


# ============================================================================
# INPUT LOADING
# ============================================================================

def get_employee(db: Session, employee_id: str) -> Employee:
    employee = db.query(Employee).filter(Employee.employee_id == employee_id).first()
    if not employee:
        raise EmployeeNotFound(employee_id)
    return employee


def load_time_entries(db: Session, employee_id: str, period_start: date, period_end: date) -> List[TimeEntry]:
    return db.query(TimeEntry).filter(
        TimeEntry.employee_id == employee_id,
        TimeEntry.date >= period_start,
        TimeEntry.date <= period_end
    ).order_by(TimeEntry.date, TimeEntry.start_time).all()


def load_approved_leave(db: Session, employee_id: str, period_start: date, period_end: date) -> List[LeaveRequest]:
    """Approved leave overlapping the period."""
    return db.query(LeaveRequest).filter(
        LeaveRequest.employee_id == employee_id,
        LeaveRequest.status == LeaveStatus.APPROVED.value,
        LeaveRequest.start_date <= period_end,
        LeaveRequest.end_date >= period_start
    ).all()


def overtime_lookup(db: Session):
    def lookup(employee_id: str, period_start: date, period_end: date) -> List[OvertimeRequest]:
        return db.query(OvertimeRequest).filter(
            OvertimeRequest.employee_id == employee_id,
            OvertimeRequest.date >= period_start,
            OvertimeRequest.date <= period_end
        ).order_by(OvertimeRequest.date, OvertimeRequest.id).all()
    return lookup


# ============================================================================
# CALCULATION
# ============================================================================

def calculate_payroll(
    db: Session,
    engine: PayrollCalculationEngine,
    employee_id: str,
    period_start: date,
    period_end: date,
    employee: Optional[Employee] = None,
) -> PayrollResult:
    """
    Calculate (without persisting) one employee's payroll for a period.

    Probationers get the probation adjustment applied on top of the
    engine result.
    """
    validate_range(period_start, period_end)
    employee = employee or get_employee(db, employee_id)

    result = engine.calculate(
        employee,
        load_time_entries(db, employee.employee_id, period_start, period_end),
        load_approved_leave(db, employee.employee_id, period_start, period_end),
        period_start,
        period_end,
    )

    if ProbationAdjustment.applies_to(result.employee_type):
        rates = engine.rate_resolver.resolve_rates(result.employee_type)
        result = ProbationAdjustment(rates).adjust(result, rates.probation)
    return result


def validate_payroll_result(result: PayrollResult) -> Dict[str, Any]:
    """
    Sanity checks run before a batch result is persisted.

    Checks for:
    - Negative net payable
    - Overtime hours that earned no overtime pay
    """
    errors = []
    warnings = []

    if result.net_payable < 0:
        errors.append(
            f"Negative net payable detected: {result.net_payable:.2f}. "
            f"Deductions ({result.total_deductions:.2f}) exceed gross pay ({result.gross_pay:.2f})"
        )

    overtime_waived = (
        result.probation_adjustment is not None
        and not result.probation_adjustment.config.overtime_eligible
    )
    if result.total_overtime_hours > 0 and result.total_overtime_pay <= 0 and not overtime_waived:
        if result.regular_hourly_rate > 0:
            errors.append(
                f"Overtime hours ({result.total_overtime_hours}) recorded without overtime pay"
            )

    if result.total_deductions > result.gross_pay * 0.5 and result.gross_pay > 0:
        warnings.append(f"High deductions: {result.total_deductions:.2f} is more than 50% of gross pay")

    return {
        "valid": len(errors) == 0,
        "errors": errors,
        "warnings": warnings,
        "net_payable": result.net_payable,
    }


# ============================================================================
# PERSISTENCE
# ============================================================================

def get_or_create_period(db: Session, period_start: date, period_end: date) -> PayrollPeriod:
    period = db.query(PayrollPeriod).filter(
        PayrollPeriod.start_date == period_start,
        PayrollPeriod.end_date == period_end
    ).first()
    if period:
        return period

    period = PayrollPeriod(start_date=period_start, end_date=period_end, status=PayrollStatus.DRAFT.value)
    db.add(period)
    try:
        db.commit()
        db.refresh(period)
    except IntegrityError:
        # Created concurrently by another request or batch
        db.rollback()
        period = db.query(PayrollPeriod).filter(
            PayrollPeriod.start_date == period_start,
            PayrollPeriod.end_date == period_end
        ).one()
    return period


def _apply_result(payroll: Payroll, result: PayrollResult) -> None:
    for name in _SCALAR_FIELDS:
        setattr(payroll, name, getattr(result, name))
    payroll.overtime_hours_by_type = result.overtime_hours_by_type.as_dict()
    payroll.overtime_rates_by_type = result.overtime_rates_by_type.as_dict()
    payroll.overtime_pay_by_type = result.overtime_pay_by_type.as_dict()
    payroll.allowances = result.allowances.model_dump(by_alias=True)
    payroll.deductions = result.deductions.model_dump(by_alias=True)
    payroll.probation_adjustment = (
        result.probation_adjustment.model_dump(mode="json", by_alias=True)
        if result.probation_adjustment else None
    )


@retry(
    retry=retry_if_exception_type(IntegrityError),
    stop=stop_after_attempt(settings.upsert_max_attempts),
    wait=wait_exponential(multiplier=0.05, max=1),
    reraise=True,
)
def upsert_payroll(db: Session, period: PayrollPeriod, result: PayrollResult) -> Payroll:
    """
    Insert or overwrite the payroll row for (employee, period).

    Rows that are approved or paid raise PayrollLocked instead of being
    overwritten. A new row starts as draft; an existing row keeps its status.

    A concurrent insert of the same key surfaces as IntegrityError; the
    transaction is rolled back and the write retried, which then takes the
    update path.
    """
    payroll = db.query(Payroll).filter(
        Payroll.employee_id == result.employee_id,
        Payroll.payroll_period_id == period.id
    ).first()
    if payroll is None:
        payroll = Payroll(employee_id=result.employee_id, payroll_period_id=period.id, status=result.status)
        db.add(payroll)
    elif payroll.status in LOCKED_STATUSES:
        raise PayrollLocked(result.employee_id, payroll.status)
    _apply_result(payroll, result)
    try:
        db.commit()
        db.refresh(payroll)
    except IntegrityError:
        db.rollback()
        logger.warning(
            f"Concurrent payroll write for {result.employee_id}, retrying",
            extra={"employee_id": result.employee_id, "payroll_period_id": period.id},
        )
        raise
    except Exception:
        db.rollback()
        raise
    return payroll


def calculate_and_store(
    db: Session,
    engine: PayrollCalculationEngine,
    employee_id: str,
    period_start: date,
    period_end: date,
) -> PayrollRecord:
    """Calculate one employee's payroll and upsert it. Used by the single-employee endpoint."""
    try:
        result = calculate_payroll(db, engine, employee_id, period_start, period_end)
        period = get_or_create_period(db, period_start, period_end)
        payroll = upsert_payroll(db, period, result)
    except AppException:
        raise
    except Exception as e:
        logger.exception(
            "Failed to calculate and store payroll",
            extra={"employee_id": employee_id, "period_start": str(period_start)},
        )
        raise CalculationFailure(
            f"Failed to calculate payroll for {employee_id}",
            details={"employee_id": employee_id},
        ) from e
    return payroll_to_record(payroll)


def locked_status(db: Session, employee_id: str, period: PayrollPeriod) -> Optional[str]:
    """Status of the employee's row for the period when it is approved or paid."""
    row = db.query(Payroll.status).filter(
        Payroll.employee_id == employee_id,
        Payroll.payroll_period_id == period.id
    ).first()
    if row and row[0] in LOCKED_STATUSES:
        return row[0]
    return None


def update_payroll_status(db: Session, payroll_id: int, new_status: PayrollStatus) -> PayrollRecord:
    """Move a stored payroll along draft -> processing -> completed -> approved -> paid."""
    payroll = db.query(Payroll).filter(Payroll.id == payroll_id).first()
    if not payroll:
        raise PayrollNotFound(payroll_id)

    requested = PayrollStatus(new_status).value
    current = payroll.status or PayrollStatus.DRAFT.value
    if requested == current:
        return payroll_to_record(payroll)
    if requested not in ALLOWED_STATUS_TRANSITIONS.get(current, frozenset()):
        raise InvalidStatusTransition(current, requested)

    payroll.status = requested
    try:
        db.commit()
        db.refresh(payroll)
    except Exception:
        db.rollback()
        raise
    logger.info(
        f"Payroll {payroll_id} moved from {current} to {requested}",
        extra={"employee_id": payroll.employee_id, "payroll_period_id": payroll.payroll_period_id},
    )
    return payroll_to_record(payroll)


# ============================================================================
# READS
# ============================================================================

def payroll_to_record(payroll: Payroll) -> PayrollRecord:
    period = payroll.payroll_period
    data = {name: getattr(payroll, name) for name in _SCALAR_FIELDS}
    data = {k: v for k, v in data.items() if v is not None}
    return PayrollRecord(
        id=payroll.id,
        payroll_period_id=payroll.payroll_period_id,
        updated_at=payroll.updated_at,
        employee_id=payroll.employee_id,
        period_start=period.start_date,
        period_end=period.end_date,
        overtime_hours_by_type=OvertimeBuckets.model_validate(payroll.overtime_hours_by_type or {}),
        overtime_rates_by_type=OvertimeBuckets.model_validate(payroll.overtime_rates_by_type or {}),
        overtime_pay_by_type=OvertimeBuckets.model_validate(payroll.overtime_pay_by_type or {}),
        allowances=AllowanceAmounts.model_validate(payroll.allowances or {}),
        deductions=DeductionAmounts.model_validate(payroll.deductions or {}),
        status=payroll.status,
        probation_adjustment=(
            ProbationAdjustmentRecord.model_validate(payroll.probation_adjustment)
            if payroll.probation_adjustment else None
        ),
        **data,
    )


def get_employee_payroll(db: Session, employee_id: str, period_start: date, period_end: date) -> PayrollRecord:
    validate_range(period_start, period_end)
    period = db.query(PayrollPeriod).filter(
        PayrollPeriod.start_date == period_start,
        PayrollPeriod.end_date == period_end
    ).first()
    if not period:
        raise PayrollPeriodNotFound(
            f"No payroll period {period_start.isoformat()} to {period_end.isoformat()}"
        )
    payroll = db.query(Payroll).filter(
        Payroll.employee_id == employee_id,
        Payroll.payroll_period_id == period.id
    ).first()
    if not payroll:
        raise PayrollPeriodNotFound(
            f"No payroll for employee {employee_id} in period {period_start.isoformat()} to {period_end.isoformat()}"
        )
    return payroll_to_record(payroll)


def list_period_payrolls(db: Session, period_id: int) -> List[PayrollRecord]:
    period = db.query(PayrollPeriod).filter(PayrollPeriod.id == period_id).first()
    if not period:
        raise PayrollPeriodNotFound(f"Payroll period {period_id} not found")
    payrolls = db.query(Payroll).filter(
        Payroll.payroll_period_id == period_id
    ).order_by(Payroll.employee_id).all()
    return [payroll_to_record(p) for p in payrolls]


def list_periods(db: Session) -> List[PayrollPeriod]:
    return db.query(PayrollPeriod).order_by(PayrollPeriod.start_date.desc()).all()
