"""
Payroll Router

Handles HTTP endpoints for payroll calculation and batch processing.
All business logic is delegated to the payroll service layer and the
batch orchestrator; every response uses the {success, data, meta} envelope.
"""

from datetime import date

from fastapi import APIRouter, BackgroundTasks, Depends, Query, status
from fastapi.responses import StreamingResponse
from sqlalchemy.orm import Session

from app.core.schemas import ApiResponse
from app.database import get_db
from app.dependencies import ServiceContainer, get_container
from app.models.employee import Employee
from app.routers.auth_deps import check_employee_access, get_current_employee, require_admin
from app.schemas.payroll import (
    BatchStartRequest,
    BatchStartResponse,
    CalculatePayrollRequest,
    PayrollPeriodResponse,
    PayrollStatusUpdate,
)
from app.services import payroll_service

router = APIRouter(
    prefix="/payroll",
    tags=["payroll"],
)


def _ok(data, **meta):
    return ApiResponse.ok(data, meta).to_dict()


# ----------------------------------------------------------------------------
# Single-employee calculation
# ----------------------------------------------------------------------------

@router.post("/calculate")
def calculate_payroll(
    request: CalculatePayrollRequest,
    db: Session = Depends(get_db),
    container: ServiceContainer = Depends(get_container),
    current_employee: Employee = Depends(require_admin)
):
    """
    Calculate and store payroll for one employee and period.
    Recalculating the same period overwrites the stored result.
    Approved or paid payrolls are locked and answer 409.
    """
    record = payroll_service.calculate_and_store(
        db,
        container.payroll_engine(db),
        request.employee_id,
        request.period_start,
        request.period_end,
    )
    return _ok(record.model_dump(by_alias=True, mode="json"))


# ----------------------------------------------------------------------------
# Payroll status
# ----------------------------------------------------------------------------

@router.patch("/records/{payroll_id}/status")
def update_payroll_status(
    payroll_id: int,
    request: PayrollStatusUpdate,
    db: Session = Depends(get_db),
    current_employee: Employee = Depends(require_admin)
):
    """Move a stored payroll to its next review status."""
    record = payroll_service.update_payroll_status(db, payroll_id, request.status)
    return _ok(record.model_dump(by_alias=True, mode="json"))


# ----------------------------------------------------------------------------
# Periods
# ----------------------------------------------------------------------------

@router.get("/periods")
def list_periods(
    db: Session = Depends(get_db),
    current_employee: Employee = Depends(require_admin)
):
    periods = payroll_service.list_periods(db)
    data = [PayrollPeriodResponse.model_validate(p, from_attributes=True).model_dump(by_alias=True, mode="json")
            for p in periods]
    return _ok(data, count=len(data))


@router.get("/periods/{period_id}/payrolls")
def list_period_payrolls(
    period_id: int,
    db: Session = Depends(get_db),
    current_employee: Employee = Depends(require_admin)
):
    records = payroll_service.list_period_payrolls(db, period_id)
    return _ok([r.model_dump(by_alias=True, mode="json") for r in records], count=len(records))


# ----------------------------------------------------------------------------
# Batch processing
# ----------------------------------------------------------------------------

@router.post("/batch", status_code=status.HTTP_202_ACCEPTED)
def start_batch(
    request: BatchStartRequest,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    container: ServiceContainer = Depends(get_container),
    current_employee: Employee = Depends(require_admin)
):
    """
    Start a payroll batch for a period ("YYYY-MM"). Processing runs in the
    background; poll the batch status or subscribe to its event stream.
    """
    session = container.batch.start_batch(db, request.period_year_month, current_employee.employee_id)
    background_tasks.add_task(container.batch.process_session, session.id)
    data = BatchStartResponse(
        session_id=session.id,
        period_year_month=session.period_year_month,
        total_employees=session.total_employees,
    )
    return _ok(data.model_dump(by_alias=True, mode="json"))


@router.get("/batch/period/{period_year_month}")
def get_latest_batch_for_period(
    period_year_month: str,
    db: Session = Depends(get_db),
    container: ServiceContainer = Depends(get_container),
    current_employee: Employee = Depends(require_admin)
):
    status_ = container.batch.get_latest_for_period(db, period_year_month)
    return _ok(status_.model_dump(by_alias=True, mode="json"))


@router.get("/batch/{session_id}")
def get_batch(
    session_id: str,
    db: Session = Depends(get_db),
    container: ServiceContainer = Depends(get_container),
    current_employee: Employee = Depends(require_admin)
):
    detail = container.batch.get_detail(db, session_id)
    return _ok(detail.model_dump(by_alias=True, mode="json"))


@router.get("/batch/{session_id}/events")
def stream_batch_events(
    session_id: str,
    db: Session = Depends(get_db),
    container: ServiceContainer = Depends(get_container),
    current_employee: Employee = Depends(require_admin)
):
    """Server-sent progress events until the batch reaches a terminal status."""
    stream = container.batch.stream_status(db, session_id)
    return StreamingResponse(
        stream,
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )


@router.post("/batch/{session_id}/reset")
def reset_batch(
    session_id: str,
    db: Session = Depends(get_db),
    container: ServiceContainer = Depends(get_container),
    current_employee: Employee = Depends(require_admin)
):
    status_ = container.batch.reset_session(db, session_id)
    return _ok(status_.model_dump(by_alias=True, mode="json"))


# ----------------------------------------------------------------------------
# Cache
# ----------------------------------------------------------------------------

@router.post("/cache/clear")
def clear_cache(
    container: ServiceContainer = Depends(get_container),
    current_employee: Employee = Depends(require_admin)
):
    """Drop cached shifts, holidays and settings snapshots."""
    cleared = container.clear_caches()
    return _ok({"cleared": cleared})


# ----------------------------------------------------------------------------
# Stored payroll lookup (keep last: the path parameter matches any segment)
# ----------------------------------------------------------------------------

@router.get("/{employee_id}")
def get_employee_payroll(
    employee_id: str,
    period_start: date = Query(..., alias="periodStart"),
    period_end: date = Query(..., alias="periodEnd"),
    db: Session = Depends(get_db),
    current_employee: Employee = Depends(get_current_employee)
):
    """
    Get the stored payroll of an employee for a period.
    Employees can read their own payroll; admins can read anyone's.
    """
    check_employee_access(current_employee, employee_id)
    record = payroll_service.get_employee_payroll(db, employee_id, period_start, period_end)
    return _ok(record.model_dump(by_alias=True, mode="json"))
