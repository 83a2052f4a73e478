from typing import Any, Dict, Optional

class AppException(Exception):
    def __init__(
        self,
        message: str,
        status_code: int = 400,
        error_code: str = "BUSINESS_ERROR",
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.status_code = status_code
        self.error_code = error_code
        self.details = details
        super().__init__(self.message)

class EmployeeNotFound(AppException):
    def __init__(self, employee_id: str):
        super().__init__(
            message=f"Employee {employee_id} not found",
            status_code=404,
            error_code="EMPLOYEE_NOT_FOUND",
            details={"employee_id": employee_id}
        )

class SettingsNotFound(AppException):
    def __init__(self, message: str = "Payroll settings not found"):
        super().__init__(
            message=message,
            status_code=404,
            error_code="SETTINGS_NOT_FOUND"
        )

class MissingOvertimeRatesForType(AppException):
    """Settings exist but carry no usable rate table for the employee type."""
    def __init__(self, employee_type: str, reason: Optional[str] = None):
        message = f"Overtime rates not configured for employee type '{employee_type}'"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(
            message=message,
            status_code=422,
            error_code="MISSING_OVERTIME_RATES",
            details={"employee_type": employee_type}
        )

class ShiftNotAssigned(AppException):
    def __init__(self, employee_id: str, on_date: Optional[str] = None):
        message = f"Employee {employee_id} has no resolvable shift"
        if on_date:
            message = f"{message} on {on_date}"
        super().__init__(
            message=message,
            status_code=422,
            error_code="SHIFT_NOT_ASSIGNED",
            details={"employee_id": employee_id, "date": on_date}
        )

class InvalidDateRange(AppException):
    def __init__(self, message: str = "Invalid date range"):
        super().__init__(
            message=message,
            status_code=400,
            error_code="INVALID_DATE_RANGE"
        )

class PayrollPeriodNotFound(AppException):
    def __init__(self, message: str = "Payroll period not found"):
        super().__init__(
            message=message,
            status_code=404,
            error_code="PAYROLL_PERIOD_NOT_FOUND"
        )

class ProcessingSessionNotFound(AppException):
    def __init__(self, session_ref: str):
        super().__init__(
            message=f"Payroll processing session {session_ref} not found",
            status_code=404,
            error_code="SESSION_NOT_FOUND"
        )

class BatchAlreadyRunning(AppException):
    def __init__(self, period_year_month: str, session_id: str):
        super().__init__(
            message=f"A payroll batch for {period_year_month} is already processing",
            status_code=409,
            error_code="BATCH_ALREADY_RUNNING",
            details={"session_id": session_id}
        )

class PayrollNotFound(AppException):
    def __init__(self, payroll_id: int):
        super().__init__(
            message=f"Payroll {payroll_id} not found",
            status_code=404,
            error_code="PAYROLL_NOT_FOUND"
        )

class PayrollLocked(AppException):
    def __init__(self, employee_id: str, status: str):
        super().__init__(
            message=f"Payroll for {employee_id} is {status} and can no longer be recalculated",
            status_code=409,
            error_code="PAYROLL_LOCKED",
            details={"employee_id": employee_id, "status": status}
        )

class InvalidStatusTransition(AppException):
    def __init__(self, current: str, requested: str):
        super().__init__(
            message=f"Cannot move payroll from {current} to {requested}",
            status_code=409,
            error_code="INVALID_STATUS_TRANSITION",
            details={"current": current, "requested": requested}
        )

class CalculationFailure(AppException):
    def __init__(self, message: str = "Failed to calculate payroll", details: Optional[Dict[str, Any]] = None):
        super().__init__(
            message=message,
            status_code=500,
            error_code="CALCULATION_FAILURE",
            details=details
        )

class AuthenticationError(AppException):
    def __init__(self, message: str = "Could not validate credentials"):
        super().__init__(
            message=message,
            status_code=401,
            error_code="AUTH_FAILED"
        )

class AccessDeniedError(AppException):
    """Custom permission error. Named AccessDeniedError to avoid shadowing Python's built-in PermissionError."""
    def __init__(self, message: str = "Insufficient permissions"):
        super().__init__(
            message=message,
            status_code=403,
            error_code="PERMISSION_DENIED"
        )
