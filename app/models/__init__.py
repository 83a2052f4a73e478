# Models package
# Importing modules here ensures they are registered with SQLAlchemy Base
from . import (
    employee, shift, holiday, leave_request, overtime_request,
    time_entry, payroll, payroll_settings, notification
)

# Explicit class exports for cleaner imports
from .employee import Employee
from .payroll import Payroll, PayrollPeriod, PayrollProcessingSession, PayrollProcessingResult
from .notification import Notification

__all__ = [
    "Employee",
    "Payroll",
    "PayrollPeriod",
    "PayrollProcessingSession",
    "PayrollProcessingResult",
    "Notification",
]
