"""
Caller identification for payroll endpoints.

The caller is identified by the X-Line-UserId header, mapped to an
employee record. Administrative endpoints additionally require an admin role.
"""
import logging
from typing import Optional

from fastapi import Depends, Header
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.exceptions import AccessDeniedError, AuthenticationError
from app.database import get_db
from app.models.employee import Employee

logger = logging.getLogger(__name__)


def get_current_employee(
    line_user_id: Optional[str] = Header(default=None, alias=settings.caller_header),
    db: Session = Depends(get_db)
) -> Employee:
    """
    Resolves the calling employee from the caller header.
    """
    if not line_user_id:
        logger.warning("Authentication failed: missing caller header")
        raise AuthenticationError(f"Missing {settings.caller_header} header")

    employee = db.query(Employee).filter(Employee.line_user_id == line_user_id).first()
    if employee is None:
        logger.warning(f"Authentication failed: unknown caller {line_user_id}")
        raise AuthenticationError("Caller is not a registered employee")
    if not employee.is_active:
        logger.warning(f"Authentication failed: employee {employee.employee_id} is inactive")
        raise AccessDeniedError("Employee is inactive")
    return employee


def require_admin(current_employee: Employee = Depends(get_current_employee)) -> Employee:
    """Admins and super admins only."""
    if not current_employee.is_admin:
        raise AccessDeniedError("Access denied. Administrator role required")
    return current_employee


def check_employee_access(current_employee: Employee, employee_id: str) -> None:
    """Employees may read their own payroll; admins may read anyone's."""
    if current_employee.is_admin or current_employee.employee_id == employee_id:
        return
    raise AccessDeniedError("Access denied. You can only access your own payroll")
