from sqlalchemy import Column, Integer, String, Float, Boolean, DateTime
from sqlalchemy.sql import func
from app.database import Base
import enum

class EmployeeType(str, enum.Enum):
    FULLTIME = "fulltime"
    PARTTIME = "parttime"
    PROBATION = "probation"

class SalaryType(str, enum.Enum):
    MONTHLY = "monthly"
    HOURLY = "hourly"

class EmployeeRole(str, enum.Enum):
    EMPLOYEE = "Employee"
    ADMIN = "Admin"
    SUPER_ADMIN = "SuperAdmin"

class Employee(Base):
    """Employee master record. Read-only for the duration of a payroll calculation."""
    __tablename__ = "employees"

    id = Column(Integer, primary_key=True, index=True)
    employee_id = Column(String, unique=True, index=True, nullable=False)
    name = Column(String, nullable=False)
    line_user_id = Column(String, unique=True, index=True, nullable=True)
    role = Column(String, default=EmployeeRole.EMPLOYEE.value, nullable=False)
    department_name = Column(String, nullable=True)

    # Payroll profile
    employee_type = Column(String, nullable=True)  # EmployeeType value
    base_salary = Column(Float, nullable=True)
    salary_type = Column(String, default=SalaryType.MONTHLY.value)
    shift_code = Column(String, nullable=True)

    # Bank info
    bank_name = Column(String, nullable=True)
    bank_account_number = Column(String, nullable=True)

    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    def __repr__(self):
        return f"<Employee {self.employee_id} ({self.employee_type})>"

    @property
    def is_admin(self) -> bool:
        return self.role in (EmployeeRole.ADMIN.value, EmployeeRole.SUPER_ADMIN.value)
