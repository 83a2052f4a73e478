from sqlalchemy import Column, Integer, String, Date, Boolean, DateTime
from sqlalchemy.sql import func
from app.database import Base
import enum

class OvertimeStatus(str, enum.Enum):
    PENDING_RESPONSE = "pending_response"  # waiting for the employee to accept
    PENDING = "pending"  # waiting for approval
    APPROVED = "approved"
    REJECTED = "rejected"
    DECLINED_BY_EMPLOYEE = "declined_by_employee"

class EmployeeResponse(str, enum.Enum):
    APPROVE = "approve"
    DECLINE = "decline"

class OvertimeRequest(Base):
    __tablename__ = "overtime_requests"

    id = Column(Integer, primary_key=True, index=True)
    employee_id = Column(String, index=True, nullable=False)
    date = Column(Date, index=True, nullable=False)
    start_time = Column(String, nullable=False)  # "HH:MM"
    end_time = Column(String, nullable=False)  # "HH:MM"; <= start_time means past midnight
    duration_minutes = Column(Integer, nullable=False, default=0)
    is_day_off_overtime = Column(Boolean, default=False)
    is_inside_shift_hours = Column(Boolean, default=False)
    status = Column(String, default=OvertimeStatus.PENDING_RESPONSE.value)
    employee_response = Column(String, nullable=True)
    reason = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    @property
    def counts_toward_pay(self) -> bool:
        """Only approved requests the employee also accepted contribute hours."""
        return (
            self.status == OvertimeStatus.APPROVED.value
            and self.employee_response == EmployeeResponse.APPROVE.value
        )
