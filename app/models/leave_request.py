from sqlalchemy import Column, Integer, String, Date, Float, DateTime
from sqlalchemy.orm import validates
from sqlalchemy.sql import func
from app.database import Base
import enum

class LeaveStatus(str, enum.Enum):
    PENDING = "pending"
    APPROVED = "approved"
    DENIED = "denied"

class LeaveType(str, enum.Enum):
    SICK = "sick"
    BUSINESS = "business"
    ANNUAL = "annual"
    UNPAID = "unpaid"

class LeaveFormat(str, enum.Enum):
    FULL_DAY = "full_day"
    HALF_DAY = "half_day"

HALF_DAY_COUNT = 0.5

class LeaveRequest(Base):
    __tablename__ = "leave_requests"

    id = Column(Integer, primary_key=True, index=True)
    employee_id = Column(String, index=True, nullable=False)
    leave_type = Column(String, index=True, nullable=False)
    leave_format = Column(String, default=LeaveFormat.FULL_DAY.value, nullable=False)
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)
    full_day_count = Column(Float, default=0.0)
    reason = Column(String, nullable=True)
    status = Column(String, default=LeaveStatus.PENDING.value)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    @validates("leave_format")
    def _validate_leave_format(self, key, value):
        if value == LeaveFormat.HALF_DAY.value:
            self.full_day_count = HALF_DAY_COUNT
        return value

    @validates("full_day_count")
    def _validate_full_day_count(self, key, value):
        # Half-day requests always count 0.5 whatever their recorded span
        if self.leave_format == LeaveFormat.HALF_DAY.value:
            return HALF_DAY_COUNT
        return value

    @property
    def is_half_day(self) -> bool:
        return self.leave_format == LeaveFormat.HALF_DAY.value
