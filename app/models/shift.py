from sqlalchemy import Column, Integer, String, Date, DateTime, ForeignKey, JSON
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from app.database import Base
import enum

class ShiftAdjustmentStatus(str, enum.Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"

class Shift(Base):
    __tablename__ = "shifts"

    id = Column(Integer, primary_key=True, index=True)
    shift_code = Column(String, unique=True, index=True, nullable=False)
    name = Column(String, nullable=False)
    start_time = Column(String, nullable=False)  # "HH:MM"
    end_time = Column(String, nullable=False)  # "HH:MM"; <= start_time means overnight
    work_days = Column(JSON, nullable=False)  # weekdays 0-6, 0 = Sunday
    # Days between a calendar holiday and the day this shift observes it (-1 = the day before)
    holiday_offset_days = Column(Integer, default=0, nullable=False)

class ShiftAdjustmentRequest(Base):
    """An approved request overrides the employee's default shift for its own date only."""
    __tablename__ = "shift_adjustment_requests"

    id = Column(Integer, primary_key=True, index=True)
    employee_id = Column(String, index=True, nullable=False)
    date = Column(Date, index=True, nullable=False)
    requested_shift_id = Column(Integer, ForeignKey("shifts.id"), nullable=False)
    status = Column(String, default=ShiftAdjustmentStatus.PENDING.value)
    reason = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    requested_shift = relationship("Shift")
