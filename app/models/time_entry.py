from sqlalchemy import Column, Integer, String, Date, Float, DateTime, ForeignKey, UniqueConstraint
from app.database import Base
import enum

class TimeEntryStatus(str, enum.Enum):
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"

class PeriodType(str, enum.Enum):
    REGULAR = "regular"
    OVERTIME = "overtime"

class TimeEntry(Base):
    """Check-in/check-out pair for one employee, date and period type."""
    __tablename__ = "time_entries"
    __table_args__ = (
        UniqueConstraint("employee_id", "date", "period_type", name="uq_time_entry_employee_date_period"),
    )

    id = Column(Integer, primary_key=True, index=True)
    employee_id = Column(String, index=True, nullable=False)
    date = Column(Date, index=True, nullable=False)
    period_type = Column(String, default=PeriodType.REGULAR.value, nullable=False)
    start_time = Column(DateTime, nullable=True)  # check-in
    end_time = Column(DateTime, nullable=True)  # check-out
    status = Column(String, default=TimeEntryStatus.IN_PROGRESS.value)
    regular_hours = Column(Float, default=0.0)
    overtime_hours = Column(Float, default=0.0)
    actual_minutes_late = Column(Integer, nullable=True)
    overtime_request_id = Column(Integer, ForeignKey("overtime_requests.id"), nullable=True)
