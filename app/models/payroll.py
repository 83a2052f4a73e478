from sqlalchemy import Column, Integer, String, Float, Date, DateTime, ForeignKey, JSON, Text, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from app.database import Base
from datetime import datetime, timezone
import enum
import uuid

class PayrollStatus(str, enum.Enum):
    DRAFT = "draft"
    PROCESSING = "processing"
    COMPLETED = "completed"
    APPROVED = "approved"
    PAID = "paid"

class SessionStatus(str, enum.Enum):
    PROCESSING = "processing"
    COMPLETED = "completed"
    ERROR = "error"

class ResultStatus(str, enum.Enum):
    COMPLETED = "completed"
    SKIPPED = "skipped"  # payroll already approved or paid
    ERROR = "error"

class PayrollPeriod(Base):
    __tablename__ = "payroll_periods"
    __table_args__ = (UniqueConstraint("start_date", "end_date", name="uq_payroll_period_range"),)

    id = Column(Integer, primary_key=True, index=True)
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)
    status = Column(String, default=PayrollStatus.DRAFT.value)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    payrolls = relationship("Payroll", back_populates="payroll_period")

class Payroll(Base):
    """Computed pay for one employee and period. Recalculation overwrites the row until it is approved."""
    __tablename__ = "payrolls"
    __table_args__ = (
        UniqueConstraint("employee_id", "payroll_period_id", name="uq_payroll_employee_period"),
    )

    id = Column(Integer, primary_key=True, index=True)
    employee_id = Column(String, index=True, nullable=False)
    payroll_period_id = Column(Integer, ForeignKey("payroll_periods.id"), nullable=False)

    employee_type = Column(String, nullable=True)  # type the row was calculated under

    # Hours
    regular_hours = Column(Float, default=0.0)
    unpaid_hours = Column(Float, default=0.0)
    overtime_hours_by_type = Column(JSON, nullable=False, default=dict)
    total_overtime_hours = Column(Float, default=0.0)

    # Rates and earnings
    regular_hourly_rate = Column(Float, default=0.0)
    overtime_rates_by_type = Column(JSON, nullable=False, default=dict)
    overtime_pay_by_type = Column(JSON, nullable=False, default=dict)
    total_overtime_pay = Column(Float, default=0.0)
    base_pay = Column(Float, default=0.0)
    allowances = Column(JSON, nullable=False, default=dict)
    total_allowances = Column(Float, default=0.0)

    # Deductions
    deductions = Column(JSON, nullable=False, default=dict)
    total_deductions = Column(Float, default=0.0)

    # Leave and attendance
    sick_leave_days = Column(Float, default=0.0)
    business_leave_days = Column(Float, default=0.0)
    annual_leave_days = Column(Float, default=0.0)
    unpaid_leave_days = Column(Float, default=0.0)
    holidays = Column(Float, default=0.0)
    total_working_days = Column(Float, default=0.0)
    total_present = Column(Float, default=0.0)
    total_absent = Column(Float, default=0.0)
    total_late_minutes = Column(Integer, default=0)
    early_departures = Column(Integer, default=0)

    net_payable = Column(Float, default=0.0)
    probation_adjustment = Column(JSON, nullable=True)  # pre-adjustment amounts for probationers
    status = Column(String, default=PayrollStatus.DRAFT.value)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    payroll_period = relationship("PayrollPeriod", back_populates="payrolls")

class PayrollProcessingSession(Base):
    __tablename__ = "payroll_processing_sessions"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    period_year_month = Column(String(7), index=True, nullable=False)
    status = Column(String, default=SessionStatus.PROCESSING.value, nullable=False)
    total_employees = Column(Integer, default=0, nullable=False)
    processed_count = Column(Integer, default=0, nullable=False)
    employee_ids = Column(JSON, nullable=False, default=list)  # scope captured at start
    error = Column(Text, nullable=True)
    started_by = Column(String, nullable=True)  # employee_id of the admin
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    completed_at = Column(DateTime(timezone=True), nullable=True)

    results = relationship("PayrollProcessingResult", back_populates="session", cascade="all, delete-orphan")

class PayrollProcessingResult(Base):
    __tablename__ = "payroll_processing_results"

    id = Column(Integer, primary_key=True, index=True)
    session_id = Column(String(36), ForeignKey("payroll_processing_sessions.id"), index=True, nullable=False)
    employee_id = Column(String, index=True, nullable=False)
    period_start = Column(Date, nullable=False)
    period_end = Column(Date, nullable=False)
    processed_data = Column(JSON, nullable=True)  # full result snapshot for audit/replay
    status = Column(String, nullable=False)
    error = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    session = relationship("PayrollProcessingSession", back_populates="results")
