from sqlalchemy import Column, Integer, String, DateTime, JSON
from sqlalchemy.sql import func
from app.database import Base

DEFAULT_SETTINGS_ID = "default-settings"

class PayrollSettings(Base):
    """
    The single current payroll settings document.

    Sub-documents are stored as JSON and validated into typed models by the
    settings service; nothing else reads these columns directly.
    """
    __tablename__ = "payroll_settings"

    id = Column(String, primary_key=True, default=DEFAULT_SETTINGS_ID)
    overtime_rates = Column(JSON, nullable=False)
    allowances = Column(JSON, nullable=False)
    deductions = Column(JSON, nullable=False)
    tax_brackets = Column(JSON, nullable=False)
    rules = Column(JSON, nullable=False)
    probation = Column(JSON, nullable=False)
    version = Column(Integer, default=1, nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
