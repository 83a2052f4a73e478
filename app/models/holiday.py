from sqlalchemy import Column, Integer, String, Date, UniqueConstraint
from app.database import Base

class Holiday(Base):
    """
    Holiday calendar entry, consumed read-only by payroll.

    Rows with a shift_code are shift-specific variants: they apply only to
    that shift, on exactly the stored date.
    """
    __tablename__ = "holidays"
    __table_args__ = (UniqueConstraint("date", "shift_code", name="uq_holiday_date_shift"),)

    id = Column(Integer, primary_key=True, index=True)
    date = Column(Date, index=True, nullable=False)
    name = Column(String, nullable=False)
    local_name = Column(String, nullable=True)
    shift_code = Column(String, nullable=True, index=True)
