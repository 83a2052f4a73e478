from datetime import date, datetime
from typing import Dict, List, Optional
from pydantic import Field

from app.models.payroll import PayrollStatus
from app.schemas.settings import CamelModel, ProbationConfig

OVERTIME_BUCKETS = (
    "workday_outside",
    "weekend_inside",
    "weekend_outside",
    "holiday_regular",
    "holiday_overtime",
)


class OvertimeBuckets(CamelModel):
    """One value per overtime bucket (hours, multipliers or pay, depending on use)."""
    workday_outside: float = 0.0
    weekend_inside: float = 0.0
    weekend_outside: float = 0.0
    holiday_regular: float = 0.0
    holiday_overtime: float = 0.0

    def total(self) -> float:
        return sum(getattr(self, b) for b in OVERTIME_BUCKETS)

    def add(self, other: "OvertimeBuckets") -> "OvertimeBuckets":
        return OvertimeBuckets(**{b: getattr(self, b) + getattr(other, b) for b in OVERTIME_BUCKETS})

    def as_dict(self) -> Dict[str, float]:
        return self.model_dump(by_alias=True)


class AllowanceAmounts(CamelModel):
    transportation: float = 0.0
    meal: float = 0.0
    housing: float = 0.0

    def total(self) -> float:
        return self.transportation + self.meal + self.housing


class DeductionAmounts(CamelModel):
    social_security: float = 0.0
    tax: float = 0.0
    unpaid_leave_deduction: float = 0.0

    def total(self) -> float:
        return self.social_security + self.tax + self.unpaid_leave_deduction


class ProbationAdjustmentRecord(CamelModel):
    """Pre-adjustment components kept so the adjustment can be re-applied without compounding."""
    config: ProbationConfig
    original_base_pay: float
    original_overtime_pay_by_type: OvertimeBuckets
    original_allowances: AllowanceAmounts


class PayrollResult(CamelModel):
    employee_id: str
    employee_type: str
    period_start: date
    period_end: date

    regular_hours: float = 0.0
    unpaid_hours: float = 0.0
    overtime_hours_by_type: OvertimeBuckets = Field(default_factory=OvertimeBuckets)
    overtime_rates_by_type: OvertimeBuckets = Field(default_factory=OvertimeBuckets)
    overtime_pay_by_type: OvertimeBuckets = Field(default_factory=OvertimeBuckets)
    total_overtime_hours: float = 0.0
    total_overtime_pay: float = 0.0

    base_pay: float = 0.0
    regular_hourly_rate: float = 0.0
    allowances: AllowanceAmounts = Field(default_factory=AllowanceAmounts)
    total_allowances: float = 0.0
    deductions: DeductionAmounts = Field(default_factory=DeductionAmounts)
    total_deductions: float = 0.0

    sick_leave_days: float = 0.0
    business_leave_days: float = 0.0
    annual_leave_days: float = 0.0
    unpaid_leave_days: float = 0.0
    holidays: float = 0.0
    total_working_days: float = 0.0
    total_present: float = 0.0
    total_absent: float = 0.0
    total_late_minutes: int = 0
    early_departures: int = 0

    net_payable: float = 0.0
    status: str = PayrollStatus.DRAFT.value
    probation_adjustment: Optional[ProbationAdjustmentRecord] = None

    @property
    def gross_pay(self) -> float:
        return self.base_pay + self.total_overtime_pay + self.total_allowances


class PayrollRecord(PayrollResult):
    """A persisted payroll row."""
    id: int
    payroll_period_id: int
    updated_at: Optional[datetime] = None


# --- API payloads ---

class CalculatePayrollRequest(CamelModel):
    employee_id: str
    period_start: date
    period_end: date


class PayrollStatusUpdate(CamelModel):
    status: PayrollStatus


class BatchStartRequest(CamelModel):
    period_year_month: str = Field(pattern=r"^\d{4}-\d{2}$")


class BatchStartResponse(CamelModel):
    session_id: str
    period_year_month: str
    total_employees: int


class BatchStatus(CamelModel):
    session_id: str
    period_year_month: str
    status: str
    total_employees: int
    processed_count: int
    error_count: int = 0
    error: Optional[str] = None


class ProcessingResultSummary(CamelModel):
    employee_id: str
    status: str
    error: Optional[str] = None
    net_payable: Optional[float] = None


class BatchDetail(BatchStatus):
    results: List[ProcessingResultSummary] = Field(default_factory=list)


class PayrollPeriodResponse(CamelModel):
    id: int
    start_date: date
    end_date: date
    status: str
