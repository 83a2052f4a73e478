from typing import Dict, List, Optional
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from app.models.employee import EmployeeType

EMPLOYEE_TYPES = tuple(t.value for t in EmployeeType)


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class OvertimeMultipliers(CamelModel):
    """Pay multipliers applied to the regular hourly rate, one per overtime bucket."""
    workday_outside: float = Field(ge=0)
    weekend_inside: float = Field(ge=0)
    weekend_outside: float = Field(ge=0)
    holiday_regular: float = Field(ge=0)
    holiday_overtime: float = Field(ge=0)


class MealAllowances(CamelModel):
    fulltime: float = Field(default=0.0, ge=0)
    parttime: float = Field(default=0.0, ge=0)
    probation: float = Field(default=0.0, ge=0)


class AllowanceSettings(CamelModel):
    transportation: float = Field(default=0.0, ge=0)
    meal: MealAllowances = Field(default_factory=MealAllowances)  # per present day
    housing: float = Field(default=0.0, ge=0)


class DeductionSettings(CamelModel):
    social_security_rate: float = Field(ge=0, le=1)
    social_security_min_base: float = Field(ge=0)
    social_security_max_base: float = Field(ge=0)

    @model_validator(mode="after")
    def _check_bounds(self):
        if self.social_security_min_base > self.social_security_max_base:
            raise ValueError("socialSecurityMinBase must not exceed socialSecurityMaxBase")
        return self


class TaxBracket(CamelModel):
    """Marginal rate applied to gross pay above lower_bound (and up to upper_bound)."""
    lower_bound: float = Field(ge=0)
    upper_bound: Optional[float] = None
    rate: float = Field(ge=0, le=1)


class PayrollRules(CamelModel):
    payroll_period_start: int = Field(default=26, ge=1, le=28)
    payroll_period_end: int = Field(default=25, ge=1, le=31)
    overtime_minimum_minutes: int = Field(default=30, ge=0)
    round_overtime_to: int = Field(default=30, ge=1)
    standard_monthly_hours: float = Field(default=176.0, gt=0)
    standard_hours_per_day: float = Field(default=8.0, gt=0)


class ProbationConfig(CamelModel):
    base_pay_adjustment_rate: float = Field(default=0.8, ge=0, le=1)
    overtime_eligible: bool = True
    allowances_eligible: bool = True


class PayrollSettingsData(CamelModel):
    """Settings document as accepted by the settings API."""
    overtime_rates: Dict[str, OvertimeMultipliers]
    allowances: AllowanceSettings = Field(default_factory=AllowanceSettings)
    deductions: DeductionSettings
    tax_brackets: List[TaxBracket] = Field(default_factory=list)
    rules: PayrollRules = Field(default_factory=PayrollRules)
    probation: ProbationConfig = Field(default_factory=ProbationConfig)

    @field_validator("overtime_rates")
    @classmethod
    def _known_types(cls, value: Dict[str, OvertimeMultipliers]):
        unknown = sorted(set(value) - set(EMPLOYEE_TYPES))
        if unknown:
            raise ValueError(f"Unknown employee types: {', '.join(unknown)}")
        return value

    @field_validator("tax_brackets")
    @classmethod
    def _sorted_brackets(cls, value: List[TaxBracket]):
        return sorted(value, key=lambda b: b.lower_bound)


class PayrollSettingsResponse(PayrollSettingsData):
    version: int


class ResolvedAllowances(CamelModel):
    transportation: float = 0.0
    meal_per_day: float = 0.0
    housing: float = 0.0


class ResolvedRates(CamelModel):
    """Typed settings snapshot for one employee type."""
    employee_type: str
    overtime_rates: OvertimeMultipliers
    allowances: ResolvedAllowances
    deductions: DeductionSettings
    tax_brackets: List[TaxBracket]
    rules: PayrollRules
    probation: ProbationConfig
    settings_version: int = 1


DEFAULT_SETTINGS = PayrollSettingsData(
    overtime_rates={
        EmployeeType.FULLTIME.value: OvertimeMultipliers(
            workday_outside=1.5, weekend_inside=1.0, weekend_outside=3.0,
            holiday_regular=1.0, holiday_overtime=3.0,
        ),
        EmployeeType.PARTTIME.value: OvertimeMultipliers(
            workday_outside=1.5, weekend_inside=2.0, weekend_outside=3.0,
            holiday_regular=2.0, holiday_overtime=3.0,
        ),
        EmployeeType.PROBATION.value: OvertimeMultipliers(
            workday_outside=1.5, weekend_inside=1.0, weekend_outside=3.0,
            holiday_regular=1.0, holiday_overtime=3.0,
        ),
    },
    allowances=AllowanceSettings(
        transportation=0.0,
        meal=MealAllowances(fulltime=0.0, parttime=30.0, probation=0.0),
        housing=0.0,
    ),
    deductions=DeductionSettings(
        social_security_rate=0.05,
        social_security_min_base=1650.0,
        social_security_max_base=15000.0,
    ),
    tax_brackets=[
        TaxBracket(lower_bound=20000.0, upper_bound=30000.0, rate=0.05),
        TaxBracket(lower_bound=30000.0, upper_bound=50000.0, rate=0.10),
        TaxBracket(lower_bound=50000.0, upper_bound=None, rate=0.15),
    ],
    rules=PayrollRules(),
    probation=ProbationConfig(),
)
