"""
Probation adjustment.

Scales base pay by the configured rate and drops overtime pay and allowances
when probationers are not eligible for them, then recomputes deductions and
net payable. The pre-adjustment amounts are kept on the result, so applying
the adjustment again starts from them and yields the same output.
"""

import logging

from app.models.employee import EmployeeType
from app.schemas.payroll import AllowanceAmounts, OvertimeBuckets, PayrollResult, ProbationAdjustmentRecord
from app.schemas.settings import ProbationConfig, ResolvedRates
from app.services.payroll_engine import compute_deductions, money, totals

logger = logging.getLogger(__name__)


class ProbationAdjustment:
    def __init__(self, rates: ResolvedRates):
        self.rates = rates

    @staticmethod
    def applies_to(employee_type: str) -> bool:
        return employee_type == EmployeeType.PROBATION.value

    def adjust(self, result: PayrollResult, config: ProbationConfig = None) -> PayrollResult:
        config = config or self.rates.probation
        record = result.probation_adjustment or ProbationAdjustmentRecord(
            config=config,
            original_base_pay=result.base_pay,
            original_overtime_pay_by_type=result.overtime_pay_by_type,
            original_allowances=result.allowances,
        )
        record = record.model_copy(update={"config": config})

        base_pay = money(record.original_base_pay * config.base_pay_adjustment_rate)
        overtime_pay = (
            record.original_overtime_pay_by_type if config.overtime_eligible else OvertimeBuckets()
        )
        allowances = record.original_allowances if config.allowances_eligible else AllowanceAmounts()
        gross = base_pay + overtime_pay.total() + allowances.total()

        adjusted = result.model_copy(update={
            "base_pay": base_pay,
            "overtime_pay_by_type": overtime_pay,
            "allowances": allowances,
            "deductions": compute_deductions(
                base_pay, gross, result.deductions.unpaid_leave_deduction, self.rates
            ),
            "probation_adjustment": record,
        })
        totals(adjusted)
        logger.debug(
            f"Probation adjustment for {result.employee_id}: base {record.original_base_pay} -> {base_pay}"
        )
        return adjusted
