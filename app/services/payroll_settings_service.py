"""
Payroll Settings Service

Owns the single payroll settings document: seeds the defaults when the
document is missing, validates each employee type's overtime rate table
once per load, and resolves the typed rate snapshot the calculation engine
consumes. Parsed snapshots live in the injected TTLCache; an update bumps
the document version and drops the cached snapshot.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional
import logging

from pydantic import ValidationError
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.cache import TTLCache
from app.core.exceptions import MissingOvertimeRatesForType, SettingsNotFound
from app.models.payroll_settings import DEFAULT_SETTINGS_ID, PayrollSettings
from app.schemas.settings import (
    DEFAULT_SETTINGS,
    EMPLOYEE_TYPES,
    AllowanceSettings,
    DeductionSettings,
    OvertimeMultipliers,
    PayrollRules,
    PayrollSettingsData,
    PayrollSettingsResponse,
    ProbationConfig,
    ResolvedAllowances,
    ResolvedRates,
    TaxBracket,
)

logger = logging.getLogger(__name__)

SETTINGS_CACHE_KEY = "payroll-settings:snapshot"


@dataclass(frozen=True)
class SettingsSnapshot:
    version: int
    allowances: AllowanceSettings
    deductions: DeductionSettings
    tax_brackets: List[TaxBracket]
    rules: PayrollRules
    probation: ProbationConfig
    rates_by_type: Dict[str, OvertimeMultipliers] = field(default_factory=dict)
    invalid_types: Dict[str, str] = field(default_factory=dict)


def _validation_summary(exc: ValidationError) -> str:
    return "; ".join(
        f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in exc.errors()
    )


class PayrollSettingsService:
    def __init__(self, db: Session, cache: Optional[TTLCache] = None, ttl: Optional[float] = None):
        self.db = db
        self.cache = cache if cache is not None else TTLCache()
        self.ttl = ttl

    # --- document access ---

    def _get_row(self) -> Optional[PayrollSettings]:
        return self.db.query(PayrollSettings).filter(PayrollSettings.id == DEFAULT_SETTINGS_ID).first()

    def _seed_defaults(self) -> PayrollSettings:
        document = DEFAULT_SETTINGS.model_dump(mode="json", by_alias=True)
        row = PayrollSettings(
            id=DEFAULT_SETTINGS_ID,
            overtime_rates=document["overtimeRates"],
            allowances=document["allowances"],
            deductions=document["deductions"],
            tax_brackets=document["taxBrackets"],
            rules=document["rules"],
            probation=document["probation"],
            version=1,
        )
        self.db.add(row)
        try:
            self.db.commit()
            self.db.refresh(row)
        except IntegrityError:
            # Another worker seeded first
            self.db.rollback()
            row = self._get_row()
            if row is None:
                raise
            return row
        logger.info("Seeded default payroll settings")
        return row

    def ensure_settings(self) -> PayrollSettings:
        row = self._get_row()
        if row is None:
            row = self._seed_defaults()
        return row

    # --- snapshot ---

    def _parse(self, row: PayrollSettings) -> SettingsSnapshot:
        try:
            allowances = AllowanceSettings.model_validate(row.allowances or {})
            deductions = DeductionSettings.model_validate(row.deductions or {})
            tax_brackets = sorted(
                (TaxBracket.model_validate(b) for b in (row.tax_brackets or [])),
                key=lambda b: b.lower_bound,
            )
            rules = PayrollRules.model_validate(row.rules or {})
            probation = ProbationConfig.model_validate(row.probation or {})
        except ValidationError as e:
            raise SettingsNotFound(f"Payroll settings document is invalid: {_validation_summary(e)}") from e

        rates_by_type: Dict[str, OvertimeMultipliers] = {}
        invalid_types: Dict[str, str] = {}
        for employee_type, table in (row.overtime_rates or {}).items():
            try:
                rates_by_type[employee_type] = OvertimeMultipliers.model_validate(table)
            except ValidationError as e:
                invalid_types[employee_type] = _validation_summary(e)
                logger.warning(
                    f"Overtime rates for '{employee_type}' are invalid",
                    extra={"employee_type": employee_type, "reason": invalid_types[employee_type]},
                )

        return SettingsSnapshot(
            version=row.version,
            allowances=allowances,
            deductions=deductions,
            tax_brackets=tax_brackets,
            rules=rules,
            probation=probation,
            rates_by_type=rates_by_type,
            invalid_types=invalid_types,
        )

    def get_snapshot(self) -> SettingsSnapshot:
        return self.cache.get_or_set(
            SETTINGS_CACHE_KEY,
            lambda: self._parse(self.ensure_settings()),
            self.ttl,
        )

    def invalidate(self) -> None:
        self.cache.invalidate(SETTINGS_CACHE_KEY)

    # --- rate resolution ---

    def resolve_rates(self, employee_type: Optional[str]) -> ResolvedRates:
        snapshot = self.get_snapshot()
        key = employee_type or "unassigned"
        if key in snapshot.invalid_types:
            raise MissingOvertimeRatesForType(key, snapshot.invalid_types[key])
        rates = snapshot.rates_by_type.get(key)
        if rates is None:
            raise MissingOvertimeRatesForType(key)

        meal = getattr(snapshot.allowances.meal, key, 0.0) if key in EMPLOYEE_TYPES else 0.0
        return ResolvedRates(
            employee_type=key,
            overtime_rates=rates,
            allowances=ResolvedAllowances(
                transportation=snapshot.allowances.transportation,
                meal_per_day=meal,
                housing=snapshot.allowances.housing,
            ),
            deductions=snapshot.deductions,
            tax_brackets=snapshot.tax_brackets,
            rules=snapshot.rules,
            probation=snapshot.probation,
            settings_version=snapshot.version,
        )

    # --- settings API ---

    def get_settings(self) -> PayrollSettingsResponse:
        row = self.ensure_settings()
        return PayrollSettingsResponse.model_validate({
            "overtimeRates": row.overtime_rates,
            "allowances": row.allowances,
            "deductions": row.deductions,
            "taxBrackets": row.tax_brackets,
            "rules": row.rules,
            "probation": row.probation,
            "version": row.version,
        })

    def update_settings(self, data: PayrollSettingsData) -> PayrollSettingsResponse:
        row = self.ensure_settings()
        document = data.model_dump(mode="json", by_alias=True)
        row.overtime_rates = document["overtimeRates"]
        row.allowances = document["allowances"]
        row.deductions = document["deductions"]
        row.tax_brackets = document["taxBrackets"]
        row.rules = document["rules"]
        row.probation = document["probation"]
        row.version = (row.version or 0) + 1
        try:
            self.db.commit()
            self.db.refresh(row)
        except Exception:
            self.db.rollback()
            raise
        self.invalidate()
        logger.info(f"Payroll settings updated to version {row.version}")
        return self.get_settings()
