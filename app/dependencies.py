"""
Application dependency wiring.

ServiceContainer owns the process-wide collaborators (cache, batch event
bus, batch orchestrator) and is the one place that assembles the payroll
engine. main.py builds one at startup and stores it on app.state; routers
reach it through get_container. Auth dependencies are re-exported from
app.routers.auth_deps.
"""
from typing import Callable, Optional

from fastapi import Request
from sqlalchemy.orm import Session

from app.core.cache import TTLCache
from app.core.config import settings
from app.routers.auth_deps import get_current_employee, require_admin
from app.services import payroll_service
from app.services.batch_events import BatchEventBus
from app.services.payroll_batch import PayrollBatchOrchestrator
from app.services.payroll_engine import PayrollCalculationEngine
from app.services.payroll_settings_service import PayrollSettingsService
from app.services.shift_resolver import EffectiveShiftResolver, HolidayCalendar


class ServiceContainer:
    def __init__(
        self,
        session_factory: Callable[[], Session],
        cache: Optional[TTLCache] = None,
        events: Optional[BatchEventBus] = None,
    ):
        self.session_factory = session_factory
        self.cache = cache if cache is not None else TTLCache(default_ttl=settings.cache.settings_ttl_seconds)
        self.events = events if events is not None else BatchEventBus()
        self.batch = PayrollBatchOrchestrator(
            session_factory,
            engine_factory=self.payroll_engine,
            settings_factory=self.settings_service,
            events=self.events,
        )

    def settings_service(self, db: Session) -> PayrollSettingsService:
        return PayrollSettingsService(db, self.cache, ttl=settings.cache.settings_ttl_seconds)

    def payroll_engine(self, db: Session) -> PayrollCalculationEngine:
        holidays = HolidayCalendar(db, self.cache, ttl=settings.cache.holiday_ttl_seconds)
        day_resolver = EffectiveShiftResolver(db, self.cache, holidays, ttl=settings.cache.shift_ttl_seconds)
        return PayrollCalculationEngine(
            day_resolver,
            self.settings_service(db),
            payroll_service.overtime_lookup(db),
        )

    def clear_caches(self) -> int:
        cleared = len(self.cache)
        self.cache.clear()
        return cleared


def get_container(request: Request) -> ServiceContainer:
    return request.app.state.container


__all__ = [
    "ServiceContainer",
    "get_container",
    "get_current_employee",
    "require_admin",
]
