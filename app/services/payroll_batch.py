"""
Payroll Batch Orchestrator

Runs payroll for every in-scope employee of a period as one tracked
processing session. Each employee is calculated, validated and upserted in
isolation: a failure is recorded as an error result and the run moves on.
Progress is committed after every employee and published on the batch
event bus, which feeds the status stream endpoint.

The processing loop opens its own database session from the injected
factory, since it runs after the HTTP response has been sent.
"""

from datetime import datetime, timezone
from typing import Callable, Dict, Iterator, List, Optional
import json
import logging
import queue
import time

from sqlalchemy import func
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.exceptions import BatchAlreadyRunning, CalculationFailure, PayrollLocked, ProcessingSessionNotFound
from app.core.logging import payroll_session_var
from app.models.employee import Employee
from app.models.payroll import (
    PayrollPeriod,
    PayrollProcessingResult,
    PayrollProcessingSession,
    PayrollStatus,
    ResultStatus,
    SessionStatus,
)
from app.schemas.payroll import BatchDetail, BatchStatus, ProcessingResultSummary
from app.services import payroll_service
from app.services.batch_events import BatchEventBus, is_terminal
from app.services.notification import NotificationService
from app.services.payroll_engine import PayrollCalculationEngine
from app.services.payroll_periods import period_for_year_month
from app.services.payroll_settings_service import PayrollSettingsService

logger = logging.getLogger(__name__)

RESET_MESSAGE = "Session reset by administrator"


def in_scope_employees(db: Session) -> List[Employee]:
    """Active employees with a payroll profile."""
    return db.query(Employee).filter(
        Employee.is_active.is_(True),
        Employee.employee_type.isnot(None)
    ).order_by(Employee.employee_id).all()


def _sse(payload: Dict) -> str:
    return f"data: {json.dumps(payload)}\n\n"


class PayrollBatchOrchestrator:
    def __init__(
        self,
        session_factory: Callable[[], Session],
        engine_factory: Callable[[Session], PayrollCalculationEngine],
        settings_factory: Callable[[Session], PayrollSettingsService],
        events: Optional[BatchEventBus] = None,
    ):
        self.session_factory = session_factory
        self.engine_factory = engine_factory
        self.settings_factory = settings_factory
        self.events = events if events is not None else BatchEventBus()

    # ------------------------------------------------------------------
    # Start
    # ------------------------------------------------------------------

    def start_batch(self, db: Session, period_year_month: str, started_by: Optional[str] = None) -> PayrollProcessingSession:
        """
        Create a processing session. The caller schedules process_session.

        The in-scope employee ids are captured here, so employees added or
        deactivated while the batch runs do not change its scope.
        """
        period_for_year_month(period_year_month)  # format check

        running = db.query(PayrollProcessingSession).filter(
            PayrollProcessingSession.period_year_month == period_year_month,
            PayrollProcessingSession.status == SessionStatus.PROCESSING.value
        ).first()
        if running:
            raise BatchAlreadyRunning(period_year_month, running.id)

        employee_ids = [e.employee_id for e in in_scope_employees(db)]
        session = PayrollProcessingSession(
            period_year_month=period_year_month,
            status=SessionStatus.PROCESSING.value,
            employee_ids=employee_ids,
            total_employees=len(employee_ids),
            processed_count=0,
            started_by=started_by,
        )
        db.add(session)
        try:
            db.commit()
            db.refresh(session)
        except Exception:
            db.rollback()
            raise

        logger.info(
            f"Payroll batch {session.id} started for {period_year_month}",
            extra={"payroll_session_id": session.id, "total_employees": session.total_employees},
        )
        self.events.publish(session.id, self._status_of(db, session).model_dump(by_alias=True, mode="json"))
        return session

    def run_batch(self, period_year_month: str, started_by: Optional[str] = None) -> str:
        """Start and process a batch synchronously. Returns the session id."""
        db = self.session_factory()
        try:
            session_id = self.start_batch(db, period_year_month, started_by).id
        finally:
            db.close()
        self.process_session(session_id)
        return session_id

    # ------------------------------------------------------------------
    # Processing loop
    # ------------------------------------------------------------------

    def process_session(self, session_id: str) -> None:
        """
        Process every in-scope employee for the session.

        Never raises: faults that stop the whole run are recorded on the
        session as status=error.
        """
        token = payroll_session_var.set(session_id)
        db = self.session_factory()
        try:
            self._process(db, session_id)
        except Exception as e:
            logger.exception(f"Payroll batch {session_id} aborted")
            db.rollback()
            self._fail(db, session_id, str(e))
        finally:
            db.close()
            payroll_session_var.reset(token)

    def _process(self, db: Session, session_id: str) -> None:
        session = db.query(PayrollProcessingSession).filter(PayrollProcessingSession.id == session_id).first()
        if not session:
            logger.error(f"Payroll session {session_id} not found during processing")
            return
        if session.status != SessionStatus.PROCESSING.value:
            logger.info(f"Payroll session {session_id} is {session.status}, skipping")
            return

        # Settings and the period must be readable before any employee is touched
        rules = self.settings_factory(db).get_snapshot().rules
        period_start, period_end = period_for_year_month(
            session.period_year_month, rules.payroll_period_start, rules.payroll_period_end
        )
        engine = self.engine_factory(db)
        period = payroll_service.get_or_create_period(db, period_start, period_end)
        period.status = PayrollStatus.PROCESSING.value
        db.commit()

        failed = 0
        for employee_id in list(session.employee_ids or []):
            db.refresh(session)
            if session.status != SessionStatus.PROCESSING.value:
                logger.warning(f"Payroll session {session_id} is no longer processing, stopping")
                return

            outcome = self._process_employee(db, engine, session_id, employee_id, period, period_start, period_end)
            failed += 1 if outcome == ResultStatus.ERROR else 0

            session.processed_count = (session.processed_count or 0) + 1
            db.commit()
            event = self._status_of(db, session).model_dump(by_alias=True, mode="json")
            event.update({
                "employeeId": employee_id,
                "employeeStatus": outcome.value,
            })
            self.events.publish(session_id, event)

        session.status = SessionStatus.COMPLETED.value
        session.completed_at = datetime.now(timezone.utc)
        period.status = PayrollStatus.COMPLETED.value
        db.commit()
        logger.info(
            f"Payroll batch {session_id} completed: {session.processed_count} processed, {failed} failed"
        )

        if session.started_by:
            try:
                NotificationService.notify_batch_finished(
                    db, session.started_by, session.period_year_month,
                    session.processed_count, failed, session_id
                )
            except Exception:
                logger.exception(f"Could not notify {session.started_by} about payroll batch {session_id}")
        self.events.publish(session_id, self._status_of(db, session).model_dump(by_alias=True, mode="json"))

    def _process_employee(self, db: Session, engine: PayrollCalculationEngine, session_id: str,
                          employee_id: str, period: PayrollPeriod, period_start, period_end) -> ResultStatus:
        locked = payroll_service.locked_status(db, employee_id, period)
        if locked:
            logger.info(f"Payroll for {employee_id} is {locked}, skipping", extra={"employee_id": employee_id})
            self._record(db, session_id, employee_id, period_start, period_end,
                         ResultStatus.SKIPPED, error=PayrollLocked(employee_id, locked).message)
            return ResultStatus.SKIPPED

        try:
            result = payroll_service.calculate_payroll(db, engine, employee_id, period_start, period_end)
            validation = payroll_service.validate_payroll_result(result)
            if not validation["valid"]:
                raise CalculationFailure(
                    "; ".join(validation["errors"]),
                    details={"employee_id": employee_id},
                )
            payroll_service.upsert_payroll(db, period, result)
            self._record(db, session_id, employee_id, period_start, period_end, ResultStatus.COMPLETED,
                         processed_data=result.model_dump(by_alias=True, mode="json"))
            return ResultStatus.COMPLETED
        except Exception as e:
            db.rollback()
            logger.error(
                f"Payroll failed for {employee_id}: {e}",
                extra={"employee_id": employee_id, "error_type": type(e).__name__},
            )
            self._record(db, session_id, employee_id, period_start, period_end, ResultStatus.ERROR, error=str(e))
            return ResultStatus.ERROR

    @staticmethod
    def _record(db: Session, session_id: str, employee_id: str, period_start, period_end,
                status: ResultStatus, error: Optional[str] = None, processed_data: Optional[Dict] = None) -> None:
        db.add(PayrollProcessingResult(
            session_id=session_id,
            employee_id=employee_id,
            period_start=period_start,
            period_end=period_end,
            processed_data=processed_data,
            status=status.value,
            error=error,
        ))
        db.commit()

    def _fail(self, db: Session, session_id: str, message: str) -> None:
        session = db.query(PayrollProcessingSession).filter(PayrollProcessingSession.id == session_id).first()
        if not session:
            return
        session.status = SessionStatus.ERROR.value
        session.error = message
        session.completed_at = datetime.now(timezone.utc)
        try:
            db.commit()
        except Exception:
            db.rollback()
            logger.exception(f"Could not record failure of payroll session {session_id}")
            return
        self.events.publish(session_id, self._status_of(db, session).model_dump(by_alias=True, mode="json"))

    # ------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------

    @staticmethod
    def _get_session(db: Session, session_id: str) -> PayrollProcessingSession:
        session = db.query(PayrollProcessingSession).filter(PayrollProcessingSession.id == session_id).first()
        if not session:
            raise ProcessingSessionNotFound(session_id)
        return session

    @staticmethod
    def _status_of(db: Session, session: PayrollProcessingSession) -> BatchStatus:
        error_count = db.query(func.count(PayrollProcessingResult.id)).filter(
            PayrollProcessingResult.session_id == session.id,
            PayrollProcessingResult.status == ResultStatus.ERROR.value
        ).scalar() or 0
        return BatchStatus(
            session_id=session.id,
            period_year_month=session.period_year_month,
            status=session.status,
            total_employees=session.total_employees,
            processed_count=session.processed_count,
            error_count=error_count,
            error=session.error,
        )

    def get_status(self, db: Session, session_id: str) -> BatchStatus:
        return self._status_of(db, self._get_session(db, session_id))

    def get_detail(self, db: Session, session_id: str) -> BatchDetail:
        session = self._get_session(db, session_id)
        status = self._status_of(db, session)
        results = db.query(PayrollProcessingResult).filter(
            PayrollProcessingResult.session_id == session_id
        ).order_by(PayrollProcessingResult.id).all()
        return BatchDetail(
            **status.model_dump(),
            results=[
                ProcessingResultSummary(
                    employee_id=r.employee_id,
                    status=r.status,
                    error=r.error,
                    net_payable=(r.processed_data or {}).get("netPayable"),
                )
                for r in results
            ],
        )

    def get_latest_for_period(self, db: Session, period_year_month: str) -> BatchStatus:
        session = db.query(PayrollProcessingSession).filter(
            PayrollProcessingSession.period_year_month == period_year_month
        ).order_by(PayrollProcessingSession.created_at.desc(), PayrollProcessingSession.id.desc()).first()
        if not session:
            raise ProcessingSessionNotFound(f"for period {period_year_month}")
        return self._status_of(db, session)

    def reset_session(self, db: Session, session_id: str) -> BatchStatus:
        """Mark a stuck processing session as error so the period can be run again."""
        session = self._get_session(db, session_id)
        if session.status == SessionStatus.PROCESSING.value:
            session.status = SessionStatus.ERROR.value
            session.error = RESET_MESSAGE
            session.completed_at = datetime.now(timezone.utc)
            try:
                db.commit()
            except Exception:
                db.rollback()
                raise
            logger.warning(f"Payroll session {session_id} reset", extra={"payroll_session_id": session_id})
        status = self._status_of(db, session)
        self.events.publish(session_id, status.model_dump(by_alias=True, mode="json"))
        return status

    def stream_status(self, db: Session, session_id: str, timeout: Optional[float] = None) -> Iterator[str]:
        """
        Server-sent events for one session: the current status first, then one
        event per change, ending at a terminal status or after the timeout.
        """
        timeout = settings.batch_status_stream_timeout_seconds if timeout is None else timeout
        subscription = self.events.subscribe(session_id)
        try:
            initial = self.get_status(db, session_id).model_dump(by_alias=True, mode="json")
        except Exception:
            self.events.unsubscribe(session_id, subscription)
            raise

        def generate() -> Iterator[str]:
            try:
                yield _sse(initial)
                if is_terminal(initial):
                    return
                deadline = time.monotonic() + timeout
                while True:
                    remaining = deadline - time.monotonic()
                    if remaining <= 0:
                        yield ": stream timeout\n\n"
                        return
                    try:
                        event = subscription.get(timeout=min(remaining, 5.0))
                    except queue.Empty:
                        yield ": keepalive\n\n"
                        continue
                    yield _sse(event)
                    if is_terminal(event):
                        return
            finally:
                self.events.unsubscribe(session_id, subscription)

        return generate()
