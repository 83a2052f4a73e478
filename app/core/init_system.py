import logging
from app.database import SessionLocal
from app.models.shift import Shift
from app.services.payroll_settings_service import PayrollSettingsService
from app.services.shift_resolver import STATIC_SHIFT_CATALOG

logger = logging.getLogger(__name__)

def init_system_data(session_factory=SessionLocal):
    """
    Checks if the system needs initialization.
    Seeds the default payroll settings document and the well-known shift
    catalog so shift adjustment requests can reference them.
    """
    db = session_factory()
    try:
        PayrollSettingsService(db).ensure_settings()

        existing = {code for (code,) in db.query(Shift.shift_code).all()}
        missing = [s for code, s in STATIC_SHIFT_CATALOG.items() if code not in existing]
        for window in missing:
            db.add(Shift(
                shift_code=window.shift_code,
                name=window.name,
                start_time=window.start_time.strftime("%H:%M"),
                end_time=window.end_time.strftime("%H:%M"),
                work_days=sorted(window.work_days),
                holiday_offset_days=window.holiday_offset_days,
            ))
        if missing:
            db.commit()
            logger.info(f"✓ Seeded {len(missing)} catalog shift(s)")
        else:
            logger.info(f"System initialization check: {len(existing)} shift(s) found.")

    except Exception as e:
        db.rollback()
        logger.error(f"Error during system initialization check: {str(e)}", exc_info=True)
    finally:
        db.close()
