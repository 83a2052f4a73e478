from sqlalchemy.orm import Session
from app.models.notification import Notification

class NotificationService:
    @staticmethod
    def create_notification(
        db: Session,
        employee_id: str,
        title: str,
        message: str,
        type: str = "info",
        link: str = None
    ) -> Notification:
        """
        Internal utility for creating notifications.
        """
        notification = Notification(
            employee_id=employee_id,
            title=title,
            message=message,
            type=type,
            link=link
        )
        db.add(notification)
        try:
            db.commit()
            db.refresh(notification)
        except Exception:
            db.rollback()
            raise
        return notification

    @staticmethod
    def notify_batch_finished(db: Session, employee_id: str, period_year_month: str,
                              processed: int, failed: int, session_id: str):
        """
        Tell the administrator who started a payroll batch how it ended.
        """
        if failed:
            title = f"Payroll {period_year_month} finished with errors"
            message = f"{processed - failed} of {processed} employees processed, {failed} failed."
            kind = "warning"
        else:
            title = f"Payroll {period_year_month} completed"
            message = f"All {processed} employees processed."
            kind = "success"
        return NotificationService.create_notification(
            db, employee_id, title, message, kind, link=f"/payroll/batch/{session_id}"
        )
