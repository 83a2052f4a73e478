import argparse
import logging
import os
import sys

# Ensure we can import app modules
sys.path.append(os.getcwd())

from app.database import SessionLocal, init_db
from app.models.employee import Employee, EmployeeRole

logging.basicConfig(level=logging.INFO, format="%(levelname)s: %(message)s")
logger = logging.getLogger(__name__)


def seed(employee_id: str, line_user_id: str, name: str = "System Administrator", session_factory=SessionLocal) -> Employee:
    """
    Create the admin employee, or re-activate and re-bind it if it exists.
    Admins carry no payroll profile so batches skip them.
    """
    db = session_factory()
    try:
        admin = db.query(Employee).filter(Employee.employee_id == employee_id).first()
        if admin is None:
            admin = Employee(employee_id=employee_id, name=name)
            db.add(admin)
            logger.info(f"Admin employee {employee_id} created")
        else:
            logger.info(f"Admin employee {employee_id} already exists. Updating role and LINE id")
        admin.role = EmployeeRole.ADMIN.value
        admin.line_user_id = line_user_id
        admin.is_active = True
        db.commit()
        db.refresh(admin)
        return admin
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Create the payroll admin employee")
    parser.add_argument("--employee-id", default="ADMIN001")
    parser.add_argument("--line-user-id", required=True)
    parser.add_argument("--name", default="System Administrator")
    args = parser.parse_args()

    init_db()
    seed(args.employee_id, args.line_user_id, args.name)
