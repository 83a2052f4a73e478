import argparse
import os
import sys

# Ensure we can import app modules
sys.path.append(os.getcwd())

from app.core.init_system import init_system_data
from app.core.logging import setup_logging
from app.database import SessionLocal, init_db
from app.dependencies import ServiceContainer


def run(period_year_month: str, started_by: str = None, session_factory=SessionLocal) -> int:
    """Run one batch to completion and print the outcome. Returns the number of failed employees."""
    container = ServiceContainer(session_factory)
    session_id = container.batch.run_batch(period_year_month, started_by)

    db = session_factory()
    try:
        detail = container.batch.get_detail(db, session_id)
    finally:
        db.close()

    print(f"Payroll batch {session_id} for {period_year_month}: {detail.status}")
    if detail.error:
        print(f"  Error: {detail.error}")
    for result in detail.results:
        if result.status == "completed":
            print(f" - {result.employee_id}: net {result.net_payable:.2f}")
        elif result.status == "skipped":
            print(f" - {result.employee_id}: skipped ({result.error})")
        else:
            print(f" - {result.employee_id}: FAILED ({result.error})")
    print(f"{detail.processed_count}/{detail.total_employees} processed, {detail.error_count} failed")
    if detail.status != "completed":
        return max(detail.error_count, 1)
    return detail.error_count


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Run a payroll batch for one period")
    parser.add_argument("period", help="Period label, YYYY-MM (the month the period starts in)")
    parser.add_argument("--started-by", default=None, help="Employee id to notify when the batch finishes")
    args = parser.parse_args()

    setup_logging()
    init_db()
    init_system_data()
    failed = run(args.period, args.started_by)
    sys.exit(1 if failed else 0)
