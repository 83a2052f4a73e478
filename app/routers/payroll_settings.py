"""
Payroll settings endpoints: read and replace the settings document.
"""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.core.schemas import ApiResponse
from app.database import get_db
from app.dependencies import ServiceContainer, get_container
from app.models.employee import Employee
from app.routers.auth_deps import require_admin
from app.schemas.settings import PayrollSettingsData

router = APIRouter(
    prefix="/payroll/settings",
    tags=["payroll-settings"],
)


@router.get("")
def get_settings(
    db: Session = Depends(get_db),
    container: ServiceContainer = Depends(get_container),
    current_employee: Employee = Depends(require_admin)
):
    """Current settings document. Defaults are seeded on first read."""
    data = container.settings_service(db).get_settings()
    return ApiResponse.ok(data.model_dump(by_alias=True, mode="json"), {"version": data.version}).to_dict()


@router.put("")
def update_settings(
    payload: PayrollSettingsData,
    db: Session = Depends(get_db),
    container: ServiceContainer = Depends(get_container),
    current_employee: Employee = Depends(require_admin)
):
    """Replace the settings document; bumps the version and drops cached snapshots."""
    data = container.settings_service(db).update_settings(payload)
    return ApiResponse.ok(data.model_dump(by_alias=True, mode="json"), {"version": data.version}).to_dict()
