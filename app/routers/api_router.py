
from fastapi import APIRouter
from app.routers import payroll, payroll_settings

# Centralized API router hub
# This follows the "Leaf Node" pattern: Routers are aggregated here,
# and main.py only imports this single hub.
api_router = APIRouter()

# Settings first: /payroll/{employee_id} would otherwise capture /payroll/settings
api_router.include_router(payroll_settings.router, tags=["Payroll Settings"])
api_router.include_router(payroll.router, tags=["Payroll"])
