"""
Role dashboard endpoints
"""

from fastapi import APIRouter, Depends

from .auth import CoopSystem, get_coop_system, require_permission, require_roles
from ..rbac import User


router = APIRouter()


@router.get("/admin")
async def admin_dashboard(
    user: User = Depends(require_roles("admin")),
    system: CoopSystem = Depends(get_coop_system)
):
    """KPIs, recent records and the activity feed"""
    return system.reporting.admin_dashboard()


@router.get("/manager")
async def manager_dashboard(
    user: User = Depends(require_roles("manager")),
    system: CoopSystem = Depends(get_coop_system)
):
    return system.reporting.manager_dashboard()


@router.get("/loan-officer")
async def loan_officer_dashboard(
    user: User = Depends(require_roles("loan_officer", "manager")),
    system: CoopSystem = Depends(get_coop_system)
):
    return system.reporting.loan_officer_dashboard()


@router.get("/teller")
async def teller_dashboard(
    user: User = Depends(require_roles("teller", "manager")),
    system: CoopSystem = Depends(get_coop_system)
):
    """Today's window totals"""
    return system.reporting.teller_dashboard()


@router.get("/auditor")
async def auditor_dashboard(
    user: User = Depends(require_permission("audit_logs")),
    system: CoopSystem = Depends(get_coop_system)
):
    """Totals, latest audit entries and flagged items"""
    return system.reporting.auditor_dashboard()
