"""
Audit log endpoints
"""

from datetime import date
from typing import Optional
from fastapi import APIRouter, Depends, Query

from .auth import CoopSystem, get_coop_system, require_permission
from ..audit import AuditAction, AuditModule
from ..rbac import User


router = APIRouter()


@router.get("")
async def list_audit_logs(
    action: Optional[AuditAction] = None,
    module: Optional[AuditModule] = None,
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
    limit: int = Query(500, ge=1, le=5000),
    user: User = Depends(require_permission("audit_logs")),
    system: CoopSystem = Depends(get_coop_system)
):
    """Filtered audit entries, newest first, with action counts"""
    entries = system.audit_trail.get_logs(action=action, module=module,
                                          date_from=date_from, date_to=date_to, limit=limit)
    return {
        "logs": [e.to_dict() for e in entries],
        "counts": system.audit_trail.action_counts(entries)
    }


@router.get("/verify")
async def verify_integrity(
    user: User = Depends(require_permission("audit_logs")),
    system: CoopSystem = Depends(get_coop_system)
):
    """Recompute the hash chain"""
    return system.audit_trail.verify_integrity()


@router.get("/records/{record_id}")
async def record_history(
    record_id: str,
    user: User = Depends(require_permission("audit_logs")),
    system: CoopSystem = Depends(get_coop_system)
):
    return {"logs": [e.to_dict() for e in system.audit_trail.get_logs_for_record(record_id)]}
