"""
Member self-service portal endpoint
"""

from fastapi import APIRouter, Depends

from .auth import CoopSystem, get_coop_system, require_permission
from ..rbac import User


router = APIRouter()


@router.get("")
async def member_portal(
    user: User = Depends(require_permission("member_portal")),
    system: CoopSystem = Depends(get_coop_system)
):
    """Profile, loans, savings and transactions of the member linked to the login email"""
    return system.reporting.member_portal(user.email)
