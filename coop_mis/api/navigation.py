"""
Sidebar navigation and page access endpoints
"""

from fastapi import APIRouter, Depends

from .auth import get_current_user
from .schemas import PageAccessRequest
from ..rbac import (
    User, Permission, navigation_for_role, can_access_page, has_permission,
    role_label, user_initials
)


router = APIRouter()


@router.get("")
async def navigation(user: User = Depends(get_current_user)):
    """Menu items and header details for the current user"""
    data = user.to_public_dict()
    role = user.effective_role
    return {
        "items": navigation_for_role(user.role, user.coop_role.value if user.coop_role else None),
        "role": role,
        "role_label": role_label(data),
        "initials": user_initials(user.full_name),
        "permissions": [p.value for p in Permission if has_permission(role, p.value)],
    }


@router.post("/access")
async def page_access(request: PageAccessRequest, user: User = Depends(get_current_user)):
    """Which of the requested pages the current user may open"""
    role = user.effective_role
    return {"access": {page: can_access_page(role, page) for page in request.pages}}
