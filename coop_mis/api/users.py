"""
User management endpoints
"""

from typing import Optional
from fastapi import APIRouter, HTTPException, Depends, status

from .auth import CoopSystem, get_coop_system, require_roles, http_error
from .schemas import CreateUserRequest, UpdateUserRoleRequest
from ..rbac import User, CoopRole


router = APIRouter()


@router.get("")
async def list_users(
    coop_role: Optional[CoopRole] = None,
    user: User = Depends(require_roles("admin", "manager")),
    system: CoopSystem = Depends(get_coop_system)
):
    users = system.users.list_users(coop_role=coop_role)
    return {
        "users": [u.to_public_dict() for u in users],
        "stats": system.users.user_stats()
    }


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_user(
    request: CreateUserRequest,
    user: User = Depends(require_roles("admin", "manager")),
    system: CoopSystem = Depends(get_coop_system)
):
    try:
        created = system.users.create_user(
            request.email, request.full_name, password=request.password,
            role=request.role, coop_role=request.coop_role,
            member_id=request.member_id, created_by=user.email
        )
        return created.to_public_dict()
    except ValueError as e:
        raise http_error(e)


@router.get("/{user_id}")
async def get_user(
    user_id: str,
    user: User = Depends(require_roles("admin", "manager")),
    system: CoopSystem = Depends(get_coop_system)
):
    found = system.users.get_user(user_id)
    if not found:
        raise HTTPException(status_code=404, detail="User not found")
    return found.to_public_dict()


@router.put("/{user_id}/role")
async def update_user_role(
    user_id: str,
    request: UpdateUserRoleRequest,
    user: User = Depends(require_roles("admin", "manager")),
    system: CoopSystem = Depends(get_coop_system)
):
    """Assign a coop role and linked member"""
    try:
        updated = system.users.update_user(user_id, coop_role=request.coop_role,
                                           member_id=request.member_id, updated_by=user.email)
        return updated.to_public_dict()
    except ValueError as e:
        raise http_error(e)


@router.post("/{user_id}/unlock")
async def unlock_user(
    user_id: str,
    user: User = Depends(require_roles("admin", "manager")),
    system: CoopSystem = Depends(get_coop_system)
):
    try:
        return system.users.unlock_user(user_id).to_public_dict()
    except ValueError as e:
        raise http_error(e)
