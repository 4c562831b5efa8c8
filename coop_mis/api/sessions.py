"""
Login and session endpoints
"""

from typing import Optional
from fastapi import APIRouter, HTTPException, Depends, Request

from .auth import (
    CoopSystem, get_coop_system, get_current_user, get_session_id,
    create_access_token, client_ip
)
from .schemas import LoginRequest, ChangePasswordRequest
from ..rbac import User, role_label, user_initials


router = APIRouter()


@router.post("/login")
async def login(
    request: LoginRequest,
    http_request: Request,
    system: CoopSystem = Depends(get_coop_system)
):
    """Authenticate and return a bearer token"""
    try:
        user, session = system.users.login(request.email, request.password,
                                           ip_address=client_ip(http_request))
    except ValueError as e:
        raise HTTPException(status_code=401, detail=str(e))

    return {
        "access_token": create_access_token(user, session, system.config),
        "token_type": "bearer",
        "expires_at": session.expires_at.isoformat(),
        "user": user.to_public_dict()
    }


@router.post("/logout")
async def logout(
    user: User = Depends(get_current_user),
    session_id: Optional[str] = Depends(get_session_id),
    system: CoopSystem = Depends(get_coop_system)
):
    if session_id:
        system.users.logout(session_id)
    return {"message": "Logged out"}


@router.get("/me")
async def me(user: User = Depends(get_current_user)):
    """Current user with display role and initials"""
    data = user.to_public_dict()
    data["effective_role"] = user.effective_role
    data["role_label"] = role_label(data)
    data["initials"] = user_initials(user.full_name)
    return data


@router.post("/change-password")
async def change_password(
    request: ChangePasswordRequest,
    user: User = Depends(get_current_user),
    system: CoopSystem = Depends(get_coop_system)
):
    try:
        system.users.change_password(user.id, request.old_password, request.new_password)
        return {"message": "Password changed"}
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
