"""
Member endpoints
"""

from typing import Optional
from fastapi import APIRouter, HTTPException, Depends, Query, status

from .auth import CoopSystem, get_coop_system, require_permission, http_error
from .schemas import CreateMemberRequest, UpdateMemberRequest, ShareCapitalRequest
from ..members import MemberStatus, MembershipType
from ..rbac import User


router = APIRouter()


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_member(
    request: CreateMemberRequest,
    user: User = Depends(require_permission("members")),
    system: CoopSystem = Depends(get_coop_system)
):
    """Register a new member"""
    try:
        member = system.members.create_member(
            request.model_dump(exclude_unset=True), created_by=user.email
        )
        return member.to_dict()
    except ValueError as e:
        raise http_error(e)


@router.get("")
async def list_members(
    status_filter: Optional[MemberStatus] = Query(None, alias="status"),
    membership_type: Optional[MembershipType] = None,
    limit: int = Query(500, ge=1, le=5000),
    user: User = Depends(require_permission("members")),
    system: CoopSystem = Depends(get_coop_system)
):
    """List members, newest first"""
    members = system.members.list_members(status=status_filter, membership_type=membership_type,
                                          limit=limit)
    return {
        "members": [m.to_dict() for m in members],
        "stats": system.members.member_stats()
    }


@router.get("/search")
async def search_members(
    q: str = Query("", description="Name, member code, mobile number or email"),
    user: User = Depends(require_permission("members")),
    system: CoopSystem = Depends(get_coop_system)
):
    """Quick lookup for the teller window (at least 2 characters)"""
    return {"members": [m.to_dict() for m in system.members.search(q)]}


@router.get("/{member_id}")
async def get_member(
    member_id: str,
    user: User = Depends(require_permission("members")),
    system: CoopSystem = Depends(get_coop_system)
):
    member = system.members.get_member(member_id)
    if not member:
        raise HTTPException(status_code=404, detail="Member not found")
    return member.to_dict()


@router.put("/{member_id}")
async def update_member(
    member_id: str,
    request: UpdateMemberRequest,
    user: User = Depends(require_permission("members")),
    system: CoopSystem = Depends(get_coop_system)
):
    try:
        member = system.members.update_member(
            member_id, request.model_dump(exclude_unset=True), updated_by=user.email
        )
        return member.to_dict()
    except ValueError as e:
        raise http_error(e)


@router.post("/{member_id}/share-capital")
async def adjust_share_capital(
    member_id: str,
    request: ShareCapitalRequest,
    user: User = Depends(require_permission("members")),
    system: CoopSystem = Depends(get_coop_system)
):
    """Add or withdraw share capital"""
    try:
        member = system.members.adjust_share_capital(member_id, request.amount, updated_by=user.email)
        return member.to_dict()
    except ValueError as e:
        raise http_error(e)


@router.delete("/{member_id}")
async def delete_member(
    member_id: str,
    user: User = Depends(require_permission("members")),
    system: CoopSystem = Depends(get_coop_system)
):
    try:
        system.members.delete_member(member_id, deleted_by=user.email)
        return {"message": "Member deleted"}
    except ValueError as e:
        raise http_error(e)


@router.get("/{member_id}/eligibility")
def analyze_eligibility(
    member_id: str,
    user: User = Depends(require_permission("loans")),
    system: CoopSystem = Depends(get_coop_system)
):
    """AI loan eligibility assessment for a member"""
    try:
        return system.eligibility.analyze(member_id)
    except ValueError as e:
        raise http_error(e)
