"""
Loan type settings endpoints
"""

from fastapi import APIRouter, HTTPException, Depends, status

from .auth import CoopSystem, get_coop_system, require_permission, http_error
from .schemas import CreateLoanTypeRequest, UpdateLoanTypeRequest
from ..rbac import User


router = APIRouter()


@router.get("")
async def list_loan_types(
    active_only: bool = False,
    user: User = Depends(require_permission("loans", "settings")),
    system: CoopSystem = Depends(get_coop_system)
):
    return {"loan_types": [lt.to_dict() for lt in system.loan_types.list(active_only=active_only)]}


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_loan_type(
    request: CreateLoanTypeRequest,
    user: User = Depends(require_permission("settings")),
    system: CoopSystem = Depends(get_coop_system)
):
    """Add a loan product"""
    try:
        loan_type = system.loan_types.create(request.model_dump(exclude_unset=True),
                                             created_by=user.email)
        return loan_type.to_dict()
    except ValueError as e:
        raise http_error(e)


@router.get("/{loan_type_id}")
async def get_loan_type(
    loan_type_id: str,
    user: User = Depends(require_permission("loans", "settings")),
    system: CoopSystem = Depends(get_coop_system)
):
    loan_type = system.loan_types.get(loan_type_id)
    if not loan_type:
        raise HTTPException(status_code=404, detail="Loan type not found")
    return loan_type.to_dict()


@router.put("/{loan_type_id}")
async def update_loan_type(
    loan_type_id: str,
    request: UpdateLoanTypeRequest,
    user: User = Depends(require_permission("settings")),
    system: CoopSystem = Depends(get_coop_system)
):
    try:
        loan_type = system.loan_types.update(loan_type_id, request.model_dump(exclude_unset=True),
                                             updated_by=user.email)
        return loan_type.to_dict()
    except ValueError as e:
        raise http_error(e)


@router.delete("/{loan_type_id}")
async def delete_loan_type(
    loan_type_id: str,
    user: User = Depends(require_permission("settings")),
    system: CoopSystem = Depends(get_coop_system)
):
    try:
        system.loan_types.delete(loan_type_id, deleted_by=user.email)
        return {"message": "Loan type deleted"}
    except ValueError as e:
        raise http_error(e)
