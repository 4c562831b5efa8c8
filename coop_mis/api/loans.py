"""
Loan endpoints
"""

from typing import Optional
from fastapi import APIRouter, HTTPException, Depends, Query, status

from .auth import CoopSystem, get_coop_system, require_permission, http_error
from .schemas import (
    LoanCalculationRequest, LoanApplicationRequest, LoanStatusRequest,
    LoanActionRequest, LoanPaymentRequest
)
from ..amortization import calculate_loan
from ..loans import LoanStatus
from ..rbac import User


router = APIRouter()


@router.post("/calculate")
async def calculate(
    request: LoanCalculationRequest,
    user: User = Depends(require_permission("loans"))
):
    """Preview the amortization of a prospective loan"""
    try:
        calc = calculate_loan(
            request.principal_amount,
            request.interest_rate,
            request.term_months,
            request.service_fee_percent,
            start_date=request.start_date
        )
        return calc.to_dict()
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.post("", status_code=status.HTTP_201_CREATED)
async def apply_for_loan(
    request: LoanApplicationRequest,
    user: User = Depends(require_permission("loans")),
    system: CoopSystem = Depends(get_coop_system)
):
    """File a loan application"""
    try:
        loan = system.loans.apply_for_loan(
            member_id=request.member_id,
            loan_type_id=request.loan_type_id,
            principal_amount=request.principal_amount,
            term_months=request.term_months,
            purpose=request.purpose,
            comaker_name=request.comaker_name,
            comaker_member_id=request.comaker_member_id,
            collateral_description=request.collateral_description,
            remarks=request.remarks,
            applied_by=user.email
        )
        return loan.to_dict()
    except ValueError as e:
        raise http_error(e)


@router.get("")
async def list_loans(
    status_filter: Optional[LoanStatus] = Query(None, alias="status"),
    member_id: Optional[str] = None,
    limit: int = Query(500, ge=1, le=5000),
    user: User = Depends(require_permission("loans")),
    system: CoopSystem = Depends(get_coop_system)
):
    loans = system.loans.list_loans(status=status_filter, member_id=member_id, limit=limit)
    return {
        "loans": [l.to_dict() for l in loans],
        "stats": system.loans.loan_stats()
    }


@router.get("/eligibility/{member_id}")
def member_eligibility(
    member_id: str,
    user: User = Depends(require_permission("loans")),
    system: CoopSystem = Depends(get_coop_system)
):
    """Eligibility assessment and reloanable amount for a member"""
    try:
        return system.eligibility.analyze(member_id)
    except ValueError as e:
        raise http_error(e)


@router.get("/{loan_id}")
async def get_loan(
    loan_id: str,
    user: User = Depends(require_permission("loans")),
    system: CoopSystem = Depends(get_coop_system)
):
    loan = system.loans.get_loan(loan_id)
    if not loan:
        raise HTTPException(status_code=404, detail="Loan not found")
    data = loan.to_dict()
    data["amount_due"] = str(system.loans.amount_due(loan))
    return data


@router.get("/{loan_id}/schedule")
async def get_schedule(
    loan_id: str,
    user: User = Depends(require_permission("loans")),
    system: CoopSystem = Depends(get_coop_system)
):
    loan = system.loans.get_loan(loan_id)
    if not loan:
        raise HTTPException(status_code=404, detail="Loan not found")
    return {
        "loan_number": loan.loan_number,
        "monthly_amortization": str(loan.monthly_amortization),
        "schedule": loan.amortization_schedule
    }


@router.post("/{loan_id}/approve")
async def approve_loan(
    loan_id: str,
    request: Optional[LoanActionRequest] = None,
    user: User = Depends(require_permission("approve_loans")),
    system: CoopSystem = Depends(get_coop_system)
):
    try:
        remarks = request.remarks if request else None
        return system.loans.approve_loan(loan_id, approved_by=user.email, remarks=remarks).to_dict()
    except ValueError as e:
        raise http_error(e)


@router.post("/{loan_id}/reject")
async def reject_loan(
    loan_id: str,
    request: Optional[LoanActionRequest] = None,
    user: User = Depends(require_permission("approve_loans")),
    system: CoopSystem = Depends(get_coop_system)
):
    try:
        remarks = request.remarks if request else None
        return system.loans.reject_loan(loan_id, rejected_by=user.email, remarks=remarks).to_dict()
    except ValueError as e:
        raise http_error(e)


@router.post("/{loan_id}/disburse")
async def disburse_loan(
    loan_id: str,
    user: User = Depends(require_permission("approve_loans")),
    system: CoopSystem = Depends(get_coop_system)
):
    """Release the net proceeds of an approved loan"""
    try:
        return system.loans.disburse_loan(loan_id, disbursed_by=user.email).to_dict()
    except ValueError as e:
        raise http_error(e)


@router.post("/{loan_id}/default")
async def mark_defaulted(
    loan_id: str,
    request: Optional[LoanActionRequest] = None,
    user: User = Depends(require_permission("approve_loans")),
    system: CoopSystem = Depends(get_coop_system)
):
    try:
        remarks = request.remarks if request else None
        return system.loans.mark_defaulted(loan_id, updated_by=user.email, remarks=remarks).to_dict()
    except ValueError as e:
        raise http_error(e)


@router.put("/{loan_id}/status")
async def change_status(
    loan_id: str,
    request: LoanStatusRequest,
    user: User = Depends(require_permission("approve_loans")),
    system: CoopSystem = Depends(get_coop_system)
):
    """Status change from the loans table"""
    try:
        loan = system.loans.change_status(loan_id, request.status, user_email=user.email,
                                          remarks=request.remarks)
        return loan.to_dict()
    except ValueError as e:
        raise http_error(e)


@router.post("/{loan_id}/payments", status_code=status.HTTP_201_CREATED)
async def record_payment(
    loan_id: str,
    request: LoanPaymentRequest,
    user: User = Depends(require_permission("loans", "savings")),
    system: CoopSystem = Depends(get_coop_system)
):
    """Post a loan repayment"""
    try:
        txn = system.loans.record_payment(
            loan_id, request.amount,
            payment_method=request.payment_method,
            reference_number=request.reference_number,
            processed_by=user.email
        )
        loan = system.loans.require_loan(loan_id)
        return {"transaction": txn.to_dict(), "loan": loan.to_dict()}
    except ValueError as e:
        raise http_error(e)
