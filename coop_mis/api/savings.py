"""
Savings account endpoints
"""

from typing import Optional
from fastapi import APIRouter, HTTPException, Depends, Query, status

from .auth import CoopSystem, get_coop_system, require_permission, http_error
from .schemas import OpenAccountRequest, SavingsTransactionRequest
from ..savings import AccountType, AccountStatus
from ..transactions import TransactionType
from ..rbac import User


router = APIRouter()


@router.post("", status_code=status.HTTP_201_CREATED)
async def open_account(
    request: OpenAccountRequest,
    user: User = Depends(require_permission("savings")),
    system: CoopSystem = Depends(get_coop_system)
):
    """Open a savings account for a member"""
    try:
        account = system.savings.open_account(
            member_id=request.member_id,
            account_type=request.account_type,
            initial_deposit=request.initial_deposit,
            interest_rate=request.interest_rate,
            minimum_balance=request.minimum_balance,
            payment_method=request.payment_method,
            opened_by=user.email
        )
        return account.to_dict()
    except ValueError as e:
        raise http_error(e)


@router.get("")
async def list_accounts(
    account_type: Optional[AccountType] = None,
    member_id: Optional[str] = None,
    status_filter: Optional[AccountStatus] = Query(None, alias="status"),
    limit: int = Query(500, ge=1, le=5000),
    user: User = Depends(require_permission("savings")),
    system: CoopSystem = Depends(get_coop_system)
):
    accounts = system.savings.list_accounts(account_type=account_type, member_id=member_id,
                                            status=status_filter, limit=limit)
    return {
        "accounts": [a.to_dict() for a in accounts],
        "stats": system.savings.savings_stats()
    }


@router.get("/{account_id}")
async def get_account(
    account_id: str,
    user: User = Depends(require_permission("savings")),
    system: CoopSystem = Depends(get_coop_system)
):
    account = system.savings.get_account(account_id)
    if not account:
        raise HTTPException(status_code=404, detail="Account not found")
    return account.to_dict()


@router.post("/{account_id}/transactions", status_code=status.HTTP_201_CREATED)
async def post_transaction(
    account_id: str,
    request: SavingsTransactionRequest,
    user: User = Depends(require_permission("savings")),
    system: CoopSystem = Depends(get_coop_system)
):
    """Post a deposit or withdrawal"""
    if request.transaction_type == TransactionType.DEPOSIT:
        post = system.savings.deposit
    elif request.transaction_type == TransactionType.WITHDRAWAL:
        post = system.savings.withdraw
    else:
        raise HTTPException(status_code=400, detail="Transaction type must be Deposit or Withdrawal")

    try:
        txn = post(
            account_id, request.amount,
            payment_method=request.payment_method,
            description=request.description,
            reference_number=request.reference_number,
            processed_by=user.email
        )
        account = system.savings.require_account(account_id)
        return {"transaction": txn.to_dict(), "account": account.to_dict()}
    except ValueError as e:
        raise http_error(e)


@router.get("/{account_id}/transactions")
async def account_history(
    account_id: str,
    limit: int = Query(50, ge=1, le=1000),
    user: User = Depends(require_permission("savings")),
    system: CoopSystem = Depends(get_coop_system)
):
    try:
        transactions = system.savings.account_transactions(account_id, limit=limit)
        return {"transactions": [t.to_dict() for t in transactions]}
    except ValueError as e:
        raise http_error(e)


@router.post("/{account_id}/close")
async def close_account(
    account_id: str,
    user: User = Depends(require_permission("savings")),
    system: CoopSystem = Depends(get_coop_system)
):
    try:
        return system.savings.close_account(account_id, closed_by=user.email).to_dict()
    except ValueError as e:
        raise http_error(e)
