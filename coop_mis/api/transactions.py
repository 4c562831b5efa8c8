"""
Transaction ledger endpoints
"""

from datetime import date
from typing import Optional
from fastapi import APIRouter, HTTPException, Depends, Query

from .auth import CoopSystem, get_coop_system, require_permission
from ..transactions import TransactionType
from ..rbac import User


router = APIRouter()


@router.get("")
async def list_transactions(
    transaction_type: Optional[TransactionType] = None,
    member_id: Optional[str] = None,
    account_id: Optional[str] = None,
    loan_id: Optional[str] = None,
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
    limit: int = Query(500, ge=1, le=5000),
    user: User = Depends(require_permission("transactions")),
    system: CoopSystem = Depends(get_coop_system)
):
    """List ledger entries, newest first"""
    transactions = system.ledger.list_transactions(
        transaction_type=transaction_type, member_id=member_id, account_id=account_id,
        loan_id=loan_id, date_from=date_from, date_to=date_to, limit=limit
    )
    return {
        "transactions": [t.to_dict() for t in transactions],
        "stats": system.ledger.transaction_stats()
    }


@router.get("/daily")
async def daily_summary(
    day: Optional[date] = None,
    user: User = Depends(require_permission("transactions")),
    system: CoopSystem = Depends(get_coop_system)
):
    return system.ledger.daily_summary(day)


@router.get("/{transaction_id}")
async def get_transaction(
    transaction_id: str,
    user: User = Depends(require_permission("transactions")),
    system: CoopSystem = Depends(get_coop_system)
):
    txn = system.ledger.get_transaction(transaction_id)
    if not txn:
        raise HTTPException(status_code=404, detail="Transaction not found")
    return txn.to_dict()
