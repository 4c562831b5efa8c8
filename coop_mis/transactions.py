"""
Transaction Ledger Module

Every money movement (savings deposit and withdrawal, loan payment and
disbursement) is recorded here with the running balance of the account it touched.
"""

import time
import uuid
from datetime import date, datetime, timezone
from dataclasses import dataclass
from decimal import Decimal
from typing import Dict, List, Optional, Any
from enum import Enum

from .storage import StorageInterface, StorageRecord
from .audit import AuditTrail, AuditAction, AuditModule
from .currency import round_money
from .logging_config import get_logger

logger = get_logger("coop_mis.transactions")


class TransactionType(Enum):
    DEPOSIT = "Deposit"
    WITHDRAWAL = "Withdrawal"
    LOAN_PAYMENT = "Loan Payment"
    LOAN_DISBURSEMENT = "Loan Disbursement"


class PaymentMethod(Enum):
    CASH = "Cash"
    CHECK = "Check"
    BANK_TRANSFER = "Bank Transfer"


class TransactionStatus(Enum):
    COMPLETED = "Completed"


# Shown as inflows (+) in transaction tables
CREDIT_TYPES = (TransactionType.DEPOSIT, TransactionType.LOAN_PAYMENT)


@dataclass
class Transaction(StorageRecord):
    """Ledger entry"""
    transaction_number: str
    transaction_type: TransactionType
    amount: Decimal
    transaction_date: date
    member_id: Optional[str] = None
    member_name: Optional[str] = None
    account_id: Optional[str] = None
    account_number: Optional[str] = None
    loan_id: Optional[str] = None
    running_balance: Optional[Decimal] = None
    description: Optional[str] = None
    payment_method: PaymentMethod = PaymentMethod.CASH
    reference_number: Optional[str] = None
    status: TransactionStatus = TransactionStatus.COMPLETED
    processed_by: Optional[str] = None

    @property
    def is_credit(self) -> bool:
        return self.transaction_type in CREDIT_TYPES


class TransactionLedger:
    """
    Append-only ledger of member transactions
    """

    def __init__(self, storage: StorageInterface, audit: AuditTrail):
        self.storage = storage
        self.audit = audit
        self.table_name = "transactions"
        self._last_number = 0

    def _next_number(self) -> str:
        """TXN-<epoch milliseconds>, bumped when two land in the same millisecond"""
        number = int(time.time() * 1000)
        if number <= self._last_number:
            number = self._last_number + 1
        self._last_number = number
        return f"TXN-{number}"

    def record(
        self,
        transaction_type: TransactionType,
        amount: Decimal,
        member_id: Optional[str] = None,
        member_name: Optional[str] = None,
        account_id: Optional[str] = None,
        account_number: Optional[str] = None,
        loan_id: Optional[str] = None,
        running_balance: Optional[Decimal] = None,
        description: Optional[str] = None,
        payment_method: PaymentMethod = PaymentMethod.CASH,
        reference_number: Optional[str] = None,
        processed_by: Optional[str] = None,
        transaction_date: Optional[date] = None
    ) -> Transaction:
        """
        Record a completed transaction

        Args:
            transaction_type: Deposit, Withdrawal, Loan Payment or Loan Disbursement
            amount: Positive amount moved
            running_balance: Balance of the account after this transaction
            description: Defaults to "<type> transaction"

        Returns:
            Created Transaction
        """
        amount = round_money(amount)
        if amount <= 0:
            raise ValueError("Transaction amount must be positive")

        now = datetime.now(timezone.utc)
        txn = Transaction(
            id=str(uuid.uuid4()),
            created_at=now,
            updated_at=now,
            transaction_number=self._next_number(),
            transaction_type=transaction_type,
            amount=amount,
            transaction_date=transaction_date or now.date(),
            member_id=member_id,
            member_name=member_name,
            account_id=account_id,
            account_number=account_number,
            loan_id=loan_id,
            running_balance=round_money(running_balance) if running_balance is not None else None,
            description=description or f"{transaction_type.value} transaction",
            payment_method=payment_method,
            reference_number=reference_number,
            processed_by=processed_by
        )

        self.storage.save(self.table_name, txn.id, txn.to_dict())
        self.audit.log(AuditAction.CREATE, AuditModule.TRANSACTIONS,
                       f"{transaction_type.value} {txn.transaction_number} of {amount}",
                       record_id=txn.id, user_email=processed_by,
                       metadata={'account_number': account_number, 'loan_id': loan_id})
        logger.info("Recorded %s %s amount=%s", transaction_type.value, txn.transaction_number, amount)
        return txn

    def get_transaction(self, transaction_id: str) -> Optional[Transaction]:
        data = self.storage.load(self.table_name, transaction_id)
        return Transaction.from_dict(data) if data else None

    def list_transactions(
        self,
        transaction_type: Optional[TransactionType] = None,
        member_id: Optional[str] = None,
        account_id: Optional[str] = None,
        loan_id: Optional[str] = None,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
        limit: Optional[int] = None
    ) -> List[Transaction]:
        """List transactions newest first, optionally filtered"""
        filters = {}
        if transaction_type:
            filters['transaction_type'] = transaction_type.value
        if member_id:
            filters['member_id'] = member_id
        if account_id:
            filters['account_id'] = account_id
        if loan_id:
            filters['loan_id'] = loan_id

        records = self.storage.filter(self.table_name, filters)
        transactions = [Transaction.from_dict(r) for r in records]
        if date_from:
            transactions = [t for t in transactions if t.transaction_date >= date_from]
        if date_to:
            transactions = [t for t in transactions if t.transaction_date <= date_to]
        if limit:
            transactions = transactions[:limit]
        return transactions

    @staticmethod
    def totals_by_type(transactions: List[Transaction]) -> Dict[str, Decimal]:
        """Sum amounts per transaction type"""
        totals = {t.value: Decimal('0.00') for t in TransactionType}
        for txn in transactions:
            totals[txn.transaction_type.value] += txn.amount
        return totals

    def transaction_stats(self) -> Dict[str, str]:
        """Totals shown on the transactions page"""
        totals = self.totals_by_type(self.list_transactions())
        return {
            'total_deposits': str(totals[TransactionType.DEPOSIT.value]),
            'total_withdrawals': str(totals[TransactionType.WITHDRAWAL.value]),
            'total_loan_payments': str(totals[TransactionType.LOAN_PAYMENT.value]),
        }

    def daily_summary(self, day: Optional[date] = None) -> Dict[str, Any]:
        """Teller window totals for one day"""
        day = day or datetime.now(timezone.utc).date()
        transactions = self.list_transactions(date_from=day, date_to=day)
        deposits = [t for t in transactions if t.transaction_type == TransactionType.DEPOSIT]
        withdrawals = [t for t in transactions if t.transaction_type == TransactionType.WITHDRAWAL]
        return {
            'date': day.isoformat(),
            'deposits': str(sum((t.amount for t in deposits), Decimal('0.00'))),
            'withdrawals': str(sum((t.amount for t in withdrawals), Decimal('0.00'))),
            'deposit_count': len(deposits),
            'withdrawal_count': len(withdrawals),
            'transaction_count': len(transactions),
        }

    def large_transactions(self, threshold: Decimal) -> List[Transaction]:
        """Transactions strictly above the reporting threshold"""
        return [t for t in self.list_transactions() if t.amount > threshold]
