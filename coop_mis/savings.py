"""
Savings Account Module

Member savings accounts (regular, time deposit, special and Christmas savings)
with deposits, withdrawals and minimum balance enforcement.
"""

import random
import uuid
from datetime import date, datetime, timezone
from dataclasses import dataclass
from decimal import Decimal
from typing import Dict, List, Optional, Any
from enum import Enum

from .storage import StorageInterface, StorageRecord
from .audit import AuditTrail, AuditAction, AuditModule
from .currency import round_money, to_decimal
from .members import MemberRegistry, MemberStatus
from .transactions import TransactionLedger, TransactionType, PaymentMethod, Transaction
from .logging_config import get_logger

logger = get_logger("coop_mis.savings")


class AccountType(Enum):
    REGULAR_SAVINGS = ("Regular Savings", "SA")
    TIME_DEPOSIT = ("Time Deposit", "TD")
    SPECIAL_SAVINGS = ("Special Savings", "SS")
    CHRISTMAS_SAVINGS = ("Christmas Savings", "CS")

    def __new__(cls, label: str, prefix: str):
        obj = object.__new__(cls)
        obj._value_ = label
        obj.prefix = prefix
        return obj


class AccountStatus(Enum):
    ACTIVE = "Active"
    DORMANT = "Dormant"
    CLOSED = "Closed"


def generate_account_number(account_type: AccountType) -> str:
    """Account number such as SA-04821937"""
    return f"{account_type.prefix}-{random.randint(0, 99999999):08d}"


@dataclass
class SavingsAccount(StorageRecord):
    """Member savings account"""
    account_number: str
    member_id: str
    member_name: str
    account_type: AccountType
    balance: Decimal = Decimal('0.00')
    interest_rate: Decimal = Decimal('2')
    minimum_balance: Decimal = Decimal('500.00')
    status: AccountStatus = AccountStatus.ACTIVE
    opened_date: Optional[date] = None
    last_transaction_date: Optional[date] = None
    total_deposits: Decimal = Decimal('0.00')
    total_withdrawals: Decimal = Decimal('0.00')
    total_interest_earned: Decimal = Decimal('0.00')


class SavingsManager:
    """
    Opens savings accounts and posts deposits and withdrawals through the ledger
    """

    def __init__(self, storage: StorageInterface, audit: AuditTrail,
                 members: MemberRegistry, ledger: TransactionLedger,
                 default_interest_rate: Decimal = Decimal('2'),
                 default_minimum_balance: Decimal = Decimal('500.00')):
        self.storage = storage
        self.audit = audit
        self.members = members
        self.ledger = ledger
        self.default_interest_rate = to_decimal(default_interest_rate)
        self.default_minimum_balance = round_money(default_minimum_balance)
        self.table_name = "savings_accounts"

    def _unique_number(self, account_type: AccountType) -> str:
        while True:
            number = generate_account_number(account_type)
            if not self.storage.find(self.table_name, {'account_number': number}):
                return number

    def _save(self, account: SavingsAccount) -> None:
        account.updated_at = datetime.now(timezone.utc)
        self.storage.save(self.table_name, account.id, account.to_dict())

    def open_account(
        self,
        member_id: str,
        account_type: AccountType = AccountType.REGULAR_SAVINGS,
        initial_deposit: Decimal = Decimal('0'),
        interest_rate: Optional[Decimal] = None,
        minimum_balance: Optional[Decimal] = None,
        payment_method: PaymentMethod = PaymentMethod.CASH,
        opened_by: Optional[str] = None
    ) -> SavingsAccount:
        """
        Open a savings account for a member.

        A positive initial deposit is posted as a Deposit transaction.
        """
        member = self.members.require_member(member_id)
        if member.status != MemberStatus.ACTIVE:
            raise ValueError(f"Member {member.member_code} is not active")

        initial_deposit = round_money(initial_deposit)
        if initial_deposit < 0:
            raise ValueError("Initial deposit cannot be negative")

        now = datetime.now(timezone.utc)
        account = SavingsAccount(
            id=str(uuid.uuid4()),
            created_at=now,
            updated_at=now,
            account_number=self._unique_number(account_type),
            member_id=member.id,
            member_name=member.full_name,
            account_type=account_type,
            balance=initial_deposit,
            interest_rate=self.default_interest_rate if interest_rate is None else to_decimal(interest_rate),
            minimum_balance=self.default_minimum_balance if minimum_balance is None else round_money(minimum_balance),
            opened_date=now.date(),
            last_transaction_date=now.date() if initial_deposit > 0 else None,
            total_deposits=initial_deposit
        )

        with self.storage.atomic():
            self.storage.save(self.table_name, account.id, account.to_dict())
            if initial_deposit > 0:
                self.ledger.record(
                    TransactionType.DEPOSIT, initial_deposit,
                    member_id=member.id, member_name=member.full_name,
                    account_id=account.id, account_number=account.account_number,
                    running_balance=account.balance, description="Initial deposit",
                    payment_method=payment_method, processed_by=opened_by
                )

        self.audit.log(AuditAction.CREATE, AuditModule.SAVINGS,
                       f"Opened {account_type.value} account {account.account_number} for {member.full_name}",
                       record_id=account.id, user_email=opened_by)
        return account

    def get_account(self, account_id: str) -> Optional[SavingsAccount]:
        data = self.storage.load(self.table_name, account_id)
        return SavingsAccount.from_dict(data) if data else None

    def require_account(self, account_id: str) -> SavingsAccount:
        account = self.get_account(account_id)
        if not account:
            raise ValueError(f"Savings account {account_id} not found")
        return account

    def deposit(self, account_id: str, amount: Decimal,
                payment_method: PaymentMethod = PaymentMethod.CASH,
                description: Optional[str] = None, reference_number: Optional[str] = None,
                processed_by: Optional[str] = None) -> Transaction:
        """Post a deposit and return the ledger entry"""
        amount = round_money(amount)
        if amount <= 0:
            raise ValueError("Deposit amount must be positive")

        account = self.require_account(account_id)
        if account.status == AccountStatus.CLOSED:
            raise ValueError(f"Account {account.account_number} is closed")

        account.balance += amount
        account.total_deposits += amount
        account.last_transaction_date = datetime.now(timezone.utc).date()
        if account.status == AccountStatus.DORMANT:
            account.status = AccountStatus.ACTIVE

        with self.storage.atomic():
            txn = self.ledger.record(
                TransactionType.DEPOSIT, amount,
                member_id=account.member_id, member_name=account.member_name,
                account_id=account.id, account_number=account.account_number,
                running_balance=account.balance, description=description,
                payment_method=payment_method, reference_number=reference_number,
                processed_by=processed_by
            )
            self._save(account)
        return txn

    def withdraw(self, account_id: str, amount: Decimal,
                 payment_method: PaymentMethod = PaymentMethod.CASH,
                 description: Optional[str] = None, reference_number: Optional[str] = None,
                 processed_by: Optional[str] = None) -> Transaction:
        """
        Post a withdrawal.

        Raises:
            ValueError: If the resulting balance would fall below the minimum balance
        """
        amount = round_money(amount)
        if amount <= 0:
            raise ValueError("Withdrawal amount must be positive")

        account = self.require_account(account_id)
        if account.status != AccountStatus.ACTIVE:
            raise ValueError(f"Account {account.account_number} is not active")

        new_balance = account.balance - amount
        if new_balance < account.minimum_balance:
            logger.warning("Withdrawal refused on %s: balance %s, requested %s",
                           account.account_number, account.balance, amount)
            raise ValueError("Insufficient balance. Minimum balance required: "
                             f"{account.minimum_balance}")

        account.balance = new_balance
        account.total_withdrawals += amount
        account.last_transaction_date = datetime.now(timezone.utc).date()

        with self.storage.atomic():
            txn = self.ledger.record(
                TransactionType.WITHDRAWAL, amount,
                member_id=account.member_id, member_name=account.member_name,
                account_id=account.id, account_number=account.account_number,
                running_balance=account.balance, description=description,
                payment_method=payment_method, reference_number=reference_number,
                processed_by=processed_by
            )
            self._save(account)
        return txn

    def close_account(self, account_id: str, closed_by: Optional[str] = None) -> SavingsAccount:
        account = self.require_account(account_id)
        if account.balance > 0:
            raise ValueError("Withdraw the remaining balance before closing the account")
        account.status = AccountStatus.CLOSED
        self._save(account)
        self.audit.log(AuditAction.UPDATE, AuditModule.SAVINGS,
                       f"Closed account {account.account_number}",
                       record_id=account.id, user_email=closed_by)
        return account

    def list_accounts(self, account_type: Optional[AccountType] = None,
                      member_id: Optional[str] = None,
                      status: Optional[AccountStatus] = None,
                      limit: Optional[int] = None) -> List[SavingsAccount]:
        """List accounts newest first"""
        filters = {}
        if account_type:
            filters['account_type'] = account_type.value
        if member_id:
            filters['member_id'] = member_id
        if status:
            filters['status'] = status.value
        records = self.storage.filter(self.table_name, filters, limit=limit)
        return [SavingsAccount.from_dict(r) for r in records]

    def account_transactions(self, account_id: str, limit: int = 50) -> List[Transaction]:
        """Latest transactions of an account"""
        self.require_account(account_id)
        return self.ledger.list_transactions(account_id=account_id, limit=limit)

    def savings_stats(self) -> Dict[str, Any]:
        """Totals shown on the savings page"""
        accounts = self.list_accounts()
        zero = Decimal('0.00')
        return {
            'total_accounts': len(accounts),
            'active_accounts': sum(1 for a in accounts if a.status == AccountStatus.ACTIVE),
            'total_balance': str(sum((a.balance for a in accounts), zero)),
            'total_deposits': str(sum((a.total_deposits for a in accounts), zero)),
            'total_withdrawals': str(sum((a.total_withdrawals for a in accounts), zero)),
        }
