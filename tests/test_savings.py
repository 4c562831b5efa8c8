"""
Test suite for savings module

Tests account opening, deposits, withdrawals against the minimum balance,
account closing and the figures on the savings page.
"""

import pytest
import re
from decimal import Decimal

from coop_mis.storage import InMemoryStorage
from coop_mis.audit import AuditTrail
from coop_mis.members import MemberRegistry, MemberStatus
from coop_mis.transactions import TransactionLedger, TransactionType, PaymentMethod
from coop_mis.savings import (
    SavingsManager, AccountType, AccountStatus, generate_account_number
)


class TestAccountNumbers:
    """Test account number generation"""

    def test_prefix_per_type(self):
        assert re.fullmatch(r"SA-\d{8}", generate_account_number(AccountType.REGULAR_SAVINGS))
        assert generate_account_number(AccountType.TIME_DEPOSIT).startswith("TD-")
        assert generate_account_number(AccountType.SPECIAL_SAVINGS).startswith("SS-")
        assert generate_account_number(AccountType.CHRISTMAS_SAVINGS).startswith("CS-")

    def test_value_is_display_label(self):
        assert AccountType("Time Deposit") is AccountType.TIME_DEPOSIT


class TestSavingsManager:
    """Test savings operations"""

    def setup_method(self):
        self.storage = InMemoryStorage()
        self.audit = AuditTrail(self.storage)
        self.members = MemberRegistry(self.storage, self.audit)
        self.ledger = TransactionLedger(self.storage, self.audit)
        self.savings = SavingsManager(self.storage, self.audit, self.members, self.ledger)
        self.member = self.members.create_member({"first_name": "Juan", "last_name": "Dela Cruz"})

    def _open(self, deposit="5000", **kwargs):
        return self.savings.open_account(self.member.id, initial_deposit=Decimal(deposit),
                                         opened_by="teller@coop.ph", **kwargs)

    def test_open_account(self):
        account = self._open(account_type=AccountType.TIME_DEPOSIT)
        assert account.account_number.startswith("TD-")
        assert account.member_name == "Juan Dela Cruz"
        assert account.balance == Decimal('5000.00')
        assert account.total_deposits == Decimal('5000.00')
        assert account.interest_rate == Decimal('2')
        assert account.minimum_balance == Decimal('500.00')
        assert account.status == AccountStatus.ACTIVE

    def test_initial_deposit_recorded(self):
        account = self._open()
        txns = self.ledger.list_transactions(account_id=account.id)
        assert len(txns) == 1
        assert txns[0].transaction_type == TransactionType.DEPOSIT
        assert txns[0].description == "Initial deposit"
        assert txns[0].running_balance == Decimal('5000.00')

    def test_open_without_deposit(self):
        account = self._open(deposit="0")
        assert account.balance == Decimal('0.00')
        assert self.ledger.list_transactions(account_id=account.id) == []

    def test_open_for_inactive_member(self):
        self.members.update_member(self.member.id, {"status": MemberStatus.INACTIVE})
        with pytest.raises(ValueError, match="not active"):
            self._open()

    def test_open_for_unknown_member(self):
        with pytest.raises(ValueError, match="not found"):
            self.savings.open_account("missing")

    def test_custom_rate_and_minimum(self):
        account = self._open(interest_rate=Decimal('3.5'), minimum_balance=Decimal('0'))
        assert account.interest_rate == Decimal('3.5')
        assert account.minimum_balance == Decimal('0.00')

    def test_deposit(self):
        account = self._open()
        txn = self.savings.deposit(account.id, Decimal('1250.50'),
                                   payment_method=PaymentMethod.CHECK, reference_number="CHK-1")
        assert txn.running_balance == Decimal('6250.50')
        assert txn.payment_method == PaymentMethod.CHECK
        updated = self.savings.get_account(account.id)
        assert updated.balance == Decimal('6250.50')
        assert updated.total_deposits == Decimal('6250.50')
        assert updated.last_transaction_date is not None

    def test_deposit_must_be_positive(self):
        account = self._open()
        with pytest.raises(ValueError, match="must be positive"):
            self.savings.deposit(account.id, Decimal('0'))

    def test_withdraw(self):
        account = self._open()
        txn = self.savings.withdraw(account.id, Decimal('4500'))
        assert txn.transaction_type == TransactionType.WITHDRAWAL
        updated = self.savings.get_account(account.id)
        assert updated.balance == Decimal('500.00')
        assert updated.total_withdrawals == Decimal('4500.00')

    def test_withdraw_below_minimum(self):
        """Test the minimum balance is kept"""
        account = self._open()
        with pytest.raises(ValueError, match="Insufficient balance. Minimum balance required: 500.00"):
            self.savings.withdraw(account.id, Decimal('4500.01'))
        assert self.savings.get_account(account.id).balance == Decimal('5000.00')

    def test_withdraw_from_closed_account(self):
        account = self._open(deposit="0", minimum_balance=Decimal('0'))
        self.savings.close_account(account.id)
        with pytest.raises(ValueError, match="not active"):
            self.savings.withdraw(account.id, Decimal('1'))
        with pytest.raises(ValueError, match="closed"):
            self.savings.deposit(account.id, Decimal('1'))

    def test_close_requires_zero_balance(self):
        account = self._open()
        with pytest.raises(ValueError, match="remaining balance"):
            self.savings.close_account(account.id)

    def test_dormant_account_reactivated_by_deposit(self):
        account = self._open()
        account.status = AccountStatus.DORMANT
        self.storage.save("savings_accounts", account.id, account.to_dict())
        self.savings.deposit(account.id, Decimal('100'))
        assert self.savings.get_account(account.id).status == AccountStatus.ACTIVE

    def test_list_accounts(self):
        self._open()
        self._open(account_type=AccountType.CHRISTMAS_SAVINGS)
        other = self.members.create_member({"first_name": "Maria", "last_name": "Santos"})
        self.savings.open_account(other.id)

        assert len(self.savings.list_accounts()) == 3
        assert len(self.savings.list_accounts(member_id=self.member.id)) == 2
        christmas = self.savings.list_accounts(account_type=AccountType.CHRISTMAS_SAVINGS)
        assert len(christmas) == 1
        assert len(self.savings.list_accounts(status=AccountStatus.CLOSED)) == 0

    def test_account_transactions(self):
        account = self._open()
        self.savings.deposit(account.id, Decimal('100'))
        self.savings.withdraw(account.id, Decimal('50'))
        history = self.savings.account_transactions(account.id)
        assert len(history) == 3
        with pytest.raises(ValueError, match="not found"):
            self.savings.account_transactions("missing")

    def test_savings_stats(self):
        first = self._open()
        self._open(deposit="1000")
        self.savings.withdraw(first.id, Decimal('500'))
        assert self.savings.savings_stats() == {
            'total_accounts': 2,
            'active_accounts': 2,
            'total_balance': '5500.00',
            'total_deposits': '6000.00',
            'total_withdrawals': '500.00',
        }
