"""
Test suite for loans module

Tests loan applications against product rules, the approval workflow,
disbursement, repayments applied to the amortization schedule, and
portfolio statistics. All financial math must be precise.
"""

import pytest
import re
from datetime import date
from decimal import Decimal

from coop_mis.storage import InMemoryStorage
from coop_mis.audit import AuditTrail, AuditAction
from coop_mis.members import MemberRegistry, MemberStatus
from coop_mis.loan_types import LoanTypeCatalog
from coop_mis.transactions import TransactionLedger, TransactionType
from coop_mis.loans import LoanManager, LoanStatus, generate_loan_number


class TestLoanNumber:
    """Test loan number generation"""

    def test_format(self):
        assert re.fullmatch(r"LN-202403-\d{4}", generate_loan_number(date(2024, 3, 9)))


class LoanTestBase:
    """Shared setup: one member, one salary loan product"""

    def setup_method(self):
        self.storage = InMemoryStorage()
        self.audit = AuditTrail(self.storage)
        self.members = MemberRegistry(self.storage, self.audit)
        self.loan_types = LoanTypeCatalog(self.storage, self.audit)
        self.ledger = TransactionLedger(self.storage, self.audit)
        self.loans = LoanManager(self.storage, self.audit, self.members,
                                 self.loan_types, self.ledger)

        self.member = self.members.create_member({"first_name": "Juan", "last_name": "Dela Cruz"})
        self.comaker = self.members.create_member({"first_name": "Maria", "last_name": "Santos"})
        self.salary = self.loan_types.create({
            "name": "Salary Loan", "code": "SAL", "interest_rate": "12",
            "service_fee_percent": "1", "min_amount": "5000", "max_amount": "200000",
            "min_term_months": 6, "max_term_months": 36, "requires_comaker": True,
        })

    def _apply(self, amount="100000", term=12, **kwargs):
        kwargs.setdefault("comaker_member_id", self.comaker.id)
        return self.loans.apply_for_loan(
            self.member.id, self.salary.id, Decimal(amount), term,
            application_date=date(2024, 1, 15), applied_by="officer@coop.ph", **kwargs
        )

    def _active_loan(self, amount="100000", term=12):
        loan = self._apply(amount, term)
        self.loans.approve_loan(loan.id, approved_by="manager@coop.ph")
        return self.loans.disburse_loan(loan.id, disbursed_by="manager@coop.ph")


class TestLoanApplication(LoanTestBase):
    """Test filing applications"""

    def test_apply(self):
        loan = self._apply(purpose="Tuition")
        assert loan.loan_number.startswith("LN-")
        assert loan.status == LoanStatus.PENDING
        assert loan.member_name == "Juan Dela Cruz"
        assert loan.loan_type_name == "Salary Loan"
        assert loan.comaker_name == "Maria Santos"
        assert loan.monthly_amortization == Decimal('8884.88')
        assert loan.total_payable == Decimal('106618.55')
        assert loan.service_fee == Decimal('1000.00')
        assert loan.net_proceeds == Decimal('99000.00')
        assert loan.outstanding_balance == Decimal('100000.00')
        assert loan.maturity_date == date(2025, 1, 15)
        assert len(loan.amortization_schedule) == 12
        assert loan.amortization_schedule[0]['due_date'] == '2024-02-15'

    def test_application_audited(self):
        loan = self._apply()
        entry = self.audit.get_logs_for_record(loan.id)[0]
        assert entry.action == AuditAction.CREATE
        assert entry.user_email == "officer@coop.ph"

    def test_zero_rate_product_uses_default(self):
        """Test a product without a rate falls back to 12%"""
        product = self.loan_types.create({"name": "Open Loan", "code": "OPN",
                                          "requires_comaker": False})
        loan = self.loans.apply_for_loan(self.member.id, product.id, Decimal('12000'), 12)
        assert loan.interest_rate == Decimal('12')
        assert loan.service_fee == Decimal('120.00')

    def test_amount_outside_limits(self):
        with pytest.raises(ValueError, match="below"):
            self._apply(amount="1000")
        with pytest.raises(ValueError, match="exceeds"):
            self._apply(amount="500000")

    def test_term_outside_limits(self):
        with pytest.raises(ValueError, match="Term exceeds"):
            self._apply(term=48)

    def test_comaker_required(self):
        with pytest.raises(ValueError, match="requires a co-maker"):
            self._apply(comaker_member_id=None)

    def test_comaker_by_name(self):
        loan = self._apply(comaker_member_id=None, comaker_name="Pedro Reyes")
        assert loan.comaker_name == "Pedro Reyes"

    def test_self_comaker_refused(self):
        with pytest.raises(ValueError, match="own co-maker"):
            self._apply(comaker_member_id=self.member.id)

    def test_collateral_required(self):
        product = self.loan_types.create({"name": "Housing Loan", "code": "HSG",
                                          "requires_collateral": True, "requires_comaker": False})
        with pytest.raises(ValueError, match="requires collateral"):
            self.loans.apply_for_loan(self.member.id, product.id, Decimal('50000'), 12)
        loan = self.loans.apply_for_loan(self.member.id, product.id, Decimal('50000'), 12,
                                         collateral_description="Land title TCT-123")
        assert loan.collateral_description == "Land title TCT-123"

    def test_inactive_member_refused(self):
        self.members.update_member(self.member.id, {"status": MemberStatus.SUSPENDED})
        with pytest.raises(ValueError, match="not active"):
            self._apply()

    def test_inactive_product_refused(self):
        self.loan_types.update(self.salary.id, {"is_active": False})
        with pytest.raises(ValueError, match="not available"):
            self._apply()

    def test_unknown_loan_type(self):
        with pytest.raises(ValueError, match="not found"):
            self.loans.apply_for_loan(self.member.id, "missing", Decimal('10000'), 12)


class TestLoanWorkflow(LoanTestBase):
    """Test approval, rejection, disbursement and default"""

    def test_approve(self):
        loan = self._apply()
        approved = self.loans.approve_loan(loan.id, approved_by="manager@coop.ph")
        assert approved.status == LoanStatus.APPROVED
        assert approved.approved_by == "manager@coop.ph"
        assert approved.approval_date is not None
        assert self.audit.get_logs(action=AuditAction.APPROVE)

    def test_reject(self):
        loan = self._apply()
        rejected = self.loans.reject_loan(loan.id, rejected_by="manager@coop.ph",
                                          remarks="Insufficient income")
        assert rejected.status == LoanStatus.REJECTED
        assert rejected.remarks == "Insufficient income"

    def test_only_pending_can_be_approved(self):
        loan = self._apply()
        self.loans.reject_loan(loan.id)
        with pytest.raises(ValueError, match="expected Pending"):
            self.loans.approve_loan(loan.id)

    def test_disburse(self):
        """Test disbursement activates the loan and records net proceeds"""
        loan = self._active_loan()
        assert loan.status == LoanStatus.ACTIVE
        assert loan.disbursement_date is not None

        txns = self.ledger.list_transactions(loan_id=loan.id)
        assert len(txns) == 1
        assert txns[0].transaction_type == TransactionType.LOAN_DISBURSEMENT
        assert txns[0].amount == Decimal('99000.00')
        assert self.audit.get_logs(action=AuditAction.DISBURSE)

    def test_disburse_requires_approval(self):
        loan = self._apply()
        with pytest.raises(ValueError, match="expected Approved"):
            self.loans.disburse_loan(loan.id)

    def test_mark_defaulted(self):
        loan = self._active_loan()
        defaulted = self.loans.mark_defaulted(loan.id)
        assert defaulted.status == LoanStatus.DEFAULTED

    def test_pending_cannot_default(self):
        loan = self._apply()
        with pytest.raises(ValueError):
            self.loans.mark_defaulted(loan.id)

    def test_change_status_dispatch(self):
        loan = self._apply()
        assert self.loans.change_status(loan.id, LoanStatus.APPROVED).status == LoanStatus.APPROVED
        assert self.loans.change_status(loan.id, LoanStatus.ACTIVE).status == LoanStatus.ACTIVE
        assert self.loans.change_status(loan.id, LoanStatus.DEFAULTED).status == LoanStatus.DEFAULTED
        with pytest.raises(ValueError, match="Cannot change loan status"):
            self.loans.change_status(loan.id, LoanStatus.PAID)

    def test_unknown_loan(self):
        with pytest.raises(ValueError, match="not found"):
            self.loans.approve_loan("missing")


class TestLoanPayments(LoanTestBase):
    """Test repayments"""

    def test_first_installment(self):
        """Test a full installment splits into interest then principal"""
        loan = self._active_loan()
        txn = self.loans.record_payment(loan.id, Decimal('8884.88'), processed_by="teller@coop.ph")

        assert txn.transaction_type == TransactionType.LOAN_PAYMENT
        assert txn.running_balance == Decimal('92115.12')
        updated = self.loans.get_loan(loan.id)
        assert updated.outstanding_balance == Decimal('92115.12')
        assert updated.total_paid == Decimal('8884.88')
        assert updated.amortization_schedule[0]['status'] == 'Paid'
        assert updated.amortization_schedule[1]['status'] == 'Pending'

    def test_partial_payment_covers_interest_first(self):
        loan = self._active_loan()
        self.loans.record_payment(loan.id, Decimal('600'))
        updated = self.loans.get_loan(loan.id)
        assert updated.outstanding_balance == Decimal('100000.00')
        assert updated.amortization_schedule[0]['amount_paid'] == '600.00'

        self.loans.record_payment(loan.id, Decimal('1400'))
        updated = self.loans.get_loan(loan.id)
        # 400 of interest left, then 1000 of principal
        assert updated.outstanding_balance == Decimal('99000.00')
        assert updated.amortization_schedule[0]['status'] == 'Pending'

    def test_amount_due(self):
        loan = self._active_loan()
        due = LoanManager.amount_due(loan)
        assert due == sum(Decimal(e['total']) for e in loan.amortization_schedule)
        self.loans.record_payment(loan.id, Decimal('1000'))
        assert LoanManager.amount_due(self.loans.get_loan(loan.id)) == due - Decimal('1000')

    def test_overpayment_refused(self):
        loan = self._active_loan()
        with pytest.raises(ValueError, match="exceeds the amount due"):
            self.loans.record_payment(loan.id, LoanManager.amount_due(loan) + Decimal('0.01'))

    def test_full_payoff_closes_loan(self):
        loan = self._active_loan(amount="12000", term=6)
        self.loans.record_payment(loan.id, LoanManager.amount_due(loan))
        paid = self.loans.get_loan(loan.id)
        assert paid.status == LoanStatus.PAID
        assert paid.outstanding_balance == Decimal('0.00')
        assert all(e['status'] == 'Paid' for e in paid.amortization_schedule)

        with pytest.raises(ValueError):
            self.loans.record_payment(loan.id, Decimal('1'))

    def test_installment_by_installment(self):
        loan = self._active_loan(amount="12000", term=6)
        for entry in loan.amortization_schedule:
            self.loans.record_payment(loan.id, Decimal(entry['total']))
        paid = self.loans.get_loan(loan.id)
        assert paid.status == LoanStatus.PAID
        assert paid.total_paid == sum(Decimal(e['total']) for e in loan.amortization_schedule)

    def test_payment_on_pending_loan(self):
        loan = self._apply()
        with pytest.raises(ValueError):
            self.loans.record_payment(loan.id, Decimal('100'))

    def test_non_positive_payment(self):
        loan = self._active_loan()
        with pytest.raises(ValueError, match="must be positive"):
            self.loans.record_payment(loan.id, Decimal('0'))


class TestLoanQueries(LoanTestBase):
    """Test listing and statistics"""

    def test_list_loans(self):
        pending = self._apply()
        active = self._active_loan()
        assert len(self.loans.list_loans()) == 2
        assert [l.id for l in self.loans.list_loans(status=LoanStatus.PENDING)] == [pending.id]
        assert [l.id for l in self.loans.list_loans(status=LoanStatus.ACTIVE)] == [active.id]
        assert len(self.loans.list_loans(member_id=self.comaker.id)) == 0

    def test_loan_stats(self):
        self._apply()
        self._active_loan(amount="50000")
        stats = self.loans.loan_stats()
        assert stats == {
            'total': 2,
            'pending': 1,
            'active': 1,
            'paid': 0,
            'portfolio': '50000.00',
        }
