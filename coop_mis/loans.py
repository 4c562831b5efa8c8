"""
Loan Management Module

Loan applications, approval workflow, disbursement and repayment.
The amortization schedule is computed at application time and stored with the loan.
"""

import random
import uuid
from datetime import date, datetime, timezone
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Dict, List, Optional, Any
from enum import Enum

from .storage import StorageInterface, StorageRecord
from .audit import AuditTrail, AuditAction, AuditModule
from .amortization import calculate_loan, DEFAULT_ANNUAL_RATE, DEFAULT_SERVICE_FEE_PERCENT
from .currency import round_money, to_decimal
from .members import MemberRegistry, MemberStatus
from .loan_types import LoanTypeCatalog
from .transactions import TransactionLedger, TransactionType, PaymentMethod, Transaction
from .logging_config import get_logger

logger = get_logger("coop_mis.loans")


class LoanStatus(Enum):
    PENDING = "Pending"
    APPROVED = "Approved"
    REJECTED = "Rejected"
    DISBURSED = "Disbursed"
    ACTIVE = "Active"
    PAID = "Paid"
    DEFAULTED = "Defaulted"


# Loans that make up the outstanding portfolio
ACTIVE_STATUSES = (LoanStatus.ACTIVE, LoanStatus.DISBURSED)


def generate_loan_number(today: Optional[date] = None) -> str:
    """Loan number such as LN-202403-0193"""
    today = today or date.today()
    return f"LN-{today.strftime('%Y%m')}-{random.randint(0, 9999):04d}"


@dataclass
class Loan(StorageRecord):
    """Loan application and account"""
    loan_number: str
    member_id: str
    member_name: str
    principal_amount: Decimal
    interest_rate: Decimal
    term_months: int
    monthly_amortization: Decimal
    total_interest: Decimal
    total_payable: Decimal
    service_fee: Decimal
    net_proceeds: Decimal
    outstanding_balance: Decimal
    application_date: date
    maturity_date: date
    status: LoanStatus = LoanStatus.PENDING
    loan_type_id: Optional[str] = None
    loan_type_name: Optional[str] = None
    purpose: Optional[str] = None
    comaker_name: Optional[str] = None
    comaker_member_id: Optional[str] = None
    collateral_description: Optional[str] = None
    remarks: Optional[str] = None
    approval_date: Optional[date] = None
    approved_by: Optional[str] = None
    disbursement_date: Optional[date] = None
    total_paid: Decimal = Decimal('0.00')
    amortization_schedule: List[Dict[str, Any]] = field(default_factory=list)

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_STATUSES


class LoanManager:
    """
    Loan origination and servicing
    """

    def __init__(self, storage: StorageInterface, audit: AuditTrail,
                 members: MemberRegistry, loan_types: LoanTypeCatalog,
                 ledger: TransactionLedger,
                 default_interest_rate: Decimal = DEFAULT_ANNUAL_RATE,
                 default_service_fee_percent: Decimal = DEFAULT_SERVICE_FEE_PERCENT):
        self.storage = storage
        self.audit = audit
        self.members = members
        self.loan_types = loan_types
        self.ledger = ledger
        self.default_interest_rate = to_decimal(default_interest_rate)
        self.default_service_fee_percent = to_decimal(default_service_fee_percent)
        self.table_name = "loans"

    def _unique_number(self) -> str:
        while True:
            number = generate_loan_number()
            if not self.storage.find(self.table_name, {'loan_number': number}):
                return number

    def _save(self, loan: Loan) -> None:
        loan.updated_at = datetime.now(timezone.utc)
        self.storage.save(self.table_name, loan.id, loan.to_dict())

    def apply_for_loan(
        self,
        member_id: str,
        loan_type_id: str,
        principal_amount: Decimal,
        term_months: int,
        purpose: Optional[str] = None,
        comaker_name: Optional[str] = None,
        comaker_member_id: Optional[str] = None,
        collateral_description: Optional[str] = None,
        remarks: Optional[str] = None,
        application_date: Optional[date] = None,
        applied_by: Optional[str] = None
    ) -> Loan:
        """
        File a loan application.

        Rate and service fee come from the loan type. The application starts Pending
        with the full amortization schedule attached.

        Raises:
            ValueError: Unknown member or loan type, inactive member or product,
                        amount or term outside the product limits, missing comaker
                        or collateral when the product requires it
        """
        member = self.members.require_member(member_id)
        if member.status != MemberStatus.ACTIVE:
            raise ValueError(f"Member {member.member_code} is not active")

        loan_type = self.loan_types.get(loan_type_id)
        if not loan_type:
            raise ValueError(f"Loan type {loan_type_id} not found")
        if not loan_type.is_active:
            raise ValueError(f"Loan type {loan_type.name} is not available")

        principal = round_money(principal_amount)
        term_months = int(term_months)
        loan_type.check_terms(principal, term_months)
        if loan_type.requires_comaker and not (comaker_name or comaker_member_id):
            raise ValueError(f"{loan_type.name} requires a co-maker")
        if loan_type.requires_collateral and not collateral_description:
            raise ValueError(f"{loan_type.name} requires collateral")
        if comaker_member_id:
            comaker = self.members.require_member(comaker_member_id)
            if comaker.id == member.id:
                raise ValueError("Borrower cannot be their own co-maker")
            comaker_name = comaker_name or comaker.full_name

        application_date = application_date or datetime.now(timezone.utc).date()
        calc = calculate_loan(
            principal,
            loan_type.interest_rate or self.default_interest_rate,
            term_months,
            loan_type.service_fee_percent or self.default_service_fee_percent,
            start_date=application_date
        )

        now = datetime.now(timezone.utc)
        loan = Loan(
            id=str(uuid.uuid4()),
            created_at=now,
            updated_at=now,
            loan_number=self._unique_number(),
            member_id=member.id,
            member_name=member.full_name,
            loan_type_id=loan_type.id,
            loan_type_name=loan_type.name,
            principal_amount=calc.principal_amount,
            interest_rate=calc.interest_rate,
            term_months=term_months,
            purpose=purpose,
            monthly_amortization=calc.monthly_amortization,
            total_interest=calc.total_interest,
            total_payable=calc.total_payable,
            service_fee=calc.service_fee,
            net_proceeds=calc.net_proceeds,
            outstanding_balance=calc.principal_amount,
            application_date=application_date,
            maturity_date=calc.maturity_date,
            comaker_name=comaker_name,
            comaker_member_id=comaker_member_id,
            collateral_description=collateral_description,
            remarks=remarks,
            amortization_schedule=[entry.to_dict() for entry in calc.amortization_schedule]
        )

        self.storage.save(self.table_name, loan.id, loan.to_dict())
        self.audit.log(AuditAction.CREATE, AuditModule.LOANS,
                       f"Loan application {loan.loan_number} for {member.full_name} "
                       f"({loan.principal_amount})",
                       record_id=loan.id, user_email=applied_by)
        logger.info("Loan %s filed for member %s", loan.loan_number, member.member_code)
        return loan

    def get_loan(self, loan_id: str) -> Optional[Loan]:
        data = self.storage.load(self.table_name, loan_id)
        return Loan.from_dict(data) if data else None

    def require_loan(self, loan_id: str) -> Loan:
        loan = self.get_loan(loan_id)
        if not loan:
            raise ValueError(f"Loan {loan_id} not found")
        return loan

    def _expect_status(self, loan: Loan, *allowed: LoanStatus) -> None:
        if loan.status not in allowed:
            raise ValueError(f"Loan {loan.loan_number} is {loan.status.value}; expected "
                             f"{' or '.join(s.value for s in allowed)}")

    def approve_loan(self, loan_id: str, approved_by: Optional[str] = None,
                     remarks: Optional[str] = None) -> Loan:
        loan = self.require_loan(loan_id)
        self._expect_status(loan, LoanStatus.PENDING)

        loan.status = LoanStatus.APPROVED
        loan.approval_date = datetime.now(timezone.utc).date()
        loan.approved_by = approved_by
        if remarks:
            loan.remarks = remarks
        self._save(loan)

        self.audit.log(AuditAction.APPROVE, AuditModule.LOANS,
                       f"Approved loan {loan.loan_number}",
                       record_id=loan.id, user_email=approved_by)
        return loan

    def reject_loan(self, loan_id: str, rejected_by: Optional[str] = None,
                    remarks: Optional[str] = None) -> Loan:
        loan = self.require_loan(loan_id)
        self._expect_status(loan, LoanStatus.PENDING)

        loan.status = LoanStatus.REJECTED
        if remarks:
            loan.remarks = remarks
        self._save(loan)

        self.audit.log(AuditAction.REJECT, AuditModule.LOANS,
                       f"Rejected loan {loan.loan_number}",
                       record_id=loan.id, user_email=rejected_by,
                       metadata={'remarks': remarks})
        return loan

    def disburse_loan(self, loan_id: str, disbursed_by: Optional[str] = None,
                      payment_method: PaymentMethod = PaymentMethod.CASH) -> Loan:
        """
        Release the net proceeds of an approved loan.

        The loan becomes Active and a Loan Disbursement transaction is recorded.
        """
        loan = self.require_loan(loan_id)
        self._expect_status(loan, LoanStatus.APPROVED)

        loan.status = LoanStatus.ACTIVE
        loan.disbursement_date = datetime.now(timezone.utc).date()

        with self.storage.atomic():
            self._save(loan)
            self.ledger.record(
                TransactionType.LOAN_DISBURSEMENT, loan.net_proceeds,
                member_id=loan.member_id, member_name=loan.member_name,
                loan_id=loan.id, account_number=loan.loan_number,
                running_balance=loan.outstanding_balance,
                description=f"Disbursement of loan {loan.loan_number}",
                payment_method=payment_method, processed_by=disbursed_by
            )

        self.audit.log(AuditAction.DISBURSE, AuditModule.LOANS,
                       f"Disbursed loan {loan.loan_number} net proceeds {loan.net_proceeds}",
                       record_id=loan.id, user_email=disbursed_by)
        return loan

    def mark_defaulted(self, loan_id: str, updated_by: Optional[str] = None,
                       remarks: Optional[str] = None) -> Loan:
        loan = self.require_loan(loan_id)
        self._expect_status(loan, *ACTIVE_STATUSES)

        loan.status = LoanStatus.DEFAULTED
        if remarks:
            loan.remarks = remarks
        self._save(loan)

        self.audit.log(AuditAction.UPDATE, AuditModule.LOANS,
                       f"Loan {loan.loan_number} marked as defaulted",
                       record_id=loan.id, user_email=updated_by)
        logger.warning("Loan %s defaulted", loan.loan_number)
        return loan

    def change_status(self, loan_id: str, status: LoanStatus, user_email: Optional[str] = None,
                      remarks: Optional[str] = None) -> Loan:
        """Dispatch a status change requested from the loans table"""
        if status == LoanStatus.APPROVED:
            return self.approve_loan(loan_id, approved_by=user_email, remarks=remarks)
        if status == LoanStatus.REJECTED:
            return self.reject_loan(loan_id, rejected_by=user_email, remarks=remarks)
        if status in (LoanStatus.DISBURSED, LoanStatus.ACTIVE):
            return self.disburse_loan(loan_id, disbursed_by=user_email)
        if status == LoanStatus.DEFAULTED:
            return self.mark_defaulted(loan_id, updated_by=user_email, remarks=remarks)
        raise ValueError(f"Cannot change loan status to {status.value}")

    @staticmethod
    def amount_due(loan: Loan) -> Decimal:
        """Sum of unpaid installment amounts"""
        due = Decimal('0.00')
        for entry in loan.amortization_schedule:
            due += Decimal(entry['total']) - Decimal(entry.get('amount_paid', '0'))
        return max(due, Decimal('0.00'))

    def record_payment(self, loan_id: str, amount: Decimal,
                       payment_method: PaymentMethod = PaymentMethod.CASH,
                       reference_number: Optional[str] = None,
                       processed_by: Optional[str] = None) -> Transaction:
        """
        Apply a repayment to an active loan.

        The amount is applied to installments in due order, interest before
        principal. The principal part reduces the outstanding balance; fully
        covered installments become Paid and the loan is closed as Paid once
        every installment is settled.
        """
        amount = round_money(amount)
        if amount <= 0:
            raise ValueError("Payment amount must be positive")

        loan = self.require_loan(loan_id)
        self._expect_status(loan, *ACTIVE_STATUSES)
        if amount > self.amount_due(loan):
            raise ValueError(f"Payment exceeds the amount due on loan {loan.loan_number}")

        remaining = amount
        principal_paid = Decimal('0.00')
        for entry in loan.amortization_schedule:
            if remaining <= 0:
                break
            already_paid = Decimal(entry.get('amount_paid', '0'))
            unpaid = Decimal(entry['total']) - already_paid
            if unpaid <= 0:
                continue
            applied = min(unpaid, remaining)
            interest_left = max(Decimal(entry['interest']) - already_paid, Decimal('0.00'))
            principal_paid += max(applied - interest_left, Decimal('0.00'))
            entry['amount_paid'] = str(already_paid + applied)
            if already_paid + applied >= Decimal(entry['total']):
                entry['status'] = 'Paid'
            remaining -= applied

        loan.total_paid += amount
        loan.outstanding_balance = max(loan.outstanding_balance - principal_paid, Decimal('0.00'))
        if all(entry['status'] == 'Paid' for entry in loan.amortization_schedule):
            loan.status = LoanStatus.PAID
            loan.outstanding_balance = Decimal('0.00')

        with self.storage.atomic():
            txn = self.ledger.record(
                TransactionType.LOAN_PAYMENT, amount,
                member_id=loan.member_id, member_name=loan.member_name,
                loan_id=loan.id, account_number=loan.loan_number,
                running_balance=loan.outstanding_balance,
                description=f"Payment for loan {loan.loan_number}",
                payment_method=payment_method, reference_number=reference_number,
                processed_by=processed_by
            )
            self._save(loan)

        if loan.status == LoanStatus.PAID:
            self.audit.log(AuditAction.UPDATE, AuditModule.LOANS,
                           f"Loan {loan.loan_number} fully paid",
                           record_id=loan.id, user_email=processed_by)
        return txn

    def list_loans(self, status: Optional[LoanStatus] = None,
                   member_id: Optional[str] = None,
                   limit: Optional[int] = None) -> List[Loan]:
        """List loans newest first"""
        filters = {}
        if status:
            filters['status'] = status.value
        if member_id:
            filters['member_id'] = member_id
        records = self.storage.filter(self.table_name, filters, limit=limit)
        return [Loan.from_dict(r) for r in records]

    def loan_stats(self) -> Dict[str, Any]:
        """Counts and portfolio shown on the loans page"""
        loans = self.list_loans()
        active = [l for l in loans if l.is_active]
        return {
            'total': len(loans),
            'pending': sum(1 for l in loans if l.status == LoanStatus.PENDING),
            'active': len(active),
            'paid': sum(1 for l in loans if l.status == LoanStatus.PAID),
            'portfolio': str(sum((l.outstanding_balance for l in active), Decimal('0.00'))),
        }
