"""
Loan Amortization Module

Diminishing-balance (equal installment) loan calculator used when a loan
application is filed. All amounts are Decimal, rounded to centavos.
"""

import calendar
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Dict, List, Optional, Any, Union

from .currency import round_money, to_decimal

Number = Union[Decimal, int, float, str]

DEFAULT_ANNUAL_RATE = Decimal('12')
DEFAULT_SERVICE_FEE_PERCENT = Decimal('1')


def add_months(start_date: date, months: int) -> date:
    """Add months to a date, handling month-end edge cases"""
    month = start_date.month - 1 + months
    year = start_date.year + month // 12
    month = month % 12 + 1
    day = min(start_date.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


@dataclass
class AmortizationEntry:
    """Single installment of the schedule"""
    installment_no: int
    due_date: date
    principal: Decimal
    interest: Decimal
    total: Decimal
    balance: Decimal
    status: str = "Pending"

    def __post_init__(self):
        if abs(self.principal + self.interest - self.total) > Decimal('0.01'):
            raise ValueError(f"Installment {self.installment_no} total {self.total} does not equal "
                             f"principal {self.principal} + interest {self.interest}")

    def to_dict(self) -> Dict[str, Any]:
        return {
            'installment_no': self.installment_no,
            'due_date': self.due_date.isoformat(),
            'principal': str(self.principal),
            'interest': str(self.interest),
            'total': str(self.total),
            'balance': str(self.balance),
            'status': self.status,
        }


@dataclass
class LoanCalculation:
    """Result of the loan calculator"""
    principal_amount: Decimal
    interest_rate: Decimal
    term_months: int
    monthly_amortization: Decimal
    total_interest: Decimal
    total_payable: Decimal
    service_fee: Decimal
    net_proceeds: Decimal
    first_due_date: date
    maturity_date: date
    amortization_schedule: List[AmortizationEntry] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'principal_amount': str(self.principal_amount),
            'interest_rate': str(self.interest_rate),
            'term_months': self.term_months,
            'monthly_amortization': str(self.monthly_amortization),
            'total_interest': str(self.total_interest),
            'total_payable': str(self.total_payable),
            'service_fee': str(self.service_fee),
            'net_proceeds': str(self.net_proceeds),
            'first_due_date': self.first_due_date.isoformat(),
            'maturity_date': self.maturity_date.isoformat(),
            'amortization_schedule': [entry.to_dict() for entry in self.amortization_schedule],
        }


def monthly_payment(principal: Decimal, annual_rate: Decimal, term_months: int) -> Decimal:
    """
    Level monthly payment: P * i(1+i)^n / ((1+i)^n - 1) with i = r/100/12.

    A zero rate falls back to straight-line P / n.
    """
    periodic_rate = annual_rate / Decimal('100') / Decimal('12')
    if periodic_rate == Decimal('0'):
        return principal / Decimal(term_months)
    factor = (Decimal('1') + periodic_rate) ** term_months
    return principal * (periodic_rate * factor) / (factor - Decimal('1'))


def calculate_loan(principal: Number, annual_rate: Optional[Number] = None, term_months: int = 12,
                   service_fee_percent: Optional[Number] = None,
                   start_date: Optional[date] = None) -> LoanCalculation:
    """
    Compute amortization figures and the installment schedule.

    Args:
        principal: Loan amount
        annual_rate: Annual interest rate in percent (default 12)
        term_months: Number of monthly installments
        service_fee_percent: Fee deducted from proceeds in percent (default 1)
        start_date: Application date; the first installment falls one month later

    Returns:
        LoanCalculation with a schedule whose principal sums to the loan amount

    Raises:
        ValueError: For a non-positive principal or term, or a negative rate
    """
    principal = round_money(principal)
    rate = DEFAULT_ANNUAL_RATE if annual_rate in (None, "") else to_decimal(annual_rate)
    fee_percent = (DEFAULT_SERVICE_FEE_PERCENT if service_fee_percent in (None, "")
                   else to_decimal(service_fee_percent))
    term_months = int(term_months)

    if principal <= 0:
        raise ValueError("Principal amount must be positive")
    if term_months <= 0:
        raise ValueError("Term must be at least one month")
    if rate < 0:
        raise ValueError("Interest rate cannot be negative")
    if fee_percent < 0:
        raise ValueError("Service fee cannot be negative")

    start_date = start_date or date.today()
    periodic_rate = rate / Decimal('100') / Decimal('12')
    exact_payment = monthly_payment(principal, rate, term_months)
    payment = round_money(exact_payment)

    schedule = []
    balance = principal
    for installment_no in range(1, term_months + 1):
        interest = round_money(balance * periodic_rate)
        principal_part = payment - interest

        # Final installment pays off exactly what is left
        if installment_no == term_months or principal_part > balance:
            principal_part = balance
        balance = balance - principal_part

        schedule.append(AmortizationEntry(
            installment_no=installment_no,
            due_date=add_months(start_date, installment_no),
            principal=principal_part,
            interest=interest,
            total=principal_part + interest,
            balance=max(balance, Decimal('0.00'))
        ))

    total_payable = round_money(exact_payment * term_months)
    service_fee = round_money(principal * fee_percent / Decimal('100'))

    return LoanCalculation(
        principal_amount=principal,
        interest_rate=rate,
        term_months=term_months,
        monthly_amortization=payment,
        total_interest=total_payable - principal,
        total_payable=total_payable,
        service_fee=service_fee,
        net_proceeds=principal - service_fee,
        first_due_date=add_months(start_date, 1),
        maturity_date=add_months(start_date, term_months),
        amortization_schedule=schedule
    )
