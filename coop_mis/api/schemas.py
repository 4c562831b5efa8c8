"""
Pydantic schemas for API requests
"""

from decimal import Decimal
from datetime import date
from typing import List, Optional
from pydantic import BaseModel, Field

from ..members import MembershipType, MemberStatus, Gender, CivilStatus
from ..savings import AccountType
from ..transactions import PaymentMethod, TransactionType
from ..loans import LoanStatus
from ..rbac import CoopRole


# Auth schemas
class LoginRequest(BaseModel):
    email: str
    password: str


class ChangePasswordRequest(BaseModel):
    old_password: str
    new_password: str


# Member schemas
class MemberFields(BaseModel):
    middle_name: Optional[str] = None
    suffix: Optional[str] = None
    gender: Optional[Gender] = None
    date_of_birth: Optional[date] = None
    civil_status: Optional[CivilStatus] = None
    email: Optional[str] = None
    mobile_number: Optional[str] = None
    address: Optional[str] = None
    barangay: Optional[str] = None
    city_municipality: Optional[str] = None
    province: Optional[str] = None
    zip_code: Optional[str] = None
    tin_number: Optional[str] = None
    sss_number: Optional[str] = None
    occupation: Optional[str] = None
    employer: Optional[str] = None
    monthly_income: Optional[Decimal] = Field(None, ge=0)
    membership_type: Optional[MembershipType] = None
    membership_date: Optional[date] = None
    share_capital: Optional[Decimal] = Field(None, ge=0)
    status: Optional[MemberStatus] = None


class CreateMemberRequest(MemberFields):
    first_name: str = Field(..., min_length=1)
    last_name: str = Field(..., min_length=1)


class UpdateMemberRequest(MemberFields):
    first_name: Optional[str] = None
    last_name: Optional[str] = None


class ShareCapitalRequest(BaseModel):
    amount: Decimal = Field(..., description="Positive to add, negative to withdraw")


# Loan type schemas
class LoanTypeFields(BaseModel):
    description: Optional[str] = None
    interest_rate: Optional[Decimal] = Field(None, ge=0)
    min_amount: Optional[Decimal] = Field(None, ge=0)
    max_amount: Optional[Decimal] = Field(None, ge=0)
    min_term_months: Optional[int] = Field(None, ge=0)
    max_term_months: Optional[int] = Field(None, ge=0)
    service_fee_percent: Optional[Decimal] = Field(None, ge=0)
    requires_collateral: Optional[bool] = None
    requires_comaker: Optional[bool] = None
    is_active: Optional[bool] = None


class CreateLoanTypeRequest(LoanTypeFields):
    name: str = Field(..., min_length=1)
    code: str = Field(..., min_length=1)


class UpdateLoanTypeRequest(LoanTypeFields):
    name: Optional[str] = None
    code: Optional[str] = None


# Loan schemas
class LoanCalculationRequest(BaseModel):
    principal_amount: Decimal
    term_months: int
    interest_rate: Optional[Decimal] = None
    service_fee_percent: Optional[Decimal] = None
    start_date: Optional[date] = None


class LoanApplicationRequest(BaseModel):
    member_id: str
    loan_type_id: str
    principal_amount: Decimal = Field(..., gt=0)
    term_months: int = Field(..., gt=0)
    purpose: Optional[str] = None
    comaker_name: Optional[str] = None
    comaker_member_id: Optional[str] = None
    collateral_description: Optional[str] = None
    remarks: Optional[str] = None


class LoanStatusRequest(BaseModel):
    status: LoanStatus
    remarks: Optional[str] = None


class LoanActionRequest(BaseModel):
    remarks: Optional[str] = None


class LoanPaymentRequest(BaseModel):
    amount: Decimal = Field(..., gt=0)
    payment_method: PaymentMethod = PaymentMethod.CASH
    reference_number: Optional[str] = None


# Savings schemas
class OpenAccountRequest(BaseModel):
    member_id: str
    account_type: AccountType = AccountType.REGULAR_SAVINGS
    initial_deposit: Decimal = Field(Decimal('0'), ge=0)
    interest_rate: Optional[Decimal] = Field(None, ge=0)
    minimum_balance: Optional[Decimal] = Field(None, ge=0)
    payment_method: PaymentMethod = PaymentMethod.CASH


class SavingsTransactionRequest(BaseModel):
    transaction_type: TransactionType = Field(..., description="Deposit or Withdrawal")
    amount: Decimal = Field(..., gt=0)
    payment_method: PaymentMethod = PaymentMethod.CASH
    description: Optional[str] = None
    reference_number: Optional[str] = None


# User management schemas
class CreateUserRequest(BaseModel):
    email: str
    full_name: str
    password: Optional[str] = None
    role: str = "user"
    coop_role: Optional[CoopRole] = None
    member_id: Optional[str] = None


class UpdateUserRoleRequest(BaseModel):
    coop_role: Optional[CoopRole] = None
    member_id: Optional[str] = None


class PageAccessRequest(BaseModel):
    pages: List[str]
