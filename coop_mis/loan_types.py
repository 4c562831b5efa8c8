"""
Loan Product Configuration Module

Loan types offered by the cooperative (rate, amount and term limits, fees).
Managed from the Settings page.
"""

import uuid
from datetime import datetime, timezone
from dataclasses import dataclass
from decimal import Decimal
from typing import Dict, List, Optional, Any

from .storage import StorageInterface, StorageRecord, serialize_value
from .audit import AuditTrail, AuditAction, AuditModule
from .currency import to_decimal


@dataclass
class LoanType(StorageRecord):
    """Loan product definition"""
    name: str
    code: str
    description: Optional[str] = None
    interest_rate: Decimal = Decimal('0')  # Annual percent
    min_amount: Decimal = Decimal('0')
    max_amount: Decimal = Decimal('0')
    min_term_months: int = 0
    max_term_months: int = 0
    service_fee_percent: Decimal = Decimal('0')
    requires_collateral: bool = False
    requires_comaker: bool = True
    is_active: bool = True

    def validate(self) -> None:
        if not self.name or not self.code:
            raise ValueError("Loan type name and code are required")
        for label, value in (("Interest rate", self.interest_rate),
                             ("Service fee", self.service_fee_percent),
                             ("Minimum amount", self.min_amount),
                             ("Maximum amount", self.max_amount)):
            if value < 0:
                raise ValueError(f"{label} cannot be negative")
        if self.min_term_months < 0 or self.max_term_months < 0:
            raise ValueError("Terms cannot be negative")
        if self.max_amount and self.min_amount > self.max_amount:
            raise ValueError("Minimum amount exceeds maximum amount")
        if self.max_term_months and self.min_term_months > self.max_term_months:
            raise ValueError("Minimum term exceeds maximum term")

    def check_terms(self, principal: Decimal, term_months: int) -> None:
        """Validate an application against this product; zero limits are not enforced"""
        if self.min_amount and principal < self.min_amount:
            raise ValueError(f"Amount is below the {self.name} minimum of {self.min_amount}")
        if self.max_amount and principal > self.max_amount:
            raise ValueError(f"Amount exceeds the {self.name} maximum of {self.max_amount}")
        if self.min_term_months and term_months < self.min_term_months:
            raise ValueError(f"Term is below the {self.name} minimum of {self.min_term_months} months")
        if self.max_term_months and term_months > self.max_term_months:
            raise ValueError(f"Term exceeds the {self.name} maximum of {self.max_term_months} months")


LOAN_TYPE_FIELDS = (
    'name', 'code', 'description', 'interest_rate', 'min_amount', 'max_amount',
    'min_term_months', 'max_term_months', 'service_fee_percent',
    'requires_collateral', 'requires_comaker', 'is_active',
)

DECIMAL_FIELDS = ('interest_rate', 'min_amount', 'max_amount', 'service_fee_percent')


class LoanTypeCatalog:
    """CRUD for loan products"""

    def __init__(self, storage: StorageInterface, audit: AuditTrail):
        self.storage = storage
        self.audit = audit
        self.table_name = "loan_types"

    def _clean(self, data: Dict[str, Any]) -> Dict[str, Any]:
        unknown = set(data) - set(LOAN_TYPE_FIELDS)
        if unknown:
            raise ValueError(f"Unknown loan type fields: {', '.join(sorted(unknown))}")
        cleaned = dict(data)
        for key in DECIMAL_FIELDS:
            if key in cleaned:
                cleaned[key] = to_decimal(cleaned[key])
        for key in ('min_term_months', 'max_term_months'):
            if key in cleaned:
                cleaned[key] = int(cleaned[key] or 0)
        if cleaned.get('code'):
            cleaned['code'] = cleaned['code'].strip().upper()
        return cleaned

    def create(self, data: Dict[str, Any], created_by: Optional[str] = None) -> LoanType:
        cleaned = self._clean(data)
        code = cleaned.get('code')
        if code and self.storage.find(self.table_name, {'code': code}):
            raise ValueError(f"Loan type code {code} already exists")

        now = datetime.now(timezone.utc)
        loan_type = LoanType(id=str(uuid.uuid4()), created_at=now, updated_at=now,
                             **{'name': '', 'code': '', **cleaned})
        loan_type.validate()

        self.storage.save(self.table_name, loan_type.id, loan_type.to_dict())
        self.audit.log(AuditAction.CREATE, AuditModule.SETTINGS,
                       f"Created loan type {loan_type.code} {loan_type.name}",
                       record_id=loan_type.id, user_email=created_by)
        return loan_type

    def get(self, loan_type_id: str) -> Optional[LoanType]:
        data = self.storage.load(self.table_name, loan_type_id)
        return LoanType.from_dict(data) if data else None

    def update(self, loan_type_id: str, changes: Dict[str, Any],
               updated_by: Optional[str] = None) -> LoanType:
        loan_type = self.get(loan_type_id)
        if not loan_type:
            raise ValueError(f"Loan type {loan_type_id} not found")

        cleaned = self._clean(changes)
        code = cleaned.get('code')
        if code and code != loan_type.code and self.storage.find(self.table_name, {'code': code}):
            raise ValueError(f"Loan type code {code} already exists")

        record = loan_type.to_dict()
        record.update(serialize_value(cleaned))
        record['updated_at'] = datetime.now(timezone.utc).isoformat()
        updated = LoanType.from_dict(record)
        updated.validate()

        self.storage.save(self.table_name, updated.id, updated.to_dict())
        self.audit.log(AuditAction.UPDATE, AuditModule.SETTINGS,
                       f"Updated loan type {updated.code}",
                       record_id=updated.id, user_email=updated_by,
                       metadata={'fields': sorted(cleaned)})
        return updated

    def delete(self, loan_type_id: str, deleted_by: Optional[str] = None) -> bool:
        loan_type = self.get(loan_type_id)
        if not loan_type:
            raise ValueError(f"Loan type {loan_type_id} not found")
        deleted = self.storage.delete(self.table_name, loan_type_id)
        self.audit.log(AuditAction.DELETE, AuditModule.SETTINGS,
                       f"Deleted loan type {loan_type.code}",
                       record_id=loan_type_id, user_email=deleted_by)
        return deleted

    def list(self, active_only: bool = False) -> List[LoanType]:
        """List loan types, newest first"""
        loan_types = [LoanType.from_dict(r) for r in self.storage.list(self.table_name)]
        if active_only:
            loan_types = [lt for lt in loan_types if lt.is_active]
        return loan_types
