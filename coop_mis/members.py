"""
Member Registry Module

Cooperative members with KYC details, membership type and share capital.
"""

import random
import uuid
from datetime import date, datetime, timezone
from dataclasses import dataclass
from decimal import Decimal
from typing import Dict, List, Optional, Any
from enum import Enum

from .storage import StorageInterface, StorageRecord, serialize_value
from .audit import AuditTrail, AuditAction, AuditModule
from .currency import round_money, to_decimal
from .logging_config import get_logger

logger = get_logger("coop_mis.members")


class MembershipType(Enum):
    REGULAR = "Regular"
    ASSOCIATE = "Associate"
    HONORARY = "Honorary"


class MemberStatus(Enum):
    ACTIVE = "Active"
    INACTIVE = "Inactive"
    SUSPENDED = "Suspended"


class Gender(Enum):
    MALE = "Male"
    FEMALE = "Female"


class CivilStatus(Enum):
    SINGLE = "Single"
    MARRIED = "Married"
    WIDOWED = "Widowed"
    SEPARATED = "Separated"


@dataclass
class Member(StorageRecord):
    """Cooperative member record"""
    member_code: str
    first_name: str
    last_name: str
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
    monthly_income: Decimal = Decimal('0')
    membership_type: MembershipType = MembershipType.REGULAR
    membership_date: Optional[date] = None
    share_capital: Decimal = Decimal('0')
    status: MemberStatus = MemberStatus.ACTIVE

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    def to_dict(self) -> Dict[str, Any]:
        result = super().to_dict()
        result['full_name'] = self.full_name
        return result


# Fields a caller may set on create/update
MEMBER_FIELDS = (
    'first_name', 'middle_name', 'last_name', 'suffix', 'gender', 'date_of_birth',
    'civil_status', 'email', 'mobile_number', 'address', 'barangay',
    'city_municipality', 'province', 'zip_code', 'tin_number', 'sss_number',
    'occupation', 'employer', 'monthly_income', 'membership_type',
    'membership_date', 'share_capital', 'status',
)

MONEY_FIELDS = ('monthly_income', 'share_capital')


def generate_member_code(today: Optional[date] = None) -> str:
    """Member code in the form MEM-2024-0042"""
    year = (today or date.today()).year
    return f"MEM-{year}-{random.randint(0, 9999):04d}"


class MemberRegistry:
    """
    Member registry with audit logging
    """

    def __init__(self, storage: StorageInterface, audit: AuditTrail):
        self.storage = storage
        self.audit = audit
        self.table_name = "members"

    def _clean(self, data: Dict[str, Any]) -> Dict[str, Any]:
        unknown = set(data) - set(MEMBER_FIELDS)
        if unknown:
            raise ValueError(f"Unknown member fields: {', '.join(sorted(unknown))}")
        cleaned = dict(data)
        for key in MONEY_FIELDS:
            if key in cleaned:
                amount = round_money(cleaned[key])
                if amount < 0:
                    raise ValueError(f"{key} cannot be negative")
                cleaned[key] = amount
        for key, value in list(cleaned.items()):
            if isinstance(value, str):
                cleaned[key] = value.strip() or None
        return cleaned

    def _unique_code(self) -> str:
        while True:
            code = generate_member_code()
            if not self.storage.find(self.table_name, {'member_code': code}):
                return code

    def create_member(self, data: Dict[str, Any], created_by: Optional[str] = None) -> Member:
        """
        Register a new member

        Args:
            data: Member fields; first_name and last_name are required
            created_by: Email of the acting user

        Returns:
            Created Member
        """
        cleaned = self._clean(data)
        if not cleaned.get('first_name') or not cleaned.get('last_name'):
            raise ValueError("First name and last name are required")

        now = datetime.now(timezone.utc)
        if not cleaned.get('membership_date'):
            cleaned['membership_date'] = now.date()
        record = {
            'id': str(uuid.uuid4()),
            'created_at': now,
            'updated_at': now,
            'member_code': self._unique_code(),
        }
        record.update({k: v for k, v in cleaned.items() if v is not None})
        member = Member.from_dict(serialize_value(record))

        self.storage.save(self.table_name, member.id, member.to_dict())
        self.audit.log(AuditAction.CREATE, AuditModule.MEMBERS,
                       f"Registered member {member.member_code} {member.full_name}",
                       record_id=member.id, user_email=created_by)
        logger.info("Member %s registered", member.member_code)
        return member

    def get_member(self, member_id: str) -> Optional[Member]:
        data = self.storage.load(self.table_name, member_id)
        return Member.from_dict(data) if data else None

    def require_member(self, member_id: str) -> Member:
        member = self.get_member(member_id)
        if not member:
            raise ValueError(f"Member {member_id} not found")
        return member

    def update_member(self, member_id: str, changes: Dict[str, Any],
                      updated_by: Optional[str] = None) -> Member:
        """Apply field changes to a member"""
        member = self.require_member(member_id)
        cleaned = self._clean(changes)
        if 'first_name' in cleaned and not cleaned['first_name']:
            raise ValueError("First name is required")
        if 'last_name' in cleaned and not cleaned['last_name']:
            raise ValueError("Last name is required")

        record = member.to_dict()
        record.update(serialize_value(cleaned))
        record['updated_at'] = datetime.now(timezone.utc).isoformat()
        updated = Member.from_dict(record)

        self.storage.save(self.table_name, updated.id, updated.to_dict())
        self.audit.log(AuditAction.UPDATE, AuditModule.MEMBERS,
                       f"Updated member {updated.member_code}",
                       record_id=updated.id, user_email=updated_by,
                       metadata={'fields': sorted(cleaned)})
        return updated

    def delete_member(self, member_id: str, deleted_by: Optional[str] = None) -> bool:
        member = self.require_member(member_id)
        if self.storage.find('loans', {'member_id': member_id}) or \
                self.storage.find('savings_accounts', {'member_id': member_id}):
            raise ValueError("Member has loans or savings accounts and cannot be deleted")
        deleted = self.storage.delete(self.table_name, member_id)
        self.audit.log(AuditAction.DELETE, AuditModule.MEMBERS,
                       f"Deleted member {member.member_code}",
                       record_id=member_id, user_email=deleted_by)
        return deleted

    def list_members(self, status: Optional[MemberStatus] = None,
                     membership_type: Optional[MembershipType] = None,
                     limit: Optional[int] = None) -> List[Member]:
        """List members, newest first"""
        filters = {}
        if status:
            filters['status'] = status.value
        if membership_type:
            filters['membership_type'] = membership_type.value
        records = self.storage.filter(self.table_name, filters, limit=limit)
        return [Member.from_dict(r) for r in records]

    def find_by_email(self, email: str) -> Optional[Member]:
        """Member linked to a login email, used by the member portal"""
        if not email:
            return None
        email = email.strip().lower()
        for record in self.storage.load_all(self.table_name):
            if (record.get('email') or '').lower() == email:
                return Member.from_dict(record)
        return None

    def search(self, term: str, limit: int = 20) -> List[Member]:
        """
        Quick member lookup for the teller window.

        Terms shorter than two characters return nothing.
        """
        term = (term or '').strip().lower()
        if len(term) < 2:
            return []
        results = []
        for member in self.list_members():
            haystack = ' '.join(filter(None, [
                member.first_name, member.middle_name, member.last_name,
                member.member_code, member.mobile_number, member.email
            ])).lower()
            if term in haystack:
                results.append(member)
                if len(results) >= limit:
                    break
        return results

    def adjust_share_capital(self, member_id: str, amount: Decimal,
                             updated_by: Optional[str] = None) -> Member:
        """Add (or with a negative amount, withdraw) share capital"""
        member = self.require_member(member_id)
        new_capital = member.share_capital + to_decimal(amount)
        if new_capital < 0:
            raise ValueError("Share capital cannot be negative")
        return self.update_member(member_id, {'share_capital': new_capital}, updated_by=updated_by)

    def member_stats(self) -> Dict[str, Any]:
        """Counts shown on the members page"""
        members = self.list_members()
        return {
            'total': len(members),
            'active': sum(1 for m in members if m.status == MemberStatus.ACTIVE),
            'regular': sum(1 for m in members if m.membership_type == MembershipType.REGULAR),
            'total_share_capital': str(round_money(sum((m.share_capital for m in members), Decimal('0')))),
        }
