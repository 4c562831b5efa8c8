"""
Role-Based Access Control Module

Cooperative roles, the static role/permission matrix, page access and
navigation menus per role, plus the user directory (login sessions and
coop role assignment).
"""

import hashlib
import secrets
import uuid
from datetime import datetime, timezone, timedelta
from dataclasses import dataclass
from typing import Dict, List, Optional, Any, Tuple
from enum import Enum

from .storage import StorageInterface, StorageRecord
from .audit import AuditTrail, AuditAction, AuditModule
from .logging_config import get_logger, log_action

logger = get_logger("coop_mis.rbac")


class CoopRole(Enum):
    """Cooperative role, distinct from the platform role"""
    ADMIN = "admin"
    MANAGER = "manager"
    LOAN_OFFICER = "loan_officer"
    TELLER = "teller"
    AUDITOR = "auditor"
    MEMBER = "member"


class Permission(Enum):
    """Permission strings of the role matrix"""
    ALL = "all"
    DASHBOARD = "dashboard"
    MEMBERS = "members"
    LOANS = "loans"
    SAVINGS = "savings"
    TRANSACTIONS = "transactions"
    REPORTS = "reports"
    AUDIT_LOGS = "audit_logs"
    SETTINGS = "settings"
    APPROVE_LOANS = "approve_loans"
    MEMBER_PORTAL = "member_portal"


ROLE_LABELS: Dict[str, str] = {
    "admin": "Administrator",
    "manager": "Manager",
    "loan_officer": "Loan Officer",
    "teller": "Teller",
    "auditor": "Auditor",
    "member": "Member",
}

ROLE_PERMISSIONS: Dict[str, List[str]] = {
    "admin": ["all"],
    "manager": ["dashboard", "members", "loans", "savings", "transactions",
                "reports", "audit_logs", "settings", "approve_loans"],
    "loan_officer": ["dashboard", "members", "loans", "reports"],
    "teller": ["dashboard", "members", "savings", "transactions"],
    "auditor": ["dashboard", "reports", "audit_logs", "transactions"],
    "member": ["member_portal"],
}

PAGE_PERMISSIONS: Dict[str, str] = {
    "Dashboard": "dashboard",
    "ManagerDashboard": "dashboard",
    "LoanOfficerDashboard": "dashboard",
    "TellerDashboard": "dashboard",
    "AuditorDashboard": "dashboard",
    "MemberPortal": "member_portal",
    "Members": "members",
    "Loans": "loans",
    "Savings": "savings",
    "Transactions": "transactions",
    "Reports": "reports",
    "AuditLogs": "audit_logs",
    "Settings": "settings",
}

STAFF_ROLES = ("manager", "loan_officer", "teller", "auditor")


def normalize_role(role: Optional[str]) -> str:
    """Lower-case a role string; missing roles are treated as member"""
    return (role or "member").lower()


def has_permission(role: Optional[str], permission: str) -> bool:
    """
    Check a permission against the role matrix.

    Unknown roles get member permissions. The "all" permission grants everything.
    """
    permissions = ROLE_PERMISSIONS.get(normalize_role(role), ROLE_PERMISSIONS["member"])
    return "all" in permissions or permission in permissions


def can_access_page(role: Optional[str], page_name: str) -> bool:
    """Check whether a role may open a console page. Unknown roles see nothing."""
    permissions = ROLE_PERMISSIONS.get(normalize_role(role), [])
    if "all" in permissions:
        return True
    required = PAGE_PERMISSIONS.get(page_name)
    if not required:
        return False
    return required in permissions


def is_role_allowed(role: Optional[str], allowed_roles: Optional[List[str]]) -> bool:
    """Route guard: empty list allows everyone, admin is always allowed"""
    if not allowed_roles:
        return True
    role = normalize_role(role)
    return role == "admin" or role in allowed_roles


def resolve_role(user: Optional[Dict[str, Any]]) -> str:
    """Effective role of a user record: coop_role, then platform role, then member"""
    if not user:
        return "member"
    return normalize_role(user.get("coop_role") or user.get("role"))


def role_label(user: Optional[Dict[str, Any]]) -> str:
    """Display label for the user's role"""
    user = user or {}
    coop_role = user.get("coop_role")
    role = user.get("role")
    return (ROLE_LABELS.get((coop_role or "").lower()) or ROLE_LABELS.get((role or "").lower())
            or role or "Member")


def user_initials(full_name: Optional[str]) -> str:
    """Avatar initials, at most two characters"""
    if not full_name:
        return "U"
    initials = "".join(part[0] for part in full_name.split() if part)
    return initials.upper()[:2] or "U"


def _item(name: str, page: str) -> Dict[str, str]:
    return {"name": name, "page": page}


NAVIGATION: Dict[str, List[Dict[str, str]]] = {
    "member": [
        _item("My Dashboard", "MemberPortal"),
    ],
    "teller": [
        _item("Dashboard", "TellerDashboard"),
        _item("Members", "Members"),
        _item("Savings", "Savings"),
        _item("Transactions", "Transactions"),
    ],
    "loan_officer": [
        _item("Dashboard", "LoanOfficerDashboard"),
        _item("Members", "Members"),
        _item("Loans", "Loans"),
        _item("Reports", "Reports"),
    ],
    "auditor": [
        _item("Dashboard", "AuditorDashboard"),
        _item("Transactions", "Transactions"),
        _item("Reports", "Reports"),
        _item("Audit Logs", "AuditLogs"),
    ],
    "manager": [
        _item("Dashboard", "ManagerDashboard"),
        _item("Members", "Members"),
        _item("Loans", "Loans"),
        _item("Savings", "Savings"),
        _item("Transactions", "Transactions"),
        _item("Reports", "Reports"),
        _item("Audit Logs", "AuditLogs"),
        _item("User Management", "UserManagement"),
        _item("Settings", "Settings"),
    ],
}

ADMIN_NAVIGATION: List[Dict[str, str]] = [
    _item("Dashboard", "Dashboard"),
    _item("Manager View", "ManagerDashboard"),
    _item("Members", "Members"),
    _item("Loans", "Loans"),
    _item("Savings", "Savings"),
    _item("Transactions", "Transactions"),
    _item("Reports", "Reports"),
    _item("Audit Logs", "AuditLogs"),
    _item("User Management", "UserManagement"),
    _item("Settings", "Settings"),
]


def navigation_for_role(role: Optional[str], coop_role: Optional[str] = None) -> List[Dict[str, str]]:
    """
    Menu items for the sidebar.

    Args:
        role: Platform role of the user
        coop_role: Cooperative role, takes precedence over role

    Returns:
        Ordered list of {"name", "page"} items; admin and unknown roles get the full menu
    """
    effective = normalize_role(coop_role or role)
    return [dict(item) for item in NAVIGATION.get(effective, ADMIN_NAVIGATION)]


@dataclass
class User(StorageRecord):
    """Console user"""
    email: str
    full_name: str
    role: str = "user"  # Platform role: admin or user
    coop_role: Optional[CoopRole] = None
    member_id: Optional[str] = None
    password_hash: Optional[str] = None
    salt: Optional[str] = None
    is_active: bool = True
    is_locked: bool = False
    failed_login_attempts: int = 0
    last_login: Optional[datetime] = None

    @property
    def effective_role(self) -> str:
        if self.coop_role:
            return self.coop_role.value
        return self.role or "member"

    def to_public_dict(self) -> Dict[str, Any]:
        """User record without credential fields"""
        data = self.to_dict()
        data.pop("password_hash", None)
        data.pop("salt", None)
        return data


@dataclass
class Session(StorageRecord):
    """Login session"""
    user_id: str
    expires_at: datetime
    ip_address: Optional[str] = None
    is_active: bool = True

    @property
    def is_valid(self) -> bool:
        return self.is_active and datetime.now(timezone.utc) < self.expires_at


class UserDirectory:
    """
    User accounts, login sessions and coop role assignment
    """

    def __init__(self, storage: StorageInterface, audit: Optional[AuditTrail] = None,
                 session_hours: int = 8, max_failed_attempts: int = 5,
                 password_min_length: int = 8):
        self.storage = storage
        self.audit = audit
        self.session_hours = session_hours
        self.max_failed_attempts = max_failed_attempts
        self.password_min_length = password_min_length
        self.users_table = "users"
        self.sessions_table = "sessions"

    def create_user(self, email: str, full_name: str, password: Optional[str] = None,
                    role: str = "user", coop_role: Optional[CoopRole] = None,
                    member_id: Optional[str] = None, created_by: Optional[str] = None) -> User:
        """Create a user; email must be unique"""
        email = email.strip().lower()
        if not email:
            raise ValueError("Email is required")
        if self.get_user_by_email(email):
            raise ValueError(f"User with email {email} already exists")

        now = datetime.now(timezone.utc)
        user = User(
            id=str(uuid.uuid4()),
            created_at=now,
            updated_at=now,
            email=email,
            full_name=full_name,
            role=role,
            coop_role=coop_role,
            member_id=member_id
        )
        if password is not None:
            self._set_password(user, password)

        self.storage.save(self.users_table, user.id, user.to_dict())

        if self.audit:
            self.audit.log(AuditAction.CREATE, AuditModule.USERS,
                           f"Created user {email}", record_id=user.id, user_email=created_by)
        return user

    def get_user(self, user_id: str) -> Optional[User]:
        data = self.storage.load(self.users_table, user_id)
        return User.from_dict(data) if data else None

    def get_user_by_email(self, email: str) -> Optional[User]:
        matches = self.storage.find(self.users_table, {"email": email.strip().lower()})
        return User.from_dict(matches[0]) if matches else None

    def list_users(self, coop_role: Optional[CoopRole] = None) -> List[User]:
        """List users, newest first"""
        records = self.storage.list(self.users_table)
        users = [User.from_dict(r) for r in records]
        if coop_role:
            users = [u for u in users if u.coop_role == coop_role]
        return users

    def update_user(self, user_id: str, coop_role: Optional[CoopRole] = None,
                    member_id: Optional[str] = None, full_name: Optional[str] = None,
                    updated_by: Optional[str] = None) -> User:
        """
        Assign a coop role and linked member to a user.

        A missing coop_role resets the user to member.
        """
        user = self.get_user(user_id)
        if not user:
            raise ValueError(f"User {user_id} not found")

        previous_role = user.effective_role
        user.coop_role = coop_role or CoopRole.MEMBER
        user.member_id = member_id or None
        if full_name:
            user.full_name = full_name
        user.updated_at = datetime.now(timezone.utc)
        self.storage.save(self.users_table, user.id, user.to_dict())

        if self.audit:
            self.audit.log(
                AuditAction.UPDATE, AuditModule.USERS,
                f"Changed role of {user.email} from {previous_role} to {user.coop_role.value}",
                record_id=user.id, user_email=updated_by,
                metadata={"previous_role": previous_role, "new_role": user.coop_role.value}
            )
        return user

    def user_stats(self) -> Dict[str, int]:
        """Counts shown on the user management page"""
        users = self.list_users()
        admins = 0
        staff = 0
        members = 0
        for user in users:
            coop_role = user.coop_role.value if user.coop_role else None
            if coop_role == "admin" or user.role == "admin":
                admins += 1
            if coop_role in STAFF_ROLES:
                staff += 1
            if not coop_role or coop_role == "member":
                members += 1
        return {"total": len(users), "admins": admins, "staff": staff, "members": members}

    def login(self, email: str, password: str, ip_address: Optional[str] = None) -> Tuple[User, Session]:
        """Authenticate a user and open a session"""
        user = self.get_user_by_email(email)

        if not user:
            log_action(logger, "warning", "Login failed: unknown user",
                       user_id=email, action="login_failed", resource="users")
            raise ValueError("Invalid credentials")

        if not user.is_active or user.is_locked:
            log_action(logger, "warning", "Login refused: account unavailable",
                       user_id=user.email, action="login_failed", resource="users")
            raise ValueError("Account is not available")

        if not self._verify_password(user, password):
            user.failed_login_attempts += 1
            if user.failed_login_attempts >= self.max_failed_attempts:
                user.is_locked = True
            user.updated_at = datetime.now(timezone.utc)
            self.storage.save(self.users_table, user.id, user.to_dict())
            log_action(logger, "warning", "Login failed: bad password",
                       user_id=user.email, action="login_failed", resource="users",
                       extra={"failed_attempts": user.failed_login_attempts})
            raise ValueError("Invalid credentials")

        now = datetime.now(timezone.utc)
        user.failed_login_attempts = 0
        user.last_login = now
        user.updated_at = now
        self.storage.save(self.users_table, user.id, user.to_dict())

        session = Session(
            id=str(uuid.uuid4()),
            created_at=now,
            updated_at=now,
            user_id=user.id,
            expires_at=now + timedelta(hours=self.session_hours),
            ip_address=ip_address
        )
        self.storage.save(self.sessions_table, session.id, session.to_dict())

        if self.audit:
            self.audit.log(AuditAction.LOGIN, AuditModule.AUTHENTICATION,
                           f"{user.email} logged in", record_id=user.id,
                           user_email=user.email, user_id=user.id, ip_address=ip_address)
        log_action(logger, "info", "Login succeeded", user_id=user.email,
                   action="login", resource="users")
        return user, session

    def me(self, session_id: str) -> Optional[User]:
        """User owning a valid session, or None"""
        data = self.storage.load(self.sessions_table, session_id)
        if not data:
            return None
        session = Session.from_dict(data)
        if not session.is_valid:
            return None
        user = self.get_user(session.user_id)
        if not user or not user.is_active:
            return None
        return user

    def logout(self, session_id: str) -> bool:
        data = self.storage.load(self.sessions_table, session_id)
        if not data:
            return False
        session = Session.from_dict(data)
        session.is_active = False
        session.updated_at = datetime.now(timezone.utc)
        self.storage.save(self.sessions_table, session.id, session.to_dict())

        if self.audit:
            user = self.get_user(session.user_id)
            self.audit.log(AuditAction.LOGOUT, AuditModule.AUTHENTICATION,
                           f"{user.email if user else session.user_id} logged out",
                           record_id=session.user_id,
                           user_email=user.email if user else None)
        return True

    def change_password(self, user_id: str, old_password: str, new_password: str) -> None:
        user = self.get_user(user_id)
        if not user:
            raise ValueError(f"User {user_id} not found")
        if not self._verify_password(user, old_password):
            raise ValueError("Invalid credentials")
        self._set_password(user, new_password)
        user.updated_at = datetime.now(timezone.utc)
        self.storage.save(self.users_table, user.id, user.to_dict())
        self._invalidate_user_sessions(user.id)

    def unlock_user(self, user_id: str) -> User:
        user = self.get_user(user_id)
        if not user:
            raise ValueError(f"User {user_id} not found")
        user.is_locked = False
        user.failed_login_attempts = 0
        user.updated_at = datetime.now(timezone.utc)
        self.storage.save(self.users_table, user.id, user.to_dict())
        return user

    def _set_password(self, user: User, password: str) -> None:
        if len(password) < self.password_min_length:
            raise ValueError(f"Password must be at least {self.password_min_length} characters")
        user.salt = secrets.token_hex(16)
        user.password_hash = self._hash_password(password, user.salt)

    def _hash_password(self, password: str, salt: str) -> str:
        """Hash password with salt using scrypt"""
        return hashlib.scrypt(
            password.encode(),
            salt=salt.encode(),
            n=16384, r=8, p=1
        ).hex()

    def _verify_password(self, user: User, password: str) -> bool:
        if not user.password_hash or not user.salt:
            return False
        return secrets.compare_digest(user.password_hash, self._hash_password(password, user.salt))

    def _invalidate_user_sessions(self, user_id: str) -> None:
        for data in self.storage.find(self.sessions_table, {"user_id": user_id, "is_active": True}):
            session = Session.from_dict(data)
            session.is_active = False
            self.storage.save(self.sessions_table, session.id, session.to_dict())
