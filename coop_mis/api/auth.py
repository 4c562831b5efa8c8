"""
System wiring plus authentication and authorization dependencies
"""

from datetime import datetime, timezone, timedelta
from typing import Optional

import jwt
from fastapi import Depends, HTTPException, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from ..storage import StorageInterface, create_storage
from ..audit import AuditTrail
from ..members import MemberRegistry
from ..loan_types import LoanTypeCatalog
from ..transactions import TransactionLedger
from ..savings import SavingsManager
from ..loans import LoanManager
from ..rbac import UserDirectory, User, Session, CoopRole, has_permission, is_role_allowed
from ..reporting import ReportingEngine
from ..eligibility import EligibilityAnalyzer
from ..llm_client import LLMClient
from ..config import CoopConfig, get_config
from ..logging_config import get_logger, log_action

logger = get_logger("coop_mis.api")

security = HTTPBearer(auto_error=False)


class CoopSystem:
    """Cooperative management system with all components initialized"""

    def __init__(self, config: Optional[CoopConfig] = None,
                 storage: Optional[StorageInterface] = None,
                 llm_client: Optional[LLMClient] = None):
        self.config = config or get_config()
        self.storage = storage or create_storage(self.config.storage_backend, self.config.sqlite_path)

        self.audit_trail = AuditTrail(self.storage)
        self.members = MemberRegistry(self.storage, self.audit_trail)
        self.loan_types = LoanTypeCatalog(self.storage, self.audit_trail)
        self.ledger = TransactionLedger(self.storage, self.audit_trail)
        self.savings = SavingsManager(
            self.storage, self.audit_trail, self.members, self.ledger,
            default_interest_rate=self.config.default_savings_interest_rate,
            default_minimum_balance=self.config.default_minimum_balance
        )
        self.loans = LoanManager(
            self.storage, self.audit_trail, self.members, self.loan_types, self.ledger,
            default_interest_rate=self.config.default_loan_interest_rate,
            default_service_fee_percent=self.config.default_service_fee_percent
        )
        self.users = UserDirectory(
            self.storage, self.audit_trail,
            session_hours=self.config.session_hours,
            max_failed_attempts=self.config.max_failed_logins,
            password_min_length=self.config.password_min_length
        )
        self.reporting = ReportingEngine(
            self.members, self.loans, self.savings, self.ledger, self.audit_trail,
            large_transaction_threshold=self.config.large_transaction_threshold,
            list_limit=self.config.default_list_limit
        )
        self.llm_client = llm_client or self._create_llm_client()
        self.eligibility = EligibilityAnalyzer(
            self.members, self.loans, self.savings, self.ledger, self.llm_client
        )
        self._seed_admin()

    def _create_llm_client(self) -> LLMClient:
        """Create LLM client based on configuration"""
        return LLMClient(
            base_url=self.config.llm_base_url,
            api_key=self.config.llm_api_key or None,
            model=self.config.llm_model,
            timeout=self.config.llm_timeout,
            enabled=bool(self.config.llm_base_url)
        )

    def _seed_admin(self) -> None:
        """Create the first administrator from configuration when it does not exist"""
        email = self.config.seed_admin_email
        password = self.config.seed_admin_password
        if not email or not password or self.users.get_user_by_email(email):
            return
        self.users.create_user(email, "Administrator", password=password,
                               role="admin", coop_role=CoopRole.ADMIN)
        logger.info("Seeded administrator account %s", email)

    def close(self) -> None:
        self.llm_client.close()
        self.storage.close()


# Global system instance, created on first use
coop_system: Optional[CoopSystem] = None


def get_coop_system() -> CoopSystem:
    global coop_system
    if coop_system is None:
        coop_system = CoopSystem()
    return coop_system


def set_coop_system(system: Optional[CoopSystem]) -> None:
    """Replace the global system (used by tests and embedding applications)"""
    global coop_system
    coop_system = system


def create_access_token(user: User, session: Session, config: CoopConfig) -> str:
    now = datetime.now(timezone.utc)
    payload = {
        "sub": user.id,
        "email": user.email,
        "role": user.effective_role,
        "session_id": session.id,
        "iat": now,
        "exp": min(now + timedelta(hours=config.jwt_expiry_hours), session.expires_at),
    }
    return jwt.encode(payload, config.jwt_secret, algorithm=config.jwt_algorithm)


def _auth_disabled_user() -> User:
    now = datetime.now(timezone.utc)
    return User(id="test_user", created_at=now, updated_at=now, email="test_user@localhost",
                full_name="Test User", role="admin", coop_role=CoopRole.ADMIN)


def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    system: CoopSystem = Depends(get_coop_system)
) -> User:
    """Dependency that validates the JWT and returns the session's user"""
    if not system.config.auth_enabled:
        return _auth_disabled_user()

    if not credentials:
        raise HTTPException(status_code=401, detail="Not authenticated")
    try:
        payload = jwt.decode(credentials.credentials, system.config.jwt_secret,
                             algorithms=[system.config.jwt_algorithm])
    except jwt.ExpiredSignatureError:
        raise HTTPException(status_code=401, detail="Token expired")
    except jwt.InvalidTokenError:
        raise HTTPException(status_code=401, detail="Invalid token")

    session_id = payload.get("session_id")
    user = system.users.me(session_id) if session_id else None
    if not user or user.id != payload.get("sub"):
        raise HTTPException(status_code=401, detail="Session expired")
    return user


def get_session_id(credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
                   system: CoopSystem = Depends(get_coop_system)) -> Optional[str]:
    if not credentials:
        return None
    try:
        payload = jwt.decode(credentials.credentials, system.config.jwt_secret,
                             algorithms=[system.config.jwt_algorithm])
    except jwt.InvalidTokenError:
        return None
    return payload.get("session_id")


def require_permission(*permissions: str):
    """Dependency factory: the user's role must hold at least one of the permissions"""
    def check(request: Request, user: User = Depends(get_current_user)) -> User:
        role = user.effective_role
        if not any(has_permission(role, p) for p in permissions):
            log_action(logger, "warning", "Permission denied", user_id=user.email,
                       action="permission_denied", resource=request.url.path,
                       extra={"role": role, "required": list(permissions)})
            raise HTTPException(status_code=403, detail=f"Role {role} lacks permission: {', '.join(permissions)}")
        return user
    return check


def require_roles(*roles: str):
    """Dependency factory for role-guarded pages (admin always passes)"""
    def check(request: Request, user: User = Depends(get_current_user)) -> User:
        if not is_role_allowed(user.effective_role, list(roles)):
            log_action(logger, "warning", "Role not allowed", user_id=user.email,
                       action="permission_denied", resource=request.url.path,
                       extra={"role": user.effective_role, "allowed": list(roles)})
            raise HTTPException(status_code=403, detail="Access denied for your role")
        return user
    return check


def client_ip(request: Request) -> Optional[str]:
    return request.client.host if request.client else None


def http_error(e: ValueError) -> HTTPException:
    """Map a domain error to an HTTP error; unknown records become 404"""
    message = str(e)
    if message.endswith("not found"):
        return HTTPException(status_code=404, detail=message)
    return HTTPException(status_code=400, detail=message)
