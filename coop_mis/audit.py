"""
Audit Trail Module

Hash-chained audit log with SHA-256 for tamper detection.
Every create, update, delete, login and approval in the cooperative is logged here.
"""

import hashlib
import json
import threading
import uuid
from datetime import date, datetime, timezone
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Any
from enum import Enum

from .storage import StorageInterface, StorageRecord, serialize_value


class AuditAction(Enum):
    """Actions recorded in the audit log"""
    CREATE = "CREATE"
    UPDATE = "UPDATE"
    DELETE = "DELETE"
    LOGIN = "LOGIN"
    LOGOUT = "LOGOUT"
    APPROVE = "APPROVE"
    REJECT = "REJECT"
    DISBURSE = "DISBURSE"
    VIEW = "VIEW"
    EXPORT = "EXPORT"


class AuditModule(Enum):
    """Functional area an audit entry belongs to"""
    MEMBERS = "Members"
    LOANS = "Loans"
    SAVINGS = "Savings"
    TRANSACTIONS = "Transactions"
    REPORTS = "Reports"
    SETTINGS = "Settings"
    AUTHENTICATION = "Authentication"
    USERS = "Users"


@dataclass
class AuditLog(StorageRecord):
    """
    Immutable audit entry with hash chaining for tamper detection
    """
    action: AuditAction
    module: AuditModule
    description: str
    sequence: int
    previous_hash: str
    current_hash: str
    record_id: Optional[str] = None
    user_email: Optional[str] = None
    user_id: Optional[str] = None
    ip_address: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        if self.metadata:
            self.metadata = serialize_value(self.metadata)

    def calculate_hash(self) -> str:
        """
        Calculate SHA-256 hash of this entry
        Hash includes all fields except current_hash to prevent circular reference
        """
        hash_data = {
            'id': self.id,
            'created_at': self.created_at.isoformat(),
            'action': self.action.value,
            'module': self.module.value,
            'description': self.description,
            'sequence': self.sequence,
            'record_id': self.record_id,
            'user_email': self.user_email,
            'user_id': self.user_id,
            'ip_address': self.ip_address,
            'previous_hash': self.previous_hash,
            'metadata': self.metadata
        }

        json_data = json.dumps(hash_data, sort_keys=True, separators=(',', ':'))
        return hashlib.sha256(json_data.encode('utf-8')).hexdigest()

    def verify_hash(self) -> bool:
        """Verify that the current hash is correct"""
        return self.current_hash == self.calculate_hash()


class AuditTrail:
    """
    Hash-chained audit trail for tamper detection
    """

    def __init__(self, storage: StorageInterface, table_name: str = "audit_logs"):
        self.storage = storage
        self.table_name = table_name
        self._last_hash: Optional[str] = None
        self._last_sequence = 0
        self._lock = threading.Lock()
        self._load_chain_head()

    def _load_chain_head(self) -> None:
        """Load the hash and sequence of the most recent entry"""
        entries = self.storage.load_all(self.table_name)
        if entries:
            latest = max(entries, key=lambda x: x.get('sequence', 0))
            self._last_hash = latest.get('current_hash')
            self._last_sequence = latest.get('sequence', 0)

    def log(
        self,
        action: AuditAction,
        module: AuditModule,
        description: str,
        record_id: Optional[str] = None,
        user_email: Optional[str] = None,
        user_id: Optional[str] = None,
        ip_address: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None
    ) -> AuditLog:
        """
        Append an entry to the audit trail

        Args:
            action: What was done
            module: Functional area
            description: Human readable summary, e.g. "Created member MEM-2024-0001"
            record_id: ID of the affected record
            user_email: Email of the acting user
            user_id: ID of the acting user
            ip_address: Client address when known
            metadata: Additional event-specific data

        Returns:
            Created AuditLog
        """
        with self._lock:
            self._load_chain_head()
            now = datetime.now(timezone.utc)

            entry = AuditLog(
                id=str(uuid.uuid4()),
                created_at=now,
                updated_at=now,
                action=action,
                module=module,
                description=description,
                sequence=self._last_sequence + 1,
                previous_hash=self._last_hash or "",
                current_hash="",
                record_id=record_id,
                user_email=user_email,
                user_id=user_id,
                ip_address=ip_address,
                metadata=metadata or {}
            )
            entry.current_hash = entry.calculate_hash()

            self.storage.save(self.table_name, entry.id, entry.to_dict())

            self._last_hash = entry.current_hash
            self._last_sequence = entry.sequence
            return entry

    def _all_entries(self) -> List[AuditLog]:
        entries = [AuditLog.from_dict(data) for data in self.storage.load_all(self.table_name)]
        entries.sort(key=lambda x: x.sequence)
        return entries

    def get_logs(
        self,
        action: Optional[AuditAction] = None,
        module: Optional[AuditModule] = None,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
        limit: Optional[int] = None
    ) -> List[AuditLog]:
        """
        Get audit entries, newest first

        Args:
            action: Only entries with this action
            module: Only entries for this module
            date_from: Start day (inclusive)
            date_to: End day (inclusive)
            limit: Maximum number of entries to return
        """
        entries = self._all_entries()
        if action:
            entries = [e for e in entries if e.action == action]
        if module:
            entries = [e for e in entries if e.module == module]
        if date_from:
            entries = [e for e in entries if e.created_at.date() >= date_from]
        if date_to:
            entries = [e for e in entries if e.created_at.date() <= date_to]

        entries.reverse()
        if limit:
            entries = entries[:limit]
        return entries

    def get_logs_for_record(self, record_id: str) -> List[AuditLog]:
        """Get the history of one record in chronological order"""
        entries = [AuditLog.from_dict(d) for d in self.storage.find(self.table_name, {'record_id': record_id})]
        entries.sort(key=lambda x: x.sequence)
        return entries

    @staticmethod
    def action_counts(entries: List[AuditLog]) -> Dict[str, int]:
        """Summary counts shown above the audit log table"""
        def count(action: AuditAction) -> int:
            return sum(1 for e in entries if e.action == action)

        return {
            'total': len(entries),
            'create': count(AuditAction.CREATE),
            'update': count(AuditAction.UPDATE),
            'delete': count(AuditAction.DELETE),
            'login': count(AuditAction.LOGIN),
        }

    def verify_integrity(self) -> Dict[str, Any]:
        """
        Verify the integrity of the entire audit chain

        Returns:
            Dictionary with integrity check results
        """
        result = {
            'valid': True,
            'total_entries': 0,
            'hash_errors': [],
            'chain_breaks': []
        }

        entries = self._all_entries()
        result['total_entries'] = len(entries)

        previous_hash = ""
        for i, entry in enumerate(entries):
            if not entry.verify_hash():
                result['valid'] = False
                result['hash_errors'].append({
                    'entry_id': entry.id,
                    'position': i,
                    'expected_hash': entry.calculate_hash(),
                    'actual_hash': entry.current_hash
                })
            if entry.previous_hash != previous_hash:
                result['valid'] = False
                result['chain_breaks'].append({
                    'entry_id': entry.id,
                    'position': i,
                    'expected_previous_hash': previous_hash,
                    'actual_previous_hash': entry.previous_hash
                })
            previous_hash = entry.current_hash

        return result

    def count_entries(self) -> int:
        return self.storage.count(self.table_name)
