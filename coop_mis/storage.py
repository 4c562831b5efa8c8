"""
Storage Backend Module

Provides the entity store used by every manager: an abstract document
interface plus in-memory (testing) and SQLite (persistence) implementations.
All monetary values are stored as Decimal strings.
"""

from abc import ABC, abstractmethod
from typing import Dict, List, Optional, Any, Union, get_type_hints
from decimal import Decimal
from datetime import date, datetime, timezone
from enum import Enum
import sqlite3
import json
import threading
import typing
from dataclasses import dataclass, asdict, fields
from pathlib import Path
from contextlib import contextmanager


def serialize_value(value: Any) -> Any:
    """Convert a value to its JSON-safe stored form"""
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, dict):
        return {k: serialize_value(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [serialize_value(v) for v in value]
    return value


def _coerce(value: Any, field_type: Any) -> Any:
    """Convert a stored value back to the declared field type"""
    if value is None:
        return None

    # Unwrap Optional[X]
    if typing.get_origin(field_type) is Union:
        args = [a for a in typing.get_args(field_type) if a is not type(None)]
        if len(args) == 1:
            field_type = args[0]

    if field_type is Decimal and not isinstance(value, Decimal):
        return Decimal(str(value))
    if field_type is datetime and isinstance(value, str):
        return datetime.fromisoformat(value)
    if field_type is date and isinstance(value, str):
        return date.fromisoformat(value[:10])
    if isinstance(field_type, type) and issubclass(field_type, Enum) and not isinstance(value, field_type):
        return field_type(value)
    return value


@dataclass
class StorageRecord:
    """Base class for all stored records"""
    id: str
    created_at: datetime
    updated_at: datetime

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for storage"""
        return {key: serialize_value(value) for key, value in asdict(self).items()}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'StorageRecord':
        """Create instance from dictionary, ignoring unknown keys"""
        hints = get_type_hints(cls)
        kwargs = {}
        for f in fields(cls):
            if f.name in data:
                kwargs[f.name] = _coerce(data[f.name], hints.get(f.name))
        return cls(**kwargs)


def _sort_records(records: List[Dict[str, Any]], sort: Optional[str]) -> List[Dict[str, Any]]:
    """Sort by a field name; a leading '-' means descending. Missing values sort last."""
    if not sort:
        return records
    descending = sort.startswith('-')
    key = sort.lstrip('-')
    present = [r for r in records if r.get(key) is not None]
    missing = [r for r in records if r.get(key) is None]

    def sort_key(record):
        value = record[key]
        if isinstance(value, str):
            try:
                number = Decimal(value)
            except ArithmeticError:
                return (1, Decimal(0), value)
            if number.is_finite():
                return (0, number, "")
            return (1, Decimal(0), value)
        if isinstance(value, (int, float)):
            return (0, Decimal(str(value)), "")
        return (1, Decimal(0), str(value))

    present.sort(key=sort_key, reverse=descending)
    return present + missing

class StorageInterface(ABC):
    """
    Document store keyed by (table, record id).

    Records are plain JSON-safe dicts. Managers keep one table per entity and
    use list/filter for ordered listings.
    """

    @abstractmethod
    def save(self, table: str, record_id: str, data: Dict[str, Any]) -> None:
        """Insert or replace a record"""

    @abstractmethod
    def load(self, table: str, record_id: str) -> Optional[Dict[str, Any]]:
        """Fetch one record, None when absent"""

    @abstractmethod
    def load_all(self, table: str) -> List[Dict[str, Any]]:
        ...

    @abstractmethod
    def delete(self, table: str, record_id: str) -> bool:
        """Remove a record; False when there was nothing to remove"""

    @abstractmethod
    def exists(self, table: str, record_id: str) -> bool:
        ...

    @abstractmethod
    def count(self, table: str) -> int:
        ...

    @abstractmethod
    def clear_table(self, table: str) -> None:
        ...

    @abstractmethod
    def close(self) -> None:
        ...

    def find(self, table: str, filters: Dict[str, Any]) -> List[Dict[str, Any]]:
        """Records whose fields equal every value in filters"""
        return [record for record in self.load_all(table) if _matches(record, filters)]

    def list(self, table: str, sort: Optional[str] = "-created_at",
             limit: Optional[int] = None) -> List[Dict[str, Any]]:
        """All records of a table, sorted and optionally limited"""
        records = _sort_records(self.load_all(table), sort)
        return records[:limit] if limit else records

    def filter(self, table: str, filters: Dict[str, Any], sort: Optional[str] = "-created_at",
               limit: Optional[int] = None) -> List[Dict[str, Any]]:
        records = _sort_records(self.find(table, filters), sort)
        return records[:limit] if limit else records

    # Backends without transactions treat these as no-ops
    def begin_transaction(self) -> None:
        pass

    def commit(self) -> None:
        pass

    def rollback(self) -> None:
        pass

    @contextmanager
    def atomic(self):
        """
        Group writes so they land together or not at all.

        Usage:
            with storage.atomic():
                storage.save('loans', loan.id, loan.to_dict())
                storage.save('transactions', txn.id, txn.to_dict())
        """
        self.begin_transaction()
        try:
            yield self
        except Exception:
            self.rollback()
            raise
        self.commit()


def _matches(record: Dict[str, Any], filters: Dict[str, Any]) -> bool:
    return all(key in record and record[key] == expected for key, expected in filters.items())


def _detached(record: Dict[str, Any]) -> Dict[str, Any]:
    """Independent copy with every value reduced to its JSON form"""
    return json.loads(json.dumps(record, default=str))


class InMemoryStorage(StorageInterface):
    """Dict-backed store used by tests and the memory backend"""

    def __init__(self):
        self._tables: Dict[str, Dict[str, Dict[str, Any]]] = {}
        self._lock = threading.RLock()

    def _table(self, table: str) -> Dict[str, Dict[str, Any]]:
        return self._tables.setdefault(table, {})

    def save(self, table: str, record_id: str, data: Dict[str, Any]) -> None:
        with self._lock:
            self._table(table)[record_id] = _detached(data)

    def load(self, table: str, record_id: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            record = self._table(table).get(record_id)
            return _detached(record) if record is not None else None

    def load_all(self, table: str) -> List[Dict[str, Any]]:
        with self._lock:
            return [_detached(record) for record in self._table(table).values()]

    def delete(self, table: str, record_id: str) -> bool:
        with self._lock:
            return self._table(table).pop(record_id, None) is not None

    def exists(self, table: str, record_id: str) -> bool:
        with self._lock:
            return record_id in self._table(table)

    def count(self, table: str) -> int:
        with self._lock:
            return len(self._table(table))

    def clear_table(self, table: str) -> None:
        with self._lock:
            self._tables.pop(table, None)

    def close(self) -> None:
        pass


class SQLiteStorage(StorageInterface):
    """
    One SQLite table per entity, each row holding the record as JSON.

    Writes outside an atomic() block commit immediately. Inside one they are
    held until the block exits.
    """

    def __init__(self, db_path: Union[str, Path] = ":memory:"):
        self.db_path = str(db_path)
        self._lock = threading.RLock()
        self._in_transaction = False
        self._known_tables = set()
        self._connection = sqlite3.connect(self.db_path, check_same_thread=False)
        self._connection.row_factory = sqlite3.Row

        if self.db_path != ":memory:":
            # WAL lets the API read while a write is in flight
            self._connection.execute("PRAGMA journal_mode = WAL")
            self._connection.execute("PRAGMA synchronous = NORMAL")
            self._connection.commit()

    def _write(self, sql: str, params: tuple = ()) -> sqlite3.Cursor:
        with self._lock:
            cursor = self._connection.execute(sql, params)
            if not self._in_transaction:
                self._connection.commit()
            return cursor

    def _rows(self, sql: str, params: tuple = ()) -> List[sqlite3.Row]:
        with self._lock:
            return self._connection.execute(sql, params).fetchall()

    def _prepare(self, table: str) -> str:
        if table not in self._known_tables:
            self._write(
                f"CREATE TABLE IF NOT EXISTS {table} ("
                "record_id TEXT PRIMARY KEY, body TEXT NOT NULL, "
                "created_at TEXT NOT NULL, updated_at TEXT NOT NULL)"
            )
            self._write(f"CREATE INDEX IF NOT EXISTS ix_{table}_created ON {table}(created_at)")
            self._known_tables.add(table)
        return table

    def save(self, table: str, record_id: str, data: Dict[str, Any]) -> None:
        stamp = datetime.now(timezone.utc).isoformat()
        self._write(
            f"INSERT INTO {self._prepare(table)} (record_id, body, created_at, updated_at) "
            "VALUES (?, ?, ?, ?) "
            "ON CONFLICT(record_id) DO UPDATE SET body = excluded.body, updated_at = excluded.updated_at",
            (record_id, json.dumps(data, default=str), str(data.get('created_at') or stamp), stamp),
        )

    def load(self, table: str, record_id: str) -> Optional[Dict[str, Any]]:
        rows = self._rows(f"SELECT body FROM {self._prepare(table)} WHERE record_id = ?", (record_id,))
        return json.loads(rows[0]['body']) if rows else None

    def load_all(self, table: str) -> List[Dict[str, Any]]:
        rows = self._rows(f"SELECT body FROM {self._prepare(table)} ORDER BY created_at")
        return [json.loads(row['body']) for row in rows]

    def delete(self, table: str, record_id: str) -> bool:
        cursor = self._write(f"DELETE FROM {self._prepare(table)} WHERE record_id = ?", (record_id,))
        return cursor.rowcount > 0

    def exists(self, table: str, record_id: str) -> bool:
        return bool(self._rows(f"SELECT 1 FROM {self._prepare(table)} WHERE record_id = ?", (record_id,)))

    def count(self, table: str) -> int:
        return self._rows(f"SELECT COUNT(*) AS n FROM {self._prepare(table)}")[0]['n']

    def clear_table(self, table: str) -> None:
        self._write(f"DELETE FROM {self._prepare(table)}")

    def begin_transaction(self) -> None:
        with self._lock:
            self._in_transaction = True

    def commit(self) -> None:
        with self._lock:
            if self._in_transaction:
                self._in_transaction = False
                self._connection.commit()

    def rollback(self) -> None:
        with self._lock:
            if self._in_transaction:
                self._in_transaction = False
                self._connection.rollback()
                # Tables created inside the block went with it
                self._known_tables.clear()

    def close(self) -> None:
        with self._lock:
            if self._connection is not None:
                self._connection.close()
                self._connection = None


def create_storage(backend: str = "sqlite", db_path: Union[str, Path] = ":memory:") -> StorageInterface:
    """
    Build the configured storage backend.

    Args:
        backend: "sqlite" or "memory"
        db_path: SQLite database path (ignored for memory)
    """
    if backend == "memory":
        return InMemoryStorage()
    if backend == "sqlite":
        return SQLiteStorage(db_path)
    raise ValueError(f"Unknown storage backend: {backend}")
