"""
Record Store Module

Abstract keyed record store plus in-memory (testing) and SQLite (persistence)
backends. Records are JSON-compatible dicts; Decimal values are stored as
strings and dates as ISO strings.
"""

from abc import ABC, abstractmethod
from typing import Dict, List, Optional, Any, Union
from datetime import datetime, timezone
import sqlite3
import json
import re
import threading
from pathlib import Path
from contextlib import contextmanager

from .config import LendingConfig
from .errors import ConfigurationError


_TABLE_NAME = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


def _matches(record: Dict[str, Any], filters: Optional[Dict[str, Any]]) -> bool:
    if not filters:
        return True
    for key, value in filters.items():
        if key not in record or record[key] != value:
            return False
    return True


class RecordStore(ABC):
    """
    Abstract interface for record store backends.

    Only single-record writes are assumed to be atomic. Backends that can
    group writes override begin/commit/rollback; atomic() is then a real
    transaction, otherwise it is a no-op wrapper.
    """

    @abstractmethod
    def get(self, table: str, key: str) -> Optional[Dict[str, Any]]:
        """Load one record, or None"""

    @abstractmethod
    def put(self, table: str, key: str, data: Dict[str, Any]) -> None:
        """Insert or replace one record"""

    @abstractmethod
    def list(self, table: str, filters: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
        """List records in insertion order, optionally matching equality filters"""

    @abstractmethod
    def exists(self, table: str, key: str) -> bool:
        """Check if a record exists"""

    @abstractmethod
    def count(self, table: str) -> int:
        """Count records in table"""

    @abstractmethod
    def close(self) -> None:
        """Release backend resources"""

    def begin_transaction(self) -> None:
        """Start a transaction (default no-op)"""

    def commit(self) -> None:
        """Commit current transaction (default no-op)"""

    def rollback(self) -> None:
        """Rollback current transaction (default no-op)"""

    @contextmanager
    def atomic(self):
        """Context manager grouping writes where the backend supports it"""
        self.begin_transaction()
        try:
            yield
            self.commit()
        except Exception:
            self.rollback()
            raise


class InMemoryStore(RecordStore):
    """In-memory store for tests and single-process use"""

    def __init__(self):
        self._data: Dict[str, Dict[str, Dict[str, Any]]] = {}
        self._lock = threading.RLock()

    def _table(self, table: str) -> Dict[str, Dict[str, Any]]:
        return self._data.setdefault(table, {})

    @staticmethod
    def _copy(record: Dict[str, Any]) -> Dict[str, Any]:
        # Round-trip through JSON so callers never share mutable state with the store
        return json.loads(json.dumps(record, default=str))

    def get(self, table: str, key: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            record = self._table(table).get(key)
            return self._copy(record) if record is not None else None

    def put(self, table: str, key: str, data: Dict[str, Any]) -> None:
        with self._lock:
            self._table(table)[key] = self._copy(data)

    def list(self, table: str, filters: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
        with self._lock:
            return [
                self._copy(record)
                for record in self._table(table).values()
                if _matches(record, filters)
            ]

    def exists(self, table: str, key: str) -> bool:
        with self._lock:
            return key in self._table(table)

    def count(self, table: str) -> int:
        with self._lock:
            return len(self._table(table))

    def close(self) -> None:
        pass


class SQLiteStore(RecordStore):
    """SQLite store: one JSON document per row, one table per entity type"""

    def __init__(self, db_path: Union[str, Path] = ":memory:"):
        self.db_path = str(db_path)
        self._connection = sqlite3.connect(self.db_path, check_same_thread=False, isolation_level='DEFERRED')
        self._connection.row_factory = sqlite3.Row
        self._lock = threading.RLock()
        self._in_transaction = False
        self._known_tables = set()

        if self.db_path != ":memory:":
            with self._lock:
                self._connection.execute("PRAGMA journal_mode = WAL")
                self._connection.execute("PRAGMA synchronous = NORMAL")
                self._connection.commit()

    def _ensure_table(self, table: str) -> None:
        if table in self._known_tables:
            return
        if not _TABLE_NAME.match(table):
            raise ValueError(f"Invalid table name: {table!r}")
        self._connection.execute(f"""
            CREATE TABLE IF NOT EXISTS {table} (
                seq INTEGER PRIMARY KEY AUTOINCREMENT,
                id TEXT NOT NULL UNIQUE,
                data TEXT NOT NULL,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL
            )
        """)
        if not self._in_transaction:
            self._connection.commit()
        self._known_tables.add(table)

    def _maybe_commit(self) -> None:
        if not self._in_transaction:
            self._connection.commit()

    def get(self, table: str, key: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            self._ensure_table(table)
            row = self._connection.execute(
                f"SELECT data FROM {table} WHERE id = ?", (key,)
            ).fetchone()
            return json.loads(row['data']) if row else None

    def put(self, table: str, key: str, data: Dict[str, Any]) -> None:
        with self._lock:
            self._ensure_table(table)
            now = datetime.now(timezone.utc).isoformat()
            # Upsert keeps seq (insertion order) and created_at of existing rows
            self._connection.execute(f"""
                INSERT INTO {table} (id, data, created_at, updated_at)
                VALUES (?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    data = excluded.data,
                    updated_at = excluded.updated_at
            """, (key, json.dumps(data, default=str), now, now))
            self._maybe_commit()

    def list(self, table: str, filters: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
        with self._lock:
            self._ensure_table(table)
            rows = self._connection.execute(
                f"SELECT data FROM {table} ORDER BY seq"
            ).fetchall()
            records = [json.loads(row['data']) for row in rows]
            return [record for record in records if _matches(record, filters)]

    def exists(self, table: str, key: str) -> bool:
        with self._lock:
            self._ensure_table(table)
            row = self._connection.execute(
                f"SELECT 1 FROM {table} WHERE id = ? LIMIT 1", (key,)
            ).fetchone()
            return row is not None

    def count(self, table: str) -> int:
        with self._lock:
            self._ensure_table(table)
            row = self._connection.execute(f"SELECT COUNT(*) AS n FROM {table}").fetchone()
            return row['n']

    def begin_transaction(self) -> None:
        self._lock.acquire()
        self._in_transaction = True

    def commit(self) -> None:
        try:
            self._connection.commit()
        finally:
            self._in_transaction = False
            self._lock.release()

    def rollback(self) -> None:
        try:
            self._connection.rollback()
        finally:
            # A rolled-back transaction may have included CREATE TABLE
            self._known_tables.clear()
            self._in_transaction = False
            self._lock.release()

    def close(self) -> None:
        with self._lock:
            if self._connection:
                self._connection.close()
                self._connection = None


def create_store(config: LendingConfig) -> RecordStore:
    """Build the record store named by configuration"""
    backend = config.storage_backend.lower()
    if backend == "memory":
        return InMemoryStore()
    if backend == "sqlite":
        return SQLiteStore(config.database_path)
    raise ConfigurationError(f"Unknown storage backend: {config.storage_backend!r}")
