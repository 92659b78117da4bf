"""
Storage Backend Module

Keyed record storage for loans: an in-memory backend for tests and a SQLite
backend for persistence. Records are JSON documents (Decimals already
rendered as strings) stored per table under the loan name.
"""

from abc import ABC, abstractmethod
from typing import Dict, List, Optional, Any, Union
from datetime import datetime, timezone
from pathlib import Path
from contextlib import contextmanager
import json
import re
import sqlite3
import threading
import logging

from .config import AmortizerConfig

logger = logging.getLogger("amortizer.storage")

_TABLE_NAME = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


def _check_table(table: str) -> str:
    """Table names are interpolated into SQL, so only identifiers are allowed"""
    if not _TABLE_NAME.match(table):
        raise ValueError(f"Invalid table name: {table!r}")
    return table


class StorageInterface(ABC):
    """Abstract interface for loan record storage"""

    def __init__(self):
        self._lock = threading.RLock()
        self._depth = 0

    @abstractmethod
    def save(self, table: str, key: str, record: Dict[str, Any]) -> None:
        """Insert or replace the record stored under `key`"""

    @abstractmethod
    def load(self, table: str, key: str) -> Optional[Dict[str, Any]]:
        """Record stored under `key`, or None"""

    @abstractmethod
    def delete(self, table: str, key: str) -> bool:
        """Remove a record; False when nothing was stored"""

    @abstractmethod
    def list_ids(self, table: str) -> List[str]:
        """Keys in a table, sorted"""

    def exists(self, table: str, key: str) -> bool:
        return self.load(table, key) is not None

    def close(self) -> None:
        pass

    def _begin(self) -> None:
        pass

    def _commit(self) -> None:
        pass

    def _rollback(self) -> None:
        pass

    @contextmanager
    def atomic(self):
        """
        All writes in the block land together or not at all.

        Blocks may nest; only the outermost one commits or rolls back.
        """
        with self._lock:
            outermost = self._depth == 0
            if outermost:
                self._begin()
            self._depth += 1
            try:
                yield self
            except Exception:
                self._depth -= 1
                if outermost:
                    self._rollback()
                    logger.warning("Storage transaction rolled back")
                raise
            else:
                self._depth -= 1
                if outermost:
                    self._commit()


class InMemoryStorage(StorageInterface):
    """In-memory storage implementation for testing"""

    def __init__(self):
        super().__init__()
        # Records are kept as JSON text so callers never share mutable state
        self._tables: Dict[str, Dict[str, str]] = {}
        self._snapshot: Optional[Dict[str, Dict[str, str]]] = None

    def save(self, table: str, key: str, record: Dict[str, Any]) -> None:
        with self._lock:
            self._tables.setdefault(table, {})[key] = json.dumps(record, default=str)

    def load(self, table: str, key: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            document = self._tables.get(table, {}).get(key)
            return json.loads(document) if document is not None else None

    def delete(self, table: str, key: str) -> bool:
        with self._lock:
            return self._tables.get(table, {}).pop(key, None) is not None

    def exists(self, table: str, key: str) -> bool:
        with self._lock:
            return key in self._tables.get(table, {})

    def list_ids(self, table: str) -> List[str]:
        with self._lock:
            return sorted(self._tables.get(table, {}))

    def _begin(self) -> None:
        self._snapshot = {name: dict(rows) for name, rows in self._tables.items()}

    def _commit(self) -> None:
        self._snapshot = None

    def _rollback(self) -> None:
        if self._snapshot is not None:
            self._tables = self._snapshot
            self._snapshot = None


class SQLiteStorage(StorageInterface):
    """SQLite storage implementation for persistence"""

    def __init__(self, db_path: Union[str, Path] = ":memory:"):
        super().__init__()
        self.db_path = str(db_path)
        # Autocommit mode; atomic() issues BEGIN/COMMIT itself
        self._connection = sqlite3.connect(self.db_path, check_same_thread=False, isolation_level=None)
        self._connection.row_factory = sqlite3.Row
        self._tables: set = set()

        if self.db_path != ":memory:":
            self._connection.execute("PRAGMA journal_mode = WAL")
            self._connection.execute("PRAGMA synchronous = NORMAL")

    def _table(self, table: str) -> str:
        """Create the table on first use"""
        if table not in self._tables:
            self._connection.execute(f"""
                CREATE TABLE IF NOT EXISTS {_check_table(table)} (
                    key TEXT PRIMARY KEY,
                    record TEXT NOT NULL,
                    saved_at TEXT NOT NULL
                )
            """)
            self._tables.add(table)
        return table

    def save(self, table: str, key: str, record: Dict[str, Any]) -> None:
        with self._lock:
            self._connection.execute(
                f"INSERT INTO {self._table(table)} (key, record, saved_at) VALUES (?, ?, ?) "
                f"ON CONFLICT(key) DO UPDATE SET record = excluded.record, saved_at = excluded.saved_at",
                (key, json.dumps(record, default=str), datetime.now(timezone.utc).isoformat())
            )

    def load(self, table: str, key: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            row = self._connection.execute(
                f"SELECT record FROM {self._table(table)} WHERE key = ?", (key,)
            ).fetchone()
            return json.loads(row['record']) if row else None

    def delete(self, table: str, key: str) -> bool:
        with self._lock:
            cursor = self._connection.execute(f"DELETE FROM {self._table(table)} WHERE key = ?", (key,))
            return cursor.rowcount > 0

    def exists(self, table: str, key: str) -> bool:
        with self._lock:
            row = self._connection.execute(
                f"SELECT 1 FROM {self._table(table)} WHERE key = ? LIMIT 1", (key,)
            ).fetchone()
            return row is not None

    def list_ids(self, table: str) -> List[str]:
        with self._lock:
            rows = self._connection.execute(f"SELECT key FROM {self._table(table)} ORDER BY key").fetchall()
            return [row['key'] for row in rows]

    def _begin(self) -> None:
        self._connection.execute("BEGIN")

    def _commit(self) -> None:
        self._connection.execute("COMMIT")

    def _rollback(self) -> None:
        self._connection.execute("ROLLBACK")
        # Tables created inside the transaction are gone too
        self._tables.clear()

    def close(self) -> None:
        with self._lock:
            if self._connection is not None:
                self._connection.close()
                self._connection = None


def create_storage(settings: AmortizerConfig) -> StorageInterface:
    """Storage backend selected by configuration"""
    if settings.storage_backend == "sqlite":
        return SQLiteStorage(settings.sqlite_path)
    if settings.storage_backend == "memory":
        return InMemoryStorage()
    raise ValueError(f"Unknown storage backend: {settings.storage_backend}")
