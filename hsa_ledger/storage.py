"""
Storage Backend Module

Table/record storage injected into the ledger components. Records are JSON
documents keyed by id; monetary values are stored as Decimal strings.
Two backends: in-memory (default, tests) and SQLite (persistence across
restarts).
"""

from abc import ABC, abstractmethod
from typing import Dict, List, Optional, Any, Tuple, Union
from decimal import Decimal
from datetime import datetime, timezone
import sqlite3
import json
import threading
from dataclasses import dataclass, asdict
from pathlib import Path
from contextlib import contextmanager


@dataclass
class StorageRecord:
    """Base class for all stored records"""
    id: str
    created_at: datetime
    updated_at: datetime

    def to_dict(self) -> Dict[str, Any]:
        """Convert to a JSON-friendly dictionary"""
        result = asdict(self)
        result['created_at'] = self.created_at.isoformat()
        result['updated_at'] = self.updated_at.isoformat()
        for key, value in result.items():
            if isinstance(value, Decimal):
                result[key] = str(value)
        return result


_MISSING = object()


def _copy(data: Any) -> Any:
    # Round-trip through JSON so callers never share mutable state with the store
    return json.loads(json.dumps(data, default=str))


class StorageInterface(ABC):
    """Abstract interface for storage backends"""

    @abstractmethod
    def save(self, table: str, record_id: str, data: Dict[str, Any]) -> None:
        """Insert or replace a record"""
        pass

    @abstractmethod
    def load(self, table: str, record_id: str) -> Optional[Dict[str, Any]]:
        """Load a record, or None"""
        pass

    @abstractmethod
    def load_all(self, table: str) -> List[Dict[str, Any]]:
        """Load all records of a table in insertion order"""
        pass

    @abstractmethod
    def exists(self, table: str, record_id: str) -> bool:
        pass

    @abstractmethod
    def find(self, table: str, filters: Dict[str, Any]) -> List[Dict[str, Any]]:
        """Find records whose fields equal every filter value, in insertion order"""
        pass

    @abstractmethod
    def count(self, table: str) -> int:
        pass

    @abstractmethod
    def clear_table(self, table: str) -> None:
        pass

    @abstractmethod
    def close(self) -> None:
        pass

    def begin_transaction(self) -> None:
        """Start a transaction (default no-op)"""
        pass

    def commit(self) -> None:
        """Commit the current transaction (default no-op)"""
        pass

    def rollback(self) -> None:
        """Roll back the current transaction (default no-op)"""
        pass

    @contextmanager
    def atomic(self):
        """All writes inside the block land together or not at all"""
        self.begin_transaction()
        try:
            yield
            self.commit()
        except Exception:
            self.rollback()
            raise


class InMemoryStorage(StorageInterface):
    """
    In-memory storage.

    Inside a transaction every write first records the value it replaces in
    an undo log; rollback replays the log backwards. Only the keys written
    by the transaction are touched.
    """

    def __init__(self):
        self._data: Dict[str, Dict[str, Dict[str, Any]]] = {}
        self._lock = threading.RLock()
        self._undo_log: List[Tuple[str, Optional[str], Any]] = []
        self._depth = 0

    def _table(self, table: str) -> Dict[str, Dict[str, Any]]:
        if table not in self._data:
            self._data[table] = {}
        return self._data[table]

    def _remember(self, table: str, record_id: Optional[str]) -> None:
        if self._depth == 0:
            return
        if record_id is None:
            self._undo_log.append((table, None, self._data.get(table)))
        else:
            self._undo_log.append((table, record_id, self._table(table).get(record_id, _MISSING)))

    def save(self, table: str, record_id: str, data: Dict[str, Any]) -> None:
        with self._lock:
            self._remember(table, record_id)
            # Stored dicts are replaced, never mutated, so the undo log can keep references
            self._table(table)[record_id] = _copy(data)

    def load(self, table: str, record_id: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            record = self._table(table).get(record_id)
            return _copy(record) if record is not None else None

    def load_all(self, table: str) -> List[Dict[str, Any]]:
        with self._lock:
            return [_copy(record) for record in self._table(table).values()]

    def exists(self, table: str, record_id: str) -> bool:
        with self._lock:
            return record_id in self._table(table)

    def find(self, table: str, filters: Dict[str, Any]) -> List[Dict[str, Any]]:
        with self._lock:
            return [
                _copy(record) for record in self._table(table).values()
                if all(key in record and record[key] == value for key, value in filters.items())
            ]

    def count(self, table: str) -> int:
        with self._lock:
            return len(self._table(table))

    def clear_table(self, table: str) -> None:
        with self._lock:
            self._remember(table, None)
            self._data[table] = {}

    def close(self) -> None:
        """No-op for in-memory storage"""
        pass

    def begin_transaction(self) -> None:
        with self._lock:
            self._depth += 1

    def commit(self) -> None:
        with self._lock:
            if self._depth > 0:
                self._depth -= 1
            if self._depth == 0:
                self._undo_log = []

    def rollback(self) -> None:
        with self._lock:
            for table, record_id, previous in reversed(self._undo_log):
                if record_id is None:
                    if previous is None:
                        self._data.pop(table, None)
                    else:
                        self._data[table] = previous
                elif previous is _MISSING:
                    self._table(table).pop(record_id, None)
                else:
                    self._table(table)[record_id] = previous
            self._undo_log = []
            self._depth = 0

    @contextmanager
    def atomic(self):
        # Holding the lock for the whole block keeps readers off half-written state
        with self._lock:
            with super().atomic():
                yield


class SQLiteStorage(StorageInterface):
    """SQLite storage for persistence across restarts"""

    def __init__(self, db_path: Union[str, Path] = ":memory:"):
        self.db_path = str(db_path)
        self._connection = sqlite3.connect(self.db_path, check_same_thread=False, isolation_level='DEFERRED')
        self._connection.row_factory = sqlite3.Row
        self._lock = threading.RLock()
        self._depth = 0
        self._tables = set()

        if self.db_path != ":memory:":
            with self._lock:
                self._connection.execute("PRAGMA journal_mode = WAL")
                self._connection.execute("PRAGMA synchronous = NORMAL")
                self._connection.commit()

    def _ensure_table(self, table: str) -> None:
        if table in self._tables:
            return
        self._connection.execute(f"""
            CREATE TABLE IF NOT EXISTS {table} (
                id TEXT PRIMARY KEY,
                data TEXT NOT NULL,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL
            )
        """)
        self._connection.execute(f"""
            CREATE INDEX IF NOT EXISTS idx_{table}_created_at
            ON {table}(created_at)
        """)
        self._tables.add(table)
        self._commit_unless_in_transaction()

    def _commit_unless_in_transaction(self) -> None:
        if self._depth == 0:
            self._connection.commit()

    def save(self, table: str, record_id: str, data: Dict[str, Any]) -> None:
        with self._lock:
            self._ensure_table(table)
            now = datetime.now(timezone.utc).isoformat()
            # Keep the original created_at (and rowid order) on updates
            self._connection.execute(f"""
                INSERT INTO {table} (id, data, created_at, updated_at)
                VALUES (?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    data = excluded.data,
                    updated_at = excluded.updated_at
            """, (record_id, json.dumps(data, default=str), now, now))
            self._commit_unless_in_transaction()

    def load(self, table: str, record_id: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            self._ensure_table(table)
            row = self._connection.execute(
                f"SELECT data FROM {table} WHERE id = ?", (record_id,)
            ).fetchone()
            return json.loads(row['data']) if row else None

    def load_all(self, table: str) -> List[Dict[str, Any]]:
        with self._lock:
            self._ensure_table(table)
            cursor = self._connection.execute(f"SELECT data FROM {table} ORDER BY rowid")
            return [json.loads(row['data']) for row in cursor.fetchall()]

    def exists(self, table: str, record_id: str) -> bool:
        with self._lock:
            self._ensure_table(table)
            row = self._connection.execute(
                f"SELECT 1 FROM {table} WHERE id = ? LIMIT 1", (record_id,)
            ).fetchone()
            return row is not None

    def find(self, table: str, filters: Dict[str, Any]) -> List[Dict[str, Any]]:
        """Find records by equality on top-level JSON fields"""
        with self._lock:
            self._ensure_table(table)
            conditions = []
            params: List[Any] = []
            for key, value in filters.items():
                conditions.append("json_extract(data, ?) = ?")
                params.extend([f"$.{key}", value])

            where_clause = f"WHERE {' AND '.join(conditions)}" if conditions else ""
            cursor = self._connection.execute(
                f"SELECT data FROM {table} {where_clause} ORDER BY rowid", params
            )
            return [json.loads(row['data']) for row in cursor.fetchall()]

    def count(self, table: str) -> int:
        with self._lock:
            self._ensure_table(table)
            return self._connection.execute(f"SELECT COUNT(*) AS count FROM {table}").fetchone()['count']

    def clear_table(self, table: str) -> None:
        with self._lock:
            self._ensure_table(table)
            self._connection.execute(f"DELETE FROM {table}")
            self._commit_unless_in_transaction()

    def begin_transaction(self) -> None:
        with self._lock:
            # isolation_level='DEFERRED' opens the SQL transaction on the first write
            self._depth += 1

    def commit(self) -> None:
        with self._lock:
            if self._depth > 0:
                self._depth -= 1
            if self._depth == 0:
                self._connection.commit()

    def rollback(self) -> None:
        with self._lock:
            if self._depth > 0:
                self._connection.rollback()
                self._tables.clear()
            self._depth = 0

    @contextmanager
    def atomic(self):
        with self._lock:
            with super().atomic():
                yield

    def close(self) -> None:
        with self._lock:
            if self._connection:
                self._connection.close()
                self._connection = None
