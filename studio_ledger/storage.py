"""
Storage Backend Module

Document storage interface with in-memory (testing), SQLite and PostgreSQL
implementations. Records are JSON documents keyed by id; monetary values are
stored as Decimal strings. Balance fields are only ever changed through the
atomic increment() primitive.
"""

from abc import ABC, abstractmethod
from typing import Dict, List, Optional, Any, Union
from decimal import Decimal
from datetime import datetime, timezone
import sqlite3
import json
import threading
from dataclasses import dataclass, asdict
from enum import Enum
from pathlib import Path
from contextlib import contextmanager


@dataclass
class StorageRecord:
    """Base class for all stored records"""
    id: str
    created_at: datetime
    updated_at: datetime

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for storage"""
        result = asdict(self)
        for key, value in result.items():
            if isinstance(value, datetime):
                result[key] = value.isoformat()
            elif isinstance(value, Decimal):
                result[key] = str(value)
            elif isinstance(value, Enum):
                result[key] = value.value
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'StorageRecord':
        """Create instance from dictionary"""
        if 'created_at' in data and isinstance(data['created_at'], str):
            data['created_at'] = datetime.fromisoformat(data['created_at'])
        if 'updated_at' in data and isinstance(data['updated_at'], str):
            data['updated_at'] = datetime.fromisoformat(data['updated_at'])

        return cls(**data)


def _add_decimal(current: Any, delta: Decimal) -> str:
    """Add delta to a stored Decimal string (missing means zero)"""
    base = Decimal(str(current)) if current not in (None, "") else Decimal("0")
    return str(base + delta)


class StorageInterface(ABC):
    """Abstract interface for storage backends"""

    @abstractmethod
    def save(self, table: str, record_id: str, data: Dict[str, Any]) -> None:
        """Save a record to storage"""
        pass

    @abstractmethod
    def load(self, table: str, record_id: str) -> Optional[Dict[str, Any]]:
        """Load a record from storage"""
        pass

    @abstractmethod
    def load_all(self, table: str) -> List[Dict[str, Any]]:
        """Load all records from a table in insertion order"""
        pass

    @abstractmethod
    def delete(self, table: str, record_id: str) -> bool:
        """Delete a record from storage"""
        pass

    @abstractmethod
    def exists(self, table: str, record_id: str) -> bool:
        """Check if a record exists"""
        pass

    @abstractmethod
    def find(self, table: str, filters: Dict[str, Any]) -> List[Dict[str, Any]]:
        """Find records whose fields equal every filter value"""
        pass

    @abstractmethod
    def increment(
        self,
        table: str,
        record_id: str,
        field: str,
        delta: Decimal
    ) -> Optional[Dict[str, Any]]:
        """
        Atomically add delta to a Decimal field of a record

        Returns:
            The updated record, or None if the record does not exist
        """
        pass

    def load_for_update(self, table: str, record_id: str) -> Optional[Dict[str, Any]]:
        """
        Load a record that the current atomic() block is about to rewrite

        Backends with row locks hold the row until the block ends.
        """
        return self.load(table, record_id)

    @abstractmethod
    def count(self, table: str) -> int:
        """Count records in table"""
        pass

    @abstractmethod
    def clear_table(self, table: str) -> None:
        """Clear all records from a table"""
        pass

    @abstractmethod
    def close(self) -> None:
        """Close storage connection"""
        pass

    @property
    def supports_transactions(self) -> bool:
        """Whether rollback() actually undoes writes"""
        return False

    def begin_transaction(self) -> None:
        """Start a database transaction (default no-op)"""
        pass

    def commit(self) -> None:
        """Commit current transaction (default no-op)"""
        pass

    def rollback(self) -> None:
        """Rollback current transaction (default no-op)"""
        pass

    _atomic_depth = 0

    @property
    def atomic_depth(self) -> int:
        """Nesting level of atomic() blocks; 0 outside any block"""
        return self._atomic_depth

    @contextmanager
    def atomic(self):
        """
        Context manager for atomic operations

        The storage lock is held for the whole block. Nested blocks join the
        outermost one, which alone commits or rolls back.
        """
        with self._lock:
            if self._atomic_depth:
                self._atomic_depth += 1
                try:
                    yield
                finally:
                    self._atomic_depth -= 1
                return

            self.begin_transaction()
            self._atomic_depth = 1
            try:
                yield
                self.commit()
            except Exception:
                self.rollback()
                raise
            finally:
                self._atomic_depth = 0


class InMemoryStorage(StorageInterface):
    """In-memory storage implementation for testing"""

    def __init__(self):
        self._data: Dict[str, Dict[str, Dict[str, Any]]] = {}
        self._lock = threading.RLock()

    def _ensure_table(self, table: str) -> None:
        """Ensure table exists"""
        if table not in self._data:
            self._data[table] = {}

    def save(self, table: str, record_id: str, data: Dict[str, Any]) -> None:
        """Save a record to memory"""
        with self._lock:
            self._ensure_table(table)
            # Deep copy to prevent external mutation
            self._data[table][record_id] = json.loads(json.dumps(data, default=str))

    def load(self, table: str, record_id: str) -> Optional[Dict[str, Any]]:
        """Load a record from memory"""
        with self._lock:
            self._ensure_table(table)
            record = self._data[table].get(record_id)
            if record:
                return json.loads(json.dumps(record))
            return None

    def load_all(self, table: str) -> List[Dict[str, Any]]:
        """Load all records from a table"""
        with self._lock:
            self._ensure_table(table)
            return [json.loads(json.dumps(record)) for record in self._data[table].values()]

    def delete(self, table: str, record_id: str) -> bool:
        """Delete a record from memory"""
        with self._lock:
            self._ensure_table(table)
            if record_id in self._data[table]:
                del self._data[table][record_id]
                return True
            return False

    def exists(self, table: str, record_id: str) -> bool:
        """Check if a record exists"""
        with self._lock:
            self._ensure_table(table)
            return record_id in self._data[table]

    def find(self, table: str, filters: Dict[str, Any]) -> List[Dict[str, Any]]:
        """Find records matching filters"""
        with self._lock:
            self._ensure_table(table)
            results = []
            for record in self._data[table].values():
                match = True
                for key, value in filters.items():
                    if key not in record or record[key] != value:
                        match = False
                        break
                if match:
                    results.append(json.loads(json.dumps(record)))
            return results

    def increment(
        self,
        table: str,
        record_id: str,
        field: str,
        delta: Decimal
    ) -> Optional[Dict[str, Any]]:
        """Add delta to a field while holding the storage lock"""
        with self._lock:
            self._ensure_table(table)
            record = self._data[table].get(record_id)
            if record is None:
                return None
            record[field] = _add_decimal(record.get(field), delta)
            record['updated_at'] = datetime.now(timezone.utc).isoformat()
            return json.loads(json.dumps(record))

    def count(self, table: str) -> int:
        """Count records in table"""
        with self._lock:
            self._ensure_table(table)
            return len(self._data[table])

    def clear_table(self, table: str) -> None:
        """Clear all records from a table"""
        with self._lock:
            self._data[table] = {}

    def close(self) -> None:
        """Close storage (no-op for in-memory)"""
        pass


class SQLiteStorage(StorageInterface):
    """SQLite storage implementation for persistence"""

    def __init__(self, db_path: Union[str, Path] = ":memory:"):
        self.db_path = str(db_path)
        self._connection = sqlite3.connect(self.db_path, check_same_thread=False, isolation_level='DEFERRED')
        self._connection.row_factory = sqlite3.Row
        self._lock = threading.RLock()
        self._in_transaction = False
        self._known_tables = set()

        # WAL mode for concurrent readers
        if self.db_path != ":memory:":
            with self._lock:
                self._connection.execute("PRAGMA journal_mode = WAL")
                self._connection.execute("PRAGMA synchronous = NORMAL")
                self._connection.commit()

    @property
    def supports_transactions(self) -> bool:
        return True

    def _ensure_table(self, table: str) -> None:
        """Ensure table exists with proper schema"""
        if table in self._known_tables:
            return
        with self._lock:
            self._connection.execute(f"""
                CREATE TABLE IF NOT EXISTS {table} (
                    seq INTEGER PRIMARY KEY AUTOINCREMENT,
                    id TEXT NOT NULL UNIQUE,
                    data TEXT NOT NULL,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
            """)
            self._connection.execute(f"""
                CREATE INDEX IF NOT EXISTS idx_{table}_created_at
                ON {table}(created_at)
            """)
            # Leave an open atomic() block uncommitted
            if not self._in_transaction:
                self._connection.commit()
            self._known_tables.add(table)

    def _maybe_commit(self) -> None:
        if not self._in_transaction:
            self._connection.commit()

    def save(self, table: str, record_id: str, data: Dict[str, Any]) -> None:
        """Save a record to SQLite, keeping the original insertion position"""
        with self._lock:
            self._ensure_table(table)

            now = datetime.now(timezone.utc).isoformat()
            data_json = json.dumps(data, default=str)

            self._connection.execute(f"""
                INSERT INTO {table} (id, data, created_at, updated_at)
                VALUES (?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    data = excluded.data,
                    updated_at = excluded.updated_at
            """, (record_id, data_json, now, now))

            self._maybe_commit()

    def load(self, table: str, record_id: str) -> Optional[Dict[str, Any]]:
        """Load a record from SQLite"""
        with self._lock:
            self._ensure_table(table)
            cursor = self._connection.execute(f"""
                SELECT data FROM {table} WHERE id = ?
            """, (record_id,))
            row = cursor.fetchone()
            if row:
                return json.loads(row['data'])
            return None

    def load_all(self, table: str) -> List[Dict[str, Any]]:
        """Load all records from a table"""
        with self._lock:
            self._ensure_table(table)
            cursor = self._connection.execute(f"""
                SELECT data FROM {table} ORDER BY seq
            """)
            return [json.loads(row['data']) for row in cursor.fetchall()]

    def delete(self, table: str, record_id: str) -> bool:
        """Delete a record from SQLite"""
        with self._lock:
            self._ensure_table(table)
            cursor = self._connection.execute(f"""
                DELETE FROM {table} WHERE id = ?
            """, (record_id,))

            self._maybe_commit()
            return cursor.rowcount > 0

    def exists(self, table: str, record_id: str) -> bool:
        """Check if a record exists"""
        with self._lock:
            self._ensure_table(table)
            cursor = self._connection.execute(f"""
                SELECT 1 FROM {table} WHERE id = ? LIMIT 1
            """, (record_id,))
            return cursor.fetchone() is not None

    def find(self, table: str, filters: Dict[str, Any]) -> List[Dict[str, Any]]:
        """Find records matching filters (simple JSON key matching)"""
        with self._lock:
            self._ensure_table(table)
            cursor = self._connection.execute(f"""
                SELECT data FROM {table} ORDER BY seq
            """)

            results = []
            for row in cursor.fetchall():
                record = json.loads(row['data'])
                match = True
                for key, value in filters.items():
                    if key not in record or record[key] != value:
                        match = False
                        break
                if match:
                    results.append(record)

            return results

    def increment(
        self,
        table: str,
        record_id: str,
        field: str,
        delta: Decimal
    ) -> Optional[Dict[str, Any]]:
        """
        Add delta to a field under a write lock.

        The read and write always run inside BEGIN IMMEDIATE, either the one
        opened by atomic() or a transaction of their own, so other
        connections to the same file cannot interleave.
        """
        with self._lock:
            self._ensure_table(table)
            owns_transaction = not self._in_transaction
            if owns_transaction and not self._connection.in_transaction:
                self._connection.execute("BEGIN IMMEDIATE")
            try:
                cursor = self._connection.execute(f"""
                    SELECT data FROM {table} WHERE id = ?
                """, (record_id,))
                row = cursor.fetchone()
                if row is None:
                    if owns_transaction:
                        self._connection.commit()
                    return None

                record = json.loads(row['data'])
                now = datetime.now(timezone.utc).isoformat()
                record[field] = _add_decimal(record.get(field), delta)
                record['updated_at'] = now
                self._connection.execute(f"""
                    UPDATE {table} SET data = ?, updated_at = ? WHERE id = ?
                """, (json.dumps(record, default=str), now, record_id))

                if owns_transaction:
                    self._connection.commit()
                return record
            except Exception:
                if owns_transaction:
                    self._connection.rollback()
                raise

    def count(self, table: str) -> int:
        """Count records in table"""
        with self._lock:
            self._ensure_table(table)
            cursor = self._connection.execute(f"""
                SELECT COUNT(*) as count FROM {table}
            """)
            return cursor.fetchone()['count']

    def clear_table(self, table: str) -> None:
        """Clear all records from a table"""
        with self._lock:
            self._ensure_table(table)
            self._connection.execute(f"DELETE FROM {table}")
            self._maybe_commit()

    def begin_transaction(self) -> None:
        """Start a write transaction, taking the database write lock before any read"""
        with self._lock:
            if not self._in_transaction:
                if not self._connection.in_transaction:
                    self._connection.execute("BEGIN IMMEDIATE")
                self._in_transaction = True

    def commit(self) -> None:
        """Commit current transaction"""
        with self._lock:
            if self._in_transaction:
                self._connection.commit()
                self._in_transaction = False

    def rollback(self) -> None:
        """Rollback current transaction"""
        with self._lock:
            if self._in_transaction:
                self._connection.rollback()
                self._in_transaction = False
                # tables created inside the block are gone too
                self._known_tables.clear()

    def close(self) -> None:
        """Close SQLite connection"""
        with self._lock:
            if self._connection:
                self._connection.close()
                self._connection = None


class PostgreSQLStorage(StorageInterface):
    """PostgreSQL JSONB storage backend with ACID transaction support"""

    def __init__(self, connection_string: str):
        try:
            import psycopg2
            import psycopg2.extras
            self.psycopg2 = psycopg2
            self.extras = psycopg2.extras
        except ImportError:
            raise ImportError("psycopg2 is required for PostgreSQL storage. Install with: pip install psycopg2-binary")

        self.connection_string = connection_string
        self._connection = None
        self._lock = threading.RLock()
        self._in_transaction = False
        self._known_tables = set()
        self._connect()

    @property
    def supports_transactions(self) -> bool:
        return True

    def _connect(self) -> None:
        """Establish database connection"""
        with self._lock:
            self._connection = self.psycopg2.connect(
                self.connection_string,
                cursor_factory=self.extras.RealDictCursor
            )
            self._connection.autocommit = False  # Transactions handled manually

    def _maybe_commit(self) -> None:
        if not self._in_transaction:
            self._connection.commit()

    def _ensure_table(self, table: str) -> None:
        """Ensure table exists with proper schema"""
        if table in self._known_tables:
            return
        with self._lock:
            cursor = self._connection.cursor()
            try:
                cursor.execute(f"""
                    CREATE TABLE IF NOT EXISTS {table} (
                        seq BIGSERIAL,
                        id TEXT PRIMARY KEY,
                        data JSONB NOT NULL,
                        created_at TIMESTAMPTZ DEFAULT NOW(),
                        updated_at TIMESTAMPTZ DEFAULT NOW()
                    )
                """)
                cursor.execute(f"""
                    CREATE INDEX IF NOT EXISTS idx_{table}_data
                    ON {table} USING gin(data)
                """)
                cursor.execute(f"""
                    CREATE INDEX IF NOT EXISTS idx_{table}_seq
                    ON {table}(seq)
                """)
                self._maybe_commit()
                self._known_tables.add(table)
            finally:
                cursor.close()

    def save(self, table: str, record_id: str, data: Dict[str, Any]) -> None:
        """Save a record to PostgreSQL using UPSERT"""
        with self._lock:
            self._ensure_table(table)

            now = datetime.now(timezone.utc)
            data_json = json.dumps(data, default=str)

            cursor = self._connection.cursor()
            try:
                cursor.execute(f"""
                    INSERT INTO {table} (id, data, created_at, updated_at)
                    VALUES (%s, %s, %s, %s)
                    ON CONFLICT (id) DO UPDATE SET
                        data = EXCLUDED.data,
                        updated_at = EXCLUDED.updated_at
                """, (record_id, data_json, now, now))
                self._maybe_commit()
            finally:
                cursor.close()

    def load(self, table: str, record_id: str) -> Optional[Dict[str, Any]]:
        """Load a record from PostgreSQL"""
        with self._lock:
            self._ensure_table(table)

            cursor = self._connection.cursor()
            try:
                cursor.execute(f"""
                    SELECT data FROM {table} WHERE id = %s
                """, (record_id,))
                row = cursor.fetchone()
                if row:
                    return dict(row['data'])
                return None
            finally:
                cursor.close()

    def load_all(self, table: str) -> List[Dict[str, Any]]:
        """Load all records from a table"""
        with self._lock:
            self._ensure_table(table)

            cursor = self._connection.cursor()
            try:
                cursor.execute(f"""
                    SELECT data FROM {table} ORDER BY seq
                """)
                return [dict(row['data']) for row in cursor.fetchall()]
            finally:
                cursor.close()

    def delete(self, table: str, record_id: str) -> bool:
        """Delete a record from PostgreSQL"""
        with self._lock:
            self._ensure_table(table)

            cursor = self._connection.cursor()
            try:
                cursor.execute(f"""
                    DELETE FROM {table} WHERE id = %s
                """, (record_id,))
                self._maybe_commit()
                return cursor.rowcount > 0
            finally:
                cursor.close()

    def load_for_update(self, table: str, record_id: str) -> Optional[Dict[str, Any]]:
        """Load a record with a row lock held until the transaction ends"""
        with self._lock:
            self._ensure_table(table)

            cursor = self._connection.cursor()
            try:
                cursor.execute(f"""
                    SELECT data FROM {table} WHERE id = %s FOR UPDATE
                """, (record_id,))
                row = cursor.fetchone()
                self._maybe_commit()
                if row:
                    return dict(row['data'])
                return None
            finally:
                cursor.close()

    def exists(self, table: str, record_id: str) -> bool:
        """Check if a record exists"""
        with self._lock:
            self._ensure_table(table)

            cursor = self._connection.cursor()
            try:
                cursor.execute(f"""
                    SELECT 1 FROM {table} WHERE id = %s LIMIT 1
                """, (record_id,))
                return cursor.fetchone() is not None
            finally:
                cursor.close()

    def find(self, table: str, filters: Dict[str, Any]) -> List[Dict[str, Any]]:
        """Find records matching filters using JSONB containment"""
        with self._lock:
            self._ensure_table(table)

            cursor = self._connection.cursor()
            try:
                if not filters:
                    cursor.execute(f"""
                        SELECT data FROM {table} ORDER BY seq
                    """)
                else:
                    cursor.execute(f"""
                        SELECT data FROM {table}
                        WHERE data @> %s::jsonb
                        ORDER BY seq
                    """, (json.dumps(filters, default=str),))

                return [dict(row['data']) for row in cursor.fetchall()]
            finally:
                cursor.close()

    def increment(
        self,
        table: str,
        record_id: str,
        field: str,
        delta: Decimal
    ) -> Optional[Dict[str, Any]]:
        """Single-statement numeric add on the JSONB field"""
        with self._lock:
            self._ensure_table(table)

            now = datetime.now(timezone.utc)
            cursor = self._connection.cursor()
            try:
                cursor.execute(f"""
                    UPDATE {table}
                    SET data = jsonb_set(
                            jsonb_set(
                                data, %s::text[],
                                to_jsonb((COALESCE(NULLIF(data ->> %s, ''), '0')::numeric + %s::numeric)::text)
                            ),
                            '{{updated_at}}', to_jsonb(%s::text)
                        ),
                        updated_at = %s
                    WHERE id = %s
                    RETURNING data
                """, ([field], field, str(delta), now.isoformat(), now, record_id))
                row = cursor.fetchone()
                self._maybe_commit()
                if row:
                    return dict(row['data'])
                return None
            finally:
                cursor.close()

    def count(self, table: str) -> int:
        """Count records in table"""
        with self._lock:
            self._ensure_table(table)

            cursor = self._connection.cursor()
            try:
                cursor.execute(f"""
                    SELECT COUNT(*) as count FROM {table}
                """)
                return cursor.fetchone()['count']
            finally:
                cursor.close()

    def clear_table(self, table: str) -> None:
        """Clear all records from a table"""
        with self._lock:
            self._ensure_table(table)

            cursor = self._connection.cursor()
            try:
                cursor.execute(f"DELETE FROM {table}")
                self._maybe_commit()
            finally:
                cursor.close()

    def begin_transaction(self) -> None:
        """Start a database transaction"""
        with self._lock:
            if not self._in_transaction:
                # PostgreSQL transactions start automatically
                self._in_transaction = True

    def commit(self) -> None:
        """Commit current transaction"""
        with self._lock:
            if self._in_transaction:
                self._connection.commit()
                self._in_transaction = False

    def rollback(self) -> None:
        """Rollback current transaction"""
        with self._lock:
            if self._in_transaction:
                self._connection.rollback()
                self._in_transaction = False
                self._known_tables.clear()

    def close(self) -> None:
        """Close PostgreSQL connection"""
        with self._lock:
            if self._connection:
                self._connection.close()
                self._connection = None


def create_storage(database_url: str) -> StorageInterface:
    """
    Build a storage backend from a database URL

    Supported forms:
        memory://                    InMemoryStorage
        sqlite:///relative/path.db   SQLiteStorage (sqlite:///:memory: for a private database)
        postgresql://user@host/db    PostgreSQLStorage
    """
    if database_url.startswith("memory://"):
        return InMemoryStorage()
    if database_url.startswith("sqlite:///"):
        return SQLiteStorage(database_url[len("sqlite:///"):] or ":memory:")
    if database_url.startswith(("postgresql://", "postgres://")):
        return PostgreSQLStorage(database_url)
    raise ValueError(f"Unsupported database URL: {database_url}")
