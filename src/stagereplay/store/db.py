"""
Key/value stores backing save slots and the local transition cache.

Design Principles:
    - Injected capability: callers receive a LocalStore, never a path
    - Graceful degradation: when a store cannot be opened, open_store returns
      a NullStore and logs a warning
    - Self-contained: one .db file holds every namespace

Tables:
    - schema_version: migration bookkeeping
    - kv: key -> value with the time of the last write
"""

import logging
import sqlite3
from abc import ABC, abstractmethod
from contextlib import contextmanager
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, Generator

from stagereplay.errors import StorageConnectionError, StorageReadError, StorageWriteError

logger = logging.getLogger(__name__)

# Schema version for migrations
SCHEMA_VERSION = 1

CREATE_TABLES_SQL = """
CREATE TABLE IF NOT EXISTS schema_version (
    version INTEGER PRIMARY KEY,
    applied_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS kv (
    key TEXT PRIMARY KEY,
    value TEXT NOT NULL,
    updated_at TEXT NOT NULL
);
"""


def now_iso() -> str:
    """Get current UTC time in ISO format."""
    return datetime.now(UTC).isoformat()


class LocalStore(ABC):
    """A namespaced string key/value store."""

    @abstractmethod
    def get(self, key: str) -> str | None:
        """Return the stored value, or None if the key is absent."""

    @abstractmethod
    def set(self, key: str, value: str) -> None:
        """Store a value, replacing any previous one."""

    @abstractmethod
    def remove(self, key: str) -> None:
        """Delete a key. Removing an absent key is not an error."""

    def close(self) -> None:
        """Release resources held by the store."""

    def __enter__(self) -> "LocalStore":
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()


class MemoryStore(LocalStore):
    """Dict-backed store; contents die with the process."""

    def __init__(self, initial: dict[str, str] | None = None) -> None:
        self._data: dict[str, str] = dict(initial or {})

    def get(self, key: str) -> str | None:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value

    def remove(self, key: str) -> None:
        self._data.pop(key, None)

    def keys(self) -> list[str]:
        return sorted(self._data)


class NullStore(LocalStore):
    """Store that persists nothing."""

    def get(self, key: str) -> str | None:
        return None

    def set(self, key: str, value: str) -> None:
        return None

    def remove(self, key: str) -> None:
        return None


class SqliteStore(LocalStore):
    """
    SQLite-backed key/value store.

    Usage:
        store = SqliteStore("saves.db")
        store.set("stagereplay:saves:room-1", "[...]")
        store.close()

    Or use as context manager:
        with SqliteStore("saves.db") as store:
            ...
    """

    def __init__(self, db_path: str | Path) -> None:
        """
        Initialize the database connection.

        Args:
            db_path: Path to the SQLite database file.
                     Will be created if it doesn't exist.
        """
        self.db_path = Path(db_path)
        self._conn: sqlite3.Connection | None = None
        self._connect()
        self._init_schema()

    def _connect(self) -> None:
        """Establish database connection."""
        try:
            self._conn = sqlite3.connect(
                str(self.db_path),
                check_same_thread=False,
            )
            self._conn.row_factory = sqlite3.Row
        except sqlite3.Error as e:
            raise StorageConnectionError(
                db_path=str(self.db_path),
                operation="connect",
                message=f"Failed to connect to database: {e}",
            ) from e

    def _init_schema(self) -> None:
        """Initialize database schema if needed."""
        try:
            cursor = self._conn.executescript(CREATE_TABLES_SQL)
            cursor.close()

            cursor = self._conn.execute(
                "SELECT version FROM schema_version ORDER BY version DESC LIMIT 1"
            )
            if cursor.fetchone() is None:
                self._conn.execute(
                    "INSERT INTO schema_version (version, applied_at) VALUES (?, ?)",
                    (SCHEMA_VERSION, now_iso()),
                )
            self._conn.commit()
        except sqlite3.Error as e:
            raise StorageWriteError(
                operation="init_schema",
                underlying_error=str(e),
            ) from e

    @contextmanager
    def transaction(self) -> Generator[None, None, None]:
        """Context manager for database transactions."""
        try:
            yield
            self._conn.commit()
        except Exception:
            self._conn.rollback()
            raise

    def close(self) -> None:
        """Close the database connection."""
        if self._conn:
            self._conn.close()
            self._conn = None

    def get(self, key: str) -> str | None:
        try:
            cursor = self._conn.execute("SELECT value FROM kv WHERE key = ?", (key,))
            row = cursor.fetchone()
            return None if row is None else row["value"]
        except sqlite3.Error as e:
            raise StorageReadError(operation="get", underlying_error=str(e)) from e

    def set(self, key: str, value: str) -> None:
        try:
            with self.transaction():
                self._conn.execute(
                    """
                    INSERT INTO kv (key, value, updated_at) VALUES (?, ?, ?)
                    ON CONFLICT(key) DO UPDATE SET
                        value = excluded.value,
                        updated_at = excluded.updated_at
                    """,
                    (key, value, now_iso()),
                )
        except sqlite3.Error as e:
            raise StorageWriteError(operation="set", underlying_error=str(e)) from e

    def remove(self, key: str) -> None:
        try:
            with self.transaction():
                self._conn.execute("DELETE FROM kv WHERE key = ?", (key,))
        except sqlite3.Error as e:
            raise StorageWriteError(operation="remove", underlying_error=str(e)) from e

    def keys(self, prefix: str = "") -> list[str]:
        """List stored keys starting with a prefix."""
        try:
            cursor = self._conn.execute(
                "SELECT key FROM kv WHERE substr(key, 1, ?) = ? ORDER BY key",
                (len(prefix), prefix),
            )
            return [row["key"] for row in cursor]
        except sqlite3.Error as e:
            raise StorageReadError(operation="keys", underlying_error=str(e)) from e


def open_store(db_path: str | Path | None) -> LocalStore:
    """
    Open the persistent store for the player.

    Args:
        db_path: SQLite file, or None for an in-memory store

    Returns:
        A SqliteStore, a MemoryStore when no path is given, or a NullStore
        when the database cannot be opened
    """
    if db_path is None:
        return MemoryStore()
    try:
        return SqliteStore(db_path)
    except (StorageConnectionError, StorageWriteError) as e:
        logger.warning("Local store unavailable, saves are disabled: %s", e.message)
        return NullStore()
