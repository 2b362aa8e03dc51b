"""
Key-value persistence for the overlay core.

Three independent keys are written: progression state, the claimed-items
ledger and (by the cosmetics store) the purchased characters. Values are
JSON strings; last writer wins.
"""

import sqlite3
from datetime import datetime
from typing import Dict, Optional, Protocol


class KeyValueStore(Protocol):
    """Minimal get/set string store the core persists into."""

    def get(self, key: str) -> Optional[str]:
        ...

    def set(self, key: str, value: str) -> None:
        ...


class InMemoryStore:
    """Dictionary-backed store. Used by tests and ephemeral sessions."""

    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self._data: Dict[str, str] = dict(initial or {})

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value

    def keys(self):
        return list(self._data.keys())


class SqliteStore:
    """
    SQLite-backed store.
    A single table of (key, value, updated_at); ":memory:" for a throwaway database.
    """

    def __init__(self, db_path: str = ":memory:"):
        self.db_path = db_path
        self._conn = sqlite3.connect(db_path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._init_schema()

    def _init_schema(self) -> None:
        """Create the kv table if it doesn't exist."""
        self._conn.execute("""
            CREATE TABLE IF NOT EXISTS kv (
                key TEXT PRIMARY KEY,
                value TEXT NOT NULL,
                updated_at TEXT NOT NULL
            )
        """)
        self._conn.commit()

    def get(self, key: str) -> Optional[str]:
        row = self._conn.execute(
            "SELECT value FROM kv WHERE key = ?", (key,)
        ).fetchone()
        return row["value"] if row else None

    def set(self, key: str, value: str) -> None:
        self._conn.execute(
            """
            INSERT INTO kv (key, value, updated_at) VALUES (?, ?, ?)
            ON CONFLICT(key) DO UPDATE SET
                value = excluded.value,
                updated_at = excluded.updated_at
            """,
            (key, value, datetime.utcnow().isoformat()),
        )
        self._conn.commit()

    def updated_at(self, key: str) -> Optional[datetime]:
        """When a key was last written."""
        row = self._conn.execute(
            "SELECT updated_at FROM kv WHERE key = ?", (key,)
        ).fetchone()
        return datetime.fromisoformat(row["updated_at"]) if row else None

    def close(self) -> None:
        """Close the database connection."""
        self._conn.close()
