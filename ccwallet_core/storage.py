"""
Key/value persistence for ccwallet.

Every domain store (key chain, asset definitions, color definitions, color
data) talks to one small capability: ``get``, ``set``, ``remove`` and
``clear`` over JSON-compatible values.  Two backends are provided:

  - ``MemoryStore``  - process-local dict, for tests and throwaway wallets
  - ``SQLiteStore``  - single-table SQLite file, values stored as JSON text

Usage:
    store = SQLiteStore("data/ccwallet.db")
    store.set("ccwallet_pubKeys", [])
    store.get("ccwallet_pubKeys")     # -> []
"""

from __future__ import annotations

import json
import logging
import sqlite3
from pathlib import Path
from typing import Any, Protocol, runtime_checkable

logger = logging.getLogger("ccwallet_storage")

# Prefix shared by every logical key the wallet writes.
GLOBAL_PREFIX = "ccwallet_"


@runtime_checkable
class KeyValueStore(Protocol):
    """Capability interface implemented by every storage backend."""

    def get(self, key: str, default: Any = None) -> Any: ...

    def set(self, key: str, value: Any) -> None: ...

    def remove(self, key: str) -> None: ...

    def clear(self) -> None: ...


class MemoryStore:
    """Dict-backed store.  Values are round-tripped through JSON on write and
    read so callers never share mutable state with the store."""

    def __init__(self) -> None:
        self._data: dict[str, str] = {}

    def get(self, key: str, default: Any = None) -> Any:
        raw = self._data.get(key)
        if raw is None:
            return default
        return json.loads(raw)

    def set(self, key: str, value: Any) -> None:
        self._data[key] = json.dumps(value)

    def remove(self, key: str) -> None:
        self._data.pop(key, None)

    def clear(self) -> None:
        self._data.clear()

    def keys(self) -> list[str]:
        return list(self._data)

    def __len__(self) -> int:
        return len(self._data)


class SQLiteStore:
    """Thin SQLite wrapper exposing the key/value capability."""

    CURRENT_SCHEMA_VERSION = 1

    def __init__(self, db_path: str = "data/ccwallet.db"):
        self.db_path = db_path
        if db_path != ":memory:":
            Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self._conn = sqlite3.connect(db_path)
        self._conn.row_factory = sqlite3.Row
        self._conn.execute("PRAGMA busy_timeout = 5000")
        self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.execute("PRAGMA synchronous=NORMAL")
        self._create_tables()
        self._ensure_schema_version()
        logger.info(f"Storage opened: {db_path}")

    # ── schema ───────────────────────────────────────────────────

    def _create_tables(self) -> None:
        c = self._conn
        c.execute("""
            CREATE TABLE IF NOT EXISTS kv (
                key   TEXT PRIMARY KEY,
                value TEXT NOT NULL
            )
        """)
        c.execute("""
            CREATE TABLE IF NOT EXISTS schema_version (
                id      INTEGER PRIMARY KEY CHECK (id = 1),
                version INTEGER NOT NULL
            )
        """)
        c.commit()

    def _ensure_schema_version(self) -> None:
        row = self._conn.execute(
            "SELECT version FROM schema_version WHERE id = 1"
        ).fetchone()
        if row is None:
            self._conn.execute(
                "INSERT INTO schema_version (id, version) VALUES (1, ?)",
                (self.CURRENT_SCHEMA_VERSION,),
            )
            self._conn.commit()
        elif row["version"] > self.CURRENT_SCHEMA_VERSION:
            raise RuntimeError(
                f"Database schema v{row['version']} is newer than this software "
                f"(v{self.CURRENT_SCHEMA_VERSION}).  Upgrade ccwallet."
            )

    # ── key/value capability ─────────────────────────────────────

    def get(self, key: str, default: Any = None) -> Any:
        row = self._conn.execute(
            "SELECT value FROM kv WHERE key = ?", (key,)
        ).fetchone()
        if row is None:
            return default
        return json.loads(row["value"])

    def set(self, key: str, value: Any) -> None:
        self._conn.execute(
            "INSERT OR REPLACE INTO kv (key, value) VALUES (?, ?)",
            (key, json.dumps(value)),
        )
        self._conn.commit()

    def remove(self, key: str) -> None:
        self._conn.execute("DELETE FROM kv WHERE key = ?", (key,))
        self._conn.commit()

    def clear(self) -> None:
        self._conn.execute("DELETE FROM kv")
        self._conn.commit()
        logger.info(f"Storage cleared: {self.db_path}")

    def keys(self) -> list[str]:
        rows = self._conn.execute("SELECT key FROM kv ORDER BY key").fetchall()
        return [r["key"] for r in rows]

    # ── lifecycle ────────────────────────────────────────────────

    def close(self) -> None:
        self._conn.close()

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()


def open_store(backend: str = "sqlite", path: str = "data/ccwallet.db") -> KeyValueStore:
    """Build the backend named in the ``[storage]`` config section."""
    if backend == "memory":
        return MemoryStore()
    if backend == "sqlite":
        return SQLiteStore(path)
    raise ValueError(f"Unknown storage backend: {backend!r}")
