"""SqliteStore: secondary storage tier in a single SQLite table.

Used when the fast tier fails. Every call runs in a worker thread so the
event loop never blocks on disk I/O.
"""

from __future__ import annotations

import asyncio
import sqlite3
import threading
from pathlib import Path

_SCHEMA = """
CREATE TABLE IF NOT EXISTS kv_store (
    key   TEXT PRIMARY KEY,
    value TEXT NOT NULL
)
"""


class SqliteStore:
    """Key/value storage tier backed by SQLite.

    Implements the ``StorageBackend`` protocol. The connection is opened
    lazily on first use and shared across worker threads behind a lock.
    """

    def __init__(self, path: str | Path) -> None:
        self._path = str(path)
        self._conn: sqlite3.Connection | None = None
        self._lock = threading.Lock()

    def _connect(self) -> sqlite3.Connection:
        if self._conn is None:
            if self._path != ":memory:":
                Path(self._path).parent.mkdir(parents=True, exist_ok=True)
            conn = sqlite3.connect(self._path, check_same_thread=False)
            conn.execute("PRAGMA journal_mode = WAL;")
            conn.execute("PRAGMA busy_timeout = 5000;")
            conn.execute(_SCHEMA)
            conn.commit()
            self._conn = conn
        return self._conn

    def _read(self, key: str) -> str | None:
        with self._lock:
            row = self._connect().execute(
                "SELECT value FROM kv_store WHERE key = ?", (key,)
            ).fetchone()
        return row[0] if row else None

    def _write(self, key: str, raw: str) -> None:
        with self._lock:
            conn = self._connect()
            conn.execute(
                "INSERT INTO kv_store (key, value) VALUES (?, ?) "
                "ON CONFLICT(key) DO UPDATE SET value = excluded.value",
                (key, raw),
            )
            conn.commit()

    def _delete(self, key: str) -> None:
        with self._lock:
            conn = self._connect()
            conn.execute("DELETE FROM kv_store WHERE key = ?", (key,))
            conn.commit()

    def _keys(self) -> list[str]:
        with self._lock:
            rows = self._connect().execute(
                "SELECT key FROM kv_store ORDER BY key"
            ).fetchall()
        return [r[0] for r in rows]

    async def read(self, key: str) -> str | None:
        return await asyncio.to_thread(self._read, key)

    async def write(self, key: str, raw: str) -> None:
        await asyncio.to_thread(self._write, key, raw)

    async def delete(self, key: str) -> None:
        await asyncio.to_thread(self._delete, key)

    async def keys(self) -> list[str]:
        return await asyncio.to_thread(self._keys)

    def close(self) -> None:
        with self._lock:
            if self._conn is not None:
                self._conn.close()
                self._conn = None
