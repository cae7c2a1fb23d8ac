"""
Music Box - SQLite Key-Value Store

Small persistent store for JSON-serialisable values keyed by string.  It
backs the archive charset records, the cloud catalog and the playlists.

Every write stamps the row with ``updated_at`` (seconds since the epoch) so
callers can ask when a key was last modified; the cloud catalog uses this
as its "last refreshed" timestamp.

Uses aiosqlite for async operations and plain sqlite3 for sync helpers
(the latter are called from worker threads during zip extraction).
"""

import json
import sqlite3
import time
from contextlib import asynccontextmanager, contextmanager
from pathlib import Path
from typing import Any, Optional

import aiosqlite
from loguru import logger

from musicbox.config import DB_PATH

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------
SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS kv_store (
    key TEXT PRIMARY KEY,
    value TEXT NOT NULL,
    updated_at REAL NOT NULL
);
"""

_UPSERT_SQL = """
INSERT INTO kv_store (key, value, updated_at)
VALUES (?, ?, ?)
ON CONFLICT(key) DO UPDATE SET
    value = excluded.value,
    updated_at = excluded.updated_at
"""


def _decode(raw: Optional[str], key: str, default: Any) -> Any:
    if raw is None:
        return default
    try:
        return json.loads(raw)
    except (json.JSONDecodeError, TypeError):
        logger.warning("⚠️ Corrupt JSON stored under key '{}', ignoring", key)
        return default


class KeyValueStore:
    """JSON values keyed by string, persisted in a single SQLite table."""

    def __init__(self, db_path: Path | str = DB_PATH):
        self.db_path = Path(db_path)

    # -----------------------------------------------------------------------
    # Initialization
    # -----------------------------------------------------------------------
    def init(self) -> None:
        """Create the table if needed."""
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        try:
            with sqlite3.connect(str(self.db_path)) as conn:
                conn.executescript(SCHEMA_SQL)
                conn.commit()
            logger.success(f"✅ Key-value store initialized at {self.db_path}")
        except Exception as e:
            logger.critical(f"❌ Failed to initialize key-value store: {e}")
            raise

    # -----------------------------------------------------------------------
    # Connections
    # -----------------------------------------------------------------------
    @contextmanager
    def connection(self):
        """Synchronous context manager for a sqlite3 connection."""
        conn = sqlite3.connect(str(self.db_path))
        try:
            yield conn
        finally:
            conn.close()

    @asynccontextmanager
    async def async_connection(self):
        """Async context manager for an aiosqlite connection."""
        db = await aiosqlite.connect(str(self.db_path))
        try:
            yield db
        finally:
            await db.close()

    # -----------------------------------------------------------------------
    # Sync API
    # -----------------------------------------------------------------------
    def get_json(self, key: str, default: Any = None) -> Any:
        with self.connection() as conn:
            row = conn.execute(
                "SELECT value FROM kv_store WHERE key = ?", (key,)
            ).fetchone()
        return _decode(row[0] if row else None, key, default)

    def set_json(self, key: str, value: Any) -> None:
        payload = json.dumps(value, ensure_ascii=False)
        now = time.time()
        with self.connection() as conn:
            conn.execute(_UPSERT_SQL, (key, payload, now))
            conn.commit()

    def delete(self, key: str) -> bool:
        with self.connection() as conn:
            cursor = conn.execute("DELETE FROM kv_store WHERE key = ?", (key,))
            conn.commit()
            return cursor.rowcount > 0

    def get_last_modified(self, key: str) -> Optional[float]:
        """Return the epoch seconds of the last write to *key*, or None."""
        with self.connection() as conn:
            row = conn.execute(
                "SELECT updated_at FROM kv_store WHERE key = ?", (key,)
            ).fetchone()
        return float(row[0]) if row else None

    def keys(self, prefix: str = "") -> list[str]:
        with self.connection() as conn:
            rows = conn.execute(
                "SELECT key FROM kv_store WHERE key LIKE ? ESCAPE '\\' ORDER BY key",
                (prefix.replace("%", r"\%").replace("_", r"\_") + "%",),
            ).fetchall()
        return [r[0] for r in rows]

    # -----------------------------------------------------------------------
    # Async API
    # -----------------------------------------------------------------------
    async def aget_json(self, key: str, default: Any = None) -> Any:
        async with self.async_connection() as db:
            cursor = await db.execute(
                "SELECT value FROM kv_store WHERE key = ?", (key,)
            )
            row = await cursor.fetchone()
        return _decode(row[0] if row else None, key, default)

    async def aset_json(self, key: str, value: Any) -> None:
        payload = json.dumps(value, ensure_ascii=False)
        now = time.time()
        async with self.async_connection() as db:
            await db.execute(_UPSERT_SQL, (key, payload, now))
            await db.commit()

    async def aget_last_modified(self, key: str) -> Optional[float]:
        async with self.async_connection() as db:
            cursor = await db.execute(
                "SELECT updated_at FROM kv_store WHERE key = ?", (key,)
            )
            row = await cursor.fetchone()
        return float(row[0]) if row else None
