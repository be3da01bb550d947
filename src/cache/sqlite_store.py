# src/cache/sqlite_store.py — v2
"""SQLite-based cache store (CACHE_BACKEND=sqlite).

Uses stdlib sqlite3 — no external dependency. WAL journaling plus a busy
timeout let several worker processes share one cache database.
"""

from __future__ import annotations

import json
import logging
import sqlite3
from pathlib import Path

from pydantic import ValidationError

from wcagverify.cache.base_cache_store import BaseCacheStore
from wcagverify.cache.models import CacheEntry
from wcagverify.verification.errors import StorageError

logger = logging.getLogger(__name__)

DB_FILENAME = "verification_cache.db"

_SCHEMA = """
CREATE TABLE IF NOT EXISTS cache_entries (
    key TEXT PRIMARY KEY,
    data TEXT NOT NULL,
    created_at TEXT NOT NULL,
    expires_at TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_expires_at ON cache_entries(expires_at);
"""


class SqliteCacheStore(BaseCacheStore):
    """SQLite-backed cache store for larger caches and multi-process workers."""

    def __init__(self, db_path: Path | str, busy_timeout_s: float = 30.0) -> None:
        self._db_path = Path(db_path).expanduser()
        try:
            self._db_path.parent.mkdir(parents=True, exist_ok=True)
            self._conn = sqlite3.connect(str(self._db_path), timeout=busy_timeout_s)
            self._conn.execute("PRAGMA journal_mode=WAL")
            self._conn.executescript(_SCHEMA)
        except (OSError, sqlite3.Error) as e:
            raise StorageError(f"Failed to open cache database {self._db_path}: {e}") from e

    async def get(self, key: str) -> CacheEntry | None:
        """Retrieve cache entry by key."""
        try:
            row = self._conn.execute(
                "SELECT data FROM cache_entries WHERE key = ?", (key,)
            ).fetchone()
        except sqlite3.Error as e:
            raise StorageError(f"Failed to read cache entry {key}: {e}") from e
        if row is None:
            return None
        try:
            return CacheEntry(**json.loads(row[0]))
        except (json.JSONDecodeError, ValidationError, TypeError) as e:
            logger.warning("Failed to deserialize cache entry %s: %s", key, e)
            return None

    async def put(self, key: str, entry: CacheEntry) -> None:
        """Store a cache entry (upsert in a single transaction)."""
        try:
            with self._conn:
                self._conn.execute(
                    """INSERT OR REPLACE INTO cache_entries
                       (key, data, created_at, expires_at)
                       VALUES (?, ?, ?, ?)""",
                    (
                        key,
                        entry.model_dump_json(),
                        entry.created_at.isoformat(),
                        entry.expires_at.isoformat(),
                    ),
                )
        except sqlite3.Error as e:
            raise StorageError(f"Failed to write cache entry {key}: {e}") from e

    async def delete(self, key: str) -> bool:
        """Remove a cache entry."""
        try:
            with self._conn:
                cursor = self._conn.execute(
                    "DELETE FROM cache_entries WHERE key = ?", (key,)
                )
        except sqlite3.Error as e:
            raise StorageError(f"Failed to delete cache entry {key}: {e}") from e
        return cursor.rowcount > 0

    async def keys(self) -> list[str]:
        try:
            rows = self._conn.execute(
                "SELECT key FROM cache_entries ORDER BY key"
            ).fetchall()
        except sqlite3.Error as e:
            raise StorageError(f"Failed to list cache entries: {e}") from e
        return [row[0] for row in rows]

    async def clear(self) -> None:
        try:
            with self._conn:
                self._conn.execute("DELETE FROM cache_entries")
        except sqlite3.Error as e:
            raise StorageError(f"Failed to clear cache: {e}") from e

    def close(self) -> None:
        """Close the database connection."""
        self._conn.close()
