# src/cache/json_store.py — v2
"""JSON file-based cache store (default CACHE_BACKEND=json).

One file per entry under ``<cache_root>/entries``. Writes go to a unique
temp file in the same directory followed by ``os.replace``, so concurrent
scans sharing the cache never observe a partially written entry.
"""

from __future__ import annotations

import json
import logging
import os
import shutil
import tempfile
from pathlib import Path

from pydantic import ValidationError

from wcagverify.cache.base_cache_store import BaseCacheStore
from wcagverify.cache.models import CacheEntry
from wcagverify.verification.errors import StorageError

logger = logging.getLogger(__name__)

ENTRIES_DIR = "entries"


class JsonCacheStore(BaseCacheStore):
    """File-based cache store using JSON files."""

    def __init__(self, cache_root: Path | str) -> None:
        self._root = Path(cache_root).expanduser()
        self._entries = self._root / ENTRIES_DIR

    @property
    def root(self) -> Path:
        return self._root

    async def get(self, key: str) -> CacheEntry | None:
        """Retrieve cache entry by key."""
        path = self._entry_path(key)
        try:
            raw = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except OSError as e:
            raise StorageError(f"Failed to read cache entry {key}: {e}") from e
        try:
            return CacheEntry(**json.loads(raw))
        except (json.JSONDecodeError, ValidationError, TypeError) as e:
            logger.warning("Failed to read cache entry %s: %s", key, e)
            return None

    async def put(self, key: str, entry: CacheEntry) -> None:
        """Store a cache entry atomically."""
        path = self._entry_path(key)
        try:
            self._entries.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                dir=self._entries, prefix=f".{path.stem}.", suffix=".tmp"
            )
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as fh:
                    fh.write(entry.model_dump_json(indent=2))
                os.replace(tmp_name, path)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise
        except OSError as e:
            raise StorageError(f"Failed to write cache entry {key}: {e}") from e

    async def delete(self, key: str) -> bool:
        """Remove a cache entry."""
        try:
            self._entry_path(key).unlink()
        except FileNotFoundError:
            return False
        except OSError as e:
            raise StorageError(f"Failed to delete cache entry {key}: {e}") from e
        return True

    async def keys(self) -> list[str]:
        """List all cached key ids."""
        if not self._entries.is_dir():
            return []
        try:
            return sorted(p.stem for p in self._entries.glob("*.json"))
        except OSError as e:
            raise StorageError(f"Failed to list cache entries: {e}") from e

    async def clear(self) -> None:
        """Remove the entries directory and recreate it empty."""
        try:
            shutil.rmtree(self._entries, ignore_errors=False)
        except FileNotFoundError:
            pass
        except OSError as e:
            raise StorageError(f"Failed to clear cache: {e}") from e
        self._entries.mkdir(parents=True, exist_ok=True)

    def _entry_path(self, key: str) -> Path:
        """Return file path for a cache key."""
        safe_key = key.replace("/", "_").replace("\\", "_")
        return self._entries / f"{safe_key}.json"
