# src/checkpoint/store.py — v1
"""File-backed checkpoint store enabling resume after interruption.

One JSON document per scan, written to a temp file and renamed into place
so that a crash mid-write leaves the previous checkpoint intact. Writes are
best-effort durability: they are not transactional with the AI call, which
is safe because re-running a batch consults the cache first.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from datetime import datetime, timezone
from pathlib import Path

from pydantic import ValidationError

from wcagverify.checkpoint.models import Checkpoint
from wcagverify.core.models import VerificationOutcome, WcagLevel
from wcagverify.verification.errors import CheckpointNotFoundError, StorageError

logger = logging.getLogger(__name__)

DEFAULT_CHECKPOINT_DIR = ".wcagverify/checkpoints"


class CheckpointStore:
    """Per-scan progress ledger persisted under ``checkpoint_dir``."""

    def __init__(self, checkpoint_dir: Path | str = DEFAULT_CHECKPOINT_DIR) -> None:
        self._dir = Path(checkpoint_dir).expanduser()

    @property
    def directory(self) -> Path:
        return self._dir

    async def get(self, scan_id: str) -> Checkpoint | None:
        """Load a checkpoint. Missing, corrupt or invalid files read as None.

        Raises:
            StorageError: If the file exists but cannot be read.
        """
        path = self._path(scan_id)
        try:
            raw = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except OSError as e:
            raise StorageError(f"Failed to read checkpoint for {scan_id}: {e}") from e
        try:
            checkpoint = Checkpoint(**json.loads(raw))
        except (json.JSONDecodeError, ValidationError, TypeError) as e:
            logger.warning("Ignoring invalid checkpoint for scan %s: %s", scan_id, e)
            return None
        if not checkpoint.scan_id or not checkpoint.url:
            logger.warning("Ignoring incomplete checkpoint for scan %s", scan_id)
            return None
        return checkpoint

    def init(
        self,
        scan_id: str,
        url: str,
        level: WcagLevel,
        total_batches: int,
    ) -> Checkpoint:
        """Build a fresh, empty checkpoint. Call save() to persist it."""
        now = datetime.now(timezone.utc)
        return Checkpoint(
            scan_id=scan_id,
            url=url,
            level=level,
            total_batches=total_batches,
            started_at=now,
            updated_at=now,
        )

    async def save(self, checkpoint: Checkpoint) -> None:
        """Persist a checkpoint atomically, refreshing ``updated_at``."""
        checkpoint.updated_at = datetime.now(timezone.utc)
        path = self._path(checkpoint.scan_id)
        try:
            self._dir.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                dir=self._dir, prefix=f".{path.stem}.", suffix=".tmp"
            )
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as fh:
                    fh.write(checkpoint.model_dump_json(indent=2))
                    fh.flush()
                    os.fsync(fh.fileno())
                os.replace(tmp_name, path)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise
        except OSError as e:
            raise StorageError(
                f"Failed to save checkpoint for {checkpoint.scan_id}: {e}"
            ) from e

    async def mark_batch_complete(
        self,
        scan_id: str,
        batch_index: int,
        outcomes: list[VerificationOutcome],
        tokens_used: int,
    ) -> Checkpoint:
        """Record a completed batch and its outcomes.

        Re-marking an already complete batch replaces its outcomes and does
        not count its tokens twice.

        Raises:
            CheckpointNotFoundError: If no checkpoint exists for ``scan_id``.
            StorageError: If the checkpoint cannot be read or written.
        """
        checkpoint = await self.get(scan_id)
        if checkpoint is None:
            raise CheckpointNotFoundError(scan_id)
        if checkpoint.add_completed(batch_index):
            checkpoint.tokens_used += tokens_used
        checkpoint.partial_outcomes[batch_index] = list(outcomes)
        await self.save(checkpoint)
        return checkpoint

    @staticmethod
    def incomplete_batches(checkpoint: Checkpoint) -> list[int]:
        """Batch indices not yet in ``completed_batches``, ascending."""
        return checkpoint.incomplete_batches()

    @staticmethod
    def is_batch_complete(checkpoint: Checkpoint, batch_index: int) -> bool:
        return checkpoint.is_batch_complete(batch_index)

    async def clear(self, scan_id: str) -> bool:
        """Delete a scan's checkpoint. Returns True if one existed."""
        try:
            self._path(scan_id).unlink()
        except FileNotFoundError:
            return False
        except OSError as e:
            raise StorageError(f"Failed to clear checkpoint for {scan_id}: {e}") from e
        return True

    async def list_scan_ids(self) -> list[str]:
        """Scan ids with a checkpoint on disk (in-flight or interrupted scans)."""
        if not self._dir.is_dir():
            return []
        return sorted(p.stem for p in self._dir.glob("*.json"))

    def _path(self, scan_id: str) -> Path:
        safe_id = scan_id.replace("/", "_").replace("\\", "_")
        return self._dir / f"{safe_id}.json"
