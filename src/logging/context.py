# src/logging/context.py — v2
"""Contextual logging support — attach scan_id, level and batch to log records."""

from __future__ import annotations

import contextvars
from dataclasses import dataclass
from typing import Any

# Context variables for structured logging, set per scan execution.
_scan_id: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "scan_id", default=None
)
_level: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "level", default=None
)
_batch: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "batch", default=None
)


@dataclass
class LogContext:
    """Immutable snapshot of current logging context."""

    scan_id: str | None = None
    level: str | None = None
    batch: str | None = None

    def as_dict(self) -> dict[str, Any]:
        """Return non-None fields as dict for JSON log injection."""
        return {k: v for k, v in self.__dict__.items() if v is not None}


def get_context() -> LogContext:
    """Snapshot current context variables."""
    return LogContext(
        scan_id=_scan_id.get(),
        level=_level.get(),
        batch=_batch.get(),
    )


def set_scan_context(scan_id: str, level: str) -> None:
    """Set scan-level context (called once per pipeline run)."""
    _scan_id.set(scan_id)
    _level.set(level)


def set_batch_context(batch_number: int, total_batches: int) -> None:
    """Set batch-level context using the 1-indexed batch number."""
    _batch.set(f"{batch_number}/{total_batches}")


def clear_batch_context() -> None:
    _batch.set(None)


def clear_context() -> None:
    """Reset all context variables."""
    _scan_id.set(None)
    _level.set(None)
    _batch.set(None)
