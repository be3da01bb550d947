# src/verification/errors.py — v1
"""Exception hierarchy for the verification pipeline.

Invocation-level errors are converted to NOT_TESTED outcomes inside the
batch executor and storage errors are logged and swallowed. Only
precondition violations escape the pipeline.
"""

from __future__ import annotations


class VerificationError(Exception):
    """Base class for all verification pipeline errors."""


# --- Invocation layer ---


class RateLimitError(VerificationError):
    """The AI service refused the call because of rate limiting or quota."""


class InvocationTimeoutError(VerificationError):
    """The AI call exceeded its per-batch time limit."""


class MalformedResponseError(VerificationError):
    """The AI output could not be parsed into verification outcomes."""


class UnknownInvocationError(VerificationError):
    """Any other AI invocation failure."""


# --- Storage layer ---


class StorageError(VerificationError):
    """Cache or checkpoint I/O failure."""


class CheckpointNotFoundError(StorageError):
    """No checkpoint exists for the scan being updated."""

    def __init__(self, scan_id: str) -> None:
        self.scan_id = scan_id
        super().__init__(f"No checkpoint found for scan {scan_id}")


# --- Preconditions ---


class InstructionsNotLoadedError(VerificationError):
    """Batch operations were requested before initialize() loaded instructions."""

    def __init__(self) -> None:
        super().__init__(
            "Verification instructions not loaded. Call initialize() first."
        )


class InstructionSetError(VerificationError):
    """The instruction set file is missing or invalid."""
