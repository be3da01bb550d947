# src/instructions/loader.py — v1
"""Load versioned WCAG verification instruction sets from JSON.

The bundled data file covers every WCAG 2.2 success criterion. A custom
file can be supplied through ``Settings.instructions_path``; it must use the
same layout::

    {
      "version": "2025.1",
      "wcagVersion": "2.2",
      "criteria": {
        "1.1.1": {"criterionId": "1.1.1", "level": "A", "title": "...",
                  "whatToCheck": ["...", "..."], ...}
      }
    }

List-valued ``whatToCheck`` and ``failIndicators`` are joined with newlines.
"""

from __future__ import annotations

import json
import logging
import re
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, ValidationError, field_validator
from pydantic.alias_generators import to_camel

from wcagverify.core.models import InstructionSet, VerificationInstruction, WcagLevel
from wcagverify.verification.errors import InstructionSetError

logger = logging.getLogger(__name__)

BUNDLED_INSTRUCTIONS_PATH = (
    Path(__file__).parent / "data" / "wcag22_verification_instructions.json"
)

_CRITERION_ID_RE = re.compile(r"^\d+(\.\d+)+$")


class _RawInstruction(BaseModel):
    """On-disk shape of one criterion entry (camelCase keys)."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    criterion_id: str | None = None
    title: str
    description: str = ""
    what_to_check: str | list[str] = ""
    pass_condition: str = ""
    fail_indicators: str | list[str] = ""
    requires_manual_review: bool = False
    level: WcagLevel

    @field_validator("what_to_check", "fail_indicators")
    @classmethod
    def _join_lines(cls, v: str | list[str]) -> str:
        if isinstance(v, list):
            return "\n".join(str(item).strip() for item in v if str(item).strip())
        return v.strip()


class _RawInstructionSet(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    version: str
    wcag_version: str = "2.2"
    criteria: dict[str, _RawInstruction]


def parse_instruction_set(data: dict[str, Any], source: str = "<memory>") -> InstructionSet:
    """Validate a decoded instruction document and build an InstructionSet.

    Raises:
        InstructionSetError: On structural problems, malformed criterion ids
            or an entry whose ``criterionId`` disagrees with its key.
    """
    try:
        raw = _RawInstructionSet.model_validate(data)
    except ValidationError as e:
        raise InstructionSetError(f"Invalid instruction set in {source}: {e}") from e

    criteria: dict[str, VerificationInstruction] = {}
    for key, entry in raw.criteria.items():
        if not _CRITERION_ID_RE.match(key):
            raise InstructionSetError(
                f"Invalid criterion id '{key}' in {source}"
            )
        if entry.criterion_id is not None and entry.criterion_id != key:
            raise InstructionSetError(
                f"Criterion id mismatch in {source}: key '{key}' "
                f"declares criterionId '{entry.criterion_id}'"
            )
        criteria[key] = VerificationInstruction(
            criterion_id=key,
            title=entry.title,
            description=entry.description,
            what_to_check=entry.what_to_check,
            pass_condition=entry.pass_condition,
            fail_indicators=entry.fail_indicators,
            requires_manual_review=entry.requires_manual_review,
            level=entry.level,
        )

    if not criteria:
        raise InstructionSetError(f"Instruction set in {source} defines no criteria")

    return InstructionSet(
        version=raw.version, wcag_version=raw.wcag_version, criteria=criteria
    )


def load_instruction_set(path: Path | str | None = None) -> InstructionSet:
    """Read an instruction set from ``path`` or the bundled WCAG 2.2 file.

    Raises:
        InstructionSetError: If the file is missing, not JSON, or invalid.
    """
    source = Path(path) if path else BUNDLED_INSTRUCTIONS_PATH
    try:
        data = json.loads(source.read_text(encoding="utf-8"))
    except FileNotFoundError as e:
        raise InstructionSetError(f"Instruction set not found: {source}") from e
    except (OSError, json.JSONDecodeError) as e:
        raise InstructionSetError(f"Cannot read instruction set {source}: {e}") from e
    if not isinstance(data, dict):
        raise InstructionSetError(f"Instruction set {source} must be a JSON object")

    instructions = parse_instruction_set(data, source=str(source))
    logger.info(
        "Loaded %d verification instructions (version %s, WCAG %s) from %s",
        len(instructions), instructions.version, instructions.wcag_version, source.name,
    )
    return instructions


class InstructionLoader:
    """Zero-argument callable bound to an instruction file path."""

    def __init__(self, path: Path | str | None = None) -> None:
        self._path = Path(path) if path else None

    @property
    def path(self) -> Path:
        return self._path or BUNDLED_INSTRUCTIONS_PATH

    def __call__(self) -> InstructionSet:
        return load_instruction_set(self._path)
