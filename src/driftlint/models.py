"""Core DriftLint data models."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Literal, Tuple

DriftStatus = Literal["unchanged", "moved", "unmatched", "skipped"]


@dataclass(frozen=True, slots=True)
class ChangeRecord:
    """A qualifying change for one document.

    ``generation`` increases with every cycle started for the document and
    orders overlapping cycles.
    """

    document_id: str
    fingerprint: str
    previous: str | None = None
    generation: int = 0


@dataclass(frozen=True, slots=True)
class GateDecision:
    """Outcome of the change gate.

    ``fingerprint`` is empty when the gate rejected before hashing.
    """

    proceed: bool
    reason: str
    fingerprint: str = ""
    previous: str | None = None


@dataclass(slots=True)
class PendingAnalysis:
    """Debounce state for a document: the sleeping task and what it will analyze."""

    task: asyncio.Task
    fingerprint: str


@dataclass(frozen=True, slots=True)
class ValidatedIssue:
    """A finding that passed validation. Line and column are 1-based."""

    file_name: str
    line: int
    column: int
    length: int
    message: str
    line_content: str


@dataclass(frozen=True, slots=True)
class ReconciledIssue:
    """A validated finding whose line has been checked against current content."""

    file_name: str
    line: int
    column: int
    length: int
    message: str
    line_content: str
    original_line: int
    drift: DriftStatus = "unchanged"

    @classmethod
    def from_validated(
        cls, issue: ValidatedIssue, *, line: int | None = None, drift: DriftStatus = "unchanged"
    ) -> ReconciledIssue:
        return cls(
            file_name=issue.file_name,
            line=issue.line if line is None else line,
            column=issue.column,
            length=issue.length,
            message=issue.message,
            line_content=issue.line_content,
            original_line=issue.line,
            drift=drift,
        )


@dataclass(frozen=True, slots=True)
class SkippedItem:
    """An element of the analysis output that was rejected."""

    index: int
    reason: str


@dataclass(frozen=True, slots=True)
class ParseResult:
    """Tagged result of validating an analysis response.

    ``ok`` is False when the whole batch was unusable; ``reason`` says why.
    Individually rejected items are listed in ``skipped`` even when ``ok``.
    """

    ok: bool
    issues: Tuple[ValidatedIssue, ...] = ()
    reason: str | None = None
    skipped: Tuple[SkippedItem, ...] = field(default_factory=tuple)

    @classmethod
    def failure(cls, reason: str) -> ParseResult:
        return cls(ok=False, reason=reason)


@dataclass(frozen=True, slots=True)
class LedgerEntry:
    document_id: str
    fingerprint: str
    updated_at: str


@dataclass(frozen=True, slots=True)
class Annotation:
    """Display-ready finding with a 0-based range."""

    start_line: int
    start_column: int
    end_line: int
    end_column: int
    message: str
    severity: str = "error"
    source: str = "DriftLint"
