"""In-memory annotation store with replace-per-document semantics."""

from __future__ import annotations

import logging
import threading
from typing import Dict, Iterable, List, Protocol, Sequence

from driftlint.models import Annotation, ReconciledIssue

LOGGER = logging.getLogger(__name__)


class AnnotationSink(Protocol):
    def replace(self, document_id: str, issues: Sequence[ReconciledIssue]) -> None: ...

    def clear(self, document_id: str) -> None: ...

    def get(self, document_id: str) -> List[Annotation]: ...


def format_message(issue: ReconciledIssue) -> str:
    if issue.line_content:
        return f"[Code]: {issue.line_content}\n[Issue]: {issue.message}"
    return issue.message


def to_annotation(issue: ReconciledIssue) -> Annotation:
    """Convert 1-based line/column into a 0-based range."""
    line = issue.line - 1
    column = issue.column - 1
    return Annotation(
        start_line=line,
        start_column=column,
        end_line=line,
        end_column=column + issue.length,
        message=format_message(issue),
    )


class AnnotationStore:
    """Holds the latest annotations per document.

    Publishing for a document drops everything previously published for it.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._annotations: Dict[str, List[Annotation]] = {}
        self._issues: Dict[str, List[ReconciledIssue]] = {}

    def replace(self, document_id: str, issues: Iterable[ReconciledIssue]) -> None:
        issues = list(issues)
        with self._lock:
            self._issues[document_id] = issues
            self._annotations[document_id] = [to_annotation(issue) for issue in issues]
        LOGGER.info("Published %d annotations for %s", len(issues), document_id)

    def clear(self, document_id: str) -> None:
        with self._lock:
            self._issues.pop(document_id, None)
            self._annotations.pop(document_id, None)

    def clear_all(self) -> None:
        with self._lock:
            self._issues.clear()
            self._annotations.clear()

    def get(self, document_id: str) -> List[Annotation]:
        with self._lock:
            return list(self._annotations.get(document_id, ()))

    def issues(self, document_id: str) -> List[ReconciledIssue]:
        with self._lock:
            return list(self._issues.get(document_id, ()))

    def documents(self) -> List[str]:
        with self._lock:
            return sorted(self._annotations)
