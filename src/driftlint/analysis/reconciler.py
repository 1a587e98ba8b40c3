"""Re-anchor reported issues to the document's current lines."""

from __future__ import annotations

import logging
from typing import Iterable, List, Sequence

from driftlint.models import ReconciledIssue, ValidatedIssue
from driftlint.utils.files import base_name
from driftlint.utils.text import split_lines

LOGGER = logging.getLogger(__name__)


def find_line(lines: Sequence[str], expected: str) -> int | None:
    """1-based number of the first line whose trimmed text equals ``expected``."""
    for number, text in enumerate(lines, start=1):
        if text.strip() == expected:
            return number
    return None


class DriftReconciler:
    """Corrects an issue's line when the code it points at has moved.

    The model saw the document as it was when analysis started; by the time
    results arrive lines may have been inserted or removed. Each issue quotes
    the line it refers to, which is used to find that line again. When
    several lines match, the first one from the top wins.
    """

    def reconcile(
        self,
        issue: ValidatedIssue,
        document_id: str,
        document_text: str,
        line_count: int | None = None,
    ) -> ReconciledIssue:
        return self._reconcile(issue, document_id, split_lines(document_text), line_count)

    def reconcile_all(
        self, issues: Iterable[ValidatedIssue], document_id: str, document_text: str
    ) -> List[ReconciledIssue]:
        lines = split_lines(document_text)
        return [self._reconcile(issue, document_id, lines, None) for issue in issues]

    def _reconcile(
        self,
        issue: ValidatedIssue,
        document_id: str,
        lines: Sequence[str],
        line_count: int | None,
    ) -> ReconciledIssue:
        current_name = base_name(document_id)
        if issue.file_name != current_name:
            LOGGER.warning(
                "Issue reported for '%s' but analyzing '%s'. Using original line %d "
                "as content source is ambiguous.",
                issue.file_name,
                current_name,
                issue.line,
            )
            return ReconciledIssue.from_validated(issue, drift="skipped")

        expected = issue.line_content.strip()
        if not expected:
            LOGGER.warning(
                "Issue for %s:%d has empty lineContent. Skipping line verification.",
                current_name,
                issue.line,
            )
            return ReconciledIssue.from_validated(issue, drift="skipped")

        count = len(lines) if line_count is None else line_count
        if not 1 <= issue.line <= count or issue.line > len(lines):
            LOGGER.warning(
                "Reported line %d for %s is out of bounds (document lines: %d). "
                "Using original line.",
                issue.line,
                current_name,
                count,
            )
            return ReconciledIssue.from_validated(issue, drift="skipped")

        actual = lines[issue.line - 1].strip()
        if actual == expected:
            return ReconciledIssue.from_validated(issue)

        LOGGER.info(
            "Line content mismatch for %s:%d. Reported: %r, actual: %r. Looking for new line.",
            current_name,
            issue.line,
            expected,
            actual,
        )
        found = find_line(lines, expected)
        if found is None:
            LOGGER.info(
                "Could not find matching content for %s. Using original line %d.",
                current_name,
                issue.line,
            )
            return ReconciledIssue.from_validated(issue, drift="unmatched")

        LOGGER.info("Found matching content for %s at line %d.", current_name, found)
        return ReconciledIssue.from_validated(issue, line=found, drift="moved")
