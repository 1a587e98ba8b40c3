"""Tests for core data models."""

from __future__ import annotations

from dataclasses import FrozenInstanceError

import pytest

from driftlint.models import GateDecision, ParseResult, ReconciledIssue, ValidatedIssue


def _issue(**overrides) -> ValidatedIssue:
    values = dict(
        file_name="app.py",
        line=5,
        column=3,
        length=4,
        message="Possible None dereference",
        line_content="    return user.name",
    )
    values.update(overrides)
    return ValidatedIssue(**values)


class TestValidatedIssue:
    """Test ValidatedIssue dataclass."""

    def test_is_immutable(self) -> None:
        """Should refuse attribute assignment."""
        issue = _issue()

        with pytest.raises(FrozenInstanceError):
            issue.line = 7  # type: ignore[misc]

    def test_equality(self) -> None:
        assert _issue() == _issue()
        assert _issue() != _issue(line=6)


class TestReconciledIssue:
    """Test building reconciled issues."""

    def test_from_validated_keeps_line(self) -> None:
        """Without a new line the reported one is kept."""
        reconciled = ReconciledIssue.from_validated(_issue())

        assert reconciled.line == 5
        assert reconciled.original_line == 5
        assert reconciled.drift == "unchanged"
        assert reconciled.message == "Possible None dereference"

    def test_from_validated_moves_line(self) -> None:
        """A corrected line records where the issue was reported."""
        reconciled = ReconciledIssue.from_validated(_issue(), line=7, drift="moved")

        assert reconciled.line == 7
        assert reconciled.original_line == 5
        assert reconciled.drift == "moved"
        assert reconciled.column == 3
        assert reconciled.length == 4


class TestParseResult:
    """Test ParseResult tagging."""

    def test_failure(self) -> None:
        result = ParseResult.failure("invalid JSON")

        assert result.ok is False
        assert result.issues == ()
        assert result.skipped == ()
        assert result.reason == "invalid JSON"

    def test_success_defaults(self) -> None:
        result = ParseResult(ok=True, issues=(_issue(),))

        assert result.ok is True
        assert result.reason is None
        assert len(result.issues) == 1


class TestGateDecision:
    """Test GateDecision defaults."""

    def test_rejection_has_no_fingerprint(self) -> None:
        decision = GateDecision(proceed=False, reason="disabled")

        assert decision.fingerprint == ""
        assert decision.previous is None
