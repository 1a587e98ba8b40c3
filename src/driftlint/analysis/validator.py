"""Validation of raw analysis output into typed issues."""

from __future__ import annotations

import json
import logging
from typing import Any, List

from pydantic import BaseModel, ConfigDict, Field, StrictStr, ValidationError, field_validator

from driftlint.models import ParseResult, SkippedItem, ValidatedIssue
from driftlint.utils.text import strip_code_fence

LOGGER = logging.getLogger(__name__)


class RawIssueModel(BaseModel):
    """Schema of one issue object as emitted by the model (camelCase keys)."""

    model_config = ConfigDict(extra="ignore")

    file_name: StrictStr = Field(alias="fileName")
    line: int = Field(ge=1)
    column: int = Field(ge=1)
    length: int = Field(ge=1)
    message: StrictStr
    line_content: StrictStr = Field(alias="lineContent")

    @field_validator("line", "column", "length", mode="before")
    @classmethod
    def _json_integer(cls, value: Any) -> Any:
        # JSON has one number type: 5 and 5.0 are the same integer, true is not.
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise ValueError(f"expected positive integer, got {value!r}")
        if isinstance(value, float):
            if not value.is_integer():
                raise ValueError(f"expected positive integer, got {value!r}")
            return int(value)
        return value

    @field_validator("message")
    @classmethod
    def _non_empty_message(cls, value: str) -> str:
        stripped = value.strip()
        if not stripped:
            raise ValueError("expected non-empty string")
        return stripped

    def to_issue(self) -> ValidatedIssue:
        return ValidatedIssue(
            file_name=self.file_name,
            line=self.line,
            column=self.column,
            length=self.length,
            message=self.message,
            line_content=self.line_content,
        )


def _describe(exc: ValidationError) -> str:
    parts = []
    for error in exc.errors():
        field = ".".join(str(part) for part in error.get("loc", ())) or "<item>"
        if error.get("type") == "missing":
            parts.append(f"missing required field '{field}'")
        else:
            parts.append(f"invalid '{field}': {error.get('msg')}")
    return "; ".join(parts)


class ResultValidator:
    """Turns an untrusted model reply into :class:`ValidatedIssue` objects.

    Never raises: a reply that is not a JSON array produces a failed
    :class:`ParseResult`, and each malformed element is skipped on its own.
    """

    def parse(self, raw: str, file_name: str = "") -> ParseResult:
        label = file_name or "<document>"
        cleaned = strip_code_fence(raw or "")
        try:
            payload = json.loads(cleaned)
        except (json.JSONDecodeError, RecursionError) as exc:
            LOGGER.error("Failed to parse analysis response for %s as JSON: %s", label, exc)
            LOGGER.debug("Raw response was: %s", raw)
            return ParseResult.failure(f"invalid JSON: {exc}")

        if not isinstance(payload, list):
            kind = type(payload).__name__
            LOGGER.error("Analysis response for %s is not an array: %s", label, kind)
            return ParseResult.failure(f"expected a JSON array, got {kind}")

        issues: List[ValidatedIssue] = []
        skipped: List[SkippedItem] = []
        for index, item in enumerate(payload):
            if not isinstance(item, dict):
                LOGGER.error("Response item %d for %s is not an object: %r", index, label, item)
                skipped.append(SkippedItem(index=index, reason="not an object"))
                continue
            try:
                model = RawIssueModel.model_validate(item)
            except ValidationError as exc:
                reason = _describe(exc)
                LOGGER.error("Response item %d for %s rejected: %s", index, label, reason)
                skipped.append(SkippedItem(index=index, reason=reason))
                continue
            issues.append(model.to_issue())

        LOGGER.info("Parsed %d valid issues from analysis response for %s", len(issues), label)
        return ParseResult(ok=True, issues=tuple(issues), skipped=tuple(skipped))

    def validate(self, raw: str, file_name: str = "") -> List[ValidatedIssue]:
        return list(self.parse(raw, file_name).issues)
