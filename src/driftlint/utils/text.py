"""Text helpers for line handling and response cleanup."""

from __future__ import annotations

import re
from typing import List

_LINE_BREAK = re.compile(r"\r?\n")

CODE_FENCE_OPEN = "```json"
CODE_FENCE_CLOSE = "```"


def split_lines(text: str) -> List[str]:
    """Split text on LF or CRLF.

    A trailing newline yields a final empty line, the way editors count it.
    """
    return _LINE_BREAK.split(text)


def line_count(text: str) -> int:
    return len(split_lines(text))


def strip_code_fence(text: str) -> str:
    """Remove a leading ```json tag and a trailing ``` from a model reply."""
    cleaned = text.strip()
    if cleaned.startswith(CODE_FENCE_OPEN):
        cleaned = cleaned[len(CODE_FENCE_OPEN) :]
    if cleaned.endswith(CODE_FENCE_CLOSE):
        cleaned = cleaned[: -len(CODE_FENCE_CLOSE)]
    return cleaned.strip()
