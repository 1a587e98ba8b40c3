"""Utility helpers for working with files."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Iterable, Iterator

IGNORED_DIRS = frozenset(
    {
        ".git",
        ".hg",
        ".svn",
        ".idea",
        ".vscode",
        ".venv",
        "venv",
        "node_modules",
        "__pycache__",
        ".mypy_cache",
        ".pytest_cache",
        ".ruff_cache",
        "dist",
        "build",
    }
)

LANGUAGE_BY_EXTENSION = {
    ".py": "python",
    ".pyi": "python",
    ".js": "javascript",
    ".mjs": "javascript",
    ".cjs": "javascript",
    ".jsx": "javascriptreact",
    ".ts": "typescript",
    ".tsx": "typescriptreact",
    ".java": "java",
    ".kt": "kotlin",
    ".go": "go",
    ".rs": "rust",
    ".c": "c",
    ".h": "c",
    ".cpp": "cpp",
    ".cc": "cpp",
    ".hpp": "cpp",
    ".cs": "csharp",
    ".rb": "ruby",
    ".php": "php",
    ".swift": "swift",
    ".scala": "scala",
    ".sh": "shellscript",
    ".sql": "sql",
    ".md": "markdown",
    ".json": "json",
    ".yaml": "yaml",
    ".yml": "yaml",
    ".xml": "xml",
    ".txt": "plaintext",
    ".log": "log",
}


def file_extension(path: str | Path) -> str:
    """Lower-cased suffix including the dot, or an empty string."""
    return Path(path).suffix.lower()


def base_name(path: str | Path) -> str:
    return os.path.basename(str(path))


def guess_language(path: str | Path) -> str:
    """Map a file path to an editor language tag."""
    return LANGUAGE_BY_EXTENSION.get(file_extension(path), "plaintext")


def is_ignored(path: Path) -> bool:
    """True when any path component is a VCS, cache or build folder."""
    return any(part in IGNORED_DIRS for part in path.parts)


def iter_source_paths(inputs: Iterable[Path]) -> Iterator[Path]:
    """Yield files from input paths, descending into directories."""
    for item in inputs:
        if item.is_dir():
            yield from iter_source_paths(
                sorted(
                    child
                    for child in item.rglob("*")
                    if child.is_file() and not is_ignored(child.relative_to(item))
                )
            )
        elif item.is_file():
            yield item
