"""Access to the live text of documents."""

from __future__ import annotations

import threading
from pathlib import Path
from typing import Dict, Protocol


class DocumentSource(Protocol):
    def read(self, document_id: str) -> str: ...


class WorkspaceDocuments:
    """Live document text: editor buffers first, then the file on disk.

    Editors push unsaved buffer contents with :meth:`update`; closing a
    buffer falls back to reading the saved file.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._buffers: Dict[str, str] = {}

    def update(self, document_id: str, text: str) -> None:
        with self._lock:
            self._buffers[document_id] = text

    def close(self, document_id: str) -> None:
        with self._lock:
            self._buffers.pop(document_id, None)

    def is_open(self, document_id: str) -> bool:
        with self._lock:
            return document_id in self._buffers

    def read(self, document_id: str) -> str:
        with self._lock:
            buffered = self._buffers.get(document_id)
        if buffered is not None:
            return buffered
        # newline="" keeps CRLF so fingerprints match the bytes on disk.
        with Path(document_id).open(encoding="utf-8", errors="replace", newline="") as handle:
            return handle.read()
