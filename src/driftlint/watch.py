"""Filesystem watcher that feeds save events into the diagnostics service.

Watchdog delivers events on its own observer thread; they are handed to the
asyncio loop with ``call_soon_threadsafe`` because the scheduler and the
service are loop-bound.
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import FrozenSet, Iterable, List

from watchdog.events import (
    DirCreatedEvent,
    DirModifiedEvent,
    DirMovedEvent,
    FileSystemEvent,
    FileSystemEventHandler,
)
from watchdog.observers import Observer

from driftlint.pipeline.service import DiagnosticsService
from driftlint.utils.files import is_ignored

LOGGER = logging.getLogger(__name__)

# SQLite writes these next to the database file.
SQLITE_SIDECAR_SUFFIXES = ("-wal", "-shm", "-journal")


def ledger_files(paths: Iterable[Path]) -> FrozenSet[str]:
    """Resolved paths of ledger databases and their SQLite sidecar files."""
    resolved = set()
    for path in paths:
        base = str(Path(path).resolve())
        resolved.add(base)
        resolved.update(base + suffix for suffix in SQLITE_SIDECAR_SUFFIXES)
    return frozenset(resolved)


class SaveEventHandler(FileSystemEventHandler):
    """Forwards file writes under ``root`` to :meth:`DiagnosticsService.handle_saved`."""

    def __init__(
        self,
        root: Path,
        service: DiagnosticsService,
        loop: asyncio.AbstractEventLoop,
        ignore_paths: Iterable[Path] = (),
    ) -> None:
        super().__init__()
        self.root = Path(root).resolve()
        self.service = service
        self._loop = loop
        self._ignored = ledger_files(ignore_paths)

    def _should_ignore(self, path: str) -> bool:
        resolved = Path(path).resolve()
        if str(resolved) in self._ignored:
            return True
        try:
            relative = resolved.relative_to(self.root)
        except ValueError:
            return True
        return is_ignored(relative)

    def _push(self, path: str) -> None:
        if self._should_ignore(path):
            return
        document_id = str(Path(path).resolve())
        LOGGER.debug("file_saved: %s", document_id)
        self._loop.call_soon_threadsafe(self.service.handle_saved, document_id)

    def on_created(self, event: FileSystemEvent) -> None:
        if isinstance(event, DirCreatedEvent):
            return
        self._push(event.src_path)

    def on_modified(self, event: FileSystemEvent) -> None:
        if isinstance(event, DirModifiedEvent):
            return
        self._push(event.src_path)

    def on_moved(self, event: FileSystemEvent) -> None:
        # Editors that save atomically write a temp file and rename it over.
        if isinstance(event, DirMovedEvent):
            return
        self._push(event.dest_path)


class WorkspaceWatcher:
    """Watches one or more directory trees for saved files."""

    def __init__(
        self,
        roots: Iterable[Path],
        service: DiagnosticsService,
        loop: asyncio.AbstractEventLoop,
        *,
        ignore_paths: Iterable[Path] = (),
    ) -> None:
        self.roots: List[Path] = [Path(root).resolve() for root in roots]
        self.service = service
        self._loop = loop
        self.ignore_paths: List[Path] = [Path(path) for path in ignore_paths]
        self._observer: Observer | None = None

    @property
    def is_running(self) -> bool:
        return self._observer is not None

    def start(self) -> None:
        if self._observer is not None:
            return
        observer = Observer()
        for root in self.roots:
            handler = SaveEventHandler(root, self.service, self._loop, self.ignore_paths)
            observer.schedule(handler, str(root), recursive=True)
            LOGGER.info("Watching %s", root)
        observer.start()
        self._observer = observer

    def stop(self) -> None:
        if self._observer is None:
            return
        self._observer.stop()
        self._observer.join(timeout=5)
        self._observer = None
        LOGGER.info("Stopped watching")
