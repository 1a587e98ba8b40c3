"""Per-document debouncing of analysis requests."""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Dict, Set

from driftlint.config import DEFAULT_ANALYSIS_DELAY_MS
from driftlint.models import PendingAnalysis

LOGGER = logging.getLogger(__name__)

FireCallback = Callable[[str, str], Awaitable[None]]


class DebounceScheduler:
    """Coalesce bursts of changes into one analysis per document.

    Each document has at most one sleeping timer task. A newer ``notify`` for
    the same document cancels the sleeping one, so only the last fingerprint
    before a quiet period is ever handed to the callback. Once a timer fires
    its entry is removed and the callback runs inside the same task; a later
    ``notify`` never cancels a callback that is already running.

    ``delay_ms`` may be a callable; it is read on every ``notify`` so setting
    changes apply without a restart.
    """

    def __init__(self, delay_ms: Callable[[], int] | int = DEFAULT_ANALYSIS_DELAY_MS) -> None:
        if callable(delay_ms):
            self._delay_ms = delay_ms
        else:
            self._delay_ms = lambda: delay_ms
        self._pending: Dict[str, PendingAnalysis] = {}
        self._running: Set[asyncio.Task] = set()
        self._disposed = False

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    @property
    def running_count(self) -> int:
        return len(self._running)

    def is_pending(self, document_id: str) -> bool:
        return document_id in self._pending

    def pending_fingerprint(self, document_id: str) -> str | None:
        pending = self._pending.get(document_id)
        return pending.fingerprint if pending else None

    def notify(self, document_id: str, fingerprint: str, fire_callback: FireCallback) -> None:
        """Schedule ``fire_callback(document_id, fingerprint)`` after the delay.

        Must be called from within the running event loop.
        """
        if self._disposed:
            LOGGER.warning("Scheduler disposed; ignoring change for %s", document_id)
            return

        if self.cancel(document_id):
            LOGGER.debug("Superseded pending analysis for %s", document_id)

        delay = max(int(self._delay_ms()), 0) / 1000.0
        task = asyncio.get_running_loop().create_task(
            self._fire_after(document_id, fingerprint, delay, fire_callback),
            name=f"driftlint-debounce:{document_id}",
        )
        self._pending[document_id] = PendingAnalysis(task=task, fingerprint=fingerprint)
        LOGGER.debug("Analysis for %s scheduled in %.3fs", document_id, delay)

    def cancel(self, document_id: str) -> bool:
        """Cancel the sleeping timer for a document. Returns True if one existed."""
        pending = self._pending.pop(document_id, None)
        if pending is None:
            return False
        pending.task.cancel()
        return True

    def dispose(self) -> None:
        """Cancel every sleeping timer. Callbacks already running are left alone."""
        self._disposed = True
        for document_id in list(self._pending):
            self.cancel(document_id)

    async def wait_idle(self) -> None:
        """Wait until no timer is sleeping and no callback is running."""
        while True:
            tasks = [pending.task for pending in self._pending.values()]
            tasks.extend(self._running)
            if not tasks:
                return
            await asyncio.gather(*tasks, return_exceptions=True)

    async def _fire_after(
        self,
        document_id: str,
        fingerprint: str,
        delay: float,
        fire_callback: FireCallback,
    ) -> None:
        await asyncio.sleep(delay)

        task = asyncio.current_task()
        pending = self._pending.get(document_id)
        if pending is None or pending.task is not task:
            return
        del self._pending[document_id]

        self._running.add(task)
        try:
            await fire_callback(document_id, fingerprint)
        except Exception:
            LOGGER.exception("Error in document analysis callback for %s", document_id)
        finally:
            self._running.discard(task)
