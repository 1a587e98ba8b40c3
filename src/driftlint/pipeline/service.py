"""End-to-end diagnostics cycle: change event to published annotations."""

from __future__ import annotations

import functools
import logging
from typing import Dict, List

from driftlint.analysis.client import Analyzer
from driftlint.analysis.reconciler import DriftReconciler
from driftlint.analysis.validator import ResultValidator
from driftlint.annotations import AnnotationSink, AnnotationStore
from driftlint.config import ConfigSource
from driftlint.documents import DocumentSource, WorkspaceDocuments
from driftlint.errors import ConfigurationError
from driftlint.ledger.storage import SQLiteHashLedger
from driftlint.models import ChangeRecord, GateDecision, ReconciledIssue
from driftlint.pipeline.gate import ChangeGate, filter_rejection
from driftlint.pipeline.scheduler import DebounceScheduler
from driftlint.utils.files import base_name, guess_language
from driftlint.utils.hashing import fingerprint as compute_fingerprint

LOGGER = logging.getLogger(__name__)


class DiagnosticsService:
    """Coordinates change detection, debounced analysis and publication."""

    def __init__(
        self,
        config_source: ConfigSource,
        ledger: SQLiteHashLedger,
        analyzer: Analyzer,
        *,
        documents: DocumentSource | None = None,
        annotations: AnnotationSink | None = None,
        scheduler: DebounceScheduler | None = None,
    ) -> None:
        self.config_source = config_source
        self.ledger = ledger
        self.analyzer = analyzer
        self.documents = documents if documents is not None else WorkspaceDocuments()
        self.annotations = annotations if annotations is not None else AnnotationStore()
        self.scheduler = scheduler or DebounceScheduler(
            lambda: self.config_source.current().analysis_delay_ms
        )
        self.gate = ChangeGate(ledger)
        self.validator = ResultValidator()
        self.reconciler = DriftReconciler()
        self._generations: Dict[str, int] = {}
        self._published: Dict[str, int] = {}

    def handle_saved(self, document_id: str, language_tag: str | None = None) -> GateDecision:
        """React to a saved document; schedules analysis if the gate accepts.

        A save makes the file on disk authoritative, so any unsaved buffer
        for the document is dropped. Must be called on the event loop thread.
        """
        if isinstance(self.documents, WorkspaceDocuments):
            self.documents.close(document_id)
        return self._consider(document_id, language_tag)

    def handle_changed(
        self, document_id: str, text: str, language_tag: str | None = None
    ) -> GateDecision:
        """Record an unsaved buffer, then run it through the gate."""
        if isinstance(self.documents, WorkspaceDocuments):
            self.documents.update(document_id, text)
        return self._consider(document_id, language_tag)

    def handle_closed(self, document_id: str) -> None:
        """Forget the unsaved buffer of a closed editor tab."""
        if isinstance(self.documents, WorkspaceDocuments):
            self.documents.close(document_id)

    async def handle_opened(
        self, document_id: str, language_tag: str | None = None
    ) -> List[ReconciledIssue] | None:
        """Analyze a freshly opened document right away.

        No fingerprint check and no ledger write: opening never marks content
        as analyzed.
        """
        return await self.analyze_now(document_id, language_tag=language_tag)

    async def analyze_now(
        self,
        document_id: str,
        *,
        language_tag: str | None = None,
        record: bool = False,
    ) -> List[ReconciledIssue] | None:
        """Run one cycle immediately, bypassing the debounce timer.

        Returns the published issues, or None when filtered out or aborted.
        With ``record`` the fingerprint is committed to the ledger on success.
        """
        language = language_tag or guess_language(document_id)
        try:
            config = self.config_source.current()
        except ConfigurationError as exc:
            LOGGER.error("Invalid settings, skipping %s: %s", document_id, exc)
            return None
        if filter_rejection(config, language, document_id) is not None:
            return None

        generation = self._next_generation(document_id)
        if not record:
            change = ChangeRecord(document_id, "", generation=generation)
            return await self._run_cycle(change, commit=False)

        try:
            text = self.documents.read(document_id)
        except OSError as exc:
            LOGGER.error("Cannot read %s: %s", document_id, exc)
            return None
        change = ChangeRecord(
            document_id,
            compute_fingerprint(text),
            previous=self.ledger.get(document_id),
            generation=generation,
        )
        return await self._run_cycle(change, commit=True)

    def dispose(self) -> None:
        self.scheduler.dispose()

    async def wait_idle(self) -> None:
        await self.scheduler.wait_idle()

    def _consider(self, document_id: str, language_tag: str | None) -> GateDecision:
        language = language_tag or guess_language(document_id)
        try:
            text = self.documents.read(document_id)
        except OSError as exc:
            LOGGER.error("Cannot read %s: %s", document_id, exc)
            return GateDecision(proceed=False, reason="unreadable")

        try:
            config = self.config_source.current()
        except ConfigurationError as exc:
            LOGGER.error("Invalid settings, skipping %s: %s", document_id, exc)
            return GateDecision(proceed=False, reason="configuration")

        decision = self.gate.should_consider(document_id, text, language, document_id, config)
        if decision.proceed:
            self.scheduler.notify(
                document_id,
                decision.fingerprint,
                functools.partial(
                    self._on_fire,
                    previous=decision.previous,
                    generation=self._next_generation(document_id),
                ),
            )
        return decision

    def _next_generation(self, document_id: str) -> int:
        generation = self._generations.get(document_id, 0) + 1
        self._generations[document_id] = generation
        return generation

    async def _on_fire(
        self, document_id: str, fingerprint: str, *, previous: str | None, generation: int
    ) -> None:
        change = ChangeRecord(document_id, fingerprint, previous, generation=generation)
        await self._run_cycle(change, commit=True)

    async def _run_cycle(
        self, change: ChangeRecord, *, commit: bool
    ) -> List[ReconciledIssue] | None:
        document_id = change.document_id
        name = base_name(document_id)
        LOGGER.info("Analyzing document: %s", document_id)

        try:
            text = self.documents.read(document_id)
        except OSError as exc:
            LOGGER.error("Cannot read %s: %s", document_id, exc)
            return None

        try:
            raw = await self.analyzer.analyze(text, name)
        except Exception as exc:
            LOGGER.error("Error during LLM analysis of %s: %s", document_id, exc)
            return None

        result = self.validator.parse(raw, name)

        # The document may have been edited while the analysis was running.
        try:
            current_text = self.documents.read(document_id)
        except OSError as exc:
            LOGGER.error("Cannot re-read %s after analysis: %s", document_id, exc)
            return None
        issues = self.reconciler.reconcile_all(result.issues, document_id, current_text)

        # No await between the stale check, publication and commit.
        published = self._published.get(document_id, 0)
        if change.generation < published:
            LOGGER.warning(
                "Discarding stale analysis results for %s (cycle %d, newer cycle %d published)",
                document_id,
                change.generation,
                published,
            )
            return None

        self._published[document_id] = change.generation
        self.annotations.replace(document_id, issues)
        if commit:
            self.ledger.compare_and_set(
                document_id, self.ledger.get(document_id), change.fingerprint
            )
        return issues
