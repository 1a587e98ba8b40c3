"""Tests for the end-to-end diagnostics service."""

from __future__ import annotations

import asyncio
import json
from pathlib import Path
from typing import Callable, Dict, List, Tuple

import pytest

from driftlint.config import AppConfig, FileConfigSource, StaticConfigSource
from driftlint.errors import AnalysisError
from driftlint.ledger.storage import SQLiteHashLedger
from driftlint.pipeline.service import DiagnosticsService
from driftlint.utils.hashing import fingerprint

SOURCE = "import os\n\ndef load(path):\n    data = None\n    return data.read()\n"

REPLY = json.dumps(
    [
        {
            "fileName": "app.py",
            "line": 5,
            "column": 12,
            "length": 9,
            "message": "data is always None here",
            "lineContent": "    return data.read()",
        }
    ]
)


class FakeAnalyzer:
    def __init__(self, reply: str = REPLY) -> None:
        self.reply = reply
        self.calls: List[Tuple[str, str]] = []
        self.error: Exception | None = None
        self.on_call: Callable[[], None] | None = None

    async def analyze(self, document_text: str, file_base_name: str) -> str:
        self.calls.append((file_base_name, document_text))
        await asyncio.sleep(0)
        if self.on_call is not None:
            self.on_call()
        if self.error is not None:
            raise self.error
        return self.reply


class EchoAnalyzer:
    """Reports one issue quoting the first line, after a per-content delay."""

    def __init__(self, delays: Dict[str, float]) -> None:
        self.delays = delays
        self.seen: List[str] = []

    async def analyze(self, document_text: str, file_base_name: str) -> str:
        first = document_text.splitlines()[0]
        self.seen.append(first)
        await asyncio.sleep(self.delays.get(first, 0.0))
        return json.dumps(
            [
                {
                    "fileName": file_base_name,
                    "line": 1,
                    "column": 1,
                    "length": len(first),
                    "message": first,
                    "lineContent": first,
                }
            ]
        )


@pytest.fixture
def ledger():
    store = SQLiteHashLedger(":memory:")
    yield store
    store.close()


@pytest.fixture
def source_file(tmp_path: Path) -> Path:
    path = tmp_path / "app.py"
    path.write_text(SOURCE)
    return path


def _service(ledger: SQLiteHashLedger, analyzer: FakeAnalyzer, **config) -> DiagnosticsService:
    config.setdefault("analysis_delay_ms", 0)
    return DiagnosticsService(StaticConfigSource(AppConfig(**config)), ledger, analyzer)


class TestHandleSaved:
    """Test the save to publish cycle."""

    def test_save_publishes_and_commits(self, ledger, source_file: Path) -> None:
        analyzer = FakeAnalyzer()
        service = _service(ledger, analyzer)
        doc = str(source_file)

        async def scenario() -> None:
            decision = service.handle_saved(doc)
            assert decision.proceed is True
            assert decision.reason == "changed"
            await service.wait_idle()

        asyncio.run(scenario())

        assert analyzer.calls == [("app.py", SOURCE)]
        annotations = service.annotations.get(doc)
        assert len(annotations) == 1
        assert annotations[0].start_line == 4
        assert ledger.get(doc) == fingerprint(SOURCE)

    def test_unchanged_content_not_reanalyzed(self, ledger, source_file: Path) -> None:
        analyzer = FakeAnalyzer()
        service = _service(ledger, analyzer)
        doc = str(source_file)

        async def scenario() -> str:
            service.handle_saved(doc)
            await service.wait_idle()
            return service.handle_saved(doc).reason

        assert asyncio.run(scenario()) == "unchanged"
        assert len(analyzer.calls) == 1

    def test_burst_of_saves_analyzes_last_content(self, ledger, source_file: Path) -> None:
        analyzer = FakeAnalyzer(reply="[]")
        service = _service(ledger, analyzer, analysis_delay_ms=20)
        doc = str(source_file)

        async def scenario() -> None:
            for suffix in ("# one\n", "# two\n", "# three\n"):
                source_file.write_text(SOURCE + suffix)
                service.handle_saved(doc)
            await service.wait_idle()

        asyncio.run(scenario())

        assert analyzer.calls == [("app.py", SOURCE + "# three\n")]
        assert ledger.get(doc) == fingerprint(SOURCE + "# three\n")

    def test_edit_during_analysis_is_reconciled(self, ledger, source_file: Path) -> None:
        """Lines inserted while the model runs shift the published issue."""
        analyzer = FakeAnalyzer()
        analyzer.on_call = lambda: source_file.write_text("# a\n# b\n" + SOURCE)
        service = _service(ledger, analyzer)
        doc = str(source_file)

        async def scenario() -> None:
            service.handle_saved(doc)
            await service.wait_idle()

        asyncio.run(scenario())

        issues = service.annotations.issues(doc)
        assert [(i.line, i.original_line, i.drift) for i in issues] == [(7, 5, "moved")]
        # The ledger records what was analyzed, so the edit is picked up next save.
        assert ledger.get(doc) == fingerprint(SOURCE)

    def test_analysis_failure_leaves_state_untouched(self, ledger, source_file: Path) -> None:
        analyzer = FakeAnalyzer()
        analyzer.error = AnalysisError("endpoint down")
        service = _service(ledger, analyzer)
        doc = str(source_file)
        service.annotations.replace(doc, [])

        async def scenario() -> None:
            service.handle_saved(doc)
            await service.wait_idle()

        asyncio.run(scenario())

        assert ledger.get(doc) is None
        assert service.annotations.documents() == [doc]

        analyzer.error = None

        async def retry() -> str:
            decision = service.handle_saved(doc)
            await service.wait_idle()
            return decision.reason

        assert asyncio.run(retry()) == "changed"
        assert ledger.get(doc) == fingerprint(SOURCE)

    def test_unparseable_reply_clears_and_commits(self, ledger, source_file: Path) -> None:
        analyzer = FakeAnalyzer()
        service = _service(ledger, analyzer)
        doc = str(source_file)

        async def scenario() -> None:
            service.handle_saved(doc)
            await service.wait_idle()

        asyncio.run(scenario())
        assert len(service.annotations.get(doc)) == 1

        analyzer.reply = "Sorry, I cannot help with that."
        source_file.write_text(SOURCE + "# edited\n")
        asyncio.run(scenario())

        assert service.annotations.get(doc) == []
        assert ledger.get(doc) == fingerprint(SOURCE + "# edited\n")

    def test_overlapping_cycles_finishing_in_order(self, ledger, source_file: Path) -> None:
        """The later save wins when both analyses finish in start order."""
        analyzer = EchoAnalyzer({"v1 = 1": 0.1, "v2 = 2": 0.1})
        service = _service(ledger, analyzer)
        doc = str(source_file)

        async def scenario() -> None:
            source_file.write_text("v1 = 1\n")
            service.handle_saved(doc)
            await asyncio.sleep(0.03)
            source_file.write_text("v2 = 2\n")
            assert service.handle_saved(doc).proceed is True
            await service.wait_idle()

        asyncio.run(scenario())

        assert analyzer.seen == ["v1 = 1", "v2 = 2"]
        assert [i.message for i in service.annotations.issues(doc)] == ["v2 = 2"]
        assert ledger.get(doc) == fingerprint("v2 = 2\n")

    def test_older_cycle_finishing_last_is_discarded(self, ledger, source_file: Path) -> None:
        """A slow older analysis cannot replace the results of a newer one."""
        analyzer = EchoAnalyzer({"v1 = 1": 0.2, "v2 = 2": 0.0})
        service = _service(ledger, analyzer)
        doc = str(source_file)

        async def scenario() -> None:
            source_file.write_text("v1 = 1\n")
            service.handle_saved(doc)
            await asyncio.sleep(0.03)
            source_file.write_text("v2 = 2\n")
            service.handle_saved(doc)
            await service.wait_idle()

        asyncio.run(scenario())

        assert [i.message for i in service.annotations.issues(doc)] == ["v2 = 2"]
        assert ledger.get(doc) == fingerprint("v2 = 2\n")

    def test_filtered_file_not_scheduled(self, ledger, tmp_path: Path) -> None:
        notes = tmp_path / "NOTES.md"
        notes.write_text("# notes\n")
        analyzer = FakeAnalyzer()
        service = _service(ledger, analyzer)

        async def scenario() -> str:
            decision = service.handle_saved(str(notes))
            await service.wait_idle()
            return decision.reason

        assert asyncio.run(scenario()) == "extension"
        assert analyzer.calls == []

    def test_disabled(self, ledger, source_file: Path) -> None:
        analyzer = FakeAnalyzer()
        service = _service(ledger, analyzer, enabled=False)

        async def scenario() -> str:
            return service.handle_saved(str(source_file)).reason

        assert asyncio.run(scenario()) == "disabled"
        assert analyzer.calls == []

    def test_unreadable(self, ledger, tmp_path: Path) -> None:
        service = _service(ledger, FakeAnalyzer())

        async def scenario() -> str:
            return service.handle_saved(str(tmp_path / "missing.py")).reason

        assert asyncio.run(scenario()) == "unreadable"

    def test_dispose_cancels_pending(self, ledger, source_file: Path) -> None:
        analyzer = FakeAnalyzer()
        service = _service(ledger, analyzer, analysis_delay_ms=10_000)

        async def scenario() -> None:
            service.handle_saved(str(source_file))
            assert service.scheduler.is_pending(str(source_file))
            service.dispose()
            await service.wait_idle()

        asyncio.run(scenario())

        assert analyzer.calls == []
        assert ledger.get(str(source_file)) is None


class TestOtherEvents:
    """Test change, open and on-demand analysis."""

    def test_changed_uses_buffer_text(self, ledger, source_file: Path) -> None:
        analyzer = FakeAnalyzer(reply="[]")
        service = _service(ledger, analyzer)
        doc = str(source_file)

        async def scenario() -> None:
            service.handle_changed(doc, "unsaved = True\n")
            await service.wait_idle()

        asyncio.run(scenario())

        assert analyzer.calls == [("app.py", "unsaved = True\n")]
        assert ledger.get(doc) == fingerprint("unsaved = True\n")

    def test_save_drops_unsaved_buffer(self, ledger, source_file: Path) -> None:
        """After a save the file on disk is analyzed, not an old buffer."""
        analyzer = FakeAnalyzer(reply="[]")
        service = _service(ledger, analyzer)
        doc = str(source_file)

        async def scenario() -> None:
            service.handle_changed(doc, "buffer\n")
            await service.wait_idle()
            source_file.write_text("disk v2\n")
            service.handle_saved(doc)
            await service.wait_idle()

        asyncio.run(scenario())

        assert analyzer.calls == [("app.py", "buffer\n"), ("app.py", "disk v2\n")]
        assert ledger.get(doc) == fingerprint("disk v2\n")

    def test_closed_falls_back_to_disk(self, ledger, source_file: Path) -> None:
        service = _service(ledger, FakeAnalyzer())
        doc = str(source_file)
        service.documents.update(doc, "unsaved\n")

        service.handle_closed(doc)

        assert service.documents.read(doc) == SOURCE

    def test_opened_with_invalid_settings_is_skipped(
        self, ledger, source_file: Path, tmp_path: Path
    ) -> None:
        settings = tmp_path / "settings.json"
        settings.write_text("{broken")
        analyzer = FakeAnalyzer()
        service = DiagnosticsService(FileConfigSource(settings), ledger, analyzer)

        assert asyncio.run(service.handle_opened(str(source_file))) is None
        assert analyzer.calls == []

    def test_opened_does_not_touch_ledger(self, ledger, source_file: Path) -> None:
        analyzer = FakeAnalyzer()
        service = _service(ledger, analyzer)
        doc = str(source_file)

        issues = asyncio.run(service.handle_opened(doc))

        assert issues is not None and len(issues) == 1
        assert len(service.annotations.get(doc)) == 1
        assert ledger.get(doc) is None

    def test_opened_ignores_ledger_match(self, ledger, source_file: Path) -> None:
        """Opening analyzes even if the content was analyzed before."""
        analyzer = FakeAnalyzer()
        service = _service(ledger, analyzer)
        doc = str(source_file)
        ledger.set(doc, fingerprint(SOURCE))

        asyncio.run(service.handle_opened(doc))

        assert len(analyzer.calls) == 1

    def test_analyze_now_record(self, ledger, source_file: Path) -> None:
        service = _service(ledger, FakeAnalyzer())
        doc = str(source_file)

        issues = asyncio.run(service.analyze_now(doc, record=True))

        assert issues is not None and issues[0].line == 5
        assert ledger.get(doc) == fingerprint(SOURCE)

    def test_analyze_now_filtered(self, ledger, tmp_path: Path) -> None:
        readme = tmp_path / "README.md"
        readme.write_text("# hi\n")
        analyzer = FakeAnalyzer()
        service = _service(ledger, analyzer)

        assert asyncio.run(service.analyze_now(str(readme))) is None
        assert analyzer.calls == []
