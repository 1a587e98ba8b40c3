"""FastAPI application that editor integrations post document events to."""

from __future__ import annotations

import logging
import os
from dataclasses import asdict
from pathlib import Path
from typing import Any

from fastapi import BackgroundTasks, Depends, FastAPI, HTTPException, Query
from pydantic import BaseModel

from driftlint import __version__
from driftlint.analysis.client import LLMAnalyzer
from driftlint.config import load_config_source
from driftlint.errors import ConfigurationError
from driftlint.ledger.storage import SQLiteHashLedger
from driftlint.models import GateDecision
from driftlint.pipeline.service import DiagnosticsService

LOGGER = logging.getLogger(__name__)

app = FastAPI(title="DriftLint", version=__version__)


class DocumentEvent(BaseModel):
    path: str
    language: str | None = None


class ChangedEvent(DocumentEvent):
    text: str


def _normalize_path(raw: str) -> str:
    clean = raw.strip().replace("\r", "").replace("\n", "")
    if not clean:
        raise HTTPException(status_code=400, detail="No path provided")
    if "\0" in clean:
        raise HTTPException(status_code=400, detail="Invalid path: contains null byte")
    return os.path.abspath(os.path.expanduser(clean))


def _ensure_db_parent(db_path: Path) -> None:
    db_path.parent.mkdir(parents=True, exist_ok=True)


def _build_service() -> DiagnosticsService:
    config_source = load_config_source()
    config = config_source.current()
    resolved_db = config.resolve_db_path(Path.cwd())
    _ensure_db_parent(resolved_db)
    ledger = SQLiteHashLedger(resolved_db)
    return DiagnosticsService(config_source, ledger, LLMAnalyzer(config_source))


def get_service() -> DiagnosticsService:
    service = getattr(app.state, "service", None)
    if service is None:
        try:
            service = _build_service()
        except ConfigurationError as exc:
            raise HTTPException(status_code=500, detail=str(exc)) from exc
        app.state.service = service
    return service


@app.on_event("startup")
async def startup_event() -> None:
    logging.basicConfig(level=logging.INFO, format="[%(levelname)s] %(message)s")


@app.on_event("shutdown")
async def shutdown_event() -> None:
    service = getattr(app.state, "service", None)
    if service is None:
        return
    service.dispose()
    analyzer = service.analyzer
    if isinstance(analyzer, LLMAnalyzer):
        await analyzer.aclose()
    service.ledger.close()
    app.state.service = None


def _decision_payload(decision: GateDecision) -> dict[str, Any]:
    return {
        "status": "scheduled" if decision.proceed else "skipped",
        "reason": decision.reason,
        "fingerprint": decision.fingerprint or None,
    }


@app.post("/events/saved")
async def document_saved(
    event: DocumentEvent, service: DiagnosticsService = Depends(get_service)
) -> dict[str, Any]:
    document_id = _normalize_path(event.path)
    decision = service.handle_saved(document_id, event.language)
    if decision.reason == "unreadable":
        raise HTTPException(status_code=404, detail=f"File not found: {document_id}")
    return _decision_payload(decision)


@app.post("/events/changed")
async def document_changed(
    event: ChangedEvent, service: DiagnosticsService = Depends(get_service)
) -> dict[str, Any]:
    document_id = _normalize_path(event.path)
    decision = service.handle_changed(document_id, event.text, event.language)
    return _decision_payload(decision)


@app.post("/events/opened")
async def document_opened(
    event: DocumentEvent,
    background_tasks: BackgroundTasks,
    service: DiagnosticsService = Depends(get_service),
) -> dict[str, str]:
    document_id = _normalize_path(event.path)
    background_tasks.add_task(service.handle_opened, document_id, event.language)
    return {"status": "accepted"}


@app.post("/events/closed")
async def document_closed(
    event: DocumentEvent, service: DiagnosticsService = Depends(get_service)
) -> dict[str, str]:
    """Drop the unsaved buffer; later reads come from disk."""
    document_id = _normalize_path(event.path)
    service.handle_closed(document_id)
    return {"status": "ok", "path": document_id}


@app.get("/annotations")
async def list_annotations(
    path: str = Query(...), service: DiagnosticsService = Depends(get_service)
) -> dict[str, Any]:
    document_id = _normalize_path(path)
    return {
        "path": document_id,
        "pending": service.scheduler.is_pending(document_id),
        "annotations": [asdict(item) for item in service.annotations.get(document_id)],
    }


@app.get("/ledger")
async def list_ledger(service: DiagnosticsService = Depends(get_service)) -> dict[str, Any]:
    entries = service.ledger.list_entries()
    return {"entries": [asdict(entry) for entry in entries], "count": len(entries)}


@app.delete("/ledger/cleanup")
async def cleanup_ledger(service: DiagnosticsService = Depends(get_service)) -> dict[str, Any]:
    """Forget documents whose files no longer exist on disk."""
    removed_count = service.ledger.remove_missing_files()
    return {"status": "ok", "removed_count": removed_count}


@app.delete("/ledger/entry")
async def forget_document(
    path: str = Query(...), service: DiagnosticsService = Depends(get_service)
) -> dict[str, Any]:
    """Forget a document so its next save is analyzed even if unchanged."""
    document_id = _normalize_path(path)
    if not service.ledger.delete(document_id):
        raise HTTPException(status_code=404, detail=f"No ledger entry for {document_id}")
    return {"status": "ok", "path": document_id}


@app.get("/status")
async def status(service: DiagnosticsService = Depends(get_service)) -> dict[str, Any]:
    try:
        config = service.config_source.current()
    except ConfigurationError as exc:
        raise HTTPException(status_code=500, detail=str(exc)) from exc
    return {
        "version": __version__,
        "enabled": config.enabled,
        "model": config.model or None,
        "analysis_delay_ms": config.analysis_delay_ms,
        "pending": service.scheduler.pending_count,
        "running": service.scheduler.running_count,
    }
