"""Command line interface for DriftLint."""

from __future__ import annotations

import asyncio
import logging
import os
import signal
from pathlib import Path
from typing import List, Optional

import typer
from rich.console import Console
from rich.table import Table

from driftlint.analysis.client import LLMAnalyzer
from driftlint.config import CONFIG_ENV, ConfigSource, load_config_source
from driftlint.errors import ConfigurationError
from driftlint.ledger.storage import SQLiteHashLedger
from driftlint.models import ReconciledIssue
from driftlint.pipeline.service import DiagnosticsService
from driftlint.utils.files import iter_source_paths
from driftlint.watch import WorkspaceWatcher
from driftlint.web.app import app as web_app

console = Console()
app = typer.Typer(help="DriftLint - background LLM diagnostics that track moving code")


def _setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(level=level, format="[%(levelname)s] %(message)s")


def _ensure_db_parent(db_path: Path) -> None:
    db_path.parent.mkdir(parents=True, exist_ok=True)


def _load_settings(config_path: Path | None, db: Path | None) -> tuple[ConfigSource, Path]:
    source = load_config_source(config_path)
    try:
        config = source.current()
    except ConfigurationError as exc:
        raise typer.BadParameter(str(exc)) from exc
    resolved_db = Path(db) if db is not None else config.resolve_db_path(Path.cwd())
    return source, resolved_db


def _issues_table(path: Path, issues: List[ReconciledIssue]) -> Table:
    table = Table(show_header=True, header_style="bold magenta", title=str(path))
    table.add_column("Line")
    table.add_column("Col")
    table.add_column("Drift")
    table.add_column("Message")
    for issue in issues:
        line = str(issue.line)
        if issue.line != issue.original_line:
            line = f"{issue.line} (was {issue.original_line})"
        table.add_row(line, str(issue.column), issue.drift, issue.message)
    return table


@app.command()
def check(
    inputs: List[Path] = typer.Argument(
        ..., help="Files or directories to analyze.", exists=True, resolve_path=True
    ),
    config_path: Optional[Path] = typer.Option(None, "--config", "-c", help="JSON settings file"),
    db: Path = typer.Option(None, "--db", help="SQLite ledger path"),
    record: bool = typer.Option(
        False, "--record", help="Record analyzed fingerprints in the ledger"
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose logging"),
) -> None:
    """Analyze files once and print the reconciled issues."""
    _setup_logging(verbose)
    source, resolved_db = _load_settings(config_path, db)
    _ensure_db_parent(resolved_db)

    paths = list(iter_source_paths(inputs))
    if not paths:
        console.print("[yellow]No files found.[/yellow]")
        return

    ledger = SQLiteHashLedger(resolved_db)
    analyzer = LLMAnalyzer(source)
    service = DiagnosticsService(source, ledger, analyzer)

    async def _run() -> dict[Path, Optional[List[ReconciledIssue]]]:
        results: dict[Path, Optional[List[ReconciledIssue]]] = {}
        try:
            for path in paths:
                results[path] = await service.analyze_now(str(path), record=record)
        finally:
            await analyzer.aclose()
        return results

    try:
        results = asyncio.run(_run())
    finally:
        ledger.close()

    analyzed = skipped = found = 0
    for path, issues in results.items():
        if issues is None:
            skipped += 1
            continue
        analyzed += 1
        found += len(issues)
        if issues:
            console.print(_issues_table(path, issues))
    console.print(f"Analyzed: {analyzed}, skipped: {skipped}, issues: {found}")


@app.command()
def watch(
    roots: List[Path] = typer.Argument(
        ..., help="Directories to watch.", exists=True, file_okay=False, resolve_path=True
    ),
    config_path: Optional[Path] = typer.Option(None, "--config", "-c", help="JSON settings file"),
    db: Path = typer.Option(None, "--db", help="SQLite ledger path"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose logging"),
) -> None:
    """Watch directories and analyze files shortly after they are saved."""
    _setup_logging(verbose)
    source, resolved_db = _load_settings(config_path, db)
    _ensure_db_parent(resolved_db)

    ledger = SQLiteHashLedger(resolved_db)
    analyzer = LLMAnalyzer(source)
    service = DiagnosticsService(source, ledger, analyzer)

    async def _run() -> None:
        loop = asyncio.get_running_loop()
        stop = asyncio.Event()
        try:
            loop.add_signal_handler(signal.SIGINT, stop.set)
            loop.add_signal_handler(signal.SIGTERM, stop.set)
        except (NotImplementedError, RuntimeError):
            # Windows event loops have no signal handlers; Ctrl+C still raises.
            pass

        watcher = WorkspaceWatcher(roots, service, loop, ignore_paths=[resolved_db])
        watcher.start()
        console.print(f"Watching {', '.join(str(root) for root in roots)} (Ctrl+C to stop)")
        try:
            await stop.wait()
        finally:
            watcher.stop()
            service.dispose()
            await service.wait_idle()
            await analyzer.aclose()

    try:
        asyncio.run(_run())
    except KeyboardInterrupt:
        pass
    finally:
        ledger.close()
    console.print("Stopped.")


@app.command("ledger")
def show_ledger(
    db: Path = typer.Option(None, "--db", help="SQLite ledger path"),
    config_path: Optional[Path] = typer.Option(None, "--config", "-c", help="JSON settings file"),
) -> None:
    """List documents and the fingerprint they were last analyzed at."""
    _, resolved_db = _load_settings(config_path, db)
    if not resolved_db.exists():
        console.print("[yellow]Ledger not found, nothing analyzed yet.[/yellow]")
        return

    ledger = SQLiteHashLedger(resolved_db)
    try:
        entries = ledger.list_entries()
    finally:
        ledger.close()
    if not entries:
        console.print("[yellow]Ledger is empty.[/yellow]")
        return

    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Document")
    table.add_column("Fingerprint")
    table.add_column("Updated")
    for entry in entries:
        table.add_row(entry.document_id, entry.fingerprint[:16], entry.updated_at)
    console.print(table)


@app.command()
def prune(
    db: Path = typer.Option(None, "--db", help="SQLite ledger path"),
    config_path: Optional[Path] = typer.Option(None, "--config", "-c", help="JSON settings file"),
) -> None:
    """Remove ledger entries for files that no longer exist on disk."""
    _, resolved_db = _load_settings(config_path, db)
    if not resolved_db.exists():
        console.print("[yellow]Ledger not found, nothing to prune.[/yellow]")
        return

    ledger = SQLiteHashLedger(resolved_db)
    try:
        removed = ledger.remove_missing_files()
    finally:
        ledger.close()
    console.print(f"Removed {removed} orphaned entries.")


@app.command()
def serve(
    host: str = typer.Option("127.0.0.1", help="Host interface"),
    port: int = typer.Option(8765, help="Server port"),
    config_path: Optional[Path] = typer.Option(None, "--config", "-c", help="JSON settings file"),
) -> None:
    """Start the HTTP endpoint that editor integrations post events to."""
    try:
        import uvicorn
    except ImportError as exc:  # pragma: no cover - defensive
        raise typer.BadParameter(
            "uvicorn is not installed. Install it with \"python -m pip install uvicorn\""
        ) from exc

    if config_path is not None:
        os.environ[CONFIG_ENV] = str(config_path.expanduser().resolve())

    console.print(f"Starting DriftLint service on http://{host}:{port}")
    uvicorn.run(
        web_app,
        host=host,
        port=port,
        reload=False,
        log_level="info",
    )
