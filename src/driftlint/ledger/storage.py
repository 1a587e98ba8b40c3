"""SQLite-backed ledger of last-analyzed fingerprints."""

from __future__ import annotations

import logging
import sqlite3
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, List

from driftlint.models import LedgerEntry

LOGGER = logging.getLogger(__name__)


class SQLiteHashLedger:
    """Persistent mapping from document path to the fingerprint last analyzed.

    Entries are only written once an analysis cycle has completed. Writers
    should prefer :meth:`compare_and_set` so a slow, stale cycle cannot
    overwrite the result of a newer one.
    """

    def __init__(self, db_path: Path | str) -> None:
        self.db_path = db_path if db_path == ":memory:" else Path(db_path)
        self._lock = threading.RLock()
        self._conn = sqlite3.connect(str(self.db_path), check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        if self.db_path != ":memory:":
            self._conn.execute("PRAGMA journal_mode=WAL;")
        self._conn.execute("PRAGMA synchronous=NORMAL;")
        self._ensure_schema()

    @property
    def connection(self) -> sqlite3.Connection:
        return self._conn

    def close(self) -> None:
        self._conn.close()

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        with self._lock:
            try:
                yield self._conn
                self._conn.commit()
            except Exception:
                self._conn.rollback()
                raise

    def _ensure_schema(self) -> None:
        with self.transaction() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS fingerprints (
                    path TEXT PRIMARY KEY,
                    sha256 TEXT NOT NULL,
                    updated_at TEXT DEFAULT CURRENT_TIMESTAMP
                )
                """
            )
            conn.execute(
                """
                CREATE TRIGGER IF NOT EXISTS fingerprints_updated
                AFTER UPDATE OF sha256 ON fingerprints
                BEGIN
                    UPDATE fingerprints SET updated_at = CURRENT_TIMESTAMP WHERE path = NEW.path;
                END;
                """
            )

    def get(self, document_id: str) -> str | None:
        with self._lock:
            row = self._conn.execute(
                "SELECT sha256 FROM fingerprints WHERE path = ?", (document_id,)
            ).fetchone()
        return row["sha256"] if row else None

    def set(self, document_id: str, fingerprint: str) -> None:
        """Unconditionally record ``fingerprint`` for the document."""
        with self.transaction() as conn:
            conn.execute(
                """
                INSERT INTO fingerprints(path, sha256) VALUES (?, ?)
                ON CONFLICT(path) DO UPDATE SET sha256 = excluded.sha256
                """,
                (document_id, fingerprint),
            )

    def compare_and_set(
        self, document_id: str, expected: str | None, fingerprint: str
    ) -> bool:
        """Store ``fingerprint`` only if the current value is ``expected``.

        ``expected=None`` means the document must have no entry yet. Returns
        True when the write happened or the stored value already equals
        ``fingerprint``.
        """
        with self.transaction() as conn:
            row = conn.execute(
                "SELECT sha256 FROM fingerprints WHERE path = ?", (document_id,)
            ).fetchone()
            current = row["sha256"] if row else None
            if current == fingerprint:
                return True
            if current != expected:
                LOGGER.warning(
                    "Ledger for %s moved on (expected %s, found %s); not recording %s",
                    document_id,
                    _short(expected),
                    _short(current),
                    _short(fingerprint),
                )
                return False
            if row is None:
                conn.execute(
                    "INSERT INTO fingerprints(path, sha256) VALUES (?, ?)",
                    (document_id, fingerprint),
                )
            else:
                conn.execute(
                    "UPDATE fingerprints SET sha256 = ? WHERE path = ?",
                    (fingerprint, document_id),
                )
        return True

    def delete(self, document_id: str) -> bool:
        with self.transaction() as conn:
            cursor = conn.execute("DELETE FROM fingerprints WHERE path = ?", (document_id,))
        return cursor.rowcount > 0

    def list_entries(self) -> List[LedgerEntry]:
        with self._lock:
            rows = self._conn.execute(
                "SELECT path, sha256, updated_at FROM fingerprints ORDER BY path"
            ).fetchall()
        return [
            LedgerEntry(
                document_id=row["path"],
                fingerprint=row["sha256"],
                updated_at=row["updated_at"],
            )
            for row in rows
        ]

    def remove_missing_files(self) -> int:
        """Remove entries whose files no longer exist."""
        with self.transaction() as conn:
            rows = conn.execute("SELECT path FROM fingerprints").fetchall()
            missing = [row["path"] for row in rows if not Path(row["path"]).exists()]
            for path in missing:
                conn.execute("DELETE FROM fingerprints WHERE path = ?", (path,))
        return len(missing)


def _short(value: str | None) -> str:
    return value[:12] if value else "<none>"
