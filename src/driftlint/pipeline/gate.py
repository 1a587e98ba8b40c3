"""Decide whether a document change is worth analyzing."""

from __future__ import annotations

import logging
from typing import Protocol

from driftlint.config import AppConfig
from driftlint.models import GateDecision
from driftlint.utils.files import file_extension
from driftlint.utils.hashing import fingerprint as compute_fingerprint

LOGGER = logging.getLogger(__name__)


class FingerprintLookup(Protocol):
    def get(self, document_id: str) -> str | None: ...


def filter_rejection(
    config: AppConfig, language_tag: str, file_path: str
) -> GateDecision | None:
    """Return a rejecting decision if settings exclude the file, else None."""
    if not config.enabled:
        LOGGER.info("Background diagnostics are disabled. Skipping analysis.")
        return GateDecision(proceed=False, reason="disabled")

    if config.languages and language_tag not in config.languages:
        LOGGER.info(
            "Language '%s' is not enabled for analysis. Skipping analysis for: %s",
            language_tag,
            file_path,
        )
        return GateDecision(proceed=False, reason="language")

    extension = file_extension(file_path)
    excluded = {ext.lower() for ext in config.excluded_extensions}
    if extension and extension in excluded:
        LOGGER.info(
            "File extension '%s' is excluded from analysis. Skipping analysis for: %s",
            extension,
            file_path,
        )
        return GateDecision(proceed=False, reason="extension")
    return None


class ChangeGate:
    """Filters plus fingerprint comparison against the ledger. Side-effect free."""

    def __init__(self, ledger: FingerprintLookup) -> None:
        self.ledger = ledger

    def should_consider(
        self,
        document_id: str,
        current_text: str,
        language_tag: str,
        file_path: str,
        filter_config: AppConfig,
    ) -> GateDecision:
        rejected = filter_rejection(filter_config, language_tag, file_path)
        if rejected is not None:
            return rejected

        current = compute_fingerprint(current_text)
        stored = self.ledger.get(document_id)
        if stored == current:
            LOGGER.info("Content unchanged (hash match), skipping analysis for: %s", document_id)
            return GateDecision(
                proceed=False, reason="unchanged", fingerprint=current, previous=stored
            )

        LOGGER.info("Content changed (hash mismatch), scheduling analysis for: %s", document_id)
        return GateDecision(proceed=True, reason="changed", fingerprint=current, previous=stored)
