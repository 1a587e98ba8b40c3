"""Content fingerprints used for change detection."""

from __future__ import annotations

import hashlib


def fingerprint(text: str) -> str:
    """Return the SHA-256 hex digest of ``text``.

    Lone surrogates (possible in editor buffers) are encoded with
    ``surrogatepass`` so every ``str`` has a fingerprint.
    """
    return hashlib.sha256(text.encode("utf-8", "surrogatepass")).hexdigest()
