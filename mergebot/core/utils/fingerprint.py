"""
Content fingerprints used to notice that a file changed between two
pipeline stages.  Not a security boundary.
"""
from __future__ import annotations

import hashlib
from pathlib import Path

FINGERPRINT_BYTES = 16


def fingerprint(path: Path | str) -> str:
    """
    Hex SHA-256 of `path`, truncated to its first FINGERPRINT_BYTES bytes.

    A missing file raises FileNotFoundError; callers must not treat that
    as "no content".
    """
    h = hashlib.sha256()
    with open(path, "rb") as fp:
        for chunk in iter(lambda: fp.read(64 * 1024), b""):
            h.update(chunk)
    return h.digest()[:FINGERPRINT_BYTES].hex()
