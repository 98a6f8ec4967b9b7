"""Shared helpers — hashing, timestamps, file names."""

from __future__ import annotations

import hashlib
import time
from datetime import datetime, timezone
from pathlib import Path


def sha256_file(path: Path) -> str:
    """Return the hex SHA-256 digest of *path*."""
    h = hashlib.sha256()
    with open(path, "rb") as fh:
        for chunk in iter(lambda: fh.read(8192), b""):
            h.update(chunk)
    return h.hexdigest()


def utcnow_iso() -> str:
    """Return the current UTC time as an ISO-8601 string."""
    return datetime.now(timezone.utc).isoformat()


def epoch_millis() -> int:
    return time.time_ns() // 1_000_000


def display_name(filename: str) -> str:
    """Strip the last extension from *filename*: ``sales.v2.xlsx`` -> ``sales.v2``.

    Names without an extension (or dot-files like ``.env``) come back unchanged.
    """
    name = Path(filename).name
    stem, dot, _ext = name.rpartition(".")
    return stem if dot and stem else name
