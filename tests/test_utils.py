from __future__ import annotations

import hashlib
from pathlib import Path

import pytest

from data_refinery.utils import display_name, epoch_millis, sha256_file, utcnow_iso


@pytest.mark.parametrize(
    ("filename", "expected"),
    [
        ("sales.xlsx", "sales"),
        ("sales.v2.csv", "sales.v2"),
        ("README", "README"),
        (".env", ".env"),
        ("/tmp/uploads/people.csv", "people"),
    ],
)
def test_display_name_strips_last_extension(filename: str, expected: str) -> None:
    assert display_name(filename) == expected


def test_sha256_file_matches_hashlib(tmp_path: Path) -> None:
    path = tmp_path / "data.bin"
    path.write_bytes(b"refinery" * 5000)

    assert sha256_file(path) == hashlib.sha256(b"refinery" * 5000).hexdigest()


def test_timestamps_look_sane() -> None:
    assert utcnow_iso().endswith("+00:00")
    assert epoch_millis() > 1_600_000_000_000
