"""Data models used across the package — datasets, notifications, run records."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from numbers import Integral
from typing import Any, Literal, Union

CellValue = Union[str, int, float, bool, None]
Row = dict[str, CellValue]
NotificationKind = Literal["success", "info", "error"]

_SCALAR_TYPES = (str, int, float, bool)
_NOTIFICATION_KINDS = ("success", "info", "error")


def _to_non_negative_int(value: Any, field_name: str) -> int:
    if isinstance(value, bool) or not isinstance(value, Integral):
        raise TypeError(f"{field_name} must be an integer")
    result = int(value)
    if result < 0:
        raise ValueError(f"{field_name} must be >= 0")
    return result


def _to_header_list(values: Sequence[Any]) -> list[str]:
    if isinstance(values, str):
        raise TypeError("headers must be a sequence of strings")
    headers: list[str] = []
    for item in values:
        if not isinstance(item, str):
            raise TypeError("headers items must be strings")
        headers.append(item)
    if len(set(headers)) != len(headers):
        raise ValueError("headers must be unique")
    return headers


def cell_text(value: CellValue) -> str:
    """Return the canonical string form of a cell.

    ``None`` is the empty string, booleans are ``true``/``false`` and integral
    floats drop their fractional part, so ``1``, ``1.0`` and ``"1"`` all
    render as ``"1"``.
    """
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


@dataclass
class Dataset:
    """An in-memory table: unique ordered headers plus ordered rows.

    Contract invariant: every row has exactly one scalar value per header.
    """

    headers: list[str] = field(default_factory=list)
    rows: list[Row] = field(default_factory=list)

    def __post_init__(self) -> None:
        self.headers = _to_header_list(self.headers)
        expected = set(self.headers)
        rows: list[Row] = []
        for idx, row in enumerate(self.rows):
            if not isinstance(row, Mapping):
                raise TypeError(f"row {idx} must be a mapping")
            keys = set(row)
            if keys != expected:
                missing = sorted(expected - keys)
                extra = sorted(str(k) for k in keys - expected)
                raise ValueError(
                    f"row {idx} does not match headers (missing={missing}, extra={extra})"
                )
            for key, value in row.items():
                if value is not None and not isinstance(value, _SCALAR_TYPES):
                    raise TypeError(
                        f"row {idx} cell {key!r} has unsupported type {type(value).__name__}"
                    )
            rows.append(dict(row))
        self.rows = rows

    @property
    def row_count(self) -> int:
        return len(self.rows)

    @property
    def is_empty(self) -> bool:
        return not self.rows

    def with_rows(self, rows: Sequence[Row]) -> Dataset:
        """Return a new dataset with the same headers and *rows*."""
        return Dataset(headers=list(self.headers), rows=list(rows))

    def records(self) -> list[list[CellValue]]:
        """Return the rows as lists, cells ordered by header sequence."""
        return [[row.get(h, "") for h in self.headers] for row in self.rows]

    def to_dict(self) -> dict[str, Any]:
        return {
            "headers": list(self.headers),
            "rows": [dict(row) for row in self.rows],
        }

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> Dataset:
        if not isinstance(payload, Mapping):
            raise TypeError("dataset payload must be an object")
        try:
            headers = payload["headers"]
            rows = payload["rows"]
        except KeyError as exc:
            raise ValueError(f"dataset payload is missing {exc.args[0]!r}") from exc
        if not isinstance(rows, list):
            raise TypeError("rows must be a list")
        return cls(headers=headers, rows=rows)


@dataclass
class Notification:
    """A short-lived user-facing message."""

    message: str
    kind: NotificationKind = "success"
    created_at: float = 0.0
    ttl: float = 3.0

    def __post_init__(self) -> None:
        if self.kind not in _NOTIFICATION_KINDS:
            raise ValueError(f"kind must be one of {', '.join(_NOTIFICATION_KINDS)}")
        if self.ttl < 0:
            raise ValueError("ttl must be >= 0")

    def is_expired(self, now: float) -> bool:
        return now - self.created_at >= self.ttl


@dataclass
class OperationResult:
    """Outcome of one transform: the new dataset plus what to tell the user."""

    dataset: Dataset
    affected: int = 0
    message: str = ""
    kind: NotificationKind = "success"

    def __post_init__(self) -> None:
        self.affected = _to_non_negative_int(self.affected, "affected")
        if self.kind not in _NOTIFICATION_KINDS:
            raise ValueError(f"kind must be one of {', '.join(_NOTIFICATION_KINDS)}")


@dataclass
class AppliedOperation:
    operation: str
    affected: int = 0
    message: str = ""

    def __post_init__(self) -> None:
        self.affected = _to_non_negative_int(self.affected, "affected")

    def to_dict(self) -> dict[str, Any]:
        return {
            "operation": self.operation,
            "affected": self.affected,
            "message": self.message,
        }


@dataclass
class RunManifest:
    """Audit-trail manifest for a single ``drefine clean`` run."""

    tool: str = "data-refinery"
    version: str = ""
    input_path: str = ""
    output_path: str = ""
    created_at_utc: str = ""
    rows_in: int = 0
    rows_out: int = 0
    sha256: str = ""
    operations: list[AppliedOperation] = field(default_factory=list)
    status: str = "success"
    error_message: str = ""

    def __post_init__(self) -> None:
        self.rows_in = _to_non_negative_int(self.rows_in, "rows_in")
        self.rows_out = _to_non_negative_int(self.rows_out, "rows_out")
        if self.status not in ("success", "failed"):
            raise ValueError("status must be 'success' or 'failed'")

    def to_dict(self) -> dict[str, Any]:
        return {
            "tool": self.tool,
            "version": self.version,
            "input_path": self.input_path,
            "output_path": self.output_path,
            "created_at_utc": self.created_at_utc,
            "rows_in": self.rows_in,
            "rows_out": self.rows_out,
            "sha256": self.sha256,
            "operations": [op.to_dict() for op in self.operations],
            "status": self.status,
            "error_message": self.error_message,
        }
