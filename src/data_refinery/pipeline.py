"""Header sanitisation + cleaning operations — pure functions, no side effects."""

from __future__ import annotations

import functools
import re
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from typing import Any

import pandas as pd

from data_refinery import UNTITLED_HEADER
from data_refinery.models import CellValue, Dataset, OperationResult, Row, cell_text

# ── Header sanitisation ─────────────────────────────────────────


def _clean_header_cell(cell: Any) -> str:
    if cell is None:
        return UNTITLED_HEADER
    try:
        if pd.isna(cell):
            return UNTITLED_HEADER
    except (TypeError, ValueError):
        pass
    return str(cell).strip() or UNTITLED_HEADER


def sanitize_headers(raw_headers: Iterable[Any]) -> list[str]:
    """Turn raw header cells into unique, non-empty column names.

    Blank cells become ``Untitled``. Repeats are suffixed ``_2``, ``_3``, …
    in order of appearance, skipping any suffix an earlier column already
    owns, so ``["A", "A", "A_2"]`` becomes ``["A", "A_2", "A_2_2"]``.
    """
    counts: dict[str, int] = {}
    used: set[str] = set()
    result: list[str] = []
    for cell in raw_headers:
        name = _clean_header_cell(cell)
        n = counts.get(name, 0) + 1
        candidate = name if n == 1 else f"{name}_{n}"
        while candidate in used:
            n += 1
            candidate = f"{name}_{n}"
        counts[name] = n
        used.add(candidate)
        result.append(candidate)
    return result


# ── Operation registry ──────────────────────────────────────────

OperationFunc = Callable[[Dataset], OperationResult]


@dataclass(frozen=True)
class Operation:
    id: str
    label: str
    func: OperationFunc

    def __call__(self, dataset: Dataset) -> OperationResult:
        return self.func(dataset)


OPERATIONS: dict[str, Operation] = {}


def register_operation(op_id: str, label: str) -> Callable[[OperationFunc], OperationFunc]:
    """Register *func* as the cleaning operation *op_id*."""

    def decorator(func: OperationFunc) -> OperationFunc:
        if op_id in OPERATIONS:
            raise ValueError(f"Operation already registered: {op_id!r}")

        @functools.wraps(func)
        def wrapper(dataset: Dataset) -> OperationResult:
            if dataset.is_empty:
                return _nothing_to_do(dataset)
            return func(dataset)

        OPERATIONS[op_id] = Operation(id=op_id, label=label, func=wrapper)
        return wrapper

    return decorator


def get_operation(op_id: str) -> Operation:
    try:
        return OPERATIONS[op_id]
    except KeyError:
        known = ", ".join(sorted(OPERATIONS))
        raise KeyError(f"Unknown operation {op_id!r}. Known: {known}") from None


def apply_operation(dataset: Dataset, op_id: str) -> OperationResult:
    return get_operation(op_id)(dataset)


def _nothing_to_do(dataset: Dataset) -> OperationResult:
    return OperationResult(
        dataset=dataset, affected=0, message="Nothing to do: dataset is empty.", kind="info"
    )


def _map_string_cells(dataset: Dataset, fn: Callable[[str], str]) -> tuple[list[Row], int]:
    """Apply *fn* to every string cell; return new rows and how many changed."""
    rows: list[Row] = []
    changed = 0
    for row in dataset.rows:
        new_row: Row = {}
        row_changed = False
        for key in dataset.headers:
            value: CellValue = row[key]
            if isinstance(value, str):
                cleaned = fn(value)
                if cleaned != value:
                    row_changed = True
                value = cleaned
            new_row[key] = value
        if row_changed:
            changed += 1
        rows.append(new_row)
    return rows, changed


# ── Cleaning operations ─────────────────────────────────────────

_WHITESPACE_RE = re.compile(r"[\s\u00a0]+")
_WORD_RE = re.compile(r"\w\S*")


def row_signature(dataset: Dataset, row: Row) -> tuple[str, ...]:
    return tuple(cell_text(row[h]) for h in dataset.headers)


@register_operation("dedupe", "Remove duplicate rows")
def remove_duplicates(dataset: Dataset) -> OperationResult:
    """Keep the first row of each distinct signature, in source order."""
    seen: set[tuple[str, ...]] = set()
    unique: list[Row] = []
    for row in dataset.rows:
        signature = row_signature(dataset, row)
        if signature in seen:
            continue
        seen.add(signature)
        unique.append(dict(row))

    removed = dataset.row_count - len(unique)
    out = dataset.with_rows(unique)
    if removed:
        return OperationResult(out, removed, f"Removed {removed} duplicate rows.")
    return OperationResult(out, 0, "No duplicates found.", kind="info")


def normalize_whitespace_text(value: str) -> str:
    return _WHITESPACE_RE.sub(" ", value).strip()


@register_operation("normalize-whitespace", "Deep clean whitespace")
def normalize_whitespace(dataset: Dataset) -> OperationResult:
    rows, changed = _map_string_cells(dataset, normalize_whitespace_text)
    out = dataset.with_rows(rows)
    if changed:
        return OperationResult(out, changed, f"Deep cleaned {changed} rows.")
    return OperationResult(out, 0, "Data is already clean.", kind="info")


def is_empty_row(dataset: Dataset, row: Row) -> bool:
    return all(cell_text(row[h]).strip() == "" for h in dataset.headers)


@register_operation("drop-empty", "Remove empty rows")
def remove_empty_rows(dataset: Dataset) -> OperationResult:
    kept = [dict(row) for row in dataset.rows if not is_empty_row(dataset, row)]
    removed = dataset.row_count - len(kept)
    out = dataset.with_rows(kept)
    if removed:
        return OperationResult(out, removed, f"Removed {removed} empty rows.")
    return OperationResult(out, 0, "No empty rows found.", kind="info")


def title_case_text(value: str) -> str:
    """``"o'brien SMITH-jones"`` -> ``"O'brien Smith-jones"``."""
    return _WORD_RE.sub(lambda m: m.group(0)[0].title() + m.group(0)[1:].lower(), value)


@register_operation("title-case", "Standardize text case (Title Case)")
def standardize_case(dataset: Dataset) -> OperationResult:
    rows, changed = _map_string_cells(dataset, title_case_text)
    return OperationResult(
        dataset.with_rows(rows), changed, "Standardized text case (Title Case)."
    )
