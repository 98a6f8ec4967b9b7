"""Header sanitisation and cleaning-operation contracts."""

from __future__ import annotations

import math

import pytest

from data_refinery import pipeline as pipeline_mod
from data_refinery.models import Dataset
from data_refinery.pipeline import (
    OPERATIONS,
    apply_operation,
    get_operation,
    normalize_whitespace,
    register_operation,
    remove_duplicates,
    remove_empty_rows,
    sanitize_headers,
    standardize_case,
    title_case_text,
)


def _ds(headers: list[str], *rows: tuple[object, ...]) -> Dataset:
    return Dataset(headers=headers, rows=[dict(zip(headers, r)) for r in rows])  # type: ignore[misc]


# ── Header sanitisation ─────────────────────────────────────────


def test_duplicate_headers_get_numbered_suffixes() -> None:
    assert sanitize_headers(["Name", "Name"]) == ["Name", "Name_2"]
    assert sanitize_headers(["a", "b", "a", "a"]) == ["a", "b", "a_2", "a_3"]


def test_blank_headers_become_untitled() -> None:
    assert sanitize_headers([None, "  ", "", float("nan")]) == [
        "Untitled",
        "Untitled_2",
        "Untitled_3",
        "Untitled_4",
    ]


def test_headers_are_trimmed_and_stringified() -> None:
    assert sanitize_headers(["  Price ", 2024, True]) == ["Price", "2024", "True"]


def test_generated_suffix_never_collides_with_a_real_header() -> None:
    assert sanitize_headers(["A", "A", "A_2"]) == ["A", "A_2", "A_2_2"]
    assert sanitize_headers(["A_2", "A", "A"]) == ["A_2", "A", "A_3"]


@pytest.mark.parametrize(
    "raw",
    [
        [],
        ["x"],
        ["x", "x", "x_2", None, "", "x_3", "x"],
        [1, "1", 1.5, None, None, "Untitled"],
    ],
)
def test_sanitized_headers_are_unique_non_empty_and_same_length(raw: list[object]) -> None:
    out = sanitize_headers(raw)

    assert len(out) == len(raw)
    assert all(isinstance(h, str) and h for h in out)
    assert len(set(out)) == len(out)


# ── Registry ────────────────────────────────────────────────────


def test_builtin_operations_are_registered() -> None:
    assert {"dedupe", "normalize-whitespace", "drop-empty", "title-case"} <= set(OPERATIONS)


def test_get_operation_unknown_lists_known_ids() -> None:
    with pytest.raises(KeyError, match="Known: .*dedupe"):
        get_operation("sort")


def test_register_operation_rejects_duplicate_ids() -> None:
    with pytest.raises(ValueError, match="already registered"):
        register_operation("dedupe", "Again")(remove_duplicates)


def test_registered_operation_is_callable_through_registry(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(pipeline_mod, "OPERATIONS", dict(OPERATIONS))

    @register_operation("upper-first", "Uppercase first column")
    def _upper(ds: Dataset):  # type: ignore[no-untyped-def]
        first = ds.headers[0]
        rows = [{**r, first: str(r[first]).upper()} for r in ds.rows]
        return pipeline_mod.OperationResult(ds.with_rows(rows), len(rows), "Upper.")

    result = apply_operation(_ds(["a"], ("x",)), "upper-first")

    assert result.dataset.rows == [{"a": "X"}]


@pytest.mark.parametrize("op_id", ["dedupe", "normalize-whitespace", "drop-empty", "title-case"])
def test_every_operation_is_a_noop_on_empty_dataset(op_id: str) -> None:
    empty = Dataset(headers=["a", "b"])

    result = apply_operation(empty, op_id)

    assert result.dataset is empty
    assert result.affected == 0
    assert result.kind == "info"
    assert "Nothing to do" in result.message


# ── Deduplicate ─────────────────────────────────────────────────


def test_dedupe_keeps_first_occurrence_in_order() -> None:
    ds = _ds(["a", "b"], ("x", 1), ("y", 2), ("x", 1), ("z", 3), ("y", 2))

    result = remove_duplicates(ds)

    assert result.dataset.rows == [{"a": "x", "b": 1}, {"a": "y", "b": 2}, {"a": "z", "b": 3}]
    assert result.affected == 2
    assert result.message == "Removed 2 duplicate rows."
    assert result.kind == "success"
    assert ds.row_count == 5


def test_dedupe_compares_string_forms() -> None:
    ds = _ds(["a"], (1,), ("1",), (1.0,))

    result = remove_duplicates(ds)

    assert result.dataset.rows == [{"a": 1}]
    assert result.affected == 2


def test_dedupe_does_not_merge_across_cell_boundaries() -> None:
    ds = _ds(["a", "b"], ("ab", "c"), ("a", "bc"))

    assert remove_duplicates(ds).dataset.row_count == 2


def test_dedupe_without_duplicates_reports_info() -> None:
    result = remove_duplicates(_ds(["a"], ("x",), ("y",)))

    assert result.affected == 0
    assert result.kind == "info"
    assert result.message == "No duplicates found."


def test_dedupe_is_idempotent() -> None:
    ds = _ds(["a", "b"], ("x", 1), ("x", "1"), ("y", None), ("y", ""), ("z", True))

    once = remove_duplicates(ds).dataset
    twice = remove_duplicates(once)

    assert twice.dataset == once
    assert twice.affected == 0


# ── Normalize whitespace ────────────────────────────────────────


def test_normalize_whitespace_collapses_runs_and_nbsp() -> None:
    ds = _ds(["a", "b"], ("  Ada   Lovelace\t", 7), ("clean", 8))

    result = normalize_whitespace(ds)

    assert result.dataset.rows[0] == {"a": "Ada Lovelace", "b": 7}
    assert result.dataset.rows[1] == {"a": "clean", "b": 8}
    assert result.affected == 1
    assert result.message == "Deep cleaned 1 rows."


def test_normalize_whitespace_leaves_non_strings_alone() -> None:
    ds = _ds(["n", "flag", "none"], (1.5, True, None))

    result = normalize_whitespace(ds)

    assert result.dataset.rows == [{"n": 1.5, "flag": True, "none": None}]
    assert result.kind == "info"
    assert result.message == "Data is already clean."


def test_normalize_then_dedupe_collapses_padded_duplicates() -> None:
    ds = _ds(["A"], ("  x  ",), ("x",))

    cleaned = normalize_whitespace(ds).dataset
    result = remove_duplicates(cleaned)

    assert result.dataset.rows == [{"A": "x"}]


# ── Drop empty rows ─────────────────────────────────────────────


def test_drop_empty_removes_blank_rows() -> None:
    ds = _ds(["a", "b"], ("x", "1"), ("", ""), ("y", "2"))

    result = remove_empty_rows(ds)

    assert result.dataset.rows == [{"a": "x", "b": "1"}, {"a": "y", "b": "2"}]
    assert result.affected == 1
    assert result.message == "Removed 1 empty rows."


def test_drop_empty_treats_whitespace_and_none_as_empty_but_not_zero() -> None:
    ds = _ds(["a", "b"], ("   ", None), (0, ""), (False, None))

    result = remove_empty_rows(ds)

    assert result.dataset.rows == [{"a": 0, "b": ""}, {"a": False, "b": None}]
    assert result.affected == 1


def test_drop_empty_does_not_impute_cells() -> None:
    ds = _ds(["a", "b"], ("x", ""),)

    result = remove_empty_rows(ds)

    assert result.dataset.rows == [{"a": "x", "b": ""}]
    assert result.kind == "info"
    assert result.message == "No empty rows found."


def test_drop_empty_is_idempotent_and_monotonic() -> None:
    ds = _ds(["a"], ("",), ("x",), (" ",), (None,), ("y",))

    first = remove_empty_rows(ds)
    second = remove_empty_rows(first.dataset)

    assert first.dataset.row_count <= ds.row_count
    assert second.affected == 0
    assert second.dataset == first.dataset


# ── Title case ──────────────────────────────────────────────────


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("hello WORLD", "Hello World"),
        ("o'brien", "O'brien"),
        ("mary-jane SMITH", "Mary-jane Smith"),
        ("NASA launch", "Nasa Launch"),
        ("  spaced   out ", "  Spaced   Out "),
        ("(quoted) text", "(Quoted) Text"),
        ("", ""),
    ],
)
def test_title_case_text(raw: str, expected: str) -> None:
    assert title_case_text(raw) == expected


def test_title_case_always_reports_success_and_skips_non_strings() -> None:
    ds = _ds(["a", "b"], ("Already Title", 3))

    result = standardize_case(ds)

    assert result.dataset.rows == [{"a": "Already Title", "b": 3}]
    assert result.kind == "success"
    assert result.message == "Standardized text case (Title Case)."


def test_title_case_is_idempotent() -> None:
    ds = _ds(["a"], ("mIxEd cAsE o'neil",), ("straße café",), ("x-ray 3d",))

    once = standardize_case(ds).dataset
    twice = standardize_case(once).dataset

    assert twice == once


def test_operations_never_mutate_input_rows() -> None:
    ds = _ds(["a"], ("  x  ",), ("  x  ",), ("",))
    snapshot = [dict(r) for r in ds.rows]

    for op_id in ("dedupe", "normalize-whitespace", "drop-empty", "title-case"):
        apply_operation(ds, op_id)

    assert ds.rows == snapshot


def test_nan_header_is_untitled() -> None:
    assert sanitize_headers([math.nan]) == ["Untitled"]
