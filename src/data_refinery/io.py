"""I/O helpers — load uploaded tables into a Dataset, write JSON artifacts."""

from __future__ import annotations

import csv
import json
import logging
from datetime import date, datetime, time
from io import StringIO
from pathlib import Path
from typing import IO, Any, Callable, Union, cast

import pandas as pd

from data_refinery.errors import DecodeError, EmptyInputError
from data_refinery.models import CellValue, Dataset, Row
from data_refinery.pipeline import sanitize_headers
from data_refinery.utils import display_name

logger = logging.getLogger(__name__)

Source = Union[Path, str, IO[bytes]]

TEXT_SUFFIXES = (".csv", ".tsv", ".txt")
XLSX_SUFFIXES = (".xlsx", ".xlsm", ".xltx", ".xltm")
SUPPORTED_SUFFIXES = (*TEXT_SUFFIXES, *XLSX_SUFFIXES, ".xls")

_SNIFF_BYTES = 64 * 1024
_SNIFF_DELIMITERS = ",;\t|"

# ── Loading ──────────────────────────────────────────────────────


def _rewind(source: Source) -> None:
    seek = getattr(source, "seek", None)
    if callable(seek):
        seek(0)


def _read_sample(source: Source) -> bytes:
    if isinstance(source, Path):
        with open(source, "rb") as fh:
            return fh.read(_SNIFF_BYTES)
    _rewind(source)
    return cast(IO[bytes], source).read(_SNIFF_BYTES)


def sniff_delimiter(sample: str) -> str:
    """Guess the delimiter of *sample*, falling back to ``,``."""
    try:
        return csv.Sniffer().sniff(sample, delimiters=_SNIFF_DELIMITERS).delimiter
    except csv.Error:
        return ","


def _field_counts(source: Source, sep: str, encoding: str) -> tuple[int, int]:
    """Field counts of the header record and of the widest record.

    pandas sizes the grid from the first line, so a wider row later on
    would be a parse error without explicit column names.
    """
    _rewind(source)
    if isinstance(source, Path):
        text = source.read_text(encoding=encoding)
    else:
        text = cast(IO[bytes], source).read().decode(encoding)
    counts = [len(record) for record in csv.reader(StringIO(text), delimiter=sep)]
    if not counts:
        return 0, 0
    return counts[0], max(counts)


def _read_text_grid(source: Source, suffix: str, delimiter: str | None) -> pd.DataFrame:
    sep = delimiter
    if not sep:
        if suffix == ".tsv":
            sep = "\t"
        else:
            sample = _read_sample(source).decode("utf-8-sig", errors="replace")
            sep = sniff_delimiter(sample)
    if len(sep) != 1:
        raise DecodeError(f"Delimiter must be a single character, got {sep!r}")

    last_exc: Exception | None = None
    for encoding in ("utf-8-sig", "utf-8", "latin-1"):
        try:
            header_width, width = _field_counts(source, sep, encoding)
            _rewind(source)
            grid = pd.read_csv(
                source,
                header=None,
                names=range(width) if width else None,
                dtype=str,
                sep=sep,
                engine="c",
                encoding=encoding,
                encoding_errors="strict",
                keep_default_na=False,
                skip_blank_lines=False,
            )
            return grid.iloc[:, :header_width] if header_width else grid
        except UnicodeDecodeError as exc:
            last_exc = exc
        except (pd.errors.ParserError, csv.Error) as exc:
            raise DecodeError(f"Could not parse delimited text: {exc}") from exc
    raise DecodeError("Could not read delimited text (decode failed)") from last_exc


def _trim_to_header(grid: pd.DataFrame) -> pd.DataFrame:
    """Drop columns right of the last filled header cell."""
    if grid.empty:
        return grid
    filled = [idx for idx, value in enumerate(grid.iloc[0]) if not pd.isna(value)]
    return grid.iloc[:, : filled[-1] + 1] if filled else grid


def _read_grid(source: Source, suffix: str, delimiter: str | None) -> pd.DataFrame:
    if suffix in TEXT_SUFFIXES:
        return _read_text_grid(source, suffix, delimiter)

    read_excel = cast(Callable[..., pd.DataFrame], getattr(pd, "read_excel"))
    if suffix in XLSX_SUFFIXES:
        _rewind(source)
        grid = read_excel(source, sheet_name=0, header=None, dtype=object, engine="openpyxl")
        return _trim_to_header(grid)

    if suffix == ".xls":
        try:
            _rewind(source)
            grid = read_excel(source, sheet_name=0, header=None, dtype=object, engine="xlrd")
            return _trim_to_header(grid)
        except ImportError as exc:
            raise DecodeError(
                "Unsupported .xls input unless 'xlrd' is installed. "
                "Either convert to .xlsx or install the extra: pip install 'data-refinery[xls]'"
            ) from exc

    supported = ", ".join(SUPPORTED_SUFFIXES)
    raise DecodeError(f"Unsupported file type: {suffix!r}. Use one of {supported}")


def to_cell_value(value: Any) -> CellValue:
    """Map a raw grid cell onto the Dataset scalar types."""
    if value is None:
        return ""
    try:
        if pd.isna(value):
            return ""
    except (TypeError, ValueError):
        pass

    if isinstance(value, pd.Timestamp):
        value = value.to_pydatetime()
    if isinstance(value, datetime):
        if value.time() == time(0, 0):
            return value.date().isoformat()
        return value.replace(tzinfo=None).isoformat()
    if isinstance(value, (date, time)):
        return value.isoformat()

    # numpy scalars -> plain Python scalars
    item = getattr(value, "item", None)
    if callable(item) and type(value) not in (str, bool, int, float):
        value = item()

    if isinstance(value, (str, bool, int, float)):
        return value
    return str(value)


def grid_to_dataset(grid: pd.DataFrame) -> Dataset:
    """Treat row 0 of *grid* as the header row and the rest as data rows."""
    if grid.shape[0] == 0:
        raise EmptyInputError("Input file has 0 rows.")

    raw_rows = grid.itertuples(index=False, name=None)
    headers = sanitize_headers(next(raw_rows))
    rows: list[Row] = []
    for raw in raw_rows:
        row: Row = {}
        for idx, header in enumerate(headers):
            row[header] = to_cell_value(raw[idx]) if idx < len(raw) else ""
        rows.append(row)
    return Dataset(headers=headers, rows=rows)


def load_dataset(
    source: Source,
    *,
    filename: str | None = None,
    delimiter: str | None = None,
) -> tuple[Dataset, str]:
    """Load the first sheet of a CSV or Excel file.

    Returns ``(dataset, display_name)`` where ``display_name`` is the file
    name without its extension.

    Raises
    ------
    DecodeError
        If the file is missing, the extension is not supported, or the
        content cannot be parsed as a table.
    EmptyInputError
        If the first sheet has no rows at all.
    """
    if isinstance(source, (str, Path)):
        path = Path(source)
        if not path.exists():
            raise DecodeError(f"Input file not found: {path}")
        if path.is_dir():
            raise DecodeError(f"Input path is a directory, not a file: {path}")
        source = path
        filename = filename or path.name
    elif not filename:
        filename = str(getattr(source, "name", "") or "")
    if not filename:
        raise DecodeError("A file name is required to detect the file type")

    suffix = Path(filename).suffix.lower()
    try:
        grid = _read_grid(source, suffix, delimiter)
    except pd.errors.EmptyDataError as exc:
        raise EmptyInputError(f"{Path(filename).name} has 0 rows.") from exc
    except (DecodeError, EmptyInputError):
        raise
    except Exception as exc:
        logger.debug("Failed to read %s", filename, exc_info=True)
        raise DecodeError(f"Could not read {Path(filename).name}: {exc}") from exc

    dataset = grid_to_dataset(grid)
    logger.debug(
        "Loaded %s: %d rows x %d columns", filename, dataset.row_count, len(dataset.headers)
    )
    return dataset, display_name(filename)


# ── Writing ──────────────────────────────────────────────────────


def write_json(path: Path, data: Any) -> Path:
    """Write *data* as pretty-printed JSON to *path* (atomic + deterministic)."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    payload = json.dumps(
        data,
        indent=2,
        sort_keys=True,
        ensure_ascii=False,
    ) + "\n"
    tmp_path = path.with_suffix(path.suffix + ".tmp")
    tmp_path.write_text(payload, encoding="utf-8")
    tmp_path.replace(path)
    return path
