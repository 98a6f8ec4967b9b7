"""Excel export — writes the refined dataset to ``<name>_refined.xlsx``."""

from __future__ import annotations

import logging
import re
from io import BytesIO
from pathlib import Path
from typing import Any

from openpyxl import Workbook
from openpyxl.cell.cell import ILLEGAL_CHARACTERS_RE
from openpyxl.styles import Alignment, Font, PatternFill
from openpyxl.utils import get_column_letter
from openpyxl.worksheet.worksheet import Worksheet

from data_refinery.errors import EmptyInputError, ExportError
from data_refinery.models import CellValue, Dataset, cell_text
from data_refinery.utils import epoch_millis

logger = logging.getLogger(__name__)

# ── Style constants ──────────────────────────────────────────────

HEADER_FONT = Font(name="Calibri", bold=True, size=11, color="FFFFFF")
HEADER_FILL = PatternFill(start_color="0E7490", end_color="0E7490", fill_type="solid")
HEADER_ALIGN = Alignment(horizontal="center", vertical="center")

EXPORT_EXTENSION = "xlsx"
DEFAULT_SHEET_NAME = "CleanedData"
WIDTH_SAMPLE_ROWS = 100
WIDTH_PADDING = 2
MAX_COLUMN_WIDTH = 50

_SHEET_TITLE_FORBIDDEN_RE = re.compile(r"[\[\]:*?/\\]")
_SHEET_TITLE_MAX = 31


# ── Helpers ──────────────────────────────────────────────────────


def column_widths(dataset: Dataset) -> list[int]:
    """Display width per column, sampled from the first 100 rows and capped at 50."""
    sample = dataset.rows[:WIDTH_SAMPLE_ROWS]
    widths: list[int] = []
    for header in dataset.headers:
        width = len(header)
        for row in sample:
            width = max(width, len(cell_text(row.get(header))))
        widths.append(min(width + WIDTH_PADDING, MAX_COLUMN_WIDTH))
    return widths


def export_filename(display_name: str | None, *, millis: int | None = None) -> str:
    """``sales`` -> ``sales_refined.xlsx``; no name -> ``data_<epoch-ms>_refined.xlsx``."""
    name = display_name or f"data_{millis if millis is not None else epoch_millis()}"
    return f"{name}_refined.{EXPORT_EXTENSION}"


def sheet_title(name: str | None) -> str:
    """Make *name* a legal worksheet title (31 chars, no ``[]:*?/\\``)."""
    cleaned = _SHEET_TITLE_FORBIDDEN_RE.sub("_", name or "").strip().strip("'")
    return cleaned[:_SHEET_TITLE_MAX] or DEFAULT_SHEET_NAME


def _style_header(ws: Worksheet, ncols: int) -> None:
    for c in range(1, ncols + 1):
        cell = ws.cell(row=1, column=c)
        cell.font = HEADER_FONT
        cell.fill = HEADER_FILL
        cell.alignment = HEADER_ALIGN


def _excel_value(val: CellValue) -> Any:
    if val is None or val == "":
        return None
    if isinstance(val, str):
        return ILLEGAL_CHARACTERS_RE.sub("", val)
    return val


def _write_cell(ws: Worksheet, row: int, column: int, val: CellValue) -> None:
    cell = ws.cell(row=row, column=column, value=_excel_value(val))
    # openpyxl treats any "=..." string as a formula; keep user text as text.
    if isinstance(val, str) and val.startswith("="):
        cell.data_type = "s"


# ── Public API ───────────────────────────────────────────────────


def build_workbook(dataset: Dataset, sheet_name: str | None = None) -> Workbook:
    """Lay *dataset* out on a single sheet: header row first, then one row per record."""
    wb = Workbook()
    ws = wb.active
    if ws is None:
        ws = wb.create_sheet()
    ws.title = sheet_title(sheet_name)

    for c_idx, header in enumerate(dataset.headers, 1):
        _write_cell(ws, 1, c_idx, header)
    for r_idx, record in enumerate(dataset.records(), 2):
        for c_idx, val in enumerate(record, 1):
            _write_cell(ws, r_idx, c_idx, val)

    if dataset.headers:
        _style_header(ws, len(dataset.headers))
        ws.freeze_panes = "A2"
    for c_idx, width in enumerate(column_widths(dataset), 1):
        ws.column_dimensions[get_column_letter(c_idx)].width = width
    return wb


def _require_rows(dataset: Dataset) -> None:
    if dataset.is_empty:
        raise EmptyInputError("No data to export!")


def export_bytes(dataset: Dataset, display_name: str | None = None) -> bytes:
    """Return the export workbook as ``.xlsx`` bytes (for in-memory downloads)."""
    _require_rows(dataset)
    buffer = BytesIO()
    build_workbook(dataset, display_name).save(buffer)
    return buffer.getvalue()


def write_export(
    out_dir: Path,
    dataset: Dataset,
    display_name: str | None = None,
) -> Path:
    """Write ``<display_name>_refined.xlsx`` into *out_dir* and return the path.

    Raises
    ------
    EmptyInputError
        If *dataset* has no rows; nothing is written.
    ExportError
        If the workbook cannot be written.
    """
    _require_rows(dataset)

    out_dir = Path(out_dir)
    export_path = out_dir / export_filename(display_name)
    tmp_path = export_path.with_name(f"{export_path.stem}.tmp.{EXPORT_EXTENSION}")
    try:
        out_dir.mkdir(parents=True, exist_ok=True)
        build_workbook(dataset, display_name).save(tmp_path)
        tmp_path.replace(export_path)
    except OSError as exc:
        logger.debug("Export to %s failed", export_path, exc_info=True)
        try:
            tmp_path.unlink(missing_ok=True)
        except OSError:
            pass
        raise ExportError(f"Export failed: {exc}") from exc
    logger.debug("Exported %d rows to %s", dataset.row_count, export_path)
    return export_path
