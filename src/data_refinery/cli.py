"""CLI entry point for data-refinery."""

from __future__ import annotations

import logging
from collections.abc import Callable
from pathlib import Path
from typing import NoReturn

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table as RichTable

from data_refinery import __version__
from data_refinery.controller import PREVIEW_ROWS, RefineryController
from data_refinery.engine import CombinedEngine, ExecutionEngine, LocalEngine, ScriptEngine
from data_refinery.io import write_json
from data_refinery.models import AppliedOperation, Notification, RunManifest
from data_refinery.utils import sha256_file, utcnow_iso

app = typer.Typer(
    name="drefine",
    help="data-refinery — Tidy messy spreadsheets and re-export them as clean workbooks.",
    add_completion=False,
    no_args_is_help=True,
)
console = Console()

_NOTE_MARKERS = {
    "success": "[cyan]✓[/cyan]",
    "info": "[dim]i[/dim]",
    "error": "[red]x[/red]",
}


def _noop(*_args: object, **_kwargs: object) -> None:
    return None


def _printer(quiet: bool) -> Callable[..., None]:
    return _noop if quiet else console.print


def _err(msg: str) -> None:
    console.print(f"[red]x[/red] {msg}")


def _notifier(quiet: bool) -> Callable[[Notification], None]:
    def _show(note: Notification) -> None:
        if quiet and note.kind != "error":
            return
        console.print(f"{_NOTE_MARKERS[note.kind]} {note.message}")

    return _show


# ── Helpers ──────────────────────────────────────────────────────


def _version_callback(value: bool) -> None:
    if value:
        console.print(f"data-refinery v{__version__}")
        raise typer.Exit()


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )


def _build_engine(scripts: Path | None) -> ExecutionEngine:
    """Return the built-in engine, plus a bootstrapped script engine for *scripts*."""
    local = LocalEngine()
    if scripts is None:
        return local
    engine = ScriptEngine.from_directory(scripts)
    if not engine.start():
        raise ValueError(f"Could not start the script interpreter ({engine.interpreter})")
    return CombinedEngine(local, engine)


def _write_manifest(
    out_dir: Path,
    input_file: Path,
    created_at: str,
    *,
    rows_in: int = 0,
    rows_out: int = 0,
    output_path: Path | None = None,
    operations: list[AppliedOperation] | None = None,
    status: str = "success",
    error_message: str = "",
) -> Path:
    sha256 = ""
    try:
        sha256 = sha256_file(input_file)
    except OSError:
        pass

    manifest = RunManifest(
        version=__version__,
        input_path=str(input_file.resolve()),
        output_path=str(output_path.resolve()) if output_path else "",
        created_at_utc=created_at,
        rows_in=rows_in,
        rows_out=rows_out,
        sha256=sha256,
        operations=list(operations or []),
        status=status,
        error_message=error_message,
    )
    return write_json(out_dir / "run_manifest.json", manifest.to_dict())


# ── Callbacks ────────────────────────────────────────────────────


@app.callback()
def main(
    version: bool | None = typer.Option(
        None, "--version", "-V",
        help="Show version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
    verbose: bool = typer.Option(
        False, "--verbose", "-v",
        help="Log diagnostic detail to stderr.",
    ),
) -> None:
    """data-refinery CLI."""
    _configure_logging(verbose)


# ── clean command ────────────────────────────────────────────────


@app.command()
def clean(
    input_file: Path = typer.Option(
        ..., "--input", "-i",
        help="Path to a CSV, TSV or Excel file.",
        exists=True, readable=True,
    ),
    out_dir: Path = typer.Option(
        Path("output"), "--out-dir", "-o",
        help="Output directory for the refined workbook + manifest.",
    ),
    op_ids: list[str] | None = typer.Option(
        None, "--op",
        help=(
            "Cleaning operation to apply, in order. Repeatable. "
            "E.g. --op normalize-whitespace --op dedupe"
        ),
    ),
    scripts: Path | None = typer.Option(
        None, "--scripts",
        help="Directory of transform scripts (*.py) run by a separate interpreter.",
        exists=True, file_okay=False,
    ),
    delimiter: str | None = typer.Option(
        None, "--delimiter", "-d",
        help="Delimiter for text input (sniffed when omitted).",
    ),
    name: str | None = typer.Option(
        None, "--name", "-n",
        help="Output name (default: input file name without extension).",
    ),
    quiet: bool = typer.Option(
        False, "--quiet", "-q",
        help="Suppress informational output; errors are still shown.",
    ),
) -> None:
    """Load a spreadsheet, apply cleaning operations, export <name>_refined.xlsx."""
    echo = _printer(quiet)
    created_at = utcnow_iso()
    out_dir.mkdir(parents=True, exist_ok=True)
    applied: list[AppliedOperation] = []

    def _fail(message: str, *, rows_in: int = 0, code: int = 2) -> NoReturn:
        manifest_path = _write_manifest(
            out_dir, input_file, created_at,
            rows_in=rows_in, operations=applied,
            status="failed", error_message=message,
        )
        console.print(f"  Manifest -> {manifest_path}")
        raise typer.Exit(code=code)

    try:
        engine = _build_engine(scripts)
    except (ValueError, OSError) as exc:
        _err(str(exc))
        _fail(str(exc))

    controller = RefineryController(engine, on_notify=_notifier(quiet))

    if not quiet:
        console.print(Panel(
            f"[bold]data-refinery[/bold] v{__version__}\n"
            f"Input:  {input_file}\nOutput: {out_dir}",
            title="Refinery Start", border_style="cyan",
        ))

    # ── Load ─────────────────────────────────────────────────────
    echo("[blue]>[/blue] Loading input file …")
    if not controller.load(input_file, delimiter=delimiter):
        note = controller.notification
        _fail(note.message if note else "Could not load input file.")
    dataset = controller.dataset
    if dataset is None:
        _fail("Could not load input file.")
    rows_in = dataset.row_count
    echo(f"  {rows_in} rows x {len(dataset.headers)} columns")
    if name:
        controller.display_name = name

    try:
        # ── Clean ────────────────────────────────────────────────
        for op_id in op_ids or []:
            echo(f"[blue]>[/blue] {op_id} …")
            if not controller.apply(op_id):
                note = controller.notification
                _fail(note.message if note else f"Operation {op_id!r} failed.", rows_in=rows_in)
            result = controller.last_result
            if result is None:
                _fail(f"Operation {op_id!r} produced no result.", rows_in=rows_in)
            applied.append(
                AppliedOperation(operation=op_id, affected=result.affected, message=result.message)
            )

        # ── Export ───────────────────────────────────────────────
        echo("[blue]>[/blue] Exporting …")
        report_path = controller.export(out_dir)
        if report_path is None:
            note = controller.notification
            _fail(note.message if note else "Export failed.", rows_in=rows_in)
        echo(f"  Workbook -> {report_path}")

        rows_out = controller.dataset.row_count if controller.dataset else 0
        manifest_path = _write_manifest(
            out_dir, input_file, created_at,
            rows_in=rows_in, rows_out=rows_out,
            output_path=report_path, operations=applied,
        )
        echo(f"  Manifest -> {manifest_path}")

        if not quiet:
            console.print(Panel(
                f"[green]Done[/green] — {rows_out} rows -> {report_path}",
                title="Refinery Complete", border_style="green",
            ))
    except typer.Exit:
        raise
    except Exception as exc:
        message = f"Unexpected internal error: {exc}"
        _err(message)
        _fail(message, rows_in=rows_in, code=1)


# ── preview command ──────────────────────────────────────────────


@app.command()
def preview(
    input_file: Path = typer.Option(
        ..., "--input", "-i",
        help="Path to a CSV, TSV or Excel file.",
        exists=True, readable=True,
    ),
    rows: int = typer.Option(
        PREVIEW_ROWS, "--rows", "-r",
        min=1,
        help="Number of rows to show.",
    ),
    delimiter: str | None = typer.Option(
        None, "--delimiter", "-d",
        help="Delimiter for text input (sniffed when omitted).",
    ),
) -> None:
    """Show the first rows of a spreadsheet as the refinery sees them."""
    controller = RefineryController(on_notify=_notifier(quiet=True))
    if not controller.load(input_file, delimiter=delimiter):
        note = controller.notification
        if note is not None and note.kind != "error":
            console.print(f"{_NOTE_MARKERS[note.kind]} {note.message}")
        raise typer.Exit(code=2)

    grid = controller.preview(rows)
    total = controller.dataset.row_count if controller.dataset else 0
    tbl = RichTable(title=controller.display_name, show_lines=False)
    tbl.add_column("#", style="dim", justify="right")
    for header in grid[0]:
        tbl.add_column(header, overflow="ellipsis", max_width=40)
    for idx, values in enumerate(grid[1:], 1):
        tbl.add_row(str(idx), *values)
    if total > rows:
        tbl.caption = f"Showing first {rows} rows of {total:,} records"
    console.print(tbl)
    console.print(f"  {total} rows x {len(grid[0])} cols")


# ── ops command ──────────────────────────────────────────────────


@app.command()
def ops(
    scripts: Path | None = typer.Option(
        None, "--scripts",
        help="Also list transform scripts found in this directory.",
        exists=True, file_okay=False,
    ),
) -> None:
    """List the available cleaning operations."""
    tbl = RichTable(title="Operations")
    tbl.add_column("Id", style="bold")
    tbl.add_column("Description")
    for op_id, label in LocalEngine().operations().items():
        tbl.add_row(op_id, label)
    if scripts is not None:
        for op_id, label in ScriptEngine.from_directory(scripts).operations().items():
            tbl.add_row(op_id, label)
    console.print(tbl)
