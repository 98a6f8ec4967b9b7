"""Error taxonomy shared by the loader, exporter, engines and controller."""

from __future__ import annotations


class RefineryError(Exception):
    """Base class for every recoverable data-refinery failure."""


class DecodeError(RefineryError, ValueError):
    """The input could not be read as tabular data."""


class EmptyInputError(RefineryError, ValueError):
    """There are no rows to load or export."""


class ExecutionError(RefineryError):
    """A transform could not be run (engine not ready, script failure, …)."""


class ExportError(RefineryError):
    """The workbook could not be written."""
