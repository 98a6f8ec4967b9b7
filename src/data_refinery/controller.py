"""The refinery controller. Owns the loaded dataset and drives load → clean → export."""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable
from enum import Enum
from pathlib import Path

from data_refinery.engine import ExecutionEngine, LocalEngine
from data_refinery.errors import DecodeError, EmptyInputError, ExecutionError, ExportError
from data_refinery.io import Source, load_dataset
from data_refinery.models import (
    Dataset,
    Notification,
    NotificationKind,
    OperationResult,
    cell_text,
)
from data_refinery.report import write_export

logger = logging.getLogger(__name__)

NOTIFICATION_TTL_SECONDS = 3.0
PREVIEW_ROWS = 50


class ControllerState(str, Enum):
    EMPTY = "empty"
    LOADED = "loaded"
    PROCESSING = "processing"


class RefineryController:
    """Holds the current dataset and applies one cleaning operation at a time.

    Every public action reports its outcome as a :class:`Notification` and
    returns normally; failures never leave the dataset half-changed.
    """

    def __init__(
        self,
        engine: ExecutionEngine | None = None,
        *,
        notification_ttl: float = NOTIFICATION_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
        on_notify: Callable[[Notification], None] | None = None,
    ) -> None:
        self.engine: ExecutionEngine = engine or LocalEngine()
        self.notification_ttl = notification_ttl
        self._clock = clock
        self._on_notify = on_notify
        self._busy = threading.Lock()
        self._state = ControllerState.EMPTY
        self._dataset: Dataset | None = None
        self._display_name: str | None = None
        self._notification: Notification | None = None
        self.last_result: OperationResult | None = None

    # ── State ────────────────────────────────────────────────────

    @property
    def state(self) -> ControllerState:
        return self._state

    @property
    def dataset(self) -> Dataset | None:
        return self._dataset

    @property
    def display_name(self) -> str | None:
        return self._display_name

    @display_name.setter
    def display_name(self, name: str | None) -> None:
        self._display_name = name or None

    @property
    def notification(self) -> Notification | None:
        """The current notification, or ``None`` once it has expired."""
        if self._notification is not None and self._notification.is_expired(self._clock()):
            self._notification = None
        return self._notification

    def notify(self, message: str, kind: NotificationKind = "success") -> Notification:
        note = Notification(
            message=message, kind=kind, created_at=self._clock(), ttl=self.notification_ttl
        )
        self._notification = note
        if self._on_notify is not None:
            self._on_notify(note)
        return note

    def dismiss(self) -> None:
        self._notification = None

    def _reject_if_busy(self) -> bool:
        if self._state is ControllerState.PROCESSING:
            self.notify("Another operation is still running.", "info")
            return True
        return False

    # ── Actions ──────────────────────────────────────────────────

    def load(
        self,
        source: Source,
        *,
        filename: str | None = None,
        delimiter: str | None = None,
    ) -> bool:
        """Replace the current dataset with the first sheet of *source*."""
        if self._reject_if_busy():
            return False
        try:
            dataset, name = load_dataset(source, filename=filename, delimiter=delimiter)
        except EmptyInputError as exc:
            self.notify(str(exc), "info")
            return False
        except DecodeError as exc:
            logger.debug("Load failed", exc_info=True)
            self.notify(f"Error reading file. Please try a valid Excel or CSV. ({exc})", "error")
            return False

        self._dataset = dataset
        self._display_name = name
        self.last_result = None
        self._state = ControllerState.LOADED
        self.notify(f"Loaded {dataset.row_count} rows successfully!")
        return True

    def apply(self, operation_id: str) -> bool:
        """Run one cleaning operation; the dataset is replaced only on success."""
        if self._reject_if_busy():
            return False
        if self._state is ControllerState.EMPTY or self._dataset is None:
            self.notify("Nothing to do: no file loaded.", "info")
            return False
        if not self._busy.acquire(blocking=False):
            self.notify("Another operation is still running.", "info")
            return False

        self._state = ControllerState.PROCESSING
        try:
            if not self.engine.is_ready():
                raise ExecutionError("Execution engine is not ready yet.")
            result = self.engine.run(self._dataset, operation_id)
        except ExecutionError as exc:
            self.notify(str(exc), "error")
            return False
        except Exception as exc:
            logger.exception("Operation %r failed", operation_id)
            self.notify(f"Operation {operation_id!r} failed: {exc}", "error")
            return False
        finally:
            self._state = ControllerState.LOADED
            self._busy.release()

        self._dataset = result.dataset
        self.last_result = result
        self.notify(result.message, result.kind)
        return True

    def export(self, out_dir: Path) -> Path | None:
        """Write the current dataset as ``<name>_refined.xlsx`` into *out_dir*."""
        if self._reject_if_busy():
            return None
        if self._dataset is None or self._dataset.is_empty:
            self.notify("No data to export!", "info")
            return None
        try:
            path = write_export(out_dir, self._dataset, self._display_name)
        except EmptyInputError as exc:
            self.notify(str(exc), "info")
            return None
        except ExportError as exc:
            self.notify(f"{exc} Check the output location and try again.", "error")
            return None
        self.notify("Data exported successfully!")
        return path

    def clear(self) -> bool:
        """Drop the loaded dataset and return to the empty state."""
        if self._reject_if_busy():
            return False
        if self._state is not ControllerState.LOADED:
            return False
        self._dataset = None
        self._display_name = None
        self.last_result = None
        self._state = ControllerState.EMPTY
        return True

    def preview(self, limit: int = PREVIEW_ROWS) -> list[list[str]]:
        """Header row plus up to *limit* data rows, as display strings."""
        if self._dataset is None:
            return []
        headers = self._dataset.headers
        rows = [list(headers)]
        for row in self._dataset.rows[:limit]:
            rows.append([cell_text(row[h]) for h in headers])
        return rows
