"""Execution engines: where a cleaning operation actually runs.

The controller only talks to the :class:`ExecutionEngine` protocol, so it does
not care whether an operation is one of the built-in pure functions
(:class:`LocalEngine`) or a user script run by a separate Python interpreter
(:class:`ScriptEngine`).
"""

from __future__ import annotations

import json
import logging
import subprocess
import sys
from collections.abc import Mapping, Sequence
from itertools import zip_longest
from pathlib import Path
from typing import Protocol

from data_refinery.errors import ExecutionError
from data_refinery.models import Dataset, OperationResult
from data_refinery.pipeline import OPERATIONS, get_operation

logger = logging.getLogger(__name__)


class ExecutionEngine(Protocol):
    def is_ready(self) -> bool: ...

    def run(self, dataset: Dataset, operation_id: str) -> OperationResult: ...

    def operations(self) -> dict[str, str]: ...


class LocalEngine:
    """Runs the registered in-process cleaning operations. Always ready."""

    def is_ready(self) -> bool:
        return True

    def operations(self) -> dict[str, str]:
        return {op_id: op.label for op_id, op in OPERATIONS.items()}

    def run(self, dataset: Dataset, operation_id: str) -> OperationResult:
        try:
            operation = get_operation(operation_id)
        except KeyError as exc:
            raise ExecutionError(str(exc.args[0])) from exc
        return operation(dataset)


class ScriptEngine:
    """Runs transform scripts in a separate Python interpreter.

    A script reads the dataset as JSON (``{"headers": [...], "rows": [...]}``)
    from stdin and prints the transformed dataset, in the same shape, to
    stdout. The interpreter must be bootstrapped once with :meth:`start`
    before any script runs.

    ``affected`` counts the row positions whose content differs afterwards,
    so a script that only reorders rows still reports every moved row.
    """

    def __init__(
        self,
        scripts: Mapping[str, str],
        *,
        interpreter: str | None = None,
        packages: Sequence[str] = ("pandas",),
        timeout: float | None = None,
    ) -> None:
        self.scripts = dict(scripts)
        self.interpreter = interpreter or sys.executable
        self.packages = tuple(packages)
        self.timeout = timeout
        self._ready = False

    @classmethod
    def from_directory(cls, directory: Path, **kwargs: object) -> ScriptEngine:
        """Load every ``*.py`` file in *directory*; the file stem is the operation id."""
        directory = Path(directory)
        if not directory.is_dir():
            raise ValueError(f"Scripts directory not found: {directory}")
        scripts = {
            path.stem: path.read_text(encoding="utf-8")
            for path in sorted(directory.glob("*.py"))
        }
        return cls(scripts, **kwargs)  # type: ignore[arg-type]

    def is_ready(self) -> bool:
        return self._ready

    def operations(self) -> dict[str, str]:
        return {op_id: f"Script {op_id}.py" for op_id in sorted(self.scripts)}

    def start(self) -> bool:
        """Check the interpreter can start and import the required packages."""
        if self._ready:
            return True
        probe = "".join(f"import {name}\n" for name in ("json", *self.packages))
        try:
            proc = subprocess.run(
                [self.interpreter, "-c", probe],
                capture_output=True,
                text=True,
                timeout=self.timeout,
            )
        except (OSError, subprocess.TimeoutExpired):
            logger.exception("Script engine bootstrap failed (%s)", self.interpreter)
            return False
        if proc.returncode != 0:
            logger.error("Script engine bootstrap failed: %s", proc.stderr.strip())
            return False
        self._ready = True
        logger.info("Script engine ready (%s)", self.interpreter)
        return True

    def run(self, dataset: Dataset, operation_id: str) -> OperationResult:
        if not self._ready:
            raise ExecutionError("Execution engine is not ready yet.")
        script = self.scripts.get(operation_id)
        if script is None:
            known = ", ".join(sorted(self.scripts)) or "none"
            raise ExecutionError(f"Unknown script {operation_id!r}. Known: {known}")

        payload = json.dumps(dataset.to_dict(), ensure_ascii=False)
        try:
            proc = subprocess.run(
                [self.interpreter, "-c", script],
                input=payload,
                capture_output=True,
                text=True,
                encoding="utf-8",
                timeout=self.timeout,
            )
        except (OSError, subprocess.TimeoutExpired) as exc:
            raise ExecutionError(f"Script {operation_id!r} could not run: {exc}") from exc

        if proc.returncode != 0:
            detail = proc.stderr.strip().splitlines()[-1:] or [f"exit code {proc.returncode}"]
            raise ExecutionError(f"Script {operation_id!r} failed: {detail[0]}")

        try:
            result = Dataset.from_dict(json.loads(proc.stdout))
        except (ValueError, TypeError) as exc:
            raise ExecutionError(f"Script {operation_id!r} returned an invalid dataset: {exc}") from exc

        changed = sum(
            1 for before, after in zip_longest(dataset.rows, result.rows) if before != after
        )
        return OperationResult(
            dataset=result,
            affected=changed,
            message=f"Ran {operation_id}: {result.row_count} rows.",
        )


class CombinedEngine:
    """Routes each operation id to the first engine that offers it."""

    def __init__(self, *engines: ExecutionEngine) -> None:
        if not engines:
            raise ValueError("CombinedEngine needs at least one engine")
        self.engines = engines

    def is_ready(self) -> bool:
        return all(engine.is_ready() for engine in self.engines)

    def operations(self) -> dict[str, str]:
        merged: dict[str, str] = {}
        for engine in self.engines:
            for op_id, label in engine.operations().items():
                merged.setdefault(op_id, label)
        return merged

    def run(self, dataset: Dataset, operation_id: str) -> OperationResult:
        for engine in self.engines:
            if operation_id in engine.operations():
                return engine.run(dataset, operation_id)
        known = ", ".join(sorted(self.operations()))
        raise ExecutionError(f"Unknown operation {operation_id!r}. Known: {known}")
