"""Console output formatting utilities for MatrixCI."""

from __future__ import annotations

import sys
import threading
from typing import TYPE_CHECKING, Iterable, Optional

if TYPE_CHECKING:
    from matrixci.model import Job, MatrixCell, PipelineRun, Step, StepRecord


class Console:
    """Centralized console output formatting.

    Jobs run on several threads at once, so every write goes through one lock
    and job-scoped lines carry a ``[job]`` prefix.
    """

    def __init__(self, debug: bool = False, quiet: bool = False):
        """
        Initialize console formatter.

        Args:
            debug: If True, show detailed output including stack traces and
                step output tails
            quiet: If True, suppress per-step progress lines
        """
        self.debug = debug
        self.quiet = quiet
        self._lock = threading.Lock()

    def _out(self, *lines: str, err: bool = False) -> None:
        stream = sys.stderr if err else sys.stdout
        with self._lock:
            for line in lines:
                print(line, file=stream)

    def print_header(self, title: str) -> None:
        """Print a section header."""
        self._out(f"\n{title}", "-" * len(title))

    def print_run_started(self, run: "PipelineRun", workflow: str) -> None:
        """Print run start information."""
        self._out(
            "\nRUN STARTED",
            f"Run ID: {run.run_id}",
            f"Workflow: {workflow}",
            f"Trigger: {run.event.kind.value}",
            f"Branch: {run.branch}",
            f"Jobs: {len(run.jobs)}",
            "",
        )

    def print_trigger_rejected(self, kind: str, reason: str) -> None:
        self._out(f"\nNOT TRIGGERED ({kind}): {reason}")

    def print_plan_cell(self, cell: "MatrixCell", steps: Iterable["Step"]) -> None:
        """Print one matrix cell and which steps apply to it."""
        lines = [f"\n{cell.name}"]
        for k, v in cell.env.items():
            lines.append(f"  {k}={v}")
        for s in steps:
            action = s.resolve(cell.env)
            if action is None:
                lines.append(f"  - {s.name} (skipped: not applicable)")
            else:
                lines.append(f"  + {s.name}: {action.describe()}")
        self._out(*lines)

    def print_job_start(self, job: "Job") -> None:
        """Print job start message."""
        if not self.quiet:
            self._out(f"[{job.name}] JOB STARTED on {job.agent}")

    def print_step(self, job: "Job", name: str) -> None:
        """Print step start message."""
        if not self.quiet:
            self._out(f"[{job.name}] ▶ {name}")

    def print_step_skipped(self, job: "Job", name: str, reason: str) -> None:
        if not self.quiet:
            self._out(f"[{job.name}] ⏭ {name} ({reason})")

    def print_step_failed(self, job: "Job", record: "StepRecord") -> None:
        """
        Print failure message for a step.

        The output tail is shown only in debug mode; otherwise the first line
        of the error message.
        """
        lines = [f"[{job.name}] STEP FAILED: {record.name}"]
        if record.exit_code is not None and record.exit_code >= 0:
            lines.append(f"[{job.name}] Exit code: {record.exit_code}")
        if record.error is not None:
            lines.append(f"[{job.name}] Kind: {record.error.value}")
        if self.debug and record.output:
            lines.append(record.output.rstrip())
        elif record.message:
            lines.append(f"[{job.name}] Error: {record.message.splitlines()[0]}")
        self._out(*lines)

    def print_job_finished(self, job: "Job") -> None:
        if not self.quiet:
            self._out(f"[{job.name}] STATUS: {job.verdict.value}")

    def print_results(self, run: "PipelineRun") -> None:
        """Print final results summary."""
        lines = ["\n" + "=" * 40, f"RESULTS ({run.run_id})", "=" * 40]
        for job in run.jobs:
            suffix = f" [{job.error.value}]" if job.error else ""
            lines.append(f"  {job.name}: {job.verdict.value.upper()}{suffix}")
            for r in job.records:
                lines.append(f"      {r.status.value:<9} {r.name}")
        lines.append(f"PIPELINE: {run.verdict.value.upper()}")
        self._out(*lines)

    def print_error(
        self,
        title: str,
        message: str,
        details: Optional[list[str]] = None,
        suggestion: Optional[str] = None,
    ) -> None:
        """
        Print structured error message.

        Args:
            title: Error title
            message: Main error message
            details: Optional list of detail lines
            suggestion: Optional suggestion for user
        """
        lines = [f"\nERROR: {title}", message]
        for detail in details or []:
            lines.append(f"  {detail}")
        if suggestion:
            lines.append(f"\n{suggestion}")
        self._out(*lines, err=True)

    def print_exception(self, exc: Exception) -> None:
        """Print exception, with full traceback only in debug mode."""
        if self.debug:
            import traceback
            with self._lock:
                traceback.print_exception(type(exc), exc, exc.__traceback__)
        else:
            self._out(f"Error: {exc}", err=True)

    def print_info(self, message: str) -> None:
        """Print informational message."""
        self._out(message)

    def print_debug(self, message: str) -> None:
        """Print debug message (only if debug mode enabled)."""
        if self.debug:
            self._out(f"[DEBUG] {message}", err=True)


# Global console instance (will be initialized by CLI)
_console: Optional[Console] = None


def get_console() -> Console:
    """Get the global console instance."""
    global _console
    if _console is None:
        _console = Console()
    return _console


def set_console(console: Console) -> None:
    """Set the global console instance."""
    global _console
    _console = console
