# errors.py
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


class ErrorKind(str, Enum):
    """Tag carried in reports so timeouts/crashes stay distinguishable."""
    CONFIGURATION = "ConfigurationError"
    STEP_FAILURE = "StepFailure"
    TIMEOUT = "TimeoutError"
    INFRASTRUCTURE = "InfrastructureError"
    CANCELLED = "CancellationError"


@dataclass(eq=False)
class CIError(Exception):
    """
    Structured CI error with enough context for:
      - clean CLI output
      - the JSON run report
      - debugging without full tracebacks
    """
    kind: ErrorKind
    message: str
    job: str | None = None
    step: str | None = None
    details: dict = field(default_factory=dict)

    def __str__(self) -> str:
        lines = [f"{self.kind.value}: {self.message}"]
        if self.job:
            lines.append(f"job={self.job}")
        if self.step:
            lines.append(f"step={self.step}")
        for k, v in self.details.items():
            lines.append(f"{k}={v}")
        return "\n".join(lines)


class ConfigurationError(CIError):
    """Malformed matrix/axis/trigger/step definition. Fatal before any job starts."""

    def __init__(self, message: str, **details) -> None:
        super().__init__(ErrorKind.CONFIGURATION, message, details=details)


class StepFailure(CIError):
    def __init__(self, job: str, step: str, exit_code: int, output: str = "") -> None:
        super().__init__(
            ErrorKind.STEP_FAILURE,
            f"step '{step}' failed (exit={exit_code})",
            job=job,
            step=step,
            details={"exit_code": exit_code},
        )
        self.exit_code = exit_code
        self.output = output


class StepTimeout(StepFailure):
    def __init__(self, job: str, step: str, timeout: float, output: str = "") -> None:
        super().__init__(job, step, exit_code=-1, output=output)
        self.kind = ErrorKind.TIMEOUT
        self.message = f"step '{step}' exceeded {timeout:g}s"
        self.details = {"timeout": timeout}
        self.timeout = timeout


class InfrastructureError(CIError):
    """Agent/process crash or environment provisioning failure."""

    def __init__(self, message: str, job: str | None = None, step: str | None = None, **details) -> None:
        super().__init__(ErrorKind.INFRASTRUCTURE, message, job=job, step=step, details=details)


class CancellationError(CIError):
    def __init__(self, job: str, step: str | None = None) -> None:
        super().__init__(ErrorKind.CANCELLED, "run cancelled", job=job, step=step)
