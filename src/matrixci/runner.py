# runner.py
from __future__ import annotations

import threading
import time
from pathlib import Path
from typing import List, Optional

from .actions import Action, ActionResult
from .agents import Agent
from .errors import CancellationError, CIError, ErrorKind, InfrastructureError, StepFailure, StepTimeout
from .model import Job, Status, Step, StepRecord
from .ui.console import Console, get_console


DEFAULT_STEP_TIMEOUT = 60 * 60.0


class JobRunner:
    """
    Execute one job's steps in order on an agent.

    - steps run strictly sequentially; the first failure skips the rest
    - a step with no variant for the job's platform is skipped and does not
      affect the verdict
    - env emissions of a passed step are visible to every later step
    - each step is bounded by its timeout (or the runner default)
    - setting `cancel_event` stops the in-flight step; the job ends cancelled
    """

    def __init__(
        self,
        *,
        default_timeout: float = DEFAULT_STEP_TIMEOUT,
        cancel_event: Optional[threading.Event] = None,
        workdir: str | Path = ".",
        output_tail: int = 4000,
        poll_interval: float = 0.05,
        console: Optional[Console] = None,
    ) -> None:
        self.default_timeout = default_timeout
        self.cancel_event = cancel_event or threading.Event()
        self.workdir = Path(workdir).resolve()
        self.output_tail = output_tail
        self.poll_interval = poll_interval
        self.console = console or get_console()

    def cancel(self) -> None:
        self.cancel_event.set()

    # ------------------------------------------------------------------
    # Job
    # ------------------------------------------------------------------

    def run(self, job: Job, agent: Agent) -> Status:
        job.agent = agent.name
        started = time.monotonic()

        # variants are resolved once, at dispatch
        plan: List[Optional[Action]] = [s.resolve(job.platform) for s in job.steps]

        job.verdict = Status.RUNNING
        self.console.print_job_start(job)

        try:
            for i, (step, action) in enumerate(zip(job.steps, plan)):
                record = job.records[i]

                if self.cancel_event.is_set():
                    raise CancellationError(job.name)

                if action is None:
                    record.status = Status.SKIPPED
                    record.message = "not applicable on this platform"
                    self.console.print_step_skipped(job, step.name, "not applicable")
                    continue

                self._run_step(job, step, action, record)

            job.verdict = Status.PASSED

        except CancellationError as e:
            job.verdict = Status.CANCELLED
            job.error = ErrorKind.CANCELLED
            job.message = e.message
        except CIError as e:
            # StepFailure, StepTimeout, InfrastructureError
            job.verdict = Status.FAILED
            job.error = e.kind
            job.message = e.message
        finally:
            for r in job.records:
                if not r.status.terminal:
                    r.status = Status.SKIPPED
            job.duration = time.monotonic() - started

        self.console.print_job_finished(job)
        return job.verdict

    # ------------------------------------------------------------------
    # Step
    # ------------------------------------------------------------------

    def _run_step(self, job: Job, step: Step, action: Action, record: StepRecord) -> None:
        """Run one step, record it, and raise on anything but success."""
        self.console.print_step(job, step.name)
        record.status = Status.RUNNING
        started = time.monotonic()
        try:
            result = self._execute(job, step, action)
        except CIError as e:
            record.status = Status.CANCELLED if e.kind is ErrorKind.CANCELLED else Status.FAILED
            record.error = e.kind
            record.message = e.message
            record.output = self._tail(getattr(e, "output", ""))
            if isinstance(e, StepFailure) and not isinstance(e, StepTimeout):
                record.exit_code = e.exit_code
            if record.status is Status.FAILED:
                self.console.print_step_failed(job, record)
            if e.job is None:
                e.job, e.step = job.name, step.name
            raise
        finally:
            record.duration = time.monotonic() - started

        record.status = Status.PASSED
        record.exit_code = result.exit_code
        record.output = self._tail(result.output)

        for key, value in result.env.items():
            if step.may_publish(key):
                job.env[key] = value
            else:
                self.console.print_debug(f"[{job.name}] {step.name}: ignored undeclared variable {key}")

    def _execute(self, job: Job, step: Step, action: Action) -> ActionResult:
        timeout = step.timeout if step.timeout is not None else self.default_timeout
        deadline = time.monotonic() + timeout

        try:
            execution = action.launch(dict(job.env), self.workdir)
        except CIError:
            raise
        except Exception as e:
            raise InfrastructureError(f"could not launch action: {e}", job=job.name, step=step.name) from e

        while True:
            result = execution.wait(min(self.poll_interval, max(deadline - time.monotonic(), 0.0)))
            if result is not None:
                break
            if self.cancel_event.is_set():
                execution.kill()
                raise CancellationError(job.name, step.name)
            if time.monotonic() >= deadline:
                output = execution.kill()
                raise StepTimeout(job.name, step.name, timeout, output=output)

        if not result.ok:
            raise StepFailure(job.name, step.name, result.exit_code, output=result.output)
        return result

    def _tail(self, output: str) -> str:
        return output[-self.output_tail:] if output and self.output_tail else ""
