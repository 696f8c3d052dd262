# controller.py
from __future__ import annotations

import threading
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Callable, Dict, List, Optional

from .agents import AgentPool
from .config import Settings
from .errors import ErrorKind
from .matrix import expand
from .model import Job, Pipeline, PipelineRun, Status
from .runner import JobRunner
from .trigger import Event, RunDecision, TriggerGate
from .ui.console import Console, get_console


def aggregate(jobs: List[Job]) -> Status:
    """Failed if any job failed; passed if all passed; otherwise cancelled."""
    verdicts = [j.verdict for j in jobs]
    if any(v is Status.FAILED for v in verdicts):
        return Status.FAILED
    if all(v is Status.PASSED for v in verdicts):
        return Status.PASSED
    return Status.CANCELLED


class PipelineController:
    """
    Expand the matrix, dispatch jobs to a bounded agent pool, aggregate.

    Jobs are submitted in declaration order; at most `settings.max_agents`
    run at once and the rest wait FIFO. A failing job never cancels its
    siblings; only cancel() does.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        *,
        runner_factory: Optional[Callable[[threading.Event], JobRunner]] = None,
        console: Optional[Console] = None,
    ) -> None:
        self.settings = settings or Settings()
        self.console = console or get_console()
        self.cancel_event = threading.Event()
        self.runner_factory = runner_factory or self._default_runner
        self.pool: Optional[AgentPool] = None
        self.interrupted = False

    def _default_runner(self, cancel_event: threading.Event) -> JobRunner:
        return JobRunner(
            default_timeout=self.settings.step_timeout,
            cancel_event=cancel_event,
            workdir=self.settings.workdir,
            output_tail=self.settings.output_tail,
            poll_interval=self.settings.poll_interval,
            console=self.console,
        )

    def create_run(self, pipeline: Pipeline, decision: RunDecision, event: Event) -> PipelineRun:
        """Materialize jobs. Raises ConfigurationError before any job exists."""
        cells = expand(pipeline.axes, exclude=pipeline.exclude, overrides=pipeline.overrides)
        jobs = [Job(cell=c, steps=list(pipeline.steps)) for c in cells]
        return PipelineRun(pipeline=pipeline.name, event=event, branch=decision.branch, jobs=jobs)

    def cancel(self) -> None:
        self.cancel_event.set()

    def execute(self, run: PipelineRun) -> Status:
        self.pool = AgentPool(self.settings.max_agents)
        runner = self.runner_factory(self.cancel_event)
        futures: Dict[Future, Job] = {}

        with ThreadPoolExecutor(max_workers=self.settings.max_agents) as executor:
            for job in run.jobs:
                futures[executor.submit(self._run_job, runner, job)] = job

            try:
                self._collect(futures)
            except KeyboardInterrupt:
                self.interrupted = True
                self.cancel()
                self._collect(futures)

        run.verdict = aggregate(run.jobs)
        return run.verdict

    def _collect(self, futures: Dict[Future, Job]) -> None:
        # synchronize on "all jobs terminal"
        for fut, job in futures.items():
            try:
                fut.result()
            except Exception as e:
                self._infrastructure_failure(job, e)

    def _run_job(self, runner: JobRunner, job: Job) -> Status:
        if self.cancel_event.is_set():
            # never started: nothing ran, nothing failed
            for r in job.records:
                r.status = Status.SKIPPED
            job.verdict = Status.CANCELLED
            job.error = ErrorKind.CANCELLED
            job.message = "run cancelled before job started"
            return job.verdict

        agent = self.pool.acquire()
        try:
            return runner.run(job, agent)
        finally:
            self.pool.release(agent)

    def _infrastructure_failure(self, job: Job, exc: Exception) -> None:
        job.verdict = Status.FAILED
        job.error = ErrorKind.INFRASTRUCTURE
        job.message = f"runner crashed: {type(exc).__name__}: {exc}"
        for r in job.records:
            if not r.status.terminal:
                r.status = Status.SKIPPED
        self.console.print_error("Infrastructure error", f"[{job.name}] {job.message}")


def run_pipeline(
    pipeline: Pipeline,
    event: Event,
    settings: Optional[Settings] = None,
    *,
    controller: Optional[PipelineController] = None,
    on_start: Optional[Callable[[PipelineRun], None]] = None,
) -> List[PipelineRun]:
    """
    Gate the event, then create and execute one run per admitted decision.

    Returns [] when the event is not admitted. ConfigurationError from the
    matrix propagates before any job starts.
    """
    settings = settings or Settings()
    controller = controller or PipelineController(settings)

    triggers = pipeline.triggers
    if settings.schedule_binding is not None:
        triggers = triggers.model_copy(update={"schedule_binding": settings.schedule_binding})
    gate = TriggerGate(triggers)

    decisions = [d for d in gate.decisions(event) if d.admitted]
    runs = [controller.create_run(pipeline, d, event) for d in decisions]

    executed: List[PipelineRun] = []
    for run in runs:
        if on_start is not None:
            on_start(run)
        controller.execute(run)
        executed.append(run)
        if controller.interrupted:
            break
    return executed
