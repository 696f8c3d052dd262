# cli.py
from __future__ import annotations

import json
import sys
from datetime import datetime, timezone
from pathlib import Path

import click

from matrixci.config import Settings
from matrixci.controller import PipelineController, run_pipeline
from matrixci.errors import ConfigurationError
from matrixci.matrix import expand
from matrixci.model import PipelineRun
from matrixci.trigger import Event, EventKind, TriggerGate
from matrixci.ui.console import Console, get_console, set_console
from matrixci.workflow import DEFAULT_WORKFLOW, find_workflow_files, load_workflow


def discover_workflow(workflow_arg: str | None) -> Path:
    """
    Discover workflow file from argument or default.

    Raises:
        SystemExit: If workflow cannot be found or multiple workflows exist
    """
    console = get_console()

    if workflow_arg:
        workflow_path = Path(workflow_arg)
        if not workflow_path.exists() and workflow_path.suffix != ".py":
            workflow_path = Path(str(workflow_path) + ".py")
        if not workflow_path.exists():
            console.print_error(
                "Workflow file not found",
                f"Could not find workflow file: {workflow_arg}",
                suggestion="Create a workflow file or specify a different path:\n  matrixci run --workflow my_workflow.py",
            )
            sys.exit(1)
        return workflow_path

    workflow_files = find_workflow_files()

    if len(workflow_files) == 0:
        console.print_error(
            "No workflow file found",
            "Could not find any workflow files.",
            details=["Looked for:", f"  {DEFAULT_WORKFLOW}", "  *_workflow.py"],
            suggestion=f"Create a workflow file:\n  {DEFAULT_WORKFLOW}",
        )
        sys.exit(1)

    if len(workflow_files) > 1:
        console.print_error(
            "Multiple workflow files found",
            "Found multiple workflow files. Please specify which one to use:",
            details=[f"  {f}" for f in workflow_files],
            suggestion=f"Specify a workflow explicitly:\n  matrixci run --workflow {DEFAULT_WORKFLOW}",
        )
        sys.exit(1)

    return workflow_files[0]


def _parse_at(value: str | None) -> datetime:
    if not value:
        return datetime.now(timezone.utc)
    try:
        at = datetime.fromisoformat(value)
    except ValueError:
        raise click.BadParameter(f"not an ISO timestamp: {value}", param_hint="--at")
    return at if at.tzinfo else at.replace(tzinfo=timezone.utc)


@click.group()
@click.option(
    "--debug",
    is_flag=True,
    default=False,
    help="Enable debug mode (show stack traces and step output)",
)
@click.option("--quiet", is_flag=True, default=False, help="Only print the results table")
@click.pass_context
def cli(ctx, debug, quiet):
    """MatrixCI — matrix build orchestrator."""
    set_console(Console(debug=debug, quiet=quiet))
    ctx.ensure_object(dict)
    ctx.obj["debug"] = debug


@cli.command()
@click.option("--workflow", default=None, help=f"Workflow file path (defaults to {DEFAULT_WORKFLOW} if present)")
@click.option(
    "--event",
    "event_kind",
    type=click.Choice([k.value for k in EventKind]),
    default=EventKind.MANUAL.value,
    show_default=True,
    help="Triggering event",
)
@click.option("--branch", default=None, help="Pushed branch, PR target branch, or branch override")
@click.option("--source-branch", default=None, help="PR source branch")
@click.option("--cron", default=None, help="Schedule that fired (schedule events)")
@click.option("--at", default=None, help="Event time, ISO 8601 (defaults to now, UTC)")
@click.option("--agents", default=None, type=int, help="Maximum concurrent agents")
@click.option("--timeout", default=None, type=float, help="Default per-step timeout in seconds")
@click.option(
    "--schedule-binding",
    type=click.Choice(["first", "each"]),
    default=None,
    help="Scheduled runs bind to the first include-branch, or run once per branch",
)
@click.option("--json", "json_path", default=None, help="Write the run report as JSON to this path ('-' for stdout)")
@click.pass_context
def run(ctx, workflow, event_kind, branch, source_branch, cron, at, agents, timeout, schedule_binding, json_path):
    """Run a MatrixCI workflow for one event."""
    console = get_console()
    workflow_path = discover_workflow(workflow)

    try:
        settings = Settings.from_env(
            max_agents=agents,
            step_timeout=timeout,
            schedule_binding=schedule_binding,
        )
        pipeline = load_workflow(workflow_path)
        event = Event(
            kind=EventKind(event_kind),
            branch=branch,
            source_branch=source_branch,
            at=_parse_at(at),
            cron=cron,
        )
    except ConfigurationError as e:
        console.print_error("Invalid configuration", e.message, details=[f"{k}={v}" for k, v in e.details.items()])
        sys.exit(1)

    controller = PipelineController(settings, console=console)

    def on_start(r: PipelineRun) -> None:
        console.print_run_started(r, workflow=workflow_path.name)

    try:
        runs = run_pipeline(pipeline, event, settings, controller=controller, on_start=on_start)
    except ConfigurationError as e:
        console.print_error("Invalid configuration", e.message, details=[f"{k}={v}" for k, v in e.details.items()])
        sys.exit(1)
    except Exception as e:
        console.print_exception(e)
        sys.exit(1)

    if not runs:
        decision = TriggerGate(pipeline.triggers).admit(event)
        console.print_trigger_rejected(event.kind.value, decision.reason)
        sys.exit(0)

    for r in runs:
        console.print_results(r)

    if json_path:
        report = json.dumps([r.to_dict() for r in runs], indent=2)
        if json_path == "-":
            click.echo(report)
        else:
            Path(json_path).write_text(report + "\n", encoding="utf-8")

    if controller.interrupted:
        console.print_info("\nInterrupted by user")
        sys.exit(130)

    sys.exit(0 if all(r.exit_code == 0 for r in runs) else 1)


@cli.command()
@click.option("--workflow", default=None, help=f"Workflow file path (defaults to {DEFAULT_WORKFLOW} if present)")
def plan(workflow):
    """Print the expanded matrix and which steps apply to each cell."""
    console = get_console()
    workflow_path = discover_workflow(workflow)
    try:
        pipeline = load_workflow(workflow_path)
        cells = expand(pipeline.axes, exclude=pipeline.exclude, overrides=pipeline.overrides)
    except ConfigurationError as e:
        console.print_error("Invalid configuration", e.message, details=[f"{k}={v}" for k, v in e.details.items()])
        sys.exit(1)

    console.print_header(f"{pipeline.name}: {len(cells)} job(s)")
    for cell in cells:
        console.print_plan_cell(cell, pipeline.steps)

    for s in pipeline.steps:
        if not any(s.resolve(c.env) for c in cells):
            console.print_info(f"\nwarning: step '{s.name}' applies to no cell of the matrix")


if __name__ == "__main__":
    cli()
