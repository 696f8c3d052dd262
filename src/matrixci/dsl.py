# src/matrixci/dsl.py
from __future__ import annotations

from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Union

from .actions import ActionContext, CallableAction, ShellAction
from .errors import ConfigurationError
from .model import Axis, AxisValue, Condition, Pipeline, Step, StepVariant, always
from .trigger import BranchFilter, PullRequestTrigger, PushTrigger, Schedule, TriggerConfig

ActionLike = Union[str, Callable[[ActionContext], Any], ShellAction, CallableAction]


# ---------------------------------------------------------------------
# Matrix helpers
# ---------------------------------------------------------------------

def value(v: Any, **overrides: Any) -> AxisValue:
    """
    An axis value with optional extra variables for every cell using it.

        axis("IMAGE", windows=value("vs2017-win2016", AGENT_OS="Windows_NT"))

    The label is filled in by axis().
    """
    return AxisValue(label="", value=str(v), overrides=tuple((k, str(x)) for k, x in overrides.items()))


def axis(name: str, values: Optional[Mapping[str, Any] | Sequence[Any]] = None, **labelled: Any) -> Axis:
    """
    Build an axis from labels -> values, in declaration order.

        axis("RUSTUP_TOOLCHAIN", stable="stable", nightly="nightly")
        axis("RUSTUP_TOOLCHAIN", ["stable", "nightly"])   # label == value
        axis("IMAGE", {"win-2016": value("vs2017-win2016", AGENT_OS="Windows_NT")})
    """
    items: List[tuple[str, Any]] = []
    if isinstance(values, Mapping):
        items.extend(values.items())
    elif values is not None:
        items.extend((str(v), v) for v in values)
    items.extend(labelled.items())

    out: List[AxisValue] = []
    for label, v in items:
        if isinstance(v, AxisValue):
            out.append(AxisValue(label=str(label), value=v.value, overrides=v.overrides))
        else:
            out.append(AxisValue(label=str(label), value=str(v)))
    return Axis(name=name, values=tuple(out))


# ---------------------------------------------------------------------
# Step helpers
# ---------------------------------------------------------------------

def _action(a: ActionLike, cwd: str | None = None):
    if isinstance(a, (ShellAction, CallableAction)):
        return a
    if isinstance(a, str):
        return ShellAction(command=a, cwd=cwd)
    if callable(a):
        return CallableAction(fn=a)
    raise ConfigurationError(f"unsupported action: {a!r}")


def variant(when: Condition, action: ActionLike, *, cwd: str | None = None) -> StepVariant:
    return StepVariant(when=when, action=_action(action, cwd))


def sh(
    name: str,
    cmd: ActionLike,
    *,
    when: Optional[Condition] = None,
    cwd: str | None = None,
    timeout: Optional[float] = None,
    publishes: Optional[Iterable[str]] = None,
) -> Step:
    """Create a single-variant step (a shell command unless cmd is a callable)."""
    return step(name, variant(when or always(), cmd, cwd=cwd), timeout=timeout, publishes=publishes)


def step(
    name: str,
    *variants: StepVariant,
    timeout: Optional[float] = None,
    publishes: Optional[Iterable[str]] = None,
) -> Step:
    """A logical step with platform-specific variants; first match wins."""
    if not variants:
        raise ConfigurationError(f"step({name!r}) must have at least one variant")
    if timeout is not None and timeout <= 0:
        raise ConfigurationError(f"step({name!r}): timeout must be positive, got {timeout}")
    return Step(
        name=name,
        variants=tuple(variants),
        timeout=timeout,
        publishes=tuple(publishes) if publishes is not None else None,
    )


# ---------------------------------------------------------------------
# Triggers
# ---------------------------------------------------------------------

def branches(include: Iterable[str] = (), exclude: Iterable[str] = ()) -> BranchFilter:
    return BranchFilter(include=tuple(include), exclude=tuple(exclude))


def _filter(b: Union[BranchFilter, Iterable[str], None]) -> BranchFilter:
    if b is None:
        return BranchFilter()
    if isinstance(b, BranchFilter):
        return b
    if isinstance(b, str):
        return branches([b])
    return branches(b)


def schedule(cron: str, include: Union[BranchFilter, Iterable[str]] = (), display_name: str = "") -> Dict[str, Any]:
    return {"cron": cron, "branches": _filter(include), "display_name": display_name}


def triggers(
    *,
    push: Union[BranchFilter, Iterable[str], None] = None,
    pr: Union[BranchFilter, Iterable[str], None] = None,
    schedules: Iterable[Dict[str, Any]] = (),
    batch: bool = False,
    schedule_binding: str = "first",
) -> TriggerConfig:
    return TriggerConfig.build(
        push=PushTrigger(branches=_filter(push), batch=batch),
        pr=PullRequestTrigger(branches=_filter(pr)),
        schedules=tuple(schedules),
        schedule_binding=schedule_binding,
    )


# ---------------------------------------------------------------------
# Pipeline helper (single-file story)
# ---------------------------------------------------------------------

def pipeline(
    name: str,
    *,
    matrix: Sequence[Axis] = (),
    steps: Sequence[Step],
    on: Optional[TriggerConfig] = None,
    exclude: Iterable[Mapping[str, str]] = (),
    overrides: Optional[Mapping[str, Mapping[str, Any]]] = None,
) -> Pipeline:
    """
    Workflow definition helper.

        from matrixci import pipeline, axis, sh, triggers

        def workflow():
            return pipeline(
                "ci",
                matrix=[axis("PY", ["3.11", "3.12"])],
                steps=[sh("Test", "pytest -q")],
                on=triggers(push=["main"]),
            )
    """
    steps = list(steps)
    if not steps:
        raise ConfigurationError(f"pipeline {name!r} has no steps")
    names = [s.name for s in steps]
    dupes = sorted({n for n in names if names.count(n) > 1})
    if dupes:
        raise ConfigurationError(f"duplicate step names: {dupes}")

    return Pipeline(
        name=name,
        axes=list(matrix),
        steps=steps,
        triggers=on or TriggerConfig(),
        exclude=[dict(e) for e in exclude],
        overrides={k: {kk: str(vv) for kk, vv in v.items()} for k, v in (overrides or {}).items()},
    )
