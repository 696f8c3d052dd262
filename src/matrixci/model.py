# model.py
from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, Callable, Dict, List, Mapping, Optional, Tuple

from .errors import ErrorKind

if TYPE_CHECKING:
    from .actions import Action
    from .trigger import Event, TriggerConfig


class Status(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    PASSED = "passed"
    FAILED = "failed"
    SKIPPED = "skipped"
    CANCELLED = "cancelled"

    @property
    def terminal(self) -> bool:
        return self not in (Status.PENDING, Status.RUNNING)


# ---------------------------------------------------------------------
# Platform predicates
# ---------------------------------------------------------------------

# Key under which a cell publishes its platform family (Windows_NT/Darwin/Linux).
OS_KEY = "AGENT_OS"


class Condition:
    """Platform predicate with operator overloading.

    Supports ``|`` (OR), ``&`` (AND) and ``~`` (NOT)::

        os_is("Windows_NT") | var_eq("RUSTUP_TOOLCHAIN", "nightly")
    """

    __slots__ = ("_fn", "_expr")

    def __init__(self, fn: Callable[[Mapping[str, str]], bool], expr: str) -> None:
        self._fn = fn
        self._expr = expr

    def __call__(self, platform: Mapping[str, str]) -> bool:
        return bool(self._fn(platform))

    def __or__(self, other: Condition) -> Condition:
        return Condition(lambda p: self(p) or other(p), f"({self._expr}) || ({other._expr})")

    def __and__(self, other: Condition) -> Condition:
        return Condition(lambda p: self(p) and other(p), f"({self._expr}) && ({other._expr})")

    def __invert__(self) -> Condition:
        return not_(self)

    def __str__(self) -> str:
        return self._expr

    def __repr__(self) -> str:
        return f"Condition({self._expr!r})"


def always() -> Condition:
    return Condition(lambda p: True, "true")


def var_eq(key: str, value: str) -> Condition:
    return Condition(lambda p: p.get(key) == value, f"{key} == '{value}'")


def var_ne(key: str, value: str) -> Condition:
    return Condition(lambda p: p.get(key) != value, f"{key} != '{value}'")


def os_is(family: str) -> Condition:
    return var_eq(OS_KEY, family)


def os_is_not(family: str) -> Condition:
    return var_ne(OS_KEY, family)


def not_(cond: Condition) -> Condition:
    return Condition(lambda p: not cond(p), f"!({cond})")


# ---------------------------------------------------------------------
# Steps
# ---------------------------------------------------------------------

@dataclass(frozen=True)
class StepVariant:
    """One platform-specific implementation of a logical step."""
    when: Condition
    action: "Action"


@dataclass(frozen=True)
class Step:
    """
    A named unit of work shared (read-only) by every job of the matrix.

    The first variant whose predicate holds for a job's platform is the one
    that runs; a step with no applicable variant is skipped for that job.
    `publishes` restricts which environment variables the step may emit
    (None: any).
    """
    name: str
    variants: Tuple[StepVariant, ...]
    timeout: Optional[float] = None
    publishes: Optional[Tuple[str, ...]] = None

    def resolve(self, platform: Mapping[str, str]) -> Optional["Action"]:
        for v in self.variants:
            if v.when(platform):
                return v.action
        return None

    def may_publish(self, key: str) -> bool:
        return self.publishes is None or key in self.publishes


# ---------------------------------------------------------------------
# Matrix
# ---------------------------------------------------------------------

@dataclass(frozen=True)
class AxisValue:
    label: str
    value: str
    overrides: Tuple[Tuple[str, str], ...] = ()


@dataclass(frozen=True)
class Axis:
    """A named matrix dimension with ordered, unique values."""
    name: str
    values: Tuple[AxisValue, ...]

    @property
    def labels(self) -> List[str]:
        return [v.label for v in self.values]


@dataclass(frozen=True)
class MatrixCell:
    """
    One combination of axis values.

    values: ((axis_name, label, value), ...) in axis declaration order
    overrides: extra key/value pairs; they win over axis-derived values
    """
    values: Tuple[Tuple[str, str, str], ...]
    overrides: Tuple[Tuple[str, str], ...] = ()

    @property
    def name(self) -> str:
        if not self.values:
            return "default"
        return "-".join(label for _, label, _ in self.values)

    @property
    def key(self) -> Tuple[str, ...]:
        return tuple(value for _, _, value in self.values)

    @property
    def labels(self) -> Dict[str, str]:
        return {axis: label for axis, label, _ in self.values}

    @property
    def env(self) -> Dict[str, str]:
        env = {axis: value for axis, _, value in self.values}
        env.update(dict(self.overrides))
        return env


# ---------------------------------------------------------------------
# Execution records
# ---------------------------------------------------------------------

@dataclass
class StepRecord:
    name: str
    status: Status = Status.PENDING
    exit_code: Optional[int] = None
    error: Optional[ErrorKind] = None
    message: str = ""
    duration: Optional[float] = None
    output: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "status": self.status.value,
            "exit_code": self.exit_code,
            "error": self.error.value if self.error else None,
            "message": self.message,
            "duration": self.duration,
        }


@dataclass
class Job:
    """
    One matrix cell bound to the pipeline's steps.

    The job owns its environment (seeded from the cell) and the execution
    order of its steps; the Step objects themselves are shared templates.
    """
    cell: MatrixCell
    steps: List[Step]
    env: Dict[str, str] = field(default_factory=dict)
    verdict: Status = Status.PENDING
    records: List[StepRecord] = field(default_factory=list)
    error: Optional[ErrorKind] = None
    message: str = ""
    agent: Optional[str] = None
    duration: Optional[float] = None

    def __post_init__(self) -> None:
        if not self.env:
            self.env = self.cell.env
        if not self.records:
            self.records = [StepRecord(name=s.name) for s in self.steps]

    @property
    def name(self) -> str:
        return self.cell.name

    @property
    def platform(self) -> Dict[str, str]:
        # predicates see the cell's seed values, never step emissions
        return self.cell.env

    @property
    def statuses(self) -> List[Status]:
        return [r.status for r in self.records]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "cell": self.cell.labels,
            "verdict": self.verdict.value,
            "error": self.error.value if self.error else None,
            "message": self.message,
            "agent": self.agent,
            "duration": self.duration,
            "steps": [r.to_dict() for r in self.records],
        }


@dataclass
class Pipeline:
    """A loaded workflow definition: matrix axes, step list, triggers."""
    name: str
    axes: List[Axis]
    steps: List[Step]
    triggers: "TriggerConfig"
    exclude: List[Dict[str, str]] = field(default_factory=list)
    overrides: Dict[str, Dict[str, str]] = field(default_factory=dict)


@dataclass
class PipelineRun:
    pipeline: str
    event: "Event"
    branch: str
    jobs: List[Job]
    run_id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])
    verdict: Status = Status.PENDING

    @property
    def exit_code(self) -> int:
        return 0 if self.verdict is Status.PASSED else 1

    def to_dict(self) -> Dict[str, Any]:
        return {
            "run_id": self.run_id,
            "pipeline": self.pipeline,
            "event": self.event.kind.value,
            "branch": self.branch,
            "verdict": self.verdict.value,
            "jobs": [j.to_dict() for j in self.jobs],
        }
