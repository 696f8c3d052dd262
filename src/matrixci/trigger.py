# trigger.py
from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from fnmatch import fnmatchcase
from typing import List, Literal, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .cron import CronExpression
from .errors import ConfigurationError


def normalize_branch(ref: str) -> str:
    for prefix in ("refs/heads/", "refs/"):
        if ref.startswith(prefix):
            return ref[len(prefix):]
    return ref


def _is_literal(pattern: str) -> bool:
    return not any(c in pattern for c in "*?[")


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")


class BranchFilter(_Frozen):
    """Include/exclude branch globs; exclude wins."""
    include: Tuple[str, ...] = ()
    exclude: Tuple[str, ...] = ()

    def matches(self, branch: str) -> bool:
        name = normalize_branch(branch)
        if not any(fnmatchcase(name, p) for p in self.include):
            return False
        return not any(fnmatchcase(name, p) for p in self.exclude)

    @property
    def first(self) -> Optional[str]:
        return self.include[0] if self.include else None


class PushTrigger(_Frozen):
    branches: BranchFilter = Field(default_factory=BranchFilter)
    # False: every qualifying push gets its own run
    batch: bool = False


class PullRequestTrigger(_Frozen):
    branches: BranchFilter = Field(default_factory=BranchFilter)


class Schedule(_Frozen):
    cron: str
    branches: BranchFilter = Field(default_factory=BranchFilter)
    display_name: str = ""

    @field_validator("cron")
    @classmethod
    def _valid_cron(cls, v: str) -> str:
        try:
            return str(CronExpression.parse(v))
        except ConfigurationError as e:
            raise ValueError(e.message) from None

    @property
    def expression(self) -> CronExpression:
        return CronExpression.parse(self.cron)


class TriggerConfig(_Frozen):
    """
    Process-wide trigger configuration, loaded once at run start.

    schedule_binding:
      "first" - a scheduled tick binds to the first include-branch
      "each"  - one run per literal include-branch
    """
    push: PushTrigger = Field(default_factory=PushTrigger)
    pr: PullRequestTrigger = Field(default_factory=PullRequestTrigger)
    schedules: Tuple[Schedule, ...] = ()
    schedule_binding: Literal["first", "each"] = "first"

    @classmethod
    def build(cls, **data) -> TriggerConfig:
        try:
            return cls.model_validate(data)
        except ValidationError as e:
            raise ConfigurationError("invalid trigger configuration", errors=e.errors()) from e


# ---------------------------------------------------------------------
# Events and decisions
# ---------------------------------------------------------------------

class EventKind(str, Enum):
    PUSH = "push"
    PULL_REQUEST = "pull_request"
    SCHEDULE = "schedule"
    MANUAL = "manual"


class Event(_Frozen):
    """
    branch:        pushed branch / PR destination branch / manual override
    source_branch: PR head branch (informational)
    at:            when the event happened (schedule ticks match on it)
    cron:          the schedule that fired, if the scheduler knows it
    """
    kind: EventKind
    branch: Optional[str] = None
    source_branch: Optional[str] = None
    at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    cron: Optional[str] = None


class RunDecision(_Frozen):
    admitted: bool
    branch: str = ""
    reason: str = ""
    # integrator may coalesce this push with newer ones for the same branch
    batched: bool = False


def _reject(reason: str) -> RunDecision:
    return RunDecision(admitted=False, reason=reason)


class TriggerGate:
    """Decide whether an event starts a pipeline run. No side effects."""

    def __init__(self, config: TriggerConfig) -> None:
        self.config = config

    def admit(self, event: Event) -> RunDecision:
        decisions = self.decisions(event)
        admitted = [d for d in decisions if d.admitted]
        return admitted[0] if admitted else decisions[0]

    def decisions(self, event: Event) -> List[RunDecision]:
        """One admitted decision per run to start, or a single rejection."""
        if event.kind is EventKind.PUSH:
            return [self._push(event)]
        if event.kind is EventKind.PULL_REQUEST:
            return [self._pull_request(event)]
        if event.kind is EventKind.SCHEDULE:
            return self._schedule(event)
        return [self._manual(event)]

    def _push(self, event: Event) -> RunDecision:
        if not event.branch:
            return _reject("push event without a branch")
        cfg = self.config.push
        if not cfg.branches.matches(event.branch):
            return _reject(f"branch {normalize_branch(event.branch)!r} not in push include-list")
        return RunDecision(admitted=True, branch=normalize_branch(event.branch), batched=cfg.batch)

    def _pull_request(self, event: Event) -> RunDecision:
        if not event.branch:
            return _reject("pull request event without a destination branch")
        if not self.config.pr.branches.matches(event.branch):
            return _reject(f"target branch {normalize_branch(event.branch)!r} not in pr include-list")
        return RunDecision(admitted=True, branch=normalize_branch(event.branch))

    def _schedule(self, event: Event) -> List[RunDecision]:
        for sched in self.config.schedules:
            if event.cron is not None and CronExpression.parse(event.cron).source != sched.cron:
                continue
            if not sched.expression.matches(event.at):
                continue
            if not sched.branches.include:
                continue

            if event.branch:
                if not sched.branches.matches(event.branch):
                    continue
                targets = [normalize_branch(event.branch)]
            elif self.config.schedule_binding == "each":
                targets = self._literal_branches(sched)
            else:
                targets = self._literal_branches(sched)[:1]

            if targets:
                return [RunDecision(admitted=True, branch=b, reason=sched.display_name) for b in targets]

        return [_reject(f"no schedule matches tick at {event.at.isoformat()}")]

    @staticmethod
    def _literal_branches(sched: Schedule) -> List[str]:
        return [b for b in sched.branches.include if _is_literal(b) and sched.branches.matches(b)]

    def _manual(self, event: Event) -> RunDecision:
        branch = event.branch or self.config.push.branches.first
        if not branch:
            return _reject("manual run without a branch and no push include-branch to default to")
        return RunDecision(admitted=True, branch=normalize_branch(branch), reason="manual")
