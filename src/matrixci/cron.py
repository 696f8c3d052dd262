# cron.py
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import FrozenSet, Tuple

from .errors import ConfigurationError

# (name, low, high)
_FIELDS: Tuple[Tuple[str, int, int], ...] = (
    ("minute", 0, 59),
    ("hour", 0, 23),
    ("day-of-month", 1, 31),
    ("month", 1, 12),
    ("day-of-week", 0, 7),
)

_NAMES = {
    "month": {m: i + 1 for i, m in enumerate(
        ["jan", "feb", "mar", "apr", "may", "jun", "jul", "aug", "sep", "oct", "nov", "dec"])},
    "day-of-week": {d: i for i, d in enumerate(["sun", "mon", "tue", "wed", "thu", "fri", "sat"])},
}


def _number(field: str, token: str) -> int:
    names = _NAMES.get(field, {})
    if token.lower() in names:
        return names[token.lower()]
    try:
        return int(token)
    except ValueError:
        raise ConfigurationError(f"invalid {field} value {token!r} in cron expression") from None


def _parse_field(field: str, low: int, high: int, text: str) -> FrozenSet[int]:
    out: set[int] = set()
    for part in text.split(","):
        if not part:
            raise ConfigurationError(f"empty entry in cron {field} field {text!r}")
        step = 1
        if "/" in part:
            part, step_s = part.split("/", 1)
            step = _number(field, step_s)
            if step < 1:
                raise ConfigurationError(f"cron {field} step must be positive: {text!r}")
        if part == "*":
            start, end = low, high
        elif "-" in part:
            a, b = part.split("-", 1)
            start, end = _number(field, a), _number(field, b)
        else:
            start = _number(field, part)
            end = high if step > 1 else start
        if not (low <= start <= high and low <= end <= high) or start > end:
            raise ConfigurationError(f"cron {field} out of range [{low}-{high}]: {text!r}")
        out.update(range(start, end + 1, step))
    return frozenset(out)


@dataclass(frozen=True)
class CronExpression:
    """Standard five-field cron expression (minute hour dom month dow)."""
    source: str
    minutes: FrozenSet[int]
    hours: FrozenSet[int]
    days: FrozenSet[int]
    months: FrozenSet[int]
    weekdays: FrozenSet[int]
    dom_any: bool
    dow_any: bool

    @classmethod
    def parse(cls, text: str) -> CronExpression:
        fields = text.split()
        if len(fields) != 5:
            raise ConfigurationError(f"cron expression needs 5 fields, got {len(fields)}: {text!r}")
        parsed = [_parse_field(name, lo, hi, f) for (name, lo, hi), f in zip(_FIELDS, fields)]
        weekdays = frozenset(d % 7 for d in parsed[4])  # 7 is Sunday too
        return cls(
            source=" ".join(fields),
            minutes=parsed[0],
            hours=parsed[1],
            days=parsed[2],
            months=parsed[3],
            weekdays=weekdays,
            dom_any=fields[2].startswith("*"),
            dow_any=fields[4].startswith("*"),
        )

    def matches(self, at: datetime) -> bool:
        if at.minute not in self.minutes or at.hour not in self.hours or at.month not in self.months:
            return False
        dom = at.day in self.days
        dow = (at.isoweekday() % 7) in self.weekdays
        # classic cron: when both day fields are restricted, either may match
        if self.dom_any or self.dow_any:
            return dom and dow
        return dom or dow

    def __str__(self) -> str:
        return self.source
