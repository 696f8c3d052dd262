# matrix.py
from __future__ import annotations

import itertools
from typing import Dict, Iterable, List, Mapping, Optional, Sequence

from .errors import ConfigurationError
from .model import Axis, MatrixCell


def validate_axes(axes: Sequence[Axis]) -> None:
    seen: set[str] = set()
    for ax in axes:
        if ax.name in seen:
            raise ConfigurationError(f"duplicate axis name: {ax.name!r}", axis=ax.name)
        seen.add(ax.name)

        if not ax.values:
            raise ConfigurationError(f"axis {ax.name!r} has no values", axis=ax.name)

        labels = [v.label for v in ax.values]
        values = [v.value for v in ax.values]
        for what, items in (("label", labels), ("value", values)):
            dupes = sorted({x for x in items if items.count(x) > 1})
            if dupes:
                raise ConfigurationError(
                    f"axis {ax.name!r} has duplicate {what}s: {dupes}", axis=ax.name
                )


def _check_partial(axes: Sequence[Axis], entry: Mapping[str, str], where: str) -> None:
    by_name = {ax.name: ax for ax in axes}
    for axis_name, label in entry.items():
        if axis_name not in by_name:
            raise ConfigurationError(f"{where} names unknown axis {axis_name!r}")
        if label not in by_name[axis_name].labels:
            raise ConfigurationError(
                f"{where} names unknown value {label!r} for axis {axis_name!r}",
                known=by_name[axis_name].labels,
            )


def _matches(cell: MatrixCell, entry: Mapping[str, str]) -> bool:
    labels = cell.labels
    return all(labels.get(k) == v for k, v in entry.items())


def expand(
    axes: Sequence[Axis],
    exclude: Iterable[Mapping[str, str]] = (),
    overrides: Optional[Mapping[str, Mapping[str, str]]] = None,
) -> List[MatrixCell]:
    """
    Expand axes into the full cartesian product of cells.

    Order is the product in axis declaration order (first axis varies
    slowest), so the same definition always yields the same job names.

    exclude:   partial {axis: label} mappings; matching cells are pruned
    overrides: {cell name: {key: value}}; merged over the axis-derived
               values, per-value overrides first, cell overrides last
    """
    axes = list(axes)
    validate_axes(axes)
    exclude = [dict(e) for e in exclude]
    for e in exclude:
        _check_partial(axes, e, "exclude entry")

    cells: List[MatrixCell] = []
    for combo in itertools.product(*(ax.values for ax in axes)):
        values = tuple((ax.name, v.label, v.value) for ax, v in zip(axes, combo))
        extra: Dict[str, str] = {}
        for v in combo:
            extra.update(dict(v.overrides))
        cell = MatrixCell(values=values, overrides=tuple(extra.items()))
        if any(_matches(cell, e) for e in exclude):
            continue
        cells.append(cell)

    names = [c.name for c in cells]
    dupes = sorted({n for n in names if names.count(n) > 1})
    if dupes:
        raise ConfigurationError(f"matrix produces ambiguous cell names: {dupes}")

    if overrides:
        unknown = sorted(set(overrides) - set(names))
        if unknown:
            raise ConfigurationError(f"overrides name unknown cells: {unknown}", known=names)
        merged: List[MatrixCell] = []
        for cell in cells:
            extra = dict(cell.overrides)
            extra.update({k: str(v) for k, v in overrides.get(cell.name, {}).items()})
            merged.append(MatrixCell(values=cell.values, overrides=tuple(extra.items())))
        cells = merged

    return cells
