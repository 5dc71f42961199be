"""Frame-independent core of key-group reconciliation.

The pandas and polars front ends both reduce a table to a list of KeyGroup
objects (plain Python values, ``None`` for anything missing), hand them to
``resolve_groups`` and write the resolved values back. Nothing in here knows
about dataframes, so every rule can be exercised on literal lists.

Partitioning::

    identifier partition   rows sharing the key minus the ordering column
      key group            rows sharing the full key (one period)
        row values         the attribute values being reconciled

Each partition is resolved on its own; partitions never look at each other.
"""
from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from typing import Any, Dict, Hashable, List, Sequence, Tuple

from .policy import (
    LAG, LAST, LEAD, MISSING, MODE, NO_MODE, NO_VALUE, UNRESOLVED,
    FallbackPolicy,
)
from .resolution import GroupResolution


@dataclass
class KeyGroup:
    """All rows of one key group, reduced to plain values.

    Attributes:
        key: the key column values shared by the rows
        positions: row positions in the source table
        values: attribute value per row, ``None`` when missing
        partition: identifier partition the group belongs to
        period: ordering value of the group when the ordering column is
            part of the key, else ``None``
        order: ordering value per row, empty when there is no ordering column
    """
    key: Tuple[Any, ...]
    positions: List[int]
    values: List[Any]
    partition: Hashable = 0
    period: Any = None
    order: List[Any] = field(default_factory=list)


def _null_first(value):
    # Tuples compare element-wise with == first, so two Nones never reach <
    return (value is not None, value)


def _is_value(candidate) -> bool:
    return candidate is not None and candidate is not NO_MODE and candidate is not NO_VALUE


def group_mode(values: Sequence[Any]) -> Any:
    """Return the unique most frequent non-missing value.

    Returns ``NO_MODE`` when several values tie for the highest count and
    ``NO_VALUE`` when every value is missing.

    >>> group_mode(['Y', 'N', 'Y'])
    'Y'
    >>> group_mode(['Y', 'N'])
    <NO_MODE>
    """
    counts = Counter(v for v in values if v is not None)
    if not counts:
        return NO_VALUE
    top = counts.most_common(2)
    if len(top) > 1 and top[0][1] == top[1][1]:
        return NO_MODE
    return top[0][0]


def last_value(group: KeyGroup) -> Any:
    """Last non-missing value with rows ordered stably by ordering value."""
    pairs = list(zip(group.order, group.values))
    pairs.sort(key=lambda p: _null_first(p[0]))
    present = [v for _, v in pairs if v is not None]
    if not present:
        return NO_VALUE
    return present[-1]


def max_value(group: KeyGroup) -> Any:
    present = [v for v in group.values if v is not None]
    if not present:
        return NO_VALUE
    return max(present)


def _fallback(policy: FallbackPolicy, group: KeyGroup, modes: List[Any], i: int) -> Tuple[str, Any]:
    for step in policy.fallbacks:
        if step == LAG:
            candidate = modes[i - 1] if i > 0 else NO_VALUE
        elif step == LEAD:
            candidate = modes[i + 1] if i + 1 < len(modes) else NO_VALUE
        elif step == LAST:
            candidate = last_value(group)
        else:  # max
            candidate = max_value(group)
        if _is_value(candidate):
            return step, candidate
    return UNRESOLVED, None


def resolve_partition(groups: Sequence[KeyGroup], policy: FallbackPolicy) -> List[GroupResolution]:
    """Resolve the key groups of one identifier partition.

    Groups are put in period order (stable, null periods first) so that
    lag and lead see the adjacent periods of the same identifier.
    """
    ordered = sorted(groups, key=lambda g: _null_first(g.period))
    modes = [group_mode(g.values) for g in ordered]

    resolutions = []
    for i, (group, mode) in enumerate(zip(ordered, modes)):
        if mode is NO_VALUE:
            step, value = MISSING, None
        elif mode is NO_MODE:
            step, value = _fallback(policy, group, modes, i)
        else:
            step, value = MODE, mode
        resolutions.append(GroupResolution(
            key=group.key,
            positions=tuple(group.positions),
            step=step,
            value=value,
            mode=mode,
        ))
    return resolutions


def resolve_groups(groups: Sequence[KeyGroup], policy: FallbackPolicy) -> List[GroupResolution]:
    """Partition key groups by identifier, resolve each partition, recombine."""
    partitions: Dict[Hashable, List[KeyGroup]] = {}
    for group in groups:
        partitions.setdefault(group.partition, []).append(group)

    resolutions: List[GroupResolution] = []
    for part_groups in partitions.values():
        resolutions.extend(resolve_partition(part_groups, policy))
    return resolutions


def resolved_row_values(resolutions: Sequence[GroupResolution], row_count: int) -> List[Any]:
    """Spread each group's resolved value back onto its rows."""
    out: List[Any] = [None] * row_count
    for res in resolutions:
        for pos in res.positions:
            out[pos] = res.value
    return out
