"""Result types for key-group reconciliation.

Every key group ends in exactly one GroupResolution naming the step that
decided it. Outcomes that found no usable value (MISSING, UNRESOLVED) are
ordinary results here; they are counted in the ReconcileReport rather than
raised, so one bad group never halts a batch.
"""
from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple

from .policy import MISSING, OUTCOMES, UNRESOLVED, FallbackPolicy


@dataclass(frozen=True)
class GroupResolution:
    """The resolved value of one key group."""
    key: Tuple[Any, ...]
    positions: Tuple[int, ...]
    step: str
    value: Any
    mode: Any = None  # the step-1 result: a value, NO_MODE or NO_VALUE

    @property
    def found_value(self) -> bool:
        return self.step not in (MISSING, UNRESOLVED)


@dataclass
class ReconcileReport:
    """Audit record of one attribute's reconciliation."""
    attribute: str
    key_columns: List[str]
    policy: FallbackPolicy
    row_count: int = 0
    group_count: int = 0
    changed_rows: int = 0
    row_counts: Dict[str, int] = field(default_factory=dict)
    group_counts: Dict[str, int] = field(default_factory=dict)
    row_steps: Tuple[str, ...] = ()
    missing_keys: List[Tuple[Any, ...]] = field(default_factory=list)

    @property
    def missing_groups(self) -> int:
        return self.group_counts.get(MISSING, 0) + self.group_counts.get(UNRESOLVED, 0)

    def resolved_by(self, step: str) -> int:
        """Number of key groups decided by ``step``."""
        return self.group_counts.get(step, 0)

    def describe(self) -> str:
        """Return a human-readable summary of this reconciliation."""
        lines = [f"{self.attribute}: {self.group_count} groups over {self.key_columns}, "
                 f"policy {self.policy}"]
        for step in OUTCOMES:
            groups = self.group_counts.get(step, 0)
            if groups:
                lines.append(f"  {step}: {groups} groups, {self.row_counts.get(step, 0)} rows")
        lines.append(f"  changed rows: {self.changed_rows}")
        if self.missing_keys:
            shown = ', '.join(repr(k) for k in self.missing_keys[:5])
            more = len(self.missing_keys) - 5
            lines.append(f"  no value for: {shown}" + (f" (+{more} more)" if more > 0 else ""))
        return '\n'.join(lines)


def row_steps(resolutions: Sequence[GroupResolution], row_count: int) -> List[Optional[str]]:
    """Spread each group's step back onto the rows it covers."""
    steps: List[Optional[str]] = [None] * row_count
    for res in resolutions:
        for pos in res.positions:
            steps[pos] = res.step
    return steps


def summarize_resolutions(
    resolutions: Sequence[GroupResolution],
    attribute: str,
    key_columns: List[str],
    policy: FallbackPolicy,
    row_count: int,
    changed_rows: int = 0,
) -> ReconcileReport:
    """Fold group resolutions into a ReconcileReport."""
    group_counts: Counter = Counter()
    row_counts: Counter = Counter()
    missing_keys = []
    for res in resolutions:
        group_counts[res.step] += 1
        row_counts[res.step] += len(res.positions)
        if not res.found_value:
            missing_keys.append(res.key)

    return ReconcileReport(
        attribute=attribute,
        key_columns=list(key_columns),
        policy=policy,
        row_count=row_count,
        group_count=len(resolutions),
        changed_rows=changed_rows,
        row_counts=dict(row_counts),
        group_counts=dict(group_counts),
        row_steps=tuple(row_steps(resolutions, row_count)),
        missing_keys=missing_keys,
    )
