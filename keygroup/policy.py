"""Fallback policies for key-group reconciliation.

A policy is the explicit, ordered list of resolution steps tried for a key
group whose attribute values disagree:

  - MODE   the unique most frequent value in the group
  - LAG    the mode of the preceding key group of the same identifier
  - LEAD   the mode of the following key group of the same identifier
  - LAST   the last non-missing value in the group, by ordering column
  - MAX    the largest non-missing value (orderable attributes only)

Two failure modes are kept apart:
  - Config error (ReconcileConfigError) raised before any group is resolved
  - Data outcome (MISSING / UNRESOLVED) reported per row, never raised
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Sequence, Tuple, Union


class ReconcileConfigError(ValueError):
    """Raised when a reconciliation cannot be carried out as configured.

    This is a configuration-time error, not a data problem. Absent columns,
    an invalid policy, or a max step over a non-orderable attribute all
    raise it before any value is touched.
    """
    pass


class _Sentinel:
    """Named singleton markers that can never collide with data values."""
    _instances = {}

    def __new__(cls, name):
        if name not in cls._instances:
            inst = super().__new__(cls)
            inst._name = name
            cls._instances[name] = inst
        return cls._instances[name]

    def __repr__(self):
        return f'<{self._name}>'

    def __bool__(self):
        return False


# The group's values tie for the highest count
NO_MODE = _Sentinel('NO_MODE')
# The group holds no non-missing value at all
NO_VALUE = _Sentinel('NO_VALUE')


# ---------------------------------------------------------------------------
# Step names
# ---------------------------------------------------------------------------

MODE = 'mode'
LAG = 'lag'
LEAD = 'lead'
LAST = 'last'
MAX = 'max'

STEPS = (MODE, LAG, LEAD, LAST, MAX)

# Outcomes that are not steps
MISSING = 'missing'
UNRESOLVED = 'unresolved'

OUTCOMES = STEPS + (MISSING, UNRESOLVED)

NEIGHBOR_STEPS = (LAG, LEAD)


@dataclass(frozen=True)
class FallbackPolicy:
    """An ordered, validated sequence of resolution steps.

    The first step is always MODE; the rest are tried in order only when
    the group has no unique mode.
    """
    steps: Tuple[str, ...]

    def __post_init__(self):
        steps = tuple(self.steps)
        object.__setattr__(self, 'steps', steps)
        if not steps or steps[0] != MODE:
            raise ReconcileConfigError(
                f"A fallback policy must start with '{MODE}', got {list(steps)}"
            )
        unknown = [s for s in steps if s not in STEPS]
        if unknown:
            raise ReconcileConfigError(
                f"Unknown resolution steps {unknown}; expected any of {list(STEPS)}"
            )
        if len(set(steps)) != len(steps):
            raise ReconcileConfigError(
                f"Resolution steps may not repeat: {list(steps)}"
            )

    @property
    def fallbacks(self) -> Tuple[str, ...]:
        return self.steps[1:]

    @property
    def uses_neighbors(self) -> bool:
        return any(s in NEIGHBOR_STEPS for s in self.steps)

    @property
    def needs_ordering(self) -> bool:
        return self.uses_neighbors or LAST in self.steps

    @property
    def needs_orderable(self) -> bool:
        return MAX in self.steps

    def __str__(self):
        return ' -> '.join(self.steps)


KEY_GROUP_POLICY = FallbackPolicy((MODE, LAG, LEAD, MAX))
RECORD_POLICY = FallbackPolicy((MODE, LAST))
MODE_MAX_POLICY = FallbackPolicy((MODE, MAX))


PolicyLike = Union[FallbackPolicy, Sequence[str], None]


def as_key_list(key_columns) -> list:
    if isinstance(key_columns, str):
        return [key_columns]
    return list(key_columns)


def default_policy(key_columns, ordering_column: Optional[str]) -> FallbackPolicy:
    """Pick the preset matching where the ordering column sits.

    Ordering inside the key means the attribute may change between periods,
    so neighbouring periods are consulted. Ordering outside the key means
    the attribute is fixed for the identifier's lifetime and the latest
    observation wins.
    """
    if ordering_column is None:
        return MODE_MAX_POLICY
    if ordering_column in as_key_list(key_columns):
        return KEY_GROUP_POLICY
    return RECORD_POLICY


def as_policy(policy: PolicyLike, key_columns, ordering_column: Optional[str]) -> FallbackPolicy:
    if policy is None:
        return default_policy(key_columns, ordering_column)
    if isinstance(policy, FallbackPolicy):
        return policy
    if isinstance(policy, str):
        return FallbackPolicy(tuple(s.strip() for s in policy.split('->')))
    return FallbackPolicy(tuple(policy))


def check_policy_layout(policy: FallbackPolicy, key_columns, ordering_column: Optional[str]) -> None:
    """Validate that the key layout can support every step of the policy."""
    keys = as_key_list(key_columns)
    if policy.needs_ordering and ordering_column is None:
        raise ReconcileConfigError(
            f"Policy '{policy}' needs an ordering column"
        )
    if policy.uses_neighbors:
        if ordering_column not in keys:
            raise ReconcileConfigError(
                f"Policy '{policy}' looks at neighbouring key groups, so the "
                f"ordering column '{ordering_column}' must be one of the key "
                f"columns {keys}"
            )
