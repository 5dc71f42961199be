"""FrameReconciler: shared driver for the pandas and polars front ends.

The driver validates a request, reduces the table to KeyGroups, resolves
them with the pure core in ``resolver`` and writes the result back. The
concrete subclasses only answer frame-level questions (what columns exist,
which rows share a key, how to read and write a column).

Ordered categoricals (pandas ordered Categorical, polars Enum) travel
through the core as integer category codes, so the max step ranks them by
declared order rather than by spelling.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from .column_filters import is_orderable, is_string
from .policy import (
    PolicyLike, ReconcileConfigError, as_key_list, as_policy, check_policy_layout,
)
from .resolution import ReconcileReport, summarize_resolutions
from .resolver import KeyGroup, resolve_groups, resolved_row_values

log = logging.getLogger("keygroup.reconcile")


class FrameReconciler:
    """Template for reconciling attributes of one kind of dataframe."""

    frame_type: Tuple[type, ...] = ()

    # ------------------------------------------------------------------
    # frame hooks
    # ------------------------------------------------------------------

    def columns(self, df) -> List[str]:
        raise NotImplementedError

    def dtype(self, df, column):
        raise NotImplementedError

    def row_count(self, df) -> int:
        raise NotImplementedError

    def group_codes(self, df, columns: List[str]) -> List[int]:
        """Group number per row, numbered in order of first appearance."""
        raise NotImplementedError

    def row_tuples(self, df, columns: List[str]) -> List[Tuple[Any, ...]]:
        raise NotImplementedError

    def null_mask(self, df, column) -> List[bool]:
        raise NotImplementedError

    def column_values(self, df, column, missing_values: Iterable = ()) -> List[Any]:
        """Plain values per row, ``None`` where missing.

        Ordered categoricals come back as category codes.
        """
        raise NotImplementedError

    def write_values(self, df, column, values: List[Any]):
        """Return a copy of df with column replaced by values (codes decoded)."""
        raise NotImplementedError

    def add_column(self, df, column, values: List[Any]):
        raise NotImplementedError

    def dedupe(self, df, key_columns):
        raise NotImplementedError

    def duplicate_keys(self, df, key_columns):
        raise NotImplementedError

    def encode_ordinal(self, df, column, order: Sequence, missing_values: Iterable = ()):
        raise NotImplementedError

    def decode_ordinal(self, df, column):
        raise NotImplementedError

    # ------------------------------------------------------------------
    # driver
    # ------------------------------------------------------------------

    def check_present(self, df, columns: List[str]) -> None:
        available = self.columns(df)
        absent = [c for c in columns if c not in available]
        if absent:
            raise ReconcileConfigError(
                f"Columns {absent} not found in table; available columns are {available}"
            )

    def check_columns(self, df, keys: List[str], attribute: str, ordering: Optional[str]) -> None:
        if not keys:
            raise ReconcileConfigError("At least one key column is required")
        if attribute in keys:
            raise ReconcileConfigError(
                f"Attribute '{attribute}' is also a key column; key columns are constant per group by definition"
            )
        if ordering is not None and ordering == attribute:
            raise ReconcileConfigError(
                f"Attribute '{attribute}' cannot also be the ordering column"
            )
        wanted = keys + [attribute] + ([ordering] if ordering is not None else [])
        self.check_present(df, wanted)

    def check_orderable(self, df, attribute: str) -> None:
        dtype = self.dtype(df, attribute)
        if is_orderable(dtype):
            return
        hint = ""
        if is_string(dtype):
            hint = "; map it to ordered codes with encode_ordinal first"
        raise ReconcileConfigError(
            f"The max step needs an orderable attribute, but '{attribute}' has dtype {dtype}{hint}"
        )

    def build_groups(
        self, df, keys: List[str], attribute: str, ordering: Optional[str],
        missing_values: Iterable = (),
    ) -> List[KeyGroup]:
        """Reduce the table to KeyGroups in order of first appearance."""
        n = self.row_count(df)
        codes = self.group_codes(df, keys)
        key_rows = self.row_tuples(df, keys)
        values = self.column_values(df, attribute, missing_values)

        if ordering is not None:
            order = self.column_values(df, ordering)
        else:
            order = [None] * n

        period_in_key = ordering is not None and ordering in keys
        if period_in_key:
            identifier = [k for k in keys if k != ordering]
            partitions = self.group_codes(df, identifier) if identifier else [0] * n
        else:
            partitions = [0] * n

        groups: Dict[int, KeyGroup] = {}
        for pos in range(n):
            code = codes[pos]
            group = groups.get(code)
            if group is None:
                group = KeyGroup(
                    key=key_rows[pos],
                    positions=[],
                    values=[],
                    partition=partitions[pos],
                    period=order[pos] if period_in_key else None,
                    order=[],
                )
                groups[code] = group
            group.positions.append(pos)
            group.values.append(values[pos])
            if ordering is not None:
                group.order.append(order[pos])
        return list(groups.values())

    def reconcile_attribute(
        self,
        df,
        key_columns,
        attribute_column: str,
        ordering_column: Optional[str] = None,
        policy: PolicyLike = None,
        missing_values: Iterable = (),
        step_column: Optional[str] = None,
    ) -> Tuple[Any, ReconcileReport]:
        """Make attribute_column constant within every key group.

        Returns ``(df, report)``; the input frame is never modified. When
        ``step_column`` is given, the resolving step of every row is added
        to the output under that name.
        """
        keys = as_key_list(key_columns)
        self.check_columns(df, keys, attribute_column, ordering_column)
        policy = as_policy(policy, keys, ordering_column)
        check_policy_layout(policy, keys, ordering_column)
        if policy.needs_orderable:
            self.check_orderable(df, attribute_column)
        if step_column is not None and step_column in self.columns(df):
            raise ReconcileConfigError(f"step_column '{step_column}' already exists in the table")

        missing_values = list(missing_values)
        groups = self.build_groups(df, keys, attribute_column, ordering_column, missing_values)
        resolutions = resolve_groups(groups, policy)

        n = self.row_count(df)
        before = self.column_values(df, attribute_column, missing_values)
        was_null = self.null_mask(df, attribute_column)
        after = resolved_row_values(resolutions, n)
        changed = 0
        for old, new, null in zip(before, after, was_null):
            if new is None:
                changed += not null
            elif old is None or old != new:
                changed += 1

        out = self.write_values(df, attribute_column, after)
        report = summarize_resolutions(
            resolutions, attribute_column, keys, policy, n, changed_rows=changed)
        if step_column is not None:
            out = self.add_column(out, step_column, list(report.row_steps))

        log.info("reconciled %r over %s: %d groups, %d rows changed, policy %s",
                 attribute_column, keys, report.group_count, changed, policy)
        if report.missing_groups:
            log.warning("%r: %d key groups have no usable value, first keys %r",
                        attribute_column, report.missing_groups, report.missing_keys[:5])
        return out, report

    def inconsistency_summary(
        self, df, key_columns, columns: Optional[Iterable[str]] = None,
        missing_values: Iterable = (),
    ) -> Dict[str, Dict[str, int]]:
        """Count key groups holding more than one distinct value, per column.

        Returns ``{column: {'conflict_groups': int, 'conflict_rows': int}}``
        for every requested non-key column, consistent columns included.
        """
        keys = as_key_list(key_columns)
        self.check_present(df, keys)
        if columns is None:
            columns = [c for c in self.columns(df) if c not in keys]
        else:
            columns = list(columns)
            self.check_present(df, columns)

        codes = self.group_codes(df, keys)
        missing_values = list(missing_values)
        summary = {}
        for col in columns:
            distinct: Dict[int, set] = {}
            sizes: Dict[int, int] = {}
            for code, val in zip(codes, self.column_values(df, col, missing_values)):
                sizes[code] = sizes.get(code, 0) + 1
                if val is not None:
                    distinct.setdefault(code, set()).add(val)
            conflicted = [code for code, vals in distinct.items() if len(vals) > 1]
            summary[col] = {
                'conflict_groups': len(conflicted),
                'conflict_rows': sum(sizes[code] for code in conflicted),
            }
        return summary
