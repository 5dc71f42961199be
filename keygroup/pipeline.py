"""ReconcilePipeline: ordered multi-attribute reconciliation ending in dedupe.

Each AttributeRule is one pure transformation of the table produced by the
previous rule, so the report list records which step changed what. Rules are
bound to the pipeline's key and ordering column, and their policies are
validated, when the pipeline is constructed.

Usage::

    pipeline = ReconcilePipeline(
        ['sid', 'school_year'],
        [AttributeRule('race_ethnicity', key_columns=['sid'], policy='mode -> last'),
         AttributeRule('frpl', order=['N', 'R', 'F'])],
        ordering_column='school_year',
    )
    clean_df, reports = pipeline.process_df(raw_df)

Pipelines can also be customized by subclassing::

    class MyPipeline(ReconcilePipeline):
        key_columns = ['sid', 'school_year']
        ordering_column = 'school_year'
        rules = [AttributeRule('frpl', order=['N', 'R', 'F'])]
"""
from __future__ import annotations

import dataclasses
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, Tuple

from .pandas_reconcile import PandasReconciler
from .policy import (
    PolicyLike, ReconcileConfigError, as_key_list, as_policy,
    check_policy_layout,
)
from .polars_reconcile import PolarsReconciler
from .reconciler import FrameReconciler
from .resolution import ReconcileReport

log = logging.getLogger("keygroup.pipeline")

RECONCILERS: Tuple[FrameReconciler, ...] = (PandasReconciler(), PolarsReconciler())


def reconciler_for(df) -> FrameReconciler:
    """Pick the front end for a pandas or polars DataFrame."""
    for rec in RECONCILERS:
        if isinstance(df, rec.frame_type):
            return rec
    raise TypeError(
        f"Cannot reconcile {type(df).__name__!r}. Expected a pandas or polars DataFrame."
    )


@dataclass(frozen=True)
class AttributeRule:
    """How one attribute is made constant per key group.

    Attributes:
        attribute: column to reconcile
        key_columns: key for this attribute, defaults to the pipeline key;
            must be a subset of it (e.g. ``['sid']`` for lifetime attributes)
        ordering_column: defaults to the pipeline's ordering column
        policy: resolution steps, defaults from where the ordering sits
        order: ordinal order of the values, lowest first; the attribute is
            encoded with it for reconciliation and decoded afterwards
        missing_values: values treated like nulls
    """
    attribute: str
    key_columns: Optional[Tuple[str, ...]] = None
    ordering_column: Optional[str] = None
    policy: PolicyLike = None
    order: Optional[Tuple[Any, ...]] = None
    missing_values: Tuple[Any, ...] = ()

    def __post_init__(self):
        if self.key_columns is not None:
            object.__setattr__(self, 'key_columns', tuple(as_key_list(self.key_columns)))
        if self.order is not None:
            object.__setattr__(self, 'order', tuple(self.order))
        object.__setattr__(self, 'missing_values', tuple(self.missing_values))

    def bind(self, key_columns: Sequence[str], ordering_column: Optional[str]) -> 'AttributeRule':
        """Fill in pipeline defaults and validate the policy against the layout."""
        keys = self.key_columns if self.key_columns is not None else tuple(key_columns)
        ordering = self.ordering_column if self.ordering_column is not None else ordering_column
        if not keys:
            raise ReconcileConfigError(f"Rule for '{self.attribute}' has no key columns")
        outside = [k for k in keys if k not in key_columns]
        if outside:
            raise ReconcileConfigError(
                f"Rule for '{self.attribute}' keys on {outside}, which are not part of "
                f"the pipeline key {list(key_columns)}"
            )
        if self.attribute in key_columns:
            raise ReconcileConfigError(
                f"'{self.attribute}' is a pipeline key column and cannot be reconciled"
            )
        policy = as_policy(self.policy, list(keys), ordering)
        check_policy_layout(policy, list(keys), ordering)
        return dataclasses.replace(self, key_columns=keys, ordering_column=ordering, policy=policy)


class ReconcilePipeline:
    """Apply AttributeRules in order, then collapse to one row per key.

    Accepts pandas or polars DataFrames; the output has the input's type.
    """

    key_columns: Sequence[str] = ()
    ordering_column: Optional[str] = None
    rules: Sequence[AttributeRule] = ()
    dedupe_output: bool = True

    def __init__(
        self,
        key_columns=None,
        rules: Optional[Sequence[AttributeRule]] = None,
        ordering_column: Optional[str] = None,
        dedupe_output: Optional[bool] = None,
    ):
        kls = type(self)
        self.key_columns = as_key_list(key_columns if key_columns is not None else kls.key_columns)
        self.ordering_column = ordering_column if ordering_column is not None else kls.ordering_column
        self.dedupe_output = dedupe_output if dedupe_output is not None else kls.dedupe_output
        if not self.key_columns:
            raise ReconcileConfigError("A pipeline needs at least one key column")

        raw_rules = list(rules if rules is not None else kls.rules)
        seen = set()
        for rule in raw_rules:
            if rule.attribute in seen:
                raise ReconcileConfigError(f"'{rule.attribute}' is reconciled by more than one rule")
            seen.add(rule.attribute)
        self.rules: List[AttributeRule] = [
            r.bind(self.key_columns, self.ordering_column) for r in raw_rules]

    def process_df(self, df) -> Tuple[Any, List[ReconcileReport]]:
        """Run every rule, then dedupe by the pipeline key.

        Returns:
            (out_df, reports) with one ReconcileReport per rule, in rule order.
        """
        rec = reconciler_for(df)
        rec.check_present(df, self.key_columns)

        out = df
        reports: List[ReconcileReport] = []
        for rule in self.rules:
            if rule.order is not None:
                out = rec.encode_ordinal(
                    out, rule.attribute, rule.order, missing_values=rule.missing_values)
            out, report = rec.reconcile_attribute(
                out, list(rule.key_columns), rule.attribute,
                ordering_column=rule.ordering_column,
                policy=rule.policy,
                missing_values=rule.missing_values,
            )
            if rule.order is not None:
                out = rec.decode_ordinal(out, rule.attribute)
            log.debug("rule %r done: %s", rule.attribute, report.group_counts)
            reports.append(report)

        if self.dedupe_output:
            before = rec.row_count(out)
            out = rec.dedupe(out, self.key_columns)
            log.info("deduplicated on %s: %d rows -> %d rows",
                     self.key_columns, before, rec.row_count(out))
        return out, reports

    def inconsistencies(self, df) -> Dict[str, Dict[str, int]]:
        """Conflict counts per rule attribute, before reconciling.

        Each attribute is checked over its own rule key and missing values,
        the same groups process_df will reconcile.
        """
        rec = reconciler_for(df)
        summary = {}
        for rule in self.rules:
            summary.update(rec.inconsistency_summary(
                df, list(rule.key_columns), columns=[rule.attribute],
                missing_values=rule.missing_values))
        return summary

    def add_rule(self, rule: AttributeRule) -> 'ReconcilePipeline':
        """Return a new pipeline with ``rule`` appended."""
        return type(self)(
            key_columns=self.key_columns,
            rules=list(self.rules) + [rule],
            ordering_column=self.ordering_column,
            dedupe_output=self.dedupe_output,
        )

    def explain(self) -> str:
        """Return a human-readable description of the plan."""
        lines = [f"{type(self).__name__}: key {self.key_columns}"]
        if self.ordering_column is not None:
            lines.append(f"  ordering: {self.ordering_column}")
        for i, rule in enumerate(self.rules, 1):
            lines.append(f"  {i}. {rule.attribute}: keys {list(rule.key_columns)}, policy {rule.policy}")
            if rule.order is not None:
                lines.append(f"     order: {' < '.join(str(v) for v in rule.order)}")
            if rule.missing_values:
                lines.append(f"     missing values: {list(rule.missing_values)}")
        if self.dedupe_output:
            lines.append(f"  then one row per {self.key_columns}")
        return '\n'.join(lines)

    def print_reports(self, reports: List[ReconcileReport]) -> None:
        for report in reports:
            print(report.describe())
            print()
