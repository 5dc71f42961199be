from typing import Any, Iterable, List, Optional, Sequence, Tuple

import numpy as np
import pandas as pd
from typing_extensions import override

from .column_filters import is_ordered_categorical
from .policy import PolicyLike, ReconcileConfigError, as_key_list
from .reconciler import FrameReconciler
from .resolution import ReconcileReport


def _missing_mask(ser: pd.Series, missing_values) -> pd.Series:
    mask = ser.isna()
    if missing_values:
        mask = mask | ser.isin(list(missing_values))
    return mask


def _writeback_dtype(dtype, has_missing: bool):
    # numpy ints and bools cannot hold a missing value
    if not has_missing or not isinstance(dtype, np.dtype):
        return dtype
    if dtype.kind in 'iu':
        return 'float64'
    if dtype.kind == 'b':
        return 'boolean'
    return dtype


class PandasReconciler(FrameReconciler):
    """Concrete pandas implementation of FrameReconciler."""

    frame_type = (pd.DataFrame,)

    @override
    def columns(self, df) -> List[str]:
        if not df.columns.is_unique:
            raise ReconcileConfigError(
                "The table has duplicate column names; reconciliation requires distinct column names")
        return df.columns.to_list()

    @override
    def dtype(self, df, column):
        return df[column].dtype

    @override
    def row_count(self, df) -> int:
        return len(df)

    @override
    def group_codes(self, df, columns: List[str]) -> List[int]:
        grouped = df.groupby(columns, sort=False, dropna=False, observed=True)
        return grouped.ngroup().to_list()

    @override
    def row_tuples(self, df, columns: List[str]) -> List[Tuple[Any, ...]]:
        return list(df[columns].itertuples(index=False, name=None))

    @override
    def null_mask(self, df, column) -> List[bool]:
        return df[column].isna().to_list()

    @override
    def column_values(self, df, column, missing_values: Iterable = ()) -> List[Any]:
        ser = df[column]
        mask = _missing_mask(ser, list(missing_values)).to_list()
        if is_ordered_categorical(ser.dtype):
            raw = ser.cat.codes.to_list()
        else:
            raw = ser.to_list()
        return [None if m else v for v, m in zip(raw, mask)]

    @override
    def write_values(self, df, column, values: List[Any]):
        ser = df[column]
        out = df.copy()
        if is_ordered_categorical(ser.dtype):
            codes = np.array([-1 if v is None else v for v in values], dtype='int64')
            out[column] = pd.Series(
                pd.Categorical.from_codes(codes, dtype=ser.dtype), index=df.index)
            return out
        has_missing = any(v is None for v in values)
        new = pd.Series(values, index=df.index, dtype=object)
        out[column] = new.astype(_writeback_dtype(ser.dtype, has_missing))
        return out

    @override
    def add_column(self, df, column, values: List[Any]):
        out = df.copy()
        out[column] = pd.Series(values, index=df.index, dtype=object)
        return out

    @override
    def dedupe(self, df, key_columns):
        keys = as_key_list(key_columns)
        self.check_present(df, keys)
        return df.drop_duplicates(subset=keys, keep='first')

    @override
    def duplicate_keys(self, df, key_columns):
        keys = as_key_list(key_columns)
        self.check_present(df, keys)
        return df[df.duplicated(subset=keys, keep=False)]

    @override
    def encode_ordinal(self, df, column, order: Sequence, missing_values: Iterable = ()):
        order = list(order)
        if len(set(order)) != len(order):
            raise ReconcileConfigError(f"Ordinal order for '{column}' repeats a value: {order}")
        self.check_present(df, [column])
        ser = df[column]
        mask = _missing_mask(ser, list(missing_values))
        present = ser[~mask]
        unknown = sorted(set(present.to_list()) - set(order), key=repr)
        if unknown:
            raise ReconcileConfigError(
                f"Column '{column}' holds values {unknown} that are not in the ordinal order {order}")
        out = df.copy()
        out[column] = pd.Categorical(ser.where(~mask), categories=order, ordered=True)
        return out

    @override
    def decode_ordinal(self, df, column):
        self.check_present(df, [column])
        ser = df[column]
        if not isinstance(ser.dtype, pd.CategoricalDtype):
            raise ReconcileConfigError(f"Column '{column}' is not ordinally encoded")
        out = df.copy()
        out[column] = ser.astype(object).where(ser.notna(), None)
        return out


_RECONCILER = PandasReconciler()


def reconcile_attribute(
    df: pd.DataFrame,
    key_columns,
    attribute_column: str,
    ordering_column: Optional[str] = None,
    policy: PolicyLike = None,
    missing_values: Iterable = (),
    step_column: Optional[str] = None,
) -> Tuple[pd.DataFrame, ReconcileReport]:
    """Make ``attribute_column`` constant within each ``key_columns`` group.

    Parameters
    ----------
    df : pd.DataFrame
        The table to reconcile. It is not modified.
    key_columns : str or list[str]
        Column(s) whose combined value defines a key group.
    attribute_column : str
        The column to reconcile.
    ordering_column : str, optional
        Period column. Inside the key it drives lag/lead across periods of
        one identifier; outside the key it orders rows for the last step.
    policy : FallbackPolicy, list[str] or str, optional
        Resolution steps, e.g. ``['mode', 'lag', 'lead', 'max']`` or
        ``'mode -> last'``. Defaults from where ``ordering_column`` sits.
    missing_values : iterable, optional
        Values treated like nulls, e.g. ``['.', 'Unknown']``.
    step_column : str, optional
        Add a column naming the step that resolved each row.

    Returns
    -------
    out : pd.DataFrame
        Same rows, index and columns, attribute reconciled.
    report : ReconcileReport
        Per-step counts, changed rows and keys left without a value.
    """
    return _RECONCILER.reconcile_attribute(
        df, key_columns, attribute_column, ordering_column=ordering_column,
        policy=policy, missing_values=missing_values, step_column=step_column)


def reconcile(
    df: pd.DataFrame,
    key_columns,
    attribute_column: str,
    ordering_column: Optional[str] = None,
    policy: PolicyLike = None,
    missing_values: Iterable = (),
) -> pd.DataFrame:
    """``reconcile_attribute`` without the report."""
    out, _report = reconcile_attribute(
        df, key_columns, attribute_column, ordering_column=ordering_column,
        policy=policy, missing_values=missing_values)
    return out


def dedupe(df: pd.DataFrame, key_columns) -> pd.DataFrame:
    """Keep the first row of every key group, in original order."""
    return _RECONCILER.dedupe(df, key_columns)


def duplicate_keys(df: pd.DataFrame, key_columns) -> pd.DataFrame:
    """Every row whose key occurs more than once."""
    return _RECONCILER.duplicate_keys(df, key_columns)


def inconsistency_summary(df: pd.DataFrame, key_columns, columns=None, missing_values=()) -> dict:
    return _RECONCILER.inconsistency_summary(
        df, key_columns, columns=columns, missing_values=missing_values)


def encode_ordinal(df: pd.DataFrame, column: str, order: Sequence, missing_values=()) -> pd.DataFrame:
    """Map ``column`` to an ordered Categorical whose categories follow ``order``."""
    return _RECONCILER.encode_ordinal(df, column, order, missing_values=missing_values)


def decode_ordinal(df: pd.DataFrame, column: str) -> pd.DataFrame:
    return _RECONCILER.decode_ordinal(df, column)
