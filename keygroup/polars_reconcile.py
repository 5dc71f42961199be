import math
from typing import Any, Iterable, List, Optional, Sequence, Tuple

import polars as pl
from typing_extensions import override

from .policy import PolicyLike, ReconcileConfigError, as_key_list
from .reconciler import FrameReconciler
from .resolution import ReconcileReport

_ROW = "__keygroup_row"


def _is_null(v) -> bool:
    # polars keeps float NaN distinct from null; both count as missing here
    return v is None or (isinstance(v, float) and math.isnan(v))


def _missing_list(ser: pl.Series, missing_values) -> List[bool]:
    missing = set(missing_values)
    return [_is_null(v) or (bool(missing) and v in missing) for v in ser.to_list()]


class PolarsReconciler(FrameReconciler):
    """Concrete polars implementation of FrameReconciler."""

    frame_type = (pl.DataFrame,)

    @override
    def columns(self, df) -> List[str]:
        return list(df.columns)

    @override
    def dtype(self, df, column):
        return df.schema[column]

    @override
    def row_count(self, df) -> int:
        return df.height

    @override
    def group_codes(self, df, columns: List[str]) -> List[int]:
        members = (
            df.select(columns)
            .with_row_index(_ROW)
            .group_by(columns, maintain_order=True)
            .agg(pl.col(_ROW))
            .get_column(_ROW)
            .to_list()
        )
        codes = [0] * df.height
        for code, positions in enumerate(members):
            for pos in positions:
                codes[pos] = code
        return codes

    @override
    def row_tuples(self, df, columns: List[str]) -> List[Tuple[Any, ...]]:
        return df.select(columns).rows()

    @override
    def null_mask(self, df, column) -> List[bool]:
        return [_is_null(v) for v in df.get_column(column).to_list()]

    @override
    def column_values(self, df, column, missing_values: Iterable = ()) -> List[Any]:
        ser = df.get_column(column)
        mask = _missing_list(ser, missing_values)
        if isinstance(ser.dtype, pl.Enum):
            raw = ser.to_physical().to_list()
        else:
            raw = ser.to_list()
        return [None if m else v for v, m in zip(raw, mask)]

    @override
    def write_values(self, df, column, values: List[Any]):
        dtype = df.schema[column]
        if isinstance(dtype, pl.Enum):
            categories = dtype.categories.to_list()
            values = [None if v is None else categories[v] for v in values]
        return df.with_columns(pl.Series(column, values, dtype=dtype))

    @override
    def add_column(self, df, column, values: List[Any]):
        return df.with_columns(pl.Series(column, values, dtype=pl.String))

    @override
    def dedupe(self, df, key_columns):
        keys = as_key_list(key_columns)
        self.check_present(df, keys)
        return df.unique(subset=keys, keep='first', maintain_order=True)

    @override
    def duplicate_keys(self, df, key_columns):
        keys = as_key_list(key_columns)
        self.check_present(df, keys)
        return df.filter(df.select(keys).is_duplicated())

    @override
    def encode_ordinal(self, df, column, order: Sequence, missing_values: Iterable = ()):
        order = list(order)
        if len(set(order)) != len(order):
            raise ReconcileConfigError(f"Ordinal order for '{column}' repeats a value: {order}")
        if not all(isinstance(v, str) for v in order):
            raise ReconcileConfigError(
                f"polars Enum categories must be strings, got order {order} for '{column}'")
        self.check_present(df, [column])
        ser = df.get_column(column)
        mask = _missing_list(ser, missing_values)
        labels = [None if m else v for v, m in zip(ser.to_list(), mask)]
        unknown = sorted({v for v in labels if v is not None} - set(order), key=repr)
        if unknown:
            raise ReconcileConfigError(
                f"Column '{column}' holds values {unknown} that are not in the ordinal order {order}")
        return df.with_columns(pl.Series(column, labels, dtype=pl.Enum(order)))

    @override
    def decode_ordinal(self, df, column):
        self.check_present(df, [column])
        if not isinstance(df.schema[column], (pl.Enum, pl.Categorical)):
            raise ReconcileConfigError(f"Column '{column}' is not ordinally encoded")
        return df.with_columns(pl.col(column).cast(pl.String))


_RECONCILER = PolarsReconciler()


def reconcile_attribute(
    df: pl.DataFrame,
    key_columns,
    attribute_column: str,
    ordering_column: Optional[str] = None,
    policy: PolicyLike = None,
    missing_values: Iterable = (),
    step_column: Optional[str] = None,
) -> Tuple[pl.DataFrame, ReconcileReport]:
    """Make ``attribute_column`` constant within each ``key_columns`` group.

    Parameters
    ----------
    df : pl.DataFrame
        The table to reconcile. It is not modified.
    key_columns : str or list[str]
        Column(s) whose combined value defines a key group.
    attribute_column : str
        The column to reconcile. Enum columns are ranked by category order.
    ordering_column : str, optional
        Period column, see ``keygroup.pandas_reconcile.reconcile_attribute``.
    policy : FallbackPolicy, list[str] or str, optional
        Resolution steps. Defaults from where ``ordering_column`` sits.
    missing_values : iterable, optional
        Values treated like nulls.
    step_column : str, optional
        Add a String column naming the step that resolved each row.

    Returns
    -------
    out : pl.DataFrame
    report : ReconcileReport
    """
    return _RECONCILER.reconcile_attribute(
        df, key_columns, attribute_column, ordering_column=ordering_column,
        policy=policy, missing_values=missing_values, step_column=step_column)


def reconcile(
    df: pl.DataFrame,
    key_columns,
    attribute_column: str,
    ordering_column: Optional[str] = None,
    policy: PolicyLike = None,
    missing_values: Iterable = (),
) -> pl.DataFrame:
    out, _report = reconcile_attribute(
        df, key_columns, attribute_column, ordering_column=ordering_column,
        policy=policy, missing_values=missing_values)
    return out


def dedupe(df: pl.DataFrame, key_columns) -> pl.DataFrame:
    """Keep the first row of every key group, in original order."""
    return _RECONCILER.dedupe(df, key_columns)


def duplicate_keys(df: pl.DataFrame, key_columns) -> pl.DataFrame:
    return _RECONCILER.duplicate_keys(df, key_columns)


def inconsistency_summary(df: pl.DataFrame, key_columns, columns=None, missing_values=()) -> dict:
    return _RECONCILER.inconsistency_summary(
        df, key_columns, columns=columns, missing_values=missing_values)


def encode_ordinal(df: pl.DataFrame, column: str, order: Sequence, missing_values=()) -> pl.DataFrame:
    """Map ``column`` to an Enum whose categories follow ``order``."""
    return _RECONCILER.encode_ordinal(df, column, order, missing_values=missing_values)


def decode_ordinal(df: pl.DataFrame, column: str) -> pl.DataFrame:
    return _RECONCILER.decode_ordinal(df, column)
