"""Column dtype predicates used to validate reconciliation rules.

Each predicate works for both pandas and polars dtypes.

Note: polars dtype equality (==) has surprising behavior with non-polars
types (e.g., `np.dtype('O') == pl.Int8` returns True). We guard against
this by checking isinstance(dtype, pl.DataType) before polars comparisons.
"""
from typing import Callable

import pandas as pd
import polars as pl


def _is_polars_dtype(dtype) -> bool:
    """Check if dtype is a polars DataType instance or subclass."""
    return isinstance(dtype, pl.DataType) or (
        isinstance(dtype, type) and issubclass(dtype, pl.DataType)
    )


def is_numeric(dtype) -> bool:
    """Check if dtype is numeric (pandas or polars)."""
    if _is_polars_dtype(dtype):
        return dtype.is_numeric()
    try:
        return bool(pd.api.types.is_numeric_dtype(dtype))
    except TypeError:
        return False


def is_boolean(dtype) -> bool:
    """Check if dtype is boolean (pandas or polars)."""
    if _is_polars_dtype(dtype):
        return dtype == pl.Boolean
    try:
        return bool(pd.api.types.is_bool_dtype(dtype))
    except TypeError:
        return False


def is_temporal(dtype) -> bool:
    """Check if dtype is datetime/date/time/timedelta (pandas or polars)."""
    if _is_polars_dtype(dtype):
        return dtype.is_temporal()
    try:
        return bool(pd.api.types.is_datetime64_any_dtype(dtype)
                    or pd.api.types.is_timedelta64_dtype(dtype))
    except TypeError:
        return False


def is_string(dtype) -> bool:
    """Check if dtype is string/object (pandas or polars)."""
    if _is_polars_dtype(dtype):
        return dtype == pl.String
    try:
        return bool(pd.api.types.is_string_dtype(dtype))
    except TypeError:
        return False


def is_ordered_categorical(dtype) -> bool:
    """Categorical dtypes whose categories carry an order.

    pandas: ``CategoricalDtype(ordered=True)``. polars: ``Enum``, which
    compares by the order its categories were declared in.
    """
    if _is_polars_dtype(dtype):
        return isinstance(dtype, pl.Enum)
    return isinstance(dtype, pd.CategoricalDtype) and bool(dtype.ordered)


def is_orderable(dtype) -> bool:
    """True when the max step can rank values of this dtype meaningfully.

    Plain strings and unordered categoricals are excluded: their order is
    an accident of spelling, so they must be ordinally encoded first.
    """
    if is_ordered_categorical(dtype):
        return True
    if isinstance(dtype, pd.CategoricalDtype):
        return False
    return _scalar_ranked(dtype)


def any_of(*predicates: Callable) -> Callable:
    """Combinator: returns True if any predicate matches."""
    def combined(dtype) -> bool:
        return any(p(dtype) for p in predicates)
    combined.__name__ = f"any_of({', '.join(p.__name__ for p in predicates)})"
    return combined


_scalar_ranked = any_of(is_numeric, is_boolean, is_temporal)
