"""
Module: dataframe_ops.py
Purpose:
    Per-chart transform pipeline over pandas DataFrames, in a fixed stage order:
      - apply_filter(): include / exclude sets and the boolean filter expression
      - apply_derive(): derived columns in declaration order (later ones see earlier)
      - apply_group_aggregate(): first-appearance groups, numeric columns reduced
      - apply_sort(): stable multi-key sort, NULL first
      - apply_limit(): first N rows
      - apply_transforms(): all of the above, failures wrapped in PipelineError

Design:
    - Every stage returns a new DataFrame; the input frame is never modified, so
      concurrent pipelines can share one loaded source.
    - Expressions are parsed once (cached) and evaluated per row with plain scalars.
    - No error is turned into a NULL: the first failing row aborts the chart.

Usage:
    from spec_plotting.dataframe_ops import apply_transforms
"""

from __future__ import annotations
from typing import Any, Dict, List, Optional, Sequence

import numpy as np
import pandas as pd

from spec_plotting.errors import ConfigError, EngineError, PipelineError, TypeMismatch, UnknownColumn
from spec_plotting.evaluator import compare_scalars, evaluate, evaluate_predicate
from spec_plotting.expressions import parse_expression
from spec_plotting.features import FEATURE_WARN_DERIVE_OVERWRITE
from spec_plotting.functions import parse_iso_datetime
from spec_plotting.columns import require_columns
from spec_plotting.schemas import ChartConfig, FilterConfig, SortDirective
from spec_plotting.table import is_numeric_column, iter_rows, to_scalar

_AGG_FUNCS = {"sum": "sum", "count": "count", "mean": "mean", "median": "median", "min": "min", "max": "max"}


def _require(df: pd.DataFrame, names: Sequence[str]) -> None:
    missing = require_columns([str(c) for c in df.columns], names)
    if missing:
        raise missing[0]


# --------- filter ----------
def _coerce_config_value(cfg: Any, cell: Any) -> Any:
    # Config strings are read in the cell's type, e.g. "2024-01-01" against a date.
    if not isinstance(cfg, str) or cell is None or isinstance(cell, str):
        return cfg
    if isinstance(cell, bool):
        low = cfg.strip().lower()
        if low in ("true", "false"):
            return low == "true"
    elif isinstance(cell, int):
        try:
            return int(cfg)
        except ValueError:
            pass
    elif isinstance(cell, float):
        try:
            return float(cfg)
        except ValueError:
            pass
    else:
        return parse_iso_datetime(cfg)
    raise TypeMismatch(f"Cannot compare filter value {cfg!r} with {type(cell).__name__} column value")


def _member(cell: Any, allowed: Sequence[Any]) -> bool:
    for cfg in allowed:
        if cfg is None or cell is None:
            if cfg is None and cell is None:
                return True
            continue
        if compare_scalars("=", cell, _coerce_config_value(cfg, cell)):
            return True
    return False


def apply_filter(df: pd.DataFrame, flt: Optional[FilterConfig]) -> pd.DataFrame:
    if flt is None:
        return df
    include = flt.include or {}
    exclude = flt.exclude or {}
    _require(df, list(include) + list(exclude))
    expr = parse_expression(flt.expression) if flt.expression else None

    keep: List[bool] = []
    for row in iter_rows(df):
        ok = all(_member(row[c], vals) for c, vals in include.items())
        ok = ok and not any(_member(row[c], vals) for c, vals in exclude.items())
        if ok and expr is not None:
            ok = evaluate_predicate(expr, row)
        keep.append(ok)
    return df.loc[np.array(keep, dtype=bool)].reset_index(drop=True)


# --------- derive ----------
def _column_from_values(values: List[Any], index: pd.Index) -> pd.Series:
    if values and all(isinstance(v, bool) for v in values):
        return pd.Series(values, index=index, dtype=bool)
    return pd.Series(values, index=index)


def derive_column(df: pd.DataFrame, name: str, expression: str) -> pd.DataFrame:
    expr = parse_expression(expression)
    values = [to_scalar(evaluate(expr, row)) for row in iter_rows(df)]
    if name in df.columns and FEATURE_WARN_DERIVE_OVERWRITE:
        print(f"[Derive][WARN] '{name}' overwrites an existing column")
    return df.assign(**{name: _column_from_values(values, df.index)})


def apply_derive(df: pd.DataFrame, derive: Optional[Dict[str, str]]) -> pd.DataFrame:
    for name, expression in (derive or {}).items():
        df = derive_column(df, name, expression)
    return df


# --------- group + aggregate ----------
def apply_group_aggregate(df: pd.DataFrame, group_by: Optional[Sequence[str]],
                          agg: Optional[str] = None) -> pd.DataFrame:
    """
    Groups keep first-appearance order of the key tuple. Every numeric, non-grouping
    column is reduced with `agg` (default sum); other columns are dropped.
    No group_by → rows pass through untouched.
    """
    if not group_by:
        return df
    keys = list(group_by)
    _require(df, keys)
    func = _AGG_FUNCS.get(agg or "sum")
    if func is None:
        raise ConfigError(f"Unknown aggregation '{agg}'", "agg")
    value_cols = [c for c in df.columns if c not in keys and is_numeric_column(df[c])]
    grouped = df.groupby(keys, sort=False, dropna=False)
    if value_cols:
        res = grouped[value_cols].agg(func).reset_index()
    else:
        res = grouped.size().reset_index()[keys]
    return res[keys + value_cols]


# --------- sort / limit ----------
def apply_sort(df: pd.DataFrame, sort: Optional[Sequence[SortDirective]]) -> pd.DataFrame:
    if not sort:
        return df
    cols = [s.column for s in sort]
    _require(df, cols)
    try:
        return df.sort_values(
            by=cols,
            ascending=[s.ascending for s in sort],
            kind="mergesort",
            na_position="first",
        ).reset_index(drop=True)
    except TypeError as e:
        raise TypeMismatch(f"Cannot sort mixed-type values: {e}") from None


def apply_limit(df: pd.DataFrame, limit: Optional[int]) -> pd.DataFrame:
    if limit is None:
        return df
    if limit <= 0:
        raise ConfigError(f"Row limit must be a positive integer, got {limit}", "limit")
    return df.head(limit).reset_index(drop=True)


# --------- public API ----------
def apply_transforms(df: pd.DataFrame, chart: ChartConfig) -> pd.DataFrame:
    """
    Filter → derive → group/aggregate → sort → limit. Raises PipelineError naming the
    stage and the offending expression or column.
    """
    print(f"[DF] Transforming… rows={len(df)} columns={len(df.columns)}")
    flt = chart.filter
    try:
        df = apply_filter(df, flt)
    except EngineError as e:
        raise PipelineError("filter", e, expression=flt.expression if flt else None,
                            column=getattr(e, "requested", None)) from e

    for name, expression in (chart.derive or {}).items():
        try:
            df = derive_column(df, name, expression)
        except EngineError as e:
            raise PipelineError("derive", e, expression=expression, column=name) from e

    try:
        df = apply_group_aggregate(df, chart.group_by, chart.agg)
    except EngineError as e:
        col = e.requested if isinstance(e, UnknownColumn) else None
        raise PipelineError("aggregate", e, column=col) from e

    try:
        df = apply_sort(df, chart.sort)
    except EngineError as e:
        raise PipelineError("sort", e, column=getattr(e, "requested", None)) from e

    try:
        df = apply_limit(df, chart.limit)
    except EngineError as e:
        raise PipelineError("limit", e) from e

    print(f"[DF] Done df.shape={df.shape}")
    return df
