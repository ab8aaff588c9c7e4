"""
Module: table.py
Purpose:
    The engine's view of a Table: a pandas DataFrame that is never mutated in place.
      - ScalarType: tag of a cell value (INT, FLOAT, STR, BOOL, DATE, NULL)
      - to_scalar(): normalize numpy/pandas cells into plain Python scalars
      - scalar_type(): tag of a plain scalar
      - table_schema(): ordered column -> ScalarType mapping
      - iter_rows(): row contexts (dict of plain scalars) for the evaluator
      - ensure_unique_columns(): enforce unique column names

Usage:
    from spec_plotting.table import ScalarType, table_schema, iter_rows
"""

from __future__ import annotations
from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, Iterator
import math

import numpy as np
import pandas as pd
from pandas.api import types as ptypes

from spec_plotting.errors import ConfigError


class ScalarType(str, Enum):
    INT = "int"
    FLOAT = "float"
    STR = "str"
    BOOL = "bool"
    DATE = "date"
    NULL = "null"


Schema = Dict[str, ScalarType]


def to_scalar(v: Any) -> Any:
    if v is None or v is pd.NaT:
        return None
    if isinstance(v, (bool, np.bool_)):
        return bool(v)
    if isinstance(v, np.integer):
        return int(v)
    if isinstance(v, (float, np.floating)):
        f = float(v)
        return None if math.isnan(f) else f
    if isinstance(v, pd.Timestamp):
        return v.to_pydatetime()
    if isinstance(v, np.datetime64):
        ts = pd.Timestamp(v)
        return None if ts is pd.NaT else ts.to_pydatetime()
    return v


def scalar_type(v: Any) -> ScalarType:
    if v is None:
        return ScalarType.NULL
    if isinstance(v, bool):
        return ScalarType.BOOL
    if isinstance(v, int):
        return ScalarType.INT
    if isinstance(v, float):
        return ScalarType.FLOAT
    if isinstance(v, str):
        return ScalarType.STR
    if isinstance(v, (date, datetime)):
        return ScalarType.DATE
    raise TypeError(f"Unsupported scalar value {v!r} ({type(v).__name__})")


def _column_type(s: pd.Series) -> ScalarType:
    if ptypes.is_bool_dtype(s):
        return ScalarType.BOOL
    if ptypes.is_integer_dtype(s):
        return ScalarType.INT
    if ptypes.is_float_dtype(s):
        return ScalarType.FLOAT if s.notna().any() else ScalarType.NULL
    if ptypes.is_datetime64_any_dtype(s):
        return ScalarType.DATE
    for v in s:
        v = to_scalar(v)
        if v is not None:
            return scalar_type(v)
    return ScalarType.NULL


def table_schema(df: pd.DataFrame) -> Schema:
    return {str(c): _column_type(df[c]) for c in df.columns}


def is_numeric_column(s: pd.Series) -> bool:
    return ptypes.is_numeric_dtype(s) and not ptypes.is_bool_dtype(s)


def ensure_unique_columns(df: pd.DataFrame, where: str = "table") -> pd.DataFrame:
    if not df.columns.is_unique:
        dupes = sorted({str(c) for c in df.columns[df.columns.duplicated()]})
        raise ConfigError(f"Duplicate column names in {where}: {dupes}")
    return df


def iter_rows(df: pd.DataFrame) -> Iterator[Dict[str, Any]]:
    cols = [str(c) for c in df.columns]
    for values in df.itertuples(index=False, name=None):
        yield {c: to_scalar(v) for c, v in zip(cols, values)}
