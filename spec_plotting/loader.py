"""
Module: loader.py
Purpose:
    Default ingestion collaborators:
      - load_csv_table(): CSV file → DataFrame, with date-like columns parsed
      - load_spec_document(): YAML or JSON specification file → SpecDocument

Design:
    - Date detection is name-driven (date/time/created/... columns) and confirmed on
      the first non-null value (ISO date, ISO datetime, YYYYMMDD, MM/DD/YYYY).
    - Any loader with the signature `(location: str) -> DataFrame` can replace
      load_csv_table in run_batch().

Usage:
    from spec_plotting.loader import load_csv_table, load_spec_document
"""

from __future__ import annotations
from pathlib import Path
from typing import Optional, Union
import json
import re

import pandas as pd
import yaml

from spec_plotting.errors import ConfigError, LoadError
from spec_plotting.schemas import SpecDocument
from spec_plotting.table import ensure_unique_columns
from spec_plotting.validation import parse_spec_document

_DATE_NAME_HINTS = (
    "date", "time", "timestamp", "created", "updated", "modified",
    "first_seen", "last_seen",
)

_DATE_FORMATS = [
    (re.compile(r"^\d{4}-\d{2}-\d{2}[ T]\d{2}:\d{2}(:\d{2})?"), "ISO8601"),
    (re.compile(r"^\d{4}-\d{2}-\d{2}$"), "%Y-%m-%d"),
    (re.compile(r"^\d{8}$"), "%Y%m%d"),
    (re.compile(r"^\d{2}/\d{2}/\d{4}$"), "%m/%d/%Y"),
]


def _is_likely_date_column(name: str) -> bool:
    low = name.lower()
    return any(h in low for h in _DATE_NAME_HINTS)


def _detect_date_format(s: pd.Series) -> Optional[str]:
    sample = s.dropna().astype(str).str.strip()
    if sample.empty:
        return None
    first = sample.iloc[0]
    for pattern, fmt in _DATE_FORMATS:
        if pattern.match(first):
            return fmt
    return None


def parse_date_columns(df: pd.DataFrame) -> pd.DataFrame:
    out = df
    for col in df.columns:
        s = df[col]
        if not _is_likely_date_column(str(col)):
            continue
        if pd.api.types.is_datetime64_any_dtype(s) or pd.api.types.is_bool_dtype(s):
            continue
        if not (pd.api.types.is_object_dtype(s) or pd.api.types.is_string_dtype(s)
                or pd.api.types.is_integer_dtype(s)):
            continue
        fmt = _detect_date_format(s)
        if fmt is None:
            continue
        try:
            parsed = pd.to_datetime(s.astype("string"), format=fmt)
        except (ValueError, TypeError):
            print(f"[Load][WARN] column '{col}' looks like {fmt} but does not parse; kept as text")
            continue
        out = out.assign(**{col: parsed})
    return out


def load_csv_table(location: Union[str, Path]) -> pd.DataFrame:
    path = Path(location)
    if not path.exists():
        raise LoadError(f"Failed to open CSV file: {path}", str(location))
    try:
        header = pd.read_csv(path, nrows=1, header=None).iloc[0].astype(str).tolist()
        df = pd.read_csv(path)
    except (pd.errors.ParserError, pd.errors.EmptyDataError, UnicodeDecodeError) as e:
        raise LoadError(f"Failed to parse CSV file {path}: {e}", str(location)) from e
    dupes = sorted({h for h in header if header.count(h) > 1})
    if dupes:
        raise ConfigError(f"Duplicate column names in {path}: {dupes}")
    df = ensure_unique_columns(parse_date_columns(df), str(path))
    print(f"[Load] {path.name}: rows={len(df)} columns={list(df.columns)}")
    return df


def load_spec_document(path: Union[str, Path]) -> SpecDocument:
    path = Path(path)
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as e:
        raise LoadError(f"Failed to read spec file '{path}': {e}", str(path)) from e
    try:
        raw = json.loads(text) if path.suffix.lower() == ".json" else yaml.safe_load(text)
    except (json.JSONDecodeError, yaml.YAMLError) as e:
        raise ConfigError(f"Failed to parse spec file '{path}': {e}") from e
    return parse_spec_document(raw)
