"""
Module: columns.py
Purpose:
    Column-name validation with "did you mean" suggestions:
      - suggest_columns(): rank schema columns against a misspelled name
      - require_columns(): one UnknownColumn per requested name missing from a schema
      - chart_column_references(): every (field_path, column, role) a chart config uses

Ranking:
    case-insensitive exact match, then case-insensitive substring (either direction),
    then Levenshtein distance (rapidfuzz) up to SUGGESTION_MAX_DISTANCE; ties keep schema
    order. Nothing here prints; callers get structured errors.

Usage:
    from spec_plotting.columns import suggest_columns, require_columns
"""

from __future__ import annotations
from typing import Iterable, List, NamedTuple, Sequence

from rapidfuzz.distance import Levenshtein

from spec_plotting.config import SUGGESTION_LIMIT, SUGGESTION_MAX_DISTANCE
from spec_plotting.errors import ParseError, UnknownColumn
from spec_plotting.expressions import parse_expression, referenced_columns


def suggest_columns(available: Sequence[str], requested: str, limit: int = SUGGESTION_LIMIT,
                    max_distance: int = SUGGESTION_MAX_DISTANCE) -> List[str]:
    req = requested.lower()
    ranked = []
    for pos, col in enumerate(available):
        cand = col.lower()
        dist = Levenshtein.distance(req, cand)
        if cand == req:
            tier = 0
        elif req and cand and (req in cand or cand in req):
            tier = 1
        elif dist <= max_distance:
            tier = 2
        else:
            continue
        ranked.append((tier, dist, pos, col))
    ranked.sort()
    return [col for *_, col in ranked[:limit]]


def require_columns(schema: Iterable[str], names: Iterable[str],
                    limit: int = SUGGESTION_LIMIT) -> List[UnknownColumn]:
    """Empty list means every name exists."""
    available = list(schema)
    known = set(available)
    missing: List[UnknownColumn] = []
    seen = set()
    for name in names:
        if name in known or name in seen:
            continue
        seen.add(name)
        missing.append(UnknownColumn(name, available, suggest_columns(available, name, limit)))
    return missing


class ColumnReference(NamedTuple):
    field_path: str
    column: str
    role: str  # "filter" | "derive" | "output"


_OUTPUT_FIELDS = ("x", "y", "z", "values", "cohort_date", "period_number", "users")


def chart_column_references(chart, prefix: str = "") -> List[ColumnReference]:
    """
    Columns referenced by a ChartConfig. Role tells when the column must exist:
    "filter" columns are read before Derive runs, "derive" columns by a derive expression
    (checked against source + earlier derives), "output" columns after Derive.
    Unparseable expressions are skipped here; validation reports them separately.
    """
    refs: List[ColumnReference] = []
    p = f"{prefix}." if prefix else ""

    flt = chart.filter
    if flt is not None:
        for part in ("include", "exclude"):
            for col in (getattr(flt, part) or {}):
                refs.append(ColumnReference(f"{p}filter.{part}.{col}", col, "filter"))
        if flt.expression:
            try:
                cols = referenced_columns(parse_expression(flt.expression))
            except ParseError:
                cols = []
            for col in cols:
                refs.append(ColumnReference(f"{p}filter.expression", col, "filter"))

    for name, text in (chart.derive or {}).items():
        try:
            cols = referenced_columns(parse_expression(text))
        except ParseError:
            cols = []
        for col in cols:
            refs.append(ColumnReference(f"{p}derive.{name}", col, "derive"))

    for fld in _OUTPUT_FIELDS:
        col = getattr(chart, fld, None)
        if col:
            refs.append(ColumnReference(f"{p}{fld}", col, "output"))
    for i, col in enumerate(chart.group_by or []):
        refs.append(ColumnReference(f"{p}group_by[{i}]", col, "output"))
    for i, s in enumerate(chart.sort or []):
        refs.append(ColumnReference(f"{p}sort[{i}].column", s.column, "output"))
    return refs

