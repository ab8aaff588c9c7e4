"""
Module: validation.py
Purpose:
    Chart specification validation, collecting every problem instead of stopping early:
      - parse_spec_document(): mapping → SpecDocument (document-level ConfigError only)
      - parse_chart(): raw chart mapping → ChartConfig, pydantic errors → issues
      - validate_chart(): kind-specific required fields, numeric bounds, filter shape,
        expression syntax/functions and (given a schema) column existence with
        producer-before-consumer ordering over Derive
      - validate_document(): parse + validate every chart without data

Field paths look like `charts[2].steps` or `charts[0].derive.week_start`.

Usage:
    from spec_plotting.validation import parse_chart, validate_chart
"""

from __future__ import annotations
from typing import Any, List, Mapping, Optional, Sequence, Tuple

from pydantic import ValidationError as PydanticValidationError

from spec_plotting.columns import chart_column_references, suggest_columns
from spec_plotting.config import (
    MAX_BINS, MAX_DIMENSION, MAX_SCALE, MIN_BINS, MIN_DIMENSION, SUGGESTION_LIMIT,
)
from spec_plotting.errors import ConfigError, ParseError, TypeMismatch, UnknownFunction
from spec_plotting.expressions import function_calls, parse_expression
from spec_plotting.functions import FUNCTION_NAMES, check_arity
from spec_plotting.schemas import ChartConfig, SpecDocument, ValidationReport

_REQUIRED_FIELDS = {
    "heatmap": ("x", "y", "z"),
    "funnel": ("steps", "values"),
    "retention": ("cohort_date", "period_number", "users"),
}
_DEFAULT_REQUIRED = ("x", "y")

_FIELD_HINTS = {
    "z": "for color intensity values",
    "steps": "with step names",
    "values": "for step values",
}


def _loc_to_path(prefix: str, loc: Sequence[Any]) -> str:
    path = prefix
    for part in loc:
        path += f"[{part}]" if isinstance(part, int) else f".{part}"
    return path


# --------- document / chart parsing ----------
def parse_spec_document(raw: Any) -> SpecDocument:
    if isinstance(raw, SpecDocument):
        doc = raw
    else:
        if not isinstance(raw, Mapping):
            raise ConfigError("Specification must be a mapping with 'data' and 'charts'")
        try:
            doc = SpecDocument.model_validate(dict(raw))
        except PydanticValidationError as e:
            err = e.errors()[0]
            raise ConfigError(err["msg"], _loc_to_path("", err["loc"]).lstrip(".")) from None
    if not doc.charts:
        raise ConfigError("Chart specification must contain at least one chart", "charts")
    return doc


def parse_chart(raw: Any, index: int) -> Tuple[Optional[ChartConfig], ValidationReport]:
    prefix = f"charts[{index}]"
    report = ValidationReport(index=index)
    if isinstance(raw, ChartConfig):
        return raw, report
    if not isinstance(raw, Mapping):
        report.add(prefix, "Chart entry must be a mapping")
        return None, report
    try:
        return ChartConfig.model_validate(dict(raw)), report
    except PydanticValidationError as e:
        for err in e.errors():
            report.add(_loc_to_path(prefix, err["loc"]), err["msg"])
        return None, report


# --------- individual rule groups ----------
def _check_required(chart: ChartConfig, p: str, report: ValidationReport) -> None:
    for fld in _REQUIRED_FIELDS.get(chart.kind, _DEFAULT_REQUIRED):
        if not getattr(chart, fld):
            hint = _FIELD_HINTS.get(fld)
            report.add(f"{p}.{fld}",
                       f"{chart.kind} charts require a '{fld}' field" + (f" {hint}" if hint else ""))


def _check_bounds(chart: ChartConfig, p: str, report: ValidationReport) -> None:
    for fld in ("width", "height"):
        v = getattr(chart, fld)
        if v is not None and not (MIN_DIMENSION <= v <= MAX_DIMENSION):
            report.add(f"{p}.{fld}",
                       f"Chart {fld} must be between {MIN_DIMENSION} and {MAX_DIMENSION} pixels, got {v}",
                       kind="ConfigError")
    if chart.scale is not None and not (0 < chart.scale <= MAX_SCALE):
        report.add(f"{p}.scale", f"Chart scale must be in (0, {MAX_SCALE:g}], got {chart.scale}",
                   kind="ConfigError")
    if chart.bins is not None and not (MIN_BINS <= chart.bins <= MAX_BINS):
        report.add(f"{p}.bins", f"Heatmap bins must be between {MIN_BINS} and {MAX_BINS}, got {chart.bins}",
                   kind="ConfigError")
    if chart.limit is not None and chart.limit <= 0:
        report.add(f"{p}.limit", f"Row limit must be a positive integer, got {chart.limit}",
                   kind="ConfigError")
    if chart.step_order is not None:
        n = len(chart.steps or [])
        if len(chart.step_order) != n:
            report.add(f"{p}.step_order",
                       f"Step order length ({len(chart.step_order)}) must match number of steps ({n})",
                       kind="ConfigError")
        for i, idx in enumerate(chart.step_order):
            if idx < 0 or idx >= n:
                report.add(f"{p}.step_order[{i}]",
                           f"Invalid step order index: {idx} (max: {n - 1})", kind="ConfigError")


def _check_filter(chart: ChartConfig, p: str, report: ValidationReport) -> None:
    flt = chart.filter
    if flt is None:
        return
    if not flt.include and not flt.exclude and flt.expression is None:
        report.add(f"{p}.filter",
                   "Filter configuration must have at least one condition (include, exclude, or expression)")
    for part in ("include", "exclude"):
        for col, values in (getattr(flt, part) or {}).items():
            path = f"{p}.filter.{part}.{col}"
            if not col:
                report.add(f"{p}.filter.{part}", "Filter column name cannot be empty")
            if not values:
                report.add(path, f"Filter values list cannot be empty for column '{col}'")
            elif any(isinstance(v, str) and not v for v in values):
                report.add(path, f"Filter value cannot be empty for column '{col}'")
    if flt.expression is not None and not flt.expression.strip():
        report.add(f"{p}.filter.expression", "Filter expression cannot be empty")


def _check_expression(text: str, path: str, report: ValidationReport) -> None:
    if not text.strip():
        return  # reported by the filter/derive shape checks
    try:
        expr = parse_expression(text)
    except ParseError as e:
        report.add(path, f"Invalid expression '{text}': {e}", kind=e.kind)
        return
    for call in function_calls(expr):
        try:
            check_arity(call.name, len(call.args))
        except UnknownFunction as e:
            report.add(path, str(e), kind=e.kind, suggestions=suggest_columns(FUNCTION_NAMES, call.name))
        except TypeMismatch as e:
            report.add(path, str(e), kind=e.kind)


def _check_expressions(chart: ChartConfig, p: str, report: ValidationReport) -> None:
    if chart.filter is not None and chart.filter.expression:
        _check_expression(chart.filter.expression, f"{p}.filter.expression", report)
    for name, text in (chart.derive or {}).items():
        if not name.strip():
            report.add(f"{p}.derive", "Derived column name cannot be empty")
        if not text.strip():
            report.add(f"{p}.derive.{name}", f"Derive expression for '{name}' cannot be empty")
            continue
        _check_expression(text, f"{p}.derive.{name}", report)


def _check_columns(chart: ChartConfig, p: str, schema: Sequence[str], report: ValidationReport,
                   strict_derive: bool, limit: int) -> None:
    source = list(schema)
    derived = list(chart.derive or {})

    def missing(path: str, col: str, visible: List[str], note: str = "") -> None:
        suggestions = suggest_columns(visible, col, limit)
        msg = f"Column '{col}' not found"
        if note:
            msg += f" ({note})"
        if suggestions:
            msg += f". Did you mean '{suggestions[0]}'?"
        report.add(path, msg, kind="UnknownColumn", suggestions=suggestions)

    for ref in chart_column_references(chart, p):
        if ref.role == "filter":
            if ref.column not in source:
                note = "filters run before derive" if ref.column in derived else ""
                missing(ref.field_path, ref.column, source, note)
        elif ref.role == "derive":
            owner = ref.field_path[len(f"{p}.derive."):]
            earlier = derived[:derived.index(owner)] if owner in derived else []
            visible = source + [d for d in earlier if d not in source]
            if ref.column not in visible:
                note = "derived later in declaration order" if ref.column in derived else ""
                missing(ref.field_path, ref.column, visible, note)
        else:
            visible = source + [d for d in derived if d not in source]
            if ref.column not in visible:
                missing(ref.field_path, ref.column, visible)

    if strict_derive:
        for name in derived:
            if name in source:
                report.add(f"{p}.derive.{name}",
                           f"Derived column '{name}' would overwrite an existing column",
                           kind="ConfigError")


# --------- public API ----------
def validate_chart(chart: ChartConfig, index: int, schema: Optional[Sequence[str]] = None,
                   strict_derive: bool = False, suggestion_limit: int = SUGGESTION_LIMIT) -> ValidationReport:
    """
    Every violation in one report. Column checks only run when a schema (column names
    of the resolved source) is given.
    """
    p = f"charts[{index}]"
    report = ValidationReport(index=index)
    _check_required(chart, p, report)
    _check_bounds(chart, p, report)
    _check_filter(chart, p, report)
    _check_expressions(chart, p, report)
    if schema is not None:
        _check_columns(chart, p, schema, report, strict_derive, suggestion_limit)
    return report


def validate_document(doc: Any) -> List[ValidationReport]:
    doc = parse_spec_document(doc)
    reports = []
    for i, raw in enumerate(doc.charts):
        chart, report = parse_chart(raw, i)
        if chart is not None:
            report.extend(validate_chart(chart, i))
        reports.append(report)
    return reports
