"""
Module: schemas.py
Purpose:
    Central Pydantic models and type aliases for specification documents and results:
    - ChartKind, AggregationKind and the pass-through rendering enums
    - FilterConfig, SortDirective, ChartConfig, DataConfig, SpecDocument
    - ValidationIssue, ValidationReport
    - BatchOverrides, ChartOutcome, BatchResult

Design:
    - Field names follow the YAML/JSON specification keys (chart `type` is exposed
      as `kind`).
    - SpecDocument keeps charts as raw mappings so one malformed chart cannot
      prevent its siblings from being parsed and run.
    - No business logic here; validation rules live in validation.py.

Usage:
    from spec_plotting.schemas import (
        ChartConfig, FilterConfig, SortDirective, SpecDocument,
        ValidationIssue, ValidationReport, ChartOutcome, BatchResult
    )
"""

from __future__ import annotations
from datetime import date, datetime
from pathlib import Path
from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

from spec_plotting.errors import ValidationError


ChartKind = Literal["line", "area", "bar", "bar-stacked", "heatmap", "scatter", "funnel", "retention"]
AggregationKind = Literal["sum", "count", "mean", "median", "min", "max"]
Theme = Literal["light", "dark"]
OutputFormat = Literal["png", "svg", "pdf", "html"]
LegendPosition = Literal["top", "bottom", "left", "right"]
ValueLabelPosition = Literal["left", "right"]
ColorMap = Literal["viridis", "plasma", "blues", "reds", "greens"]

FilterScalar = Union[bool, int, float, str, datetime, date, None]


class FilterConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    include: Optional[Dict[str, List[FilterScalar]]] = None
    exclude: Optional[Dict[str, List[FilterScalar]]] = None
    expression: Optional[str] = None

    @field_validator("include", "exclude", mode="before")
    @classmethod
    def _single_value_to_list(cls, v):
        # `region: North` is shorthand for `region: [North]`
        if isinstance(v, dict):
            return {k: (vals if isinstance(vals, (list, tuple, set)) else [vals]) for k, vals in v.items()}
        return v


class SortDirective(BaseModel):
    model_config = ConfigDict(extra="forbid")

    column: str
    ascending: bool = True


class ChartConfig(BaseModel):
    model_config = ConfigDict(extra="forbid", populate_by_name=True, frozen=True)

    kind: ChartKind = Field(alias="type")
    title: Optional[str] = None
    data: Optional[str] = None

    # columns
    x: Optional[str] = None
    y: Optional[str] = None
    z: Optional[str] = None
    group_by: Optional[List[str]] = None

    # transforms
    agg: Optional[AggregationKind] = None
    filter: Optional[FilterConfig] = None
    derive: Optional[Dict[str, str]] = None
    sort: Optional[List[SortDirective]] = None
    limit: Optional[int] = None

    # rendering pass-through
    width: Optional[int] = None
    height: Optional[int] = None
    theme: Optional[Theme] = None
    format: Optional[OutputFormat] = None
    scale: Optional[float] = None
    legend_position: Optional[LegendPosition] = None

    # chart-specific
    stacked: Optional[bool] = None
    horizontal: Optional[bool] = None
    normalize: Optional[bool] = None
    bins: Optional[int] = None
    colormap: Optional[ColorMap] = None
    steps: Optional[List[str]] = None
    step_order: Optional[List[int]] = None
    value_labels: Optional[ValueLabelPosition] = None
    values: Optional[str] = None
    conversion_rates: Optional[bool] = None
    cohort_date: Optional[str] = None
    period_number: Optional[str] = None
    users: Optional[str] = None
    percentage: Optional[bool] = None

    @field_validator("group_by", mode="before")
    @classmethod
    def _group_by_to_list(cls, v):
        if isinstance(v, str):
            return [v]
        return v

    @field_validator("data", mode="before")
    @classmethod
    def _path_to_str(cls, v):
        return str(v) if isinstance(v, Path) else v

    def display_name(self, index: int) -> str:
        return self.title or f"chart_{index + 1}"


class DataConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    default: Optional[str] = None
    sources: Dict[str, str] = Field(default_factory=dict)

    @field_validator("default", mode="before")
    @classmethod
    def _path_to_str(cls, v):
        return str(v) if isinstance(v, Path) else v


class SpecDocument(BaseModel):
    data: DataConfig = Field(default_factory=DataConfig)
    charts: List[Any] = Field(default_factory=list)  # raw mappings or ChartConfig


# =========================
# Validation reports
# =========================
class ValidationIssue(BaseModel):
    field_path: str
    message: str
    kind: str = "ValidationError"
    suggestions: List[str] = Field(default_factory=list)


class ValidationReport(BaseModel):
    index: int
    issues: List[ValidationIssue] = Field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.issues

    def add(self, field_path: str, message: str, kind: str = "ValidationError",
            suggestions: Optional[List[str]] = None) -> None:
        self.issues.append(ValidationIssue(field_path=field_path, message=message, kind=kind,
                                           suggestions=list(suggestions or [])))

    def extend(self, other: "ValidationReport") -> None:
        self.issues.extend(other.issues)

    def raise_if_failed(self) -> None:
        if self.issues:
            raise ValidationError(self.issues)


# =========================
# Batch results
# =========================
class BatchOverrides(BaseModel):
    default_data: Optional[str] = None
    output_dir: Optional[Path] = None
    workers: Optional[int] = Field(default=None, ge=1)


class ChartOutcome(BaseModel):
    index: int
    title: str
    kind: Optional[str] = None
    source_name: Optional[str] = None
    status: Literal["success", "failure"]
    output: Optional[str] = None
    rows: Optional[int] = None
    error_kind: Optional[str] = None
    message: Optional[str] = None
    issues: List[ValidationIssue] = Field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.status == "success"


class BatchResult(BaseModel):
    outcomes: List[ChartOutcome] = Field(default_factory=list)

    @property
    def succeeded(self) -> int:
        return sum(1 for o in self.outcomes if o.ok)

    @property
    def failed(self) -> int:
        return len(self.outcomes) - self.succeeded

    @property
    def ok(self) -> bool:
        return self.failed == 0

    @property
    def exit_code(self) -> int:
        return 0 if self.ok else 1

    def summary(self) -> str:
        return f"{self.succeeded} successful, {self.failed} failed"
