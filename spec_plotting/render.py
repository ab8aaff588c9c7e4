"""
Module: render.py
Purpose:
    Default rendering collaborator using Plotly Express:
      - render_chart(): transformed DataFrame + ChartConfig → image/HTML file on disk
      - one builder per chart kind (line, area, bar, bar-stacked, heatmap, scatter,
        funnel, retention)
      - small helpers to resolve columns and apply theme / size / legend settings

Design:
    - The renderer never transforms data beyond what the chart kind needs to be drawn
      (heatmap pivot, funnel step pairing, retention matrix).
    - The caller decides the output path; the batch runner passes a temporary sibling
      path and moves it into place only after this function returns.
    - `format: html` uses write_html; png/svg/pdf go through plotly's static image export.

Usage:
    from spec_plotting.render import render_chart
"""
from __future__ import annotations
from pathlib import Path
from typing import Callable, Dict, Optional
import pandas as pd
import numpy as np
import plotly.express as px

from spec_plotting.config import DEFAULT_FORMAT, DEFAULT_HEIGHT, DEFAULT_WIDTH
from spec_plotting.errors import RenderError
from spec_plotting.schemas import ChartConfig

_TEMPLATES = {"light": "plotly_white", "dark": "plotly_dark"}

_LEGEND_LAYOUT = {
    "top": dict(orientation="h", yanchor="bottom", y=1.02, xanchor="left", x=0),
    "bottom": dict(orientation="h", yanchor="top", y=-0.15, xanchor="left", x=0),
    "left": dict(orientation="v", yanchor="top", y=1, xanchor="right", x=-0.1),
    "right": dict(orientation="v", yanchor="top", y=1, xanchor="left", x=1.02),
}


def _resolve_col(df: pd.DataFrame, name: Optional[str], role: str) -> str:
    if not name:
        raise RenderError(f"[Render] '{role}' column is required")
    if name in df.columns:
        return name
    lower_map = {str(c).lower(): c for c in df.columns}
    found = lower_map.get(name.lower())
    if found is None:
        raise RenderError(f"[Render] {role} column '{name}' not in transformed data {list(df.columns)}")
    return found


def _color_col(df: pd.DataFrame, chart: ChartConfig, *taken: Optional[str]) -> Optional[str]:
    # First grouping key that is not already drawn on an axis.
    for g in chart.group_by or []:
        if g in df.columns and g not in taken:
            return g
    return None


def _filter_valid_rows(df: pd.DataFrame, metric_col: str) -> pd.DataFrame:
    s = pd.to_numeric(df[metric_col], errors="coerce")
    keep = s.notna() & np.isfinite(s)
    return df.loc[keep]


# --------- per-kind builders ----------
def _line(df: pd.DataFrame, chart: ChartConfig, title: str):
    x = _resolve_col(df, chart.x, "x"); y = _resolve_col(df, chart.y, "y")
    return px.line(df, x=x, y=y, color=_color_col(df, chart, x, y), markers=True, title=title)


def _area(df: pd.DataFrame, chart: ChartConfig, title: str):
    x = _resolve_col(df, chart.x, "x"); y = _resolve_col(df, chart.y, "y")
    return px.area(df, x=x, y=y, color=_color_col(df, chart, x, y), title=title,
                   groupnorm="percent" if chart.normalize else None)


def _bar(df: pd.DataFrame, chart: ChartConfig, title: str, stacked: bool = False):
    x = _resolve_col(df, chart.x, "x"); y = _resolve_col(df, chart.y, "y")
    color = _color_col(df, chart, x, y)
    if chart.horizontal:
        fig = px.bar(df, x=y, y=x, color=color, orientation="h", title=title)
    else:
        fig = px.bar(df, x=x, y=y, color=color, title=title)
    fig.update_layout(barmode="stack" if (stacked or chart.stacked) else "group")
    if chart.normalize and (stacked or chart.stacked):
        fig.update_layout(barnorm="percent")
    return fig


def _bar_stacked(df: pd.DataFrame, chart: ChartConfig, title: str):
    return _bar(df, chart, title, stacked=True)


def _scatter(df: pd.DataFrame, chart: ChartConfig, title: str):
    x = _resolve_col(df, chart.x, "x"); y = _resolve_col(df, chart.y, "y")
    return px.scatter(df, x=x, y=y, color=_color_col(df, chart, x, y), title=title)


def _heatmap(df: pd.DataFrame, chart: ChartConfig, title: str):
    xcol = _resolve_col(df, chart.x, "x")
    ycol = _resolve_col(df, chart.y, "y")
    vcol = _resolve_col(df, chart.z, "z")
    df2 = _filter_valid_rows(df, vcol)
    if chart.bins and pd.api.types.is_numeric_dtype(df2[xcol]) and not pd.api.types.is_bool_dtype(df2[xcol]):
        df2 = df2.assign(**{xcol: pd.cut(df2[xcol], bins=chart.bins).astype(str)})
    pivot = df2.pivot_table(index=ycol, columns=xcol, values=vcol, aggfunc="mean")
    fig = px.imshow(pivot, aspect="auto", title=title,
                    color_continuous_scale=(chart.colormap or "viridis").capitalize())
    fig.update_layout(xaxis_title=xcol, yaxis_title=ycol)
    return fig


def _funnel(df: pd.DataFrame, chart: ChartConfig, title: str):
    vcol = _resolve_col(df, chart.values, "values")
    steps = list(chart.steps or [])
    values = pd.to_numeric(df[vcol], errors="coerce").fillna(0.0).tolist()
    pairs = list(zip(steps, values))  # step i takes row i
    if not pairs:
        raise RenderError("[Render][funnel] no rows to pair with steps")
    if chart.step_order:
        if len(chart.step_order) != len(pairs) or any(i < 0 or i >= len(pairs) for i in chart.step_order):
            raise RenderError(f"[Render][funnel] step_order {chart.step_order} does not fit {len(pairs)} steps")
        pairs = [pairs[i] for i in chart.step_order]
    else:
        pairs = sorted(pairs, key=lambda p: p[1], reverse=True)
    frame = pd.DataFrame(pairs, columns=["step", vcol])
    fig = px.funnel(frame, x=vcol, y="step", title=title)
    textinfo = "value+percent initial" if chart.conversion_rates is not False else "value"
    textposition = "outside" if chart.value_labels == "right" else "inside"
    fig.update_traces(textinfo=textinfo, textposition=textposition)
    return fig


def _retention(df: pd.DataFrame, chart: ChartConfig, title: str):
    ccol = _resolve_col(df, chart.cohort_date, "cohort_date")
    pcol = _resolve_col(df, chart.period_number, "period_number")
    ucol = _resolve_col(df, chart.users, "users")
    df2 = _filter_valid_rows(df, ucol)
    matrix = df2.pivot_table(index=ccol, columns=pcol, values=ucol, aggfunc="sum").sort_index()
    matrix = matrix.reindex(sorted(matrix.columns), axis=1)
    if chart.percentage is not False and len(matrix.columns):
        base = matrix.iloc[:, 0].replace(0, np.nan)
        matrix = matrix.div(base, axis=0) * 100.0
    fig = px.imshow(matrix, aspect="auto", title=title, text_auto=".1f",
                    color_continuous_scale=(chart.colormap or "blues").capitalize())
    fig.update_layout(xaxis_title=pcol, yaxis_title=ccol)
    return fig


_BUILDERS: Dict[str, Callable] = {
    "line": _line,
    "area": _area,
    "bar": _bar,
    "bar-stacked": _bar_stacked,
    "heatmap": _heatmap,
    "scatter": _scatter,
    "funnel": _funnel,
    "retention": _retention,
}


def build_figure(df: pd.DataFrame, chart: ChartConfig, title: Optional[str] = None):
    builder = _BUILDERS.get(chart.kind)
    if builder is None:
        raise RenderError(f"[Render] Unknown chart type: {chart.kind}")
    fig = builder(df, chart, title if title is not None else (chart.title or ""))
    fig.update_layout(
        template=_TEMPLATES.get(chart.theme or "light"),
        width=chart.width or DEFAULT_WIDTH,
        height=chart.height or DEFAULT_HEIGHT,
        margin=dict(l=40, r=40, t=60, b=40),
    )
    if chart.legend_position:
        fig.update_layout(legend=_LEGEND_LAYOUT[chart.legend_position])
    return fig


def render_chart(df: pd.DataFrame, chart: ChartConfig, output_path) -> Path:
    """
    Draws `df` as `chart.kind` and writes it to `output_path` in `chart.format`
    (default png). Raises RenderError on missing columns or export failure.
    """
    out = Path(output_path)
    fmt = chart.format or DEFAULT_FORMAT
    print(f"[Render] kind={chart.kind} title='{chart.title or ''}' rows={len(df)} → {out.name}")
    fig = build_figure(df, chart)
    try:
        if fmt == "html":
            fig.write_html(str(out), include_plotlyjs="cdn")
        else:
            fig.write_image(str(out), format=fmt, scale=chart.scale or 1.0)
    except (ValueError, OSError, RuntimeError) as e:
        raise RenderError(f"[Render] Failed to write {fmt} to {out}: {e}") from e
    return out
