"""
Module: pipeline.py
Purpose:
    Orchestrates a batch of charts from one specification document:
      - parse the document and every chart independently
      - resolve each chart's data source (chart `data` > override > document default)
      - load every distinct source once, before fan-out
      - Ray-parallel (or thread-pool) chart jobs: validate → transform → render
      - ChartOutcome per chart, collected in specification order

Design:
    - A chart job never raises: every failure becomes a ChartOutcome so one bad chart
      cannot stop its siblings.
    - Loaded frames are shared read-only (ray.put once per source on the Ray backend).
    - Rendering goes to a temporary sibling path; the file is moved into place only
      when the renderer returned, so a failed chart never leaves a final-named file.

Public API:
    - run_batch(document, overrides=None, config=None, loader=None, renderer=None) -> BatchResult
"""

from __future__ import annotations
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple, Union
import os
import re
import uuid

import pandas as pd
import ray

from spec_plotting.config import EngineConfig, resolve_output_dir
from spec_plotting.errors import (
    ConfigError, EngineError, LoadError, PipelineError, RenderError, ValidationError,
)
from spec_plotting.features import FEATURE_ATOMIC_RENDER, _dur, _now
from spec_plotting.dataframe_ops import apply_transforms
from spec_plotting.loader import load_csv_table, load_spec_document
from spec_plotting.render import render_chart
from spec_plotting.schemas import (
    BatchOverrides, BatchResult, ChartConfig, ChartOutcome, DataConfig, SpecDocument,
)
from spec_plotting.table import ensure_unique_columns
from spec_plotting.validation import parse_chart, parse_spec_document, validate_chart

Loader = Callable[[str], pd.DataFrame]
Renderer = Callable[[pd.DataFrame, ChartConfig, Path], Any]


# --------- naming / source resolution ----------
def _slug(text: str) -> str:
    s = re.sub(r"[^a-z0-9]+", "-", text.lower()).strip("-")
    return s or "chart"


def output_paths(charts: Dict[int, ChartConfig], out_dir: Path) -> Dict[int, Path]:
    """`<slug(title or chart_N)>-<kind>.<ext>`; later collisions get -2, -3, ..."""
    taken: Dict[str, int] = {}
    paths: Dict[int, Path] = {}
    for i in sorted(charts):
        chart = charts[i]
        stem = f"{_slug(chart.display_name(i))}-{chart.kind}"
        n = taken.get(stem, 0) + 1
        taken[stem] = n
        name = stem if n == 1 else f"{stem}-{n}"
        paths[i] = out_dir / f"{name}.{chart.format or 'png'}"
    return paths


def resolve_source(chart: ChartConfig, data: DataConfig,
                   overrides: Optional[BatchOverrides] = None) -> Tuple[str, str]:
    """
    Returns (source_name, location). A name listed under `data.sources` maps to its
    location; anything else is taken as a location itself.
    """
    ref = chart.data or (overrides.default_data if overrides else None) or data.default
    if not ref:
        raise ConfigError("No data source: set the chart's 'data', the document's "
                          "'data.default', or pass a default data override", "data")
    return ref, data.sources.get(ref, ref)


# --------- one chart ----------
def _failure(index: int, chart: Optional[ChartConfig], title: str, source_name: Optional[str],
             error: Exception) -> ChartOutcome:
    kind = getattr(error, "kind", type(error).__name__)
    issues: List[Any] = []
    if isinstance(error, ValidationError):
        issues = error.issues
        kind = issues[0].kind if issues else kind
    elif isinstance(error, PipelineError):
        kind = error.cause_kind
    return ChartOutcome(
        index=index, title=title, kind=chart.kind if chart else None, source_name=source_name,
        status="failure", error_kind=kind, message=str(error), issues=issues,
    )


def _temp_path(final: Path) -> Path:
    return final.with_name(f".{final.stem}.{uuid.uuid4().hex[:8]}.tmp{final.suffix}")


def run_chart_job(index: int, chart: ChartConfig, df: pd.DataFrame, output_path: Path,
                  source_name: Optional[str], renderer: Renderer,
                  strict_derive: bool = False, suggestion_limit: int = 3) -> ChartOutcome:
    title = chart.display_name(index)
    t0 = _now()
    try:
        report = validate_chart(chart, index, schema=[str(c) for c in df.columns],
                                strict_derive=strict_derive, suggestion_limit=suggestion_limit)
        report.raise_if_failed()
        out_df = apply_transforms(df, chart)

        final = Path(output_path)
        target = _temp_path(final) if FEATURE_ATOMIC_RENDER else final
        try:
            renderer(out_df, chart, target)
            if FEATURE_ATOMIC_RENDER:
                if not target.exists():
                    raise RenderError(f"Renderer produced no file at {target}")
                os.replace(target, final)
        finally:
            if FEATURE_ATOMIC_RENDER and target.exists():
                target.unlink()
    except Exception as e:  # job boundary: every failure is reported as an outcome
        print(f"[Batch][chart {index + 1}] '{title}' failed: {type(e).__name__}: {e}")
        return _failure(index, chart, title, source_name, e)

    print(f"[Batch][chart {index + 1}] '{title}' → {final.name} rows={len(out_df)} ({_dur(t0)})")
    return ChartOutcome(
        index=index, title=title, kind=chart.kind, source_name=source_name,
        status="success", output=str(final), rows=len(out_df),
    )


@ray.remote(num_cpus=0.25, max_retries=0)
def _chart_job_remote(index: int, chart: ChartConfig, df: pd.DataFrame, output_path: Path,
                      source_name: Optional[str], renderer: Renderer,
                      strict_derive: bool, suggestion_limit: int) -> ChartOutcome:
    """Ray task: one chart job. `df` arrives as the shared object-store frame."""
    return run_chart_job(index, chart, df, output_path, source_name, renderer,
                         strict_derive, suggestion_limit)


# --------- sources ----------
def _load_sources(locations: List[str], loader: Loader) -> Tuple[Dict[str, pd.DataFrame], Dict[str, EngineError]]:
    frames: Dict[str, pd.DataFrame] = {}
    errors: Dict[str, EngineError] = {}
    for loc in locations:
        t0 = _now()
        try:
            frames[loc] = ensure_unique_columns(loader(loc), loc)
            print(f"[Batch] Loaded '{loc}' rows={len(frames[loc])} ({_dur(t0)})")
        except EngineError as e:
            errors[loc] = e
        except (OSError, ValueError) as e:
            errors[loc] = LoadError(f"Failed to load '{loc}': {e}", loc)
        if loc in errors:
            print(f"[Batch][WARN] source '{loc}' failed: {errors[loc]}")
    return frames, errors


def _ensure_ray() -> None:
    if not ray.is_initialized():
        os.environ.setdefault("RAY_LOG_TO_STDERR", "1")
        ray.init(ignore_reinit_error=True, log_to_driver=True)
        print("[Ray] initialized.")
        print("[Ray] cluster resources:", ray.cluster_resources())


# --------- public API ----------
def run_batch(document: Union[SpecDocument, Dict[str, Any], str, Path],
              overrides: Optional[BatchOverrides] = None,
              config: Optional[EngineConfig] = None,
              loader: Optional[Loader] = None,
              renderer: Optional[Renderer] = None) -> BatchResult:
    """
    Runs every chart of `document` and returns one ChartOutcome per chart, in
    specification order. Only document-level problems (not a mapping, no charts)
    raise; everything chart-specific lands in the outcomes.
    """
    t0 = _now()
    if isinstance(document, (str, Path)):
        doc = load_spec_document(document)
    else:
        doc = parse_spec_document(document)
    overrides = overrides or BatchOverrides()
    config = config or EngineConfig.from_env()
    loader = loader or load_csv_table
    renderer = renderer or render_chart
    workers = overrides.workers or config.workers
    out_dir = resolve_output_dir(overrides.output_dir or config.output_dir)
    out_dir.mkdir(parents=True, exist_ok=True)

    n = len(doc.charts)
    print(f"\n[Batch] === Start === charts={n} workers={workers} backend={config.backend} out={out_dir}")
    outcomes: List[Optional[ChartOutcome]] = [None] * n

    charts: Dict[int, ChartConfig] = {}
    sources: Dict[int, Tuple[str, str]] = {}
    for i, raw in enumerate(doc.charts):
        chart, report = parse_chart(raw, i)
        if chart is None:
            title = (raw.get("title") if isinstance(raw, dict) else None) or f"chart_{i + 1}"
            outcomes[i] = _failure(i, None, str(title), None, ValidationError(report.issues))
            continue
        try:
            sources[i] = resolve_source(chart, doc.data, overrides)
        except ConfigError as e:
            outcomes[i] = _failure(i, chart, chart.display_name(i), None, e)
            continue
        charts[i] = chart

    locations = list(dict.fromkeys(loc for _, loc in sources.values()))
    frames, load_errors = _load_sources(locations, loader)
    paths = output_paths(charts, out_dir)

    jobs: List[int] = []
    for i, chart in charts.items():
        name, loc = sources[i]
        if loc in load_errors:
            outcomes[i] = _failure(i, chart, chart.display_name(i), name, load_errors[loc])
        else:
            jobs.append(i)

    extra = (config.strict_derive, config.suggestion_limit)
    if jobs and config.backend == "ray":
        _ensure_ray()
        refs = {loc: ray.put(frames[loc]) for loc in {sources[i][1] for i in jobs}}
        print(f"[Batch] Launching {len(jobs)} Ray tasks (cap {workers})…")
        for k in range(0, len(jobs), workers):
            window = jobs[k:k + workers]
            pending = [
                _chart_job_remote.remote(i, charts[i], refs[sources[i][1]], paths[i], sources[i][0],
                                         renderer, *extra)
                for i in window
            ]
            for i, outcome in zip(window, ray.get(pending)):
                outcomes[i] = outcome
    elif jobs:
        print(f"[Batch] Running {len(jobs)} chart jobs on {workers} threads…")
        with ThreadPoolExecutor(max_workers=workers) as pool:
            futures = {
                i: pool.submit(run_chart_job, i, charts[i], frames[sources[i][1]], paths[i],
                               sources[i][0], renderer, *extra)
                for i in jobs
            }
            for i, fut in futures.items():
                outcomes[i] = fut.result()

    result = BatchResult(outcomes=[o for o in outcomes if o is not None])
    for o in result.outcomes:
        status = f"OK → {o.output}" if o.ok else f"FAILED [{o.error_kind}] {o.message}"
        print(f"[Batch]   #{o.index + 1} {o.title}: {status}")
    print(f"[Batch] {result.summary()} ({_dur(t0)})")
    return result
