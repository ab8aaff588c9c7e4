"""
Module: config.py
Purpose:
    Centralizes configuration and environment knobs used across the engine:
    - Worker pool size and execution backend (Ray or local threads)
    - Output directory resolution (development tree vs. user home)
    - Validation bounds (canvas size, scale, heatmap bins) and suggestion limits

Design notes:
    - Environment variables (optionally from a .env file) only provide defaults.
    - EngineConfig is the explicit struct threaded into run_batch(), so tests can
      inject deterministic values instead of touching process-wide state.

How to use:
    from spec_plotting.config import EngineConfig, resolve_output_dir
    cfg = EngineConfig.from_env().model_copy(update={"workers": 2})
"""

from __future__ import annotations
from pathlib import Path
from typing import Literal, Optional
import os

from dotenv import load_dotenv
from pydantic import BaseModel, Field

load_dotenv()

PROJECT_NAME = "spec_plotting"


def _as_int(env_name: str, default: int) -> int:
    v = os.getenv(env_name)
    try:
        return int(v) if v is not None else default
    except ValueError:
        return default


def _as_bool(env_name: str, default: bool) -> bool:
    v = os.getenv(env_name)
    if v is None:
        return default
    return v.strip().lower() in ("1", "true", "yes", "on")


# === Execution ===
DEFAULT_WORKERS = max(1, os.cpu_count() or 1)
WORKERS = _as_int("SPEC_PLOTTING_WORKERS", DEFAULT_WORKERS)
BACKEND = os.getenv("SPEC_PLOTTING_BACKEND") or "ray"
OUTPUT_DIR = os.getenv("SPEC_PLOTTING_OUTPUT_DIR") or ""
STRICT_DERIVE = _as_bool("SPEC_PLOTTING_STRICT_DERIVE", False)

# === Validation bounds ===
MIN_DIMENSION, MAX_DIMENSION = 100, 10000
MAX_SCALE = 10.0
MIN_BINS, MAX_BINS = 2, 100

# === Column suggestions ===
SUGGESTION_LIMIT = _as_int("SPEC_PLOTTING_SUGGESTIONS", 3)
SUGGESTION_MAX_DISTANCE = 3

# === Rendering defaults (pass-through) ===
DEFAULT_WIDTH, DEFAULT_HEIGHT = 1400, 800
DEFAULT_FORMAT = "png"


class EngineConfig(BaseModel):
    workers: int = Field(default=DEFAULT_WORKERS, ge=1)
    backend: Literal["ray", "threads"] = "ray"
    output_dir: Optional[Path] = None
    strict_derive: bool = False
    suggestion_limit: int = Field(default=3, ge=1)

    @classmethod
    def from_env(cls) -> "EngineConfig":
        return cls(
            workers=max(1, WORKERS),
            backend="threads" if BACKEND == "threads" else "ray",
            output_dir=Path(OUTPUT_DIR) if OUTPUT_DIR else None,
            strict_derive=STRICT_DERIVE,
            suggestion_limit=max(1, SUGGESTION_LIMIT),
        )


def resolve_output_dir(explicit: Optional[Path] = None, cwd: Optional[Path] = None,
                       home: Optional[Path] = None) -> Path:
    """
    Explicit directory wins; inside the project's own checkout use tests/output;
    otherwise ~/Desktop/spec_plotting.
    """
    if explicit:
        return Path(explicit)
    cwd = Path(cwd) if cwd else Path.cwd()
    if cwd.name in (PROJECT_NAME, PROJECT_NAME.replace("_", "-")) or (cwd / PROJECT_NAME / "__init__.py").exists():
        return cwd / "tests" / "output"
    home = Path(home) if home else Path(os.getenv("HOME") or ".")
    return home / "Desktop" / PROJECT_NAME
