"""
Module: features.py
Purpose:
    Central place for behaviour toggles of the transform engine and batch runner.
    Also provides tiny time helpers used for progress lines.

Performance notes:
    - Import-only module: constant-time.
    - No heavy libs imported here to keep startup time minimal.

How to use:
    from spec_plotting.features import (
        FEATURE_WARN_DERIVE_OVERWRITE, FEATURE_ATOMIC_RENDER, _now, _dur
    )
"""

from __future__ import annotations
import time

# =========================
# === Feature toggles ====
# =========================
FEATURE_WARN_DERIVE_OVERWRITE = True  # print a warning when a derive replaces an existing column
FEATURE_ATOMIC_RENDER         = True  # render to a temp file, move into place only on success


def _now() -> float:
    return time.time()


def _dur(t0: float) -> str:
    return f"{time.time() - t0:.2f}s"
