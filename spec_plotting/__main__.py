"""
Entrypoint: python -m spec_plotting
Purpose:
    Batch runner for a chart specification file. Exit status is 0 only when every
    chart rendered.

Usage:
    python -m spec_plotting charts.yaml
    python -m spec_plotting charts.yaml data/sessions.csv   # default data override
"""

from __future__ import annotations
import sys

from spec_plotting.errors import EngineError
from spec_plotting.pipeline import run_batch
from spec_plotting.schemas import BatchOverrides


def main(argv=None) -> int:
    args = list(sys.argv[1:] if argv is None else argv)
    if not args:
        print("usage: python -m spec_plotting <spec.yaml|spec.json> [default_data.csv]")
        return 2
    overrides = BatchOverrides(default_data=args[1] if len(args) > 1 else None)
    try:
        result = run_batch(args[0], overrides=overrides)
    except EngineError as e:
        print(f"[Main][ERROR] {e.kind}: {e}")
        return 1
    return result.exit_code


if __name__ == "__main__":
    sys.exit(main())
