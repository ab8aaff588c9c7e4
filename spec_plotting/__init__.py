"""
Package: spec_plotting
Purpose:
    Convenience exports for the primary engine pieces so downstream code can:
        from spec_plotting import parse_expression, evaluate, apply_transforms,
                                   validate_chart, run_batch

    Keeps import paths short and stable.

Notes:
    Export only the public APIs; helpers stay in their modules.
"""

from .config import *
from .features import *
from .errors import (
    EngineError, ParseError, EvalError, UnknownFunction, UnknownColumn,
    TypeMismatch, DomainError, ConfigError, ValidationError, LoadError,
    RenderError, PipelineError
)
from .table import ScalarType, table_schema, iter_rows, to_scalar
from .expressions import parse_expression, referenced_columns, function_calls
from .functions import FUNCTION_NAMES, call_function
from .evaluator import evaluate, evaluate_predicate
from .columns import suggest_columns, require_columns, chart_column_references
from .schemas import (
    FilterConfig, SortDirective, ChartConfig, DataConfig, SpecDocument,
    ValidationIssue, ValidationReport, BatchOverrides, ChartOutcome, BatchResult
)
from .validation import parse_spec_document, parse_chart, validate_chart, validate_document
from .dataframe_ops import (
    apply_filter, apply_derive, apply_group_aggregate, apply_sort, apply_limit, apply_transforms
)
from .loader import load_csv_table, load_spec_document
from .render import render_chart
from .pipeline import run_batch, resolve_source
