"""
Module: functions.py
Purpose:
    Registry of the derived-column functions callable from expressions:
      - date bucketing: to_week, to_month, to_quarter, to_year, to_hour
      - calendar: weekday (Monday=0), weekday_name
      - text: source_medium, concat, upper, lower
      - numeric: round (half away from zero), abs, log, sqrt

Design:
    - Pure and deterministic; NULL in → NULL out except for the text joiners, which
      render NULL as "".
    - Dates: DATE values or ISO date strings; the result keeps the input flavour
      (date stays date, datetime becomes midnight of the bucket).
    - Bad argument types raise TypeMismatch, out-of-domain input raises DomainError.

Usage:
    from spec_plotting.functions import call_function, check_arity, FUNCTION_NAMES
"""

from __future__ import annotations
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from decimal import Decimal, ROUND_HALF_UP, localcontext
from typing import Any, Callable, Dict, List, Optional, Sequence, Union
import math

from spec_plotting.errors import DomainError, TypeMismatch, UnknownFunction

DateLike = Union[date, datetime]

WEEKDAY_NAMES = ("Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday")


# --------- argument coercions ----------
def parse_iso_datetime(s: str) -> DateLike:
    """ISO date ('2024-01-01') → date; ISO datetime → datetime."""
    text = s.strip()
    try:
        return date.fromisoformat(text)
    except ValueError:
        pass
    try:
        return datetime.fromisoformat(text)
    except ValueError:
        raise TypeMismatch(f"Cannot interpret {s!r} as a date") from None


def _date_arg(fn: str, v: Any) -> DateLike:
    if isinstance(v, (date, datetime)):
        return v
    if isinstance(v, str):
        return parse_iso_datetime(v)
    raise TypeMismatch(f"{fn}() expects a date, got {type(v).__name__}")


def _number_arg(fn: str, v: Any) -> Union[int, float]:
    if isinstance(v, bool) or not isinstance(v, (int, float)):
        raise TypeMismatch(f"{fn}() expects a number, got {type(v).__name__}")
    return v


def _str_arg(fn: str, v: Any) -> str:
    if not isinstance(v, str):
        raise TypeMismatch(f"{fn}() expects a string, got {type(v).__name__}")
    return v


def _as_text(v: Any) -> str:
    if v is None:
        return ""
    if isinstance(v, bool):
        return "true" if v else "false"
    return str(v)


def _bucket(v: DateLike, year: int, month: int, day: int) -> DateLike:
    if isinstance(v, datetime):
        return v.replace(year=year, month=month, day=day, hour=0, minute=0, second=0, microsecond=0)
    return date(year, month, day)


# --------- implementations ----------
def to_week(v):
    d = _date_arg("to_week", v)
    monday = d - timedelta(days=d.weekday())
    return _bucket(monday, monday.year, monday.month, monday.day)


def to_month(v):
    d = _date_arg("to_month", v)
    return _bucket(d, d.year, d.month, 1)


def to_quarter(v):
    d = _date_arg("to_quarter", v)
    return _bucket(d, d.year, 3 * ((d.month - 1) // 3) + 1, 1)


def to_year(v):
    d = _date_arg("to_year", v)
    return _bucket(d, d.year, 1, 1)


def to_hour(v):
    d = _date_arg("to_hour", v)
    return d.hour if isinstance(d, datetime) else 0


def weekday(v):
    return _date_arg("weekday", v).weekday()


def weekday_name(v):
    return WEEKDAY_NAMES[_date_arg("weekday_name", v).weekday()]


def source_medium(source, medium):
    return f"{_as_text(source)} / {_as_text(medium)}"


def concat(*args):
    *values, sep = args
    if sep is None:
        sep = ""
    sep = _str_arg("concat", sep)
    return sep.join(_as_text(v) for v in values)


def upper(v):
    return _str_arg("upper", v).upper()


def lower(v):
    return _str_arg("lower", v).lower()


def round_half_away(x, n=0):
    x = _number_arg("round", x)
    if isinstance(n, bool) or not isinstance(n, int):
        raise TypeMismatch(f"round() digits must be an integer, got {type(n).__name__}")
    if isinstance(x, int) and n >= 0:
        return x
    if isinstance(x, float) and not math.isfinite(x):
        return x
    d = Decimal(repr(x))
    with localcontext() as ctx:
        # room for every integer digit plus the requested fraction
        ctx.prec = max(ctx.prec, d.adjusted() + n + 2)
        q = d.quantize(Decimal(1).scaleb(-n), rounding=ROUND_HALF_UP)
    return int(q) if isinstance(x, int) else float(q)


def abs_value(x):
    return abs(_number_arg("abs", x))


def log(x):
    x = _number_arg("log", x)
    if x <= 0:
        raise DomainError(f"log() requires a positive number, got {x}")
    return math.log(x)


def sqrt(x):
    x = _number_arg("sqrt", x)
    if x < 0:
        raise DomainError(f"sqrt() requires a non-negative number, got {x}")
    return math.sqrt(x)


# --------- registry ----------
@dataclass(frozen=True)
class FunctionDef:
    name: str
    impl: Callable[..., Any]
    min_args: int
    max_args: Optional[int]  # None = variadic
    null_passthrough: bool = True


_REGISTRY: Dict[str, FunctionDef] = {
    f.name: f for f in [
        FunctionDef("to_week", to_week, 1, 1),
        FunctionDef("to_month", to_month, 1, 1),
        FunctionDef("to_quarter", to_quarter, 1, 1),
        FunctionDef("to_year", to_year, 1, 1),
        FunctionDef("to_hour", to_hour, 1, 1),
        FunctionDef("weekday", weekday, 1, 1),
        FunctionDef("weekday_name", weekday_name, 1, 1),
        FunctionDef("source_medium", source_medium, 2, 2, null_passthrough=False),
        FunctionDef("concat", concat, 2, None, null_passthrough=False),
        FunctionDef("upper", upper, 1, 1),
        FunctionDef("lower", lower, 1, 1),
        FunctionDef("round", round_half_away, 1, 2),
        FunctionDef("abs", abs_value, 1, 1),
        FunctionDef("log", log, 1, 1),
        FunctionDef("sqrt", sqrt, 1, 1),
    ]
}

FUNCTION_NAMES: List[str] = sorted(_REGISTRY)


def get_function(name: str) -> FunctionDef:
    fn = _REGISTRY.get(name.lower())
    if fn is None:
        raise UnknownFunction(name, FUNCTION_NAMES)
    return fn


def check_arity(name: str, n_args: int) -> FunctionDef:
    fn = get_function(name)
    if n_args < fn.min_args or (fn.max_args is not None and n_args > fn.max_args):
        if fn.max_args is None:
            expected = f"at least {fn.min_args}"
        elif fn.min_args == fn.max_args:
            expected = str(fn.min_args)
        else:
            expected = f"{fn.min_args} to {fn.max_args}"
        raise TypeMismatch(f"{fn.name}() takes {expected} argument(s), got {n_args}")
    return fn


def call_function(name: str, args: Sequence[Any]) -> Any:
    fn = check_arity(name, len(args))
    if fn.null_passthrough and args and args[0] is None:
        return None
    return fn.impl(*args)
