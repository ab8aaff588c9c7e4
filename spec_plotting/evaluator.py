"""
Module: evaluator.py
Purpose:
    Row-level evaluation of parsed expressions:
      - evaluate(): Expression × row context → Scalar
      - evaluate_predicate(): same, but the result must be boolean (NULL counts as false)
      - compare_scalars() / arithmetic(): the typed scalar semantics shared with Filter

Semantics:
    - INT and FLOAT widen into each other; any other cross-type comparison raises
      TypeMismatch, except a string compared with a date, which is read as an ISO date.
    - NULL operands: arithmetic → NULL, comparisons/LIKE/IN/BETWEEN → false;
      only IS [NOT] NULL sees NULL.
    - AND / OR short-circuit; operands must be booleans (NULL = false).

Usage:
    from spec_plotting.evaluator import evaluate, evaluate_predicate
"""

from __future__ import annotations
from datetime import date, datetime
from functools import lru_cache
from typing import Any, Mapping, Pattern
import operator
import re

from spec_plotting.columns import suggest_columns
from spec_plotting.errors import DomainError, TypeMismatch, UnknownColumn
from spec_plotting.expressions import (
    Between, BinaryOp, ColumnRef, Expression, FunctionCall, InList, IsNull, Like,
    Literal, Negate, Not,
)
from spec_plotting.functions import call_function, parse_iso_datetime
from spec_plotting.table import scalar_type

_COMPARE = {
    "=": operator.eq, "!=": operator.ne,
    "<": operator.lt, "<=": operator.le,
    ">": operator.gt, ">=": operator.ge,
}


# --------- scalar semantics ----------
def _is_number(v: Any) -> bool:
    return isinstance(v, (int, float)) and not isinstance(v, bool)


def _as_datetime(v: Any) -> datetime:
    if isinstance(v, datetime):
        return v
    if isinstance(v, date):
        return datetime(v.year, v.month, v.day)
    return _as_datetime(parse_iso_datetime(v))


def _comparable(a: Any, b: Any, op: str):
    if _is_number(a) and _is_number(b):
        return a, b
    if isinstance(a, str) and isinstance(b, str):
        return a, b
    if isinstance(a, bool) and isinstance(b, bool):
        if op in ("=", "!="):
            return a, b
        raise TypeMismatch(f"Booleans only support '=' and '!=', not '{op}'")
    a_date, b_date = isinstance(a, date), isinstance(b, date)
    if (a_date or isinstance(a, str)) and (b_date or isinstance(b, str)) and (a_date or b_date):
        return _as_datetime(a), _as_datetime(b)
    raise TypeMismatch(
        f"Cannot compare {scalar_type(a).value} with {scalar_type(b).value} using '{op}'"
    )


def compare_scalars(op: str, a: Any, b: Any) -> bool:
    if a is None or b is None:
        return False
    x, y = _comparable(a, b, op)
    try:
        return bool(_COMPARE[op](x, y))
    except TypeError as e:
        # naive vs timezone-aware datetimes
        raise TypeMismatch(str(e)) from None


def arithmetic(op: str, a: Any, b: Any) -> Any:
    if a is None or b is None:
        return None
    if op == "+" and isinstance(a, str) and isinstance(b, str):
        return a + b
    if not (_is_number(a) and _is_number(b)):
        raise TypeMismatch(
            f"Cannot apply '{op}' to {scalar_type(a).value} and {scalar_type(b).value}"
        )
    if op == "+":
        return a + b
    if op == "-":
        return a - b
    if op == "*":
        return a * b
    if b == 0:
        raise DomainError("Division by zero")
    return a / b


def truthy(v: Any, what: str = "Logical operand") -> bool:
    if v is None:
        return False
    if isinstance(v, bool):
        return v
    raise TypeMismatch(f"{what} must be boolean, got {scalar_type(v).value}")


@lru_cache(maxsize=256)
def like_regex(pattern: str) -> Pattern:
    parts = []
    for ch in pattern:
        if ch == "%":
            parts.append(".*")
        elif ch == "_":
            parts.append(".")
        else:
            parts.append(re.escape(ch))
    return re.compile("".join(parts), re.DOTALL)


# --------- evaluation ----------
def evaluate(expr: Expression, row: Mapping[str, Any]) -> Any:
    if isinstance(expr, Literal):
        return expr.value

    if isinstance(expr, ColumnRef):
        if expr.name not in row:
            available = list(row)
            raise UnknownColumn(expr.name, available, suggest_columns(available, expr.name))
        return row[expr.name]

    if isinstance(expr, FunctionCall):
        return call_function(expr.name, [evaluate(a, row) for a in expr.args])

    if isinstance(expr, BinaryOp):
        if expr.op == "AND":
            return truthy(evaluate(expr.left, row)) and truthy(evaluate(expr.right, row))
        if expr.op == "OR":
            return truthy(evaluate(expr.left, row)) or truthy(evaluate(expr.right, row))
        left, right = evaluate(expr.left, row), evaluate(expr.right, row)
        if expr.op in _COMPARE:
            return compare_scalars(expr.op, left, right)
        return arithmetic(expr.op, left, right)

    if isinstance(expr, Not):
        return not truthy(evaluate(expr.operand, row), "NOT operand")

    if isinstance(expr, Negate):
        v = evaluate(expr.operand, row)
        if v is None:
            return None
        if not _is_number(v):
            raise TypeMismatch(f"Cannot negate {scalar_type(v).value}")
        return -v

    if isinstance(expr, IsNull):
        return (evaluate(expr.value, row) is None) != expr.negated

    if isinstance(expr, InList):
        v = evaluate(expr.value, row)
        if v is None:
            return False
        hit = any(compare_scalars("=", v, evaluate(o, row)) for o in expr.options)
        return hit != expr.negated

    if isinstance(expr, Between):
        v, lo, hi = (evaluate(e, row) for e in (expr.value, expr.low, expr.high))
        if v is None or lo is None or hi is None:
            return False
        inside = compare_scalars(">=", v, lo) and compare_scalars("<=", v, hi)
        return inside != expr.negated

    if isinstance(expr, Like):
        v, pattern = evaluate(expr.value, row), evaluate(expr.pattern, row)
        if v is None or pattern is None:
            return False
        if not (isinstance(v, str) and isinstance(pattern, str)):
            raise TypeMismatch(
                f"LIKE needs strings, got {scalar_type(v).value} and {scalar_type(pattern).value}"
            )
        return (like_regex(pattern).fullmatch(v) is not None) != expr.negated

    raise TypeError(f"Unknown expression node {type(expr).__name__}")


def evaluate_predicate(expr: Expression, row: Mapping[str, Any]) -> bool:
    return truthy(evaluate(expr, row), "Filter expression")
