from datetime import date, datetime

import pytest

from spec_plotting.errors import DomainError, TypeMismatch, UnknownColumn
from spec_plotting.evaluator import compare_scalars, evaluate, evaluate_predicate
from spec_plotting.expressions import parse_expression


def ev(text, **row):
    return evaluate(parse_expression(text), row)


def test_null_propagation():
    assert ev("NULL > 5") is False
    assert ev("NULL IS NULL") is True
    assert ev("x + 1", x=None) is None
    assert ev("NOT (x > 5)", x=None) is True
    with pytest.raises(DomainError):
        ev("sqrt(-1)")


def test_numeric_widening_and_arithmetic():
    assert ev("a = 2.0", a=2) is True
    assert ev("a / 4", a=2) == 0.5
    assert ev("-a * 3", a=2) == -6
    with pytest.raises(DomainError):
        ev("a / 0", a=1)


def test_string_concatenation_and_mismatch():
    assert ev("a + b", a="x", b="y") == "xy"
    with pytest.raises(TypeMismatch):
        ev("a + 1", a="x")
    with pytest.raises(TypeMismatch):
        ev("a > 1", a="x")


def test_date_against_iso_string():
    assert ev("d = '2024-01-01'", d=date(2024, 1, 1)) is True
    assert ev("d > '2024-01-01'", d=datetime(2024, 1, 1, 9)) is True
    assert ev("d BETWEEN '2024-01-01' AND '2024-01-31'", d=date(2024, 1, 15)) is True


def test_in_between_like():
    assert ev("r IN ('A', 'B')", r="B") is True
    assert ev("r NOT IN ('A', 'B')", r="C") is True
    assert ev("r IN ('A')", r=None) is False
    assert ev("n BETWEEN 1 AND 3", n=3) is True
    assert ev("s LIKE 'goo%'", s="google") is True
    assert ev("s LIKE 'g_gle'", s="google") is False
    assert ev("s NOT LIKE '%.com'", s="a.org") is True


def test_boolean_logic_requires_booleans():
    assert ev("a AND b", a=True, b=False) is False
    assert ev("a OR b", a=None, b=True) is True
    with pytest.raises(TypeMismatch):
        ev("a AND b", a=1, b=True)


def test_unknown_column_suggests():
    with pytest.raises(UnknownColumn) as exc:
        ev("totalUser > 1", totalUsers=3, date=None)
    assert exc.value.suggestions[0] == "totalUsers"
    assert "Did you mean 'totalUsers'" in str(exc.value)


def test_predicate_must_be_boolean():
    assert evaluate_predicate(parse_expression("x"), {"x": None}) is False
    with pytest.raises(TypeMismatch):
        evaluate_predicate(parse_expression("x + 1"), {"x": 1})


def test_compare_bool_ordering_rejected():
    assert compare_scalars("=", True, True) is True
    with pytest.raises(TypeMismatch):
        compare_scalars("<", True, False)
