from datetime import date, datetime

import pytest

from spec_plotting.errors import DomainError, TypeMismatch, UnknownFunction
from spec_plotting.functions import FUNCTION_NAMES, call_function, check_arity


def test_date_buckets_keep_date_flavour():
    d = date(2024, 1, 10)  # Wednesday
    assert call_function("to_week", [d]) == date(2024, 1, 8)
    assert call_function("to_month", [d]) == date(2024, 1, 1)
    assert call_function("to_quarter", [date(2024, 8, 15)]) == date(2024, 7, 1)
    assert call_function("to_year", [d]) == date(2024, 1, 1)


def test_date_buckets_on_datetimes_and_iso_strings():
    ts = datetime(2024, 1, 10, 15, 30)
    assert call_function("to_week", [ts]) == datetime(2024, 1, 8)
    assert call_function("to_hour", [ts]) == 15
    assert call_function("to_week", ["2024-01-07"]) == date(2024, 1, 1)


def test_weekday_monday_is_zero():
    assert call_function("weekday", [date(2024, 1, 1)]) == 0
    assert call_function("weekday_name", [date(2024, 1, 7)]) == "Sunday"


def test_text_functions():
    assert call_function("source_medium", ["google", "organic"]) == "google / organic"
    assert call_function("source_medium", [None, "cpc"]) == " / cpc"
    assert call_function("concat", ["a", 1, None, "-"]) == "a-1-"
    assert call_function("upper", ["abc"]) == "ABC"
    assert call_function("lower", ["ABC"]) == "abc"


def test_round_half_away_from_zero():
    assert call_function("round", [2.5]) == 3.0
    assert call_function("round", [-2.5]) == -3.0
    assert call_function("round", [1.005, 2]) == 1.01
    assert call_function("round", [7]) == 7


def test_round_keeps_magnitude_of_large_values():
    assert call_function("round", [1e30, 0]) == 1e30
    assert call_function("round", [-1.5e300, 3]) == -1.5e300
    assert call_function("round", [10 ** 40, 2]) == 10 ** 40


def test_numeric_domain_errors():
    assert call_function("abs", [-3]) == 3
    assert call_function("sqrt", [9]) == 3.0
    with pytest.raises(DomainError):
        call_function("sqrt", [-1])
    with pytest.raises(DomainError):
        call_function("log", [0])


def test_null_passthrough():
    assert call_function("to_week", [None]) is None
    assert call_function("sqrt", [None]) is None


def test_type_mismatch():
    with pytest.raises(TypeMismatch):
        call_function("upper", [3])
    with pytest.raises(TypeMismatch):
        call_function("to_month", ["not a date"])
    with pytest.raises(TypeMismatch):
        call_function("sqrt", [True])


def test_arity_and_unknown_functions():
    with pytest.raises(TypeMismatch):
        check_arity("upper", 2)
    with pytest.raises(TypeMismatch):
        check_arity("concat", 1)
    with pytest.raises(UnknownFunction) as exc:
        check_arity("to_wek", 1)
    assert "to_week" in exc.value.known
    assert "round" in FUNCTION_NAMES
