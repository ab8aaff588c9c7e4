from datetime import datetime

import pandas as pd
import pytest

from spec_plotting.dataframe_ops import (
    apply_derive, apply_filter, apply_group_aggregate, apply_limit, apply_sort, apply_transforms,
)
from spec_plotting.errors import ConfigError, PipelineError, TypeMismatch, UnknownColumn
from spec_plotting.schemas import ChartConfig, FilterConfig, SortDirective


def test_filter_include_exclude_expression(sales_df):
    flt = FilterConfig(include={"region": ["A", "B"]}, exclude={"sales": [20]}, expression="sales > 1")
    out = apply_filter(sales_df, flt)
    assert out["region"].tolist() == ["A"]
    assert out["sales"].tolist() == [10]


def test_filter_is_idempotent(sales_df):
    flt = FilterConfig(include={"region": ["A", "C"]}, expression="units IS NOT NULL OR sales < 10")
    once = apply_filter(sales_df, flt)
    twice = apply_filter(once, flt)
    pd.testing.assert_frame_equal(once, twice)


def test_filter_does_not_mutate_input(sales_df):
    before = sales_df.copy()
    apply_filter(sales_df, FilterConfig(exclude={"region": "A"}))
    pd.testing.assert_frame_equal(sales_df, before)


def test_filter_include_string_against_dates(daily_df):
    out = apply_filter(daily_df, FilterConfig(include={"date": ["2024-01-03"]}))
    assert len(out) == 1
    assert out["totalUsers"].iloc[0] == 102


def test_filter_unknown_column(sales_df):
    with pytest.raises(UnknownColumn) as exc:
        apply_filter(sales_df, FilterConfig(include={"regoin": ["A"]}))
    assert exc.value.suggestions == ["region"]


def test_derive_in_declaration_order(daily_df):
    out = apply_derive(daily_df, {
        "sm": "source_medium(source, medium)",
        "sm_upper": "upper(sm)",
    })
    assert out["sm_upper"].iloc[0] == "GOOGLE / ORGANIC"
    assert "sm" not in daily_df.columns


def test_derive_overwrite_warns(sales_df, capsys):
    out = apply_derive(sales_df, {"sales": "sales * 2"})
    assert out["sales"].tolist() == [20, 40, 40, 10]
    assert "[Derive][WARN]" in capsys.readouterr().out


def test_aggregation_sum_first_appearance_order():
    df = pd.DataFrame({"region": ["A", "B", "A"], "sales": [10, 20, 20]})
    out = apply_group_aggregate(df, ["region"], "sum")
    assert out["region"].tolist() == ["A", "B"]
    assert out["sales"].tolist() == [30, 20]


def test_aggregation_drops_non_numeric_and_supports_mean(sales_df):
    df = sales_df.assign(label=["x", "y", "z", "w"])
    out = apply_group_aggregate(df, ["region"], "mean")
    assert list(out.columns) == ["region", "sales", "units"]
    assert out.loc[out["region"] == "A", "sales"].iloc[0] == 15


def test_sort_is_stable():
    df = pd.DataFrame({"k": [2, 1, 2, 1], "tag": ["a", "b", "c", "d"]})
    out = apply_sort(df, [SortDirective(column="k")])
    assert out["tag"].tolist() == ["b", "d", "a", "c"]
    out = apply_sort(df, [SortDirective(column="k", ascending=False)])
    assert out["tag"].tolist() == ["a", "c", "b", "d"]


def test_sort_secondary_key_breaks_ties_and_resort_is_noop():
    df = pd.DataFrame({
        "region": ["B", "A", "B", "A", "B"],
        "sales": [1, 5, 3, 5, 3],
        "tag": ["p", "q", "r", "s", "t"],
    })
    keys = [SortDirective(column="region"), SortDirective(column="sales", ascending=False)]
    out = apply_sort(df, keys)
    assert out["tag"].tolist() == ["q", "s", "r", "t", "p"]
    pd.testing.assert_frame_equal(apply_sort(out, keys), out)


def test_sort_nulls_first(sales_df):
    out = apply_sort(sales_df, [SortDirective(column="units")])
    assert pd.isna(out["units"].iloc[0])


def test_sort_mixed_types():
    df = pd.DataFrame({"v": [1, "a", 2]})
    with pytest.raises(TypeMismatch):
        apply_sort(df, [SortDirective(column="v")])


def test_limit(sales_df):
    assert len(apply_limit(sales_df, 2)) == 2
    assert len(apply_limit(sales_df, 10)) == 4
    with pytest.raises(ConfigError):
        apply_limit(sales_df, 0)


def test_pipeline_order_filter_before_derive(daily_df):
    chart = ChartConfig.model_validate({
        "type": "line", "x": "week_start", "y": "totalUsers",
        "derive": {"week_start": "to_week(date)"},
        "filter": {"expression": "week_start = '2024-01-01'"},
    })
    with pytest.raises(PipelineError) as exc:
        apply_transforms(daily_df, chart)
    assert exc.value.stage == "filter"
    assert exc.value.cause_kind == "UnknownColumn"

    derived = apply_derive(daily_df, chart.derive)
    assert len(apply_filter(derived, chart.filter)) == 7


def test_derive_then_filter_round_trip(daily_df):
    derived = apply_derive(daily_df, {"week_start": "to_week(date)"})
    out = apply_filter(derived, FilterConfig(expression="week_start = '2024-01-01'"))
    assert out["date"].min() == pd.Timestamp("2024-01-01")
    assert out["date"].max() == pd.Timestamp("2024-01-07")
    assert set(out["week_start"]) == {pd.Timestamp(datetime(2024, 1, 1))}


def test_transforms_full_chain(daily_df):
    chart = ChartConfig.model_validate({
        "type": "bar", "x": "source", "y": "totalUsers",
        "filter": {"exclude": {"source": ["bing"]}},
        "derive": {"weekday": "weekday(date)"},
        "group_by": ["source"],
        "agg": "sum",
        "sort": [{"column": "totalUsers", "ascending": False}],
        "limit": 1,
    })
    out = apply_transforms(daily_df, chart)
    assert out["source"].tolist() == ["google"]
    assert out["totalUsers"].tolist() == [100 + 102 + 104 + 106]


def test_transforms_wrap_derive_errors(sales_df):
    chart = ChartConfig.model_validate({
        "type": "bar", "x": "region", "y": "r",
        "derive": {"r": "sqrt(sales - 15)"},
    })
    with pytest.raises(PipelineError) as exc:
        apply_transforms(sales_df, chart)
    assert exc.value.stage == "derive"
    assert exc.value.cause_kind == "DomainError"
    assert exc.value.expression == "sqrt(sales - 15)"


def test_round_on_large_values_stays_in_pipeline():
    df = pd.DataFrame({"x": [1e30, 2.345]})
    chart = ChartConfig(kind="line", x="x", y="r", derive={"r": "round(x, 2)"})
    out = apply_transforms(df, chart)
    assert out["r"].tolist() == [1e30, 2.35]
