import pytest

from spec_plotting.errors import ConfigError, ValidationError
from spec_plotting.schemas import ChartConfig
from spec_plotting.validation import (
    parse_chart, parse_spec_document, validate_chart, validate_document,
)

SCHEMA = ["date", "totalUsers", "source", "medium"]


def chart(**kw):
    return ChartConfig.model_validate(kw)


def paths(report):
    return [i.field_path for i in report.issues]


def test_valid_chart_has_no_issues():
    c = chart(type="line", x="week", y="totalUsers", derive={"week": "to_week(date)"})
    assert validate_chart(c, 0, SCHEMA).ok


def test_required_fields_per_kind():
    report = validate_chart(chart(type="funnel", title="f"), 1)
    assert paths(report) == ["charts[1].steps", "charts[1].values"]
    report = validate_chart(chart(type="heatmap", x="a", y="b"), 0)
    assert paths(report) == ["charts[0].z"]
    report = validate_chart(chart(type="retention"), 0)
    assert len(report.issues) == 3


def test_bounds_collected_together():
    c = chart(type="bar", x="source", y="totalUsers", width=50, height=20000, scale=0, bins=1, limit=0)
    report = validate_chart(c, 0)
    assert paths(report) == [
        "charts[0].width", "charts[0].height", "charts[0].scale", "charts[0].bins", "charts[0].limit",
    ]
    assert {i.kind for i in report.issues} == {"ConfigError"}


def test_step_order_checks():
    c = chart(type="funnel", steps=["a", "b"], values="n", step_order=[0, 2])
    report = validate_chart(c, 0)
    assert paths(report) == ["charts[0].step_order[1]"]
    c = chart(type="funnel", steps=["a", "b"], values="n", step_order=[0])
    assert paths(validate_chart(c, 0)) == ["charts[0].step_order"]


def test_filter_shape_rules():
    report = validate_chart(chart(type="bar", x="a", y="b", filter={}), 0)
    assert "at least one condition" in report.issues[0].message
    report = validate_chart(chart(type="bar", x="a", y="b", filter={"include": {"a": []}}), 0)
    assert report.issues[0].field_path == "charts[0].filter.include.a"


def test_expression_syntax_and_functions():
    c = chart(type="bar", x="a", y="b",
              filter={"expression": "a = = 1"},
              derive={"w": "to_wek(date)", "u": "upper(a, b)"})
    report = validate_chart(c, 2)
    kinds = {i.field_path: i.kind for i in report.issues}
    assert kinds["charts[2].filter.expression"] == "ParseError"
    assert kinds["charts[2].derive.w"] == "UnknownFunction"
    assert kinds["charts[2].derive.u"] == "TypeMismatch"
    unknown = [i for i in report.issues if i.kind == "UnknownFunction"][0]
    assert unknown.suggestions[0] == "to_week"


def test_unknown_column_with_suggestion():
    report = validate_chart(chart(type="line", x="date", y="totalUser"), 0, SCHEMA)
    assert len(report.issues) == 1
    issue = report.issues[0]
    assert issue.kind == "UnknownColumn"
    assert issue.field_path == "charts[0].y"
    assert issue.suggestions[0] == "totalUsers"


def test_filter_cannot_see_derived_columns():
    c = chart(type="line", x="week", y="totalUsers",
              derive={"week": "to_week(date)"},
              filter={"expression": "week = '2024-01-01'"})
    report = validate_chart(c, 0, SCHEMA)
    assert paths(report) == ["charts[0].filter.expression"]
    assert "filters run before derive" in report.issues[0].message


def test_derive_sees_only_earlier_derives():
    c = chart(type="line", x="date", y="b",
              derive={"b": "upper(a)", "a": "lower(source)"})
    report = validate_chart(c, 0, SCHEMA)
    assert paths(report) == ["charts[0].derive.b"]
    ok = chart(type="line", x="date", y="b",
               derive={"a": "lower(source)", "b": "upper(a)"})
    assert validate_chart(ok, 0, SCHEMA).ok


def test_strict_derive_rejects_overwrite():
    c = chart(type="line", x="date", y="source", derive={"source": "upper(source)"})
    assert validate_chart(c, 0, SCHEMA).ok
    report = validate_chart(c, 0, SCHEMA, strict_derive=True)
    assert report.issues[0].kind == "ConfigError"
    with pytest.raises(ValidationError):
        report.raise_if_failed()


def test_parse_chart_collects_model_errors():
    result, report = parse_chart({"type": "pie", "x": "a", "y": "b", "colour": "red"}, 3)
    assert result is None
    assert "charts[3].type" in paths(report)
    assert "charts[3].colour" in paths(report)


def test_parse_chart_normalizes_group_by():
    result, report = parse_chart({"type": "bar", "x": "a", "y": "b", "group_by": "a"}, 0)
    assert report.ok
    assert result.group_by == ["a"]


def test_document_level_errors():
    with pytest.raises(ConfigError):
        parse_spec_document(["not", "a", "mapping"])
    with pytest.raises(ConfigError):
        parse_spec_document({"data": {"default": "x.csv"}, "charts": []})


def test_validate_document_isolates_charts():
    reports = validate_document({
        "charts": [
            {"type": "line", "x": "a", "y": "b"},
            {"type": "funnel"},
            "not a chart",
        ]
    })
    assert [r.ok for r in reports] == [True, False, False]
