"""
Unit tests for model response normalization.
"""
import copy
import json
import pytest
from datachat.services import analysis, normalizer


def _complete_response(count=5):
    return {
        "analysis": "South leads with 450 in sales across all 5 rows.",
        "visualization": {
            "type": "bar",
            "title": "Sales by Region",
            "description": "Totals",
            "xLabel": "Region",
            "yLabel": "Sales",
            "data": {
                "labels": ["South", "North", "East"],
                "datasets": [{
                    "label": "Sales",
                    "data": [450, 250, 50],
                    "backgroundColor": "rgba(1, 2, 3, 0.6)",
                    "borderColor": "rgba(1, 2, 3, 1)",
                }],
            },
        },
        "insights": ["South is first."],
        "statistics": {"count": count, "mean": 250},
    }


@pytest.mark.unit
def test_complete_response_passes_through(sales_rows):
    raw = json.dumps(_complete_response())

    assert normalizer.normalize(raw, sales_rows) == _complete_response()


@pytest.mark.unit
def test_backfill_is_idempotent(sales_rows):
    raw = '{"analysis": "x", "visualization": {"type": "doughnut", "data": {"labels": ["a", "b"], "datasets": [{"data": [1, 2]}]}}}'
    once = normalizer.normalize(raw, sales_rows)

    assert normalizer.backfill(copy.deepcopy(once), sales_rows) == once


@pytest.mark.unit
def test_pie_colors_are_aligned_to_labels(sales_rows):
    raw = json.dumps({
        "analysis": "Shares",
        "visualization": {
            "type": "Doughnut",
            "data": {"labels": ["a", "b", "c"], "datasets": [{"data": [1, 2, 3], "backgroundColor": ["red"]}]},
        },
    })
    visualization = normalizer.normalize(raw, sales_rows)["visualization"]
    dataset = visualization["data"]["datasets"][0]

    assert visualization["type"] == "pie"
    assert visualization["title"] == normalizer.DEFAULT_TITLE
    assert dataset["backgroundColor"] == analysis.EXTENDED_COLORS[:3]
    assert len(dataset["borderColor"]) == 3


@pytest.mark.unit
def test_series_colors_by_index(sales_rows):
    raw = json.dumps({
        "analysis": "Two series",
        "visualization": {
            "type": "line",
            "data": {"labels": ["a"], "datasets": [{"data": [1]}, {"data": [2]}, "junk"]},
        },
    })
    datasets = normalizer.normalize(raw, sales_rows)["visualization"]["data"]["datasets"]

    assert len(datasets) == 2
    assert datasets[1]["backgroundColor"] == analysis.EXTENDED_COLORS[1]
    assert datasets[1]["borderColor"] == analysis.border_for(analysis.EXTENDED_COLORS[1])


@pytest.mark.unit
@pytest.mark.parametrize("chart_type, expected", [
    ("histogram", "bar"), ("area", "line"), ("radar", "bar"), (None, "bar"), ("SCATTER", "scatter"),
])
def test_chart_type_mapping(chart_type, expected, sales_rows):
    raw = json.dumps({"analysis": "x", "visualization": {"type": chart_type, "data": {"datasets": []}}})

    assert normalizer.normalize(raw, sales_rows)["visualization"]["type"] == expected


@pytest.mark.unit
@pytest.mark.parametrize("count", [0, "5", True, None])
def test_invalid_counts_are_replaced(count, sales_rows):
    raw = json.dumps(_complete_response(count=count))

    assert normalizer.normalize(raw, sales_rows)["statistics"]["count"] == 5


@pytest.mark.unit
def test_insight_string_becomes_list(sales_rows):
    response = _complete_response()
    response["insights"] = "Only one"

    assert normalizer.normalize(json.dumps(response), sales_rows)["insights"] == ["Only one"]


@pytest.mark.unit
def test_prose_with_ranking_intent(sales_rows):
    raw = "The top sales by city are in Bristol, which shows the strongest demand."
    result = normalizer.normalize(raw, sales_rows, query="best city")

    assert result["visualization"]["title"] == "Sales by City"
    assert result["visualization"]["data"]["labels"][0] == "Bristol"


@pytest.mark.unit
def test_prose_without_intent_gets_chart_from_wording(sales_rows):
    raw = "Revenue follows a clear trend upwards. The numbers indicate steady growth every week."
    result = normalizer.normalize(raw, sales_rows, query="how are we doing")

    assert result["analysis"] == raw
    assert result["visualization"]["type"] == "line"
    assert result["visualization"]["title"] == "Analysis of how are we doing"
    assert "The numbers indicate steady growth every week" in result["insights"]


@pytest.mark.unit
def test_descriptive_json_is_delegated(sales_rows):
    raw = '{"analysis": "We need to rank each region by sales first."}'
    result = normalizer.normalize(raw, sales_rows)

    assert result["visualization"]["title"] == "Sales by Region"
    assert result["visualization"]["data"]["labels"] == ["South", "North", "East"]


@pytest.mark.unit
def test_descriptive_json_with_empty_data_is_delegated(sales_rows):
    raw = '{"analysis": "The first step is grouping rows.", "visualization": {"type": "bar", "data": {}}}'
    result = normalizer.normalize(raw, sales_rows)

    assert result["visualization"]["data"]["labels"]
    assert result["analysis"] == "The first step is grouping rows."


@pytest.mark.unit
@pytest.mark.parametrize("raw", [None, "", "garbage", "{", '{"analysis": ', "[1, 2]", "\x00\xff\ufffd{{{ }}"])
def test_garbage_never_raises(raw, sales_rows):
    result = normalizer.normalize(raw, sales_rows)

    assert set(result) >= {"analysis", "visualization", "insights", "statistics"}
    assert result["statistics"]["count"] == 5
    assert result["analysis"]


@pytest.mark.unit
def test_count_beyond_float_range_is_replaced(sales_rows):
    raw = (
        '{"analysis": "x", "visualization": {"type": "bar", "data": {"labels": [], "datasets": []}},'
        ' "statistics": {"count": 1' + "0" * 400 + '}}'
    )
    result = normalizer.normalize(raw, sales_rows)

    assert result["statistics"]["count"] == 5


@pytest.mark.unit
def test_backfill_failure_falls_back_to_default(monkeypatch, sales_rows):
    real_backfill = normalizer.backfill
    calls = []

    def flaky_backfill(result, rows):
        calls.append(result)
        if len(calls) == 1:
            raise ValueError("boom")
        return real_backfill(result, rows)

    monkeypatch.setattr(normalizer, "backfill", flaky_backfill)
    result = normalizer.normalize('{"analysis": "ok"}', sales_rows)

    assert len(calls) == 2
    assert result["statistics"]["count"] == 5
    assert result["visualization"]["data"]["labels"]


@pytest.mark.unit
def test_empty_dataset_never_raises():
    result = normalizer.normalize("garbage", [])

    assert result["statistics"]["count"] == 0
    assert result["visualization"]["title"] == "Data Visualization"


@pytest.mark.unit
def test_unexpected_failure_falls_back_to_default(monkeypatch, sales_rows):
    def explode(*args, **kwargs):
        raise RuntimeError("boom")

    monkeypatch.setattr(normalizer, "_normalize", explode)
    result = normalizer.normalize('{"analysis": "x"}', sales_rows, query="q")

    assert result["visualization"]["title"] == "Frequency of Region"
    assert result["analysis"] == 'Analysis of 5 rows of data based on your query: "q"'


@pytest.mark.unit
def test_extract_insights():
    text = (
        "Short.\n\n"
        "This paragraph is long enough to be an insight.\n\n"
        "The averages show a steady rise. Nothing else"
    )
    insights = normalizer.extract_insights(text)

    assert insights[0] == "This paragraph is long enough to be an insight."
    assert "The averages show a steady rise" in insights
    assert normalizer.extract_insights("") == []
