"""
Unit tests for the full-dataset coverage check.
"""
import pytest
from datachat.services import coverage


@pytest.fixture
def rows():
    return [{"n": str(i)} for i in range(5)]


def _result(**overrides):
    result = {
        "analysis": "Summary of the numbers.",
        "visualization": {"type": "bar", "data": {"labels": [], "datasets": [{"data": []}]}},
        "insights": ["One insight."],
        "statistics": {"count": 3},
    }
    result.update(overrides)
    return result


@pytest.mark.unit
def test_uncovered_result_is_annotated(rows):
    result = coverage.verify(_result(), rows)

    assert result["analysis"] == (
        "[Note: This analysis has been performed on the entire dataset of 5 rows.]\n\n"
        "Summary of the numbers."
    )
    assert result["insights"] == ["One insight.", "This analysis includes all 5 rows in the dataset."]
    assert result["statistics"]["count"] == 5


@pytest.mark.unit
@pytest.mark.parametrize("overrides", [
    {"analysis": "Across all 5 rows the mean is 2."},
    {"analysis": "Computed over the entire dataset."},
    {"statistics": {"count": 5}},
    {"visualization": {"data": {"datasets": [{"data": [1, 2]}]}}},
])
def test_covered_results_are_untouched(rows, overrides):
    original = _result(**overrides)
    expected = dict(original)

    assert coverage.verify(original, rows) == expected


@pytest.mark.unit
def test_boolean_count_is_not_a_row_count():
    rows = [{"n": "1"}]
    result = coverage.verify(_result(statistics={"count": True}), rows)

    assert result["analysis"].startswith("[Note:")
    assert result["statistics"]["count"] == 1


@pytest.mark.unit
def test_missing_fields_are_created(rows):
    result = coverage.verify({}, rows)

    assert result["analysis"].startswith("[Note: This analysis has been performed on the entire dataset of 5 rows.]")
    assert result["insights"] == ["This analysis includes all 5 rows in the dataset."]
    assert result["statistics"] == {"count": 5}
