"""
Tests for the end-to-end analysis flow with the model call replaced.
"""
import json
import pytest
from datachat.core.errors import ErrorCodes, InvalidInputError, UpstreamServiceError
from datachat.core.schemas import LLMConfig
from datachat.services import analyzer, llm


@pytest.fixture
def model_reply(monkeypatch):
    """Replace the model call; returns the list of prompts it received."""
    state = {"reply": "", "prompts": []}

    def fake_complete(system_prompt, query, config):
        state["prompts"].append((system_prompt, query, config))
        if isinstance(state["reply"], Exception):
            raise state["reply"]
        return state["reply"]

    monkeypatch.setattr(llm, "complete", fake_complete)
    return state


@pytest.mark.unit
def test_sales_question_is_answered_without_the_model(model_reply, sales_rows, llm_config):
    result = analyzer.analyze_query("Which city has the highest sales?", sales_rows, llm_config)

    assert model_reply["prompts"] == []
    assert result["analysis"] == "The city with the highest sales is **Bristol** with total sales of **450**."
    assert result["visualization"]["data"]["labels"][0] == "Bristol"
    assert result["statistics"]["count"] == 4


@pytest.mark.unit
def test_model_answer_is_normalized(model_reply, sales_rows, llm_config):
    model_reply["reply"] = "Here's the analysis: " + json.dumps({
        "analysis": "Profit tracks sales closely.",
        "visualization": {"type": "pie", "data": {"labels": ["a", "b"], "datasets": [{"data": [1, 2]}]}},
        "insights": ["Profit margin is about 12%."],
    })
    result = analyzer.analyze_query("  How does profit relate to sales?\x00 ", sales_rows, llm_config)

    system_prompt, query, config = model_reply["prompts"][0]
    assert query == "How does profit relate to sales?"
    assert config == llm_config
    assert "5 rows in total" in system_prompt

    assert result["analysis"] == "Profit tracks sales closely."
    assert len(result["visualization"]["data"]["datasets"][0]["backgroundColor"]) == 2
    assert result["statistics"]["count"] == 5


@pytest.mark.unit
def test_unusable_model_answer_still_yields_a_result(model_reply, sales_rows, llm_config):
    model_reply["reply"] = "I'm unable to help with that"
    result = analyzer.analyze_query("Summarize this", sales_rows, llm_config)

    assert result["visualization"]["data"]["labels"]
    assert result["statistics"]["count"] == 5


@pytest.mark.unit
def test_result_without_coverage_signal_is_annotated(model_reply, sales_rows, llm_config):
    model_reply["reply"] = json.dumps({
        "analysis": "A summary.",
        "visualization": {"type": "bar", "data": {"labels": [], "datasets": []}},
        "statistics": {"count": 2},
    })
    result = analyzer.analyze_query("Summarize this", sales_rows, llm_config)

    assert result["analysis"].startswith("[Note: This analysis has been performed on the entire dataset of 5 rows.]")
    assert result["insights"][-1] == "This analysis includes all 5 rows in the dataset."
    assert result["statistics"]["count"] == 5


@pytest.mark.unit
def test_input_rows_are_not_modified(model_reply, sales_rows, llm_config):
    before = [dict(row) for row in sales_rows]
    analyzer.analyze_query("Which region has the most sales?", sales_rows, llm_config)

    assert sales_rows == before


@pytest.mark.unit
@pytest.mark.parametrize("query, rows, code", [
    ("", [{"a": "1"}], ErrorCodes.MISSING_QUERY),
    ("   \x00", [{"a": "1"}], ErrorCodes.MISSING_QUERY),
    ("Top?", [], ErrorCodes.EMPTY_DATASET),
    ("Top?", ["not a row"], ErrorCodes.EMPTY_DATASET),
])
def test_invalid_requests(query, rows, code, model_reply, llm_config):
    with pytest.raises(InvalidInputError) as exc_info:
        analyzer.analyze_query(query, rows, llm_config)
    assert exc_info.value.code == code
    assert model_reply["prompts"] == []


@pytest.mark.unit
@pytest.mark.parametrize("key, code", [("", ErrorCodes.MISSING_API_KEY), ("bad", ErrorCodes.INVALID_API_KEY)])
def test_api_key_is_required_even_for_direct_answers(key, code, model_reply, sales_rows):
    config = LLMConfig(model="llama-3.1-8b-instant", credential=key)

    with pytest.raises(InvalidInputError) as exc_info:
        analyzer.analyze_query("Which city has the highest sales?", sales_rows, config)
    assert exc_info.value.code == code


@pytest.mark.unit
def test_upstream_errors_propagate(model_reply, sales_rows, llm_config):
    model_reply["reply"] = UpstreamServiceError(ErrorCodes.UPSTREAM_ERROR, "model not found")

    with pytest.raises(UpstreamServiceError):
        analyzer.analyze_query("Summarize this", sales_rows, llm_config)


@pytest.mark.unit
def test_api_key_is_trimmed_before_the_model_call(model_reply, sales_rows, llm_config):
    model_reply["reply"] = json.dumps({"analysis": "A summary."})
    padded = LLMConfig(model=llm_config.model, credential=f"  {llm_config.credential}\n")

    analyzer.analyze_query("Summarize this", sales_rows, padded)

    _, _, config = model_reply["prompts"][0]
    assert config.credential == llm_config.credential
    assert config.model == llm_config.model
