"""
Unit tests for recovering JSON objects from model output.
"""
import pytest
from datachat.services.extraction import extract_json_candidate, load_object, parse_model_json, repair


@pytest.mark.unit
@pytest.mark.parametrize("text", [
    '{"analysis": "ok"}',
    'Here\'s the JSON response: {"analysis": "ok"}',
    '```json\n{"analysis": "ok"}\n```',
    'Based on the data, {"analysis": "ok"} hope this helps',
])
def test_direct_stage(text):
    assert parse_model_json(text) == ({"analysis": "ok"}, "direct")


@pytest.mark.unit
def test_code_fence_stage():
    text = 'Note {draft} then ```json {"analysis": "ok"}```'

    assert parse_model_json(text) == ({"analysis": "ok"}, "code_fence")


@pytest.mark.unit
def test_first_object_stage():
    text = 'Result: {"analysis": "ok"} and also {oops}'

    assert parse_model_json(text) == ({"analysis": "ok"}, "first_object")


@pytest.mark.unit
def test_repaired_stage():
    parsed, stage = parse_model_json("{'analysis': 1,}")

    assert stage == "repaired"
    assert parsed == {"analysis": 1}


@pytest.mark.unit
def test_repair_fixes_trailing_commas_and_keys():
    assert repair("{analysis: [1, 2,],}") == '{"analysis": [1, 2]}'


@pytest.mark.unit
@pytest.mark.parametrize("text", [None, "", "no json here", "[1, 2, 3]", "{}", "{ not even close"])
def test_unparseable_output(text):
    assert parse_model_json(text) == (None, "none")


@pytest.mark.unit
def test_deeply_nested_output_does_not_raise():
    text = '{"a":' * 5000 + "1" + "}" * 5000

    assert parse_model_json(text) == (None, "none")


@pytest.mark.unit
def test_extract_json_candidate():
    assert extract_json_candidate('I cannot say much. {"a": 1} bye') == '{"a": 1}'
    assert extract_json_candidate("} backwards {") is None
    assert extract_json_candidate(None) is None


@pytest.mark.unit
def test_load_object_requires_non_empty_dict():
    assert load_object('{"a": 1}') == {"a": 1}
    assert load_object("{}") is None
    assert load_object('"text"') is None
    assert load_object(None) is None
