import pytest
from json import JSONDecodeError

from flow_designer.services.ai_response_parser import extract_json_object, parse_ai_response_text


def test_parses_code_fenced_json():
    raw = """```json
    {"nodes": [], "edges": []}
    ```"""
    parsed = parse_ai_response_text(raw)
    assert parsed == {"nodes": [], "edges": []}


def test_escapes_invalid_backslashes():
    raw = r'{"nodes": [{"id": "a", "content": "Path C:\data"}], "edges": []}'
    parsed = parse_ai_response_text(raw)
    assert parsed["nodes"][0]["content"] == "Path C:\\data"


def test_drops_thought_signature():
    raw = r'{"nodes": [], "edges": [], "thought-signature": {"id": "abc"}}'
    parsed = parse_ai_response_text(raw)
    assert "thought-signature" not in parsed


def test_empty_payload_raises():
    with pytest.raises(JSONDecodeError):
        parse_ai_response_text("   ")


@pytest.mark.parametrize(
    "text, expected",
    [
        ('{"nodes": [], "edges": []}', {"nodes": [], "edges": []}),
        ('Sure!\n```JSON\n{"nodes": [1], "edges": []}\n```', {"nodes": [1], "edges": []}),
        ('noise {"a": {"b": 1}} trailing', {"a": {"b": 1}}),
    ],
)
def test_extract_json_object_strategies(text, expected):
    assert extract_json_object(text) == expected


def test_extract_prefers_fenced_block_over_braces():
    text = 'prefix {"ignored": true}\n```json\n{"picked": true}\n```'
    assert extract_json_object(text) == {"picked": True}


@pytest.mark.parametrize("text", [None, "", "plain words", "{not json}", "```json\n{broken\n```"])
def test_extract_json_object_returns_none_when_nothing_decodes(text):
    assert extract_json_object(text) is None


def test_extract_keeps_thought_keys_of_pasted_documents():
    text = '{"nodes": [], "edges": [], "thought": "kept"}'
    assert extract_json_object(text) == {"nodes": [], "edges": [], "thought": "kept"}


def test_extract_strips_thought_keys_from_model_output():
    text = 'Result:\n```json\n{"nodes": [{"id": "a", "thoughtSignature": "x"}], "edges": []}\n```'
    assert extract_json_object(text, strip_thought_fields=True) == {"nodes": [{"id": "a"}], "edges": []}
