"""Tests for LLM JSON cleanup helpers."""
import pytest

from docmaker.utils.json_cleanup import (
    deep_stringify,
    fix_truncated_json,
    parse_llm_json,
    safe_stringify,
)


def test_parse_plain_json():
    assert parse_llm_json('{"a": 1}') == {"a": 1}


def test_parse_fenced_json():
    assert parse_llm_json('```json\n{"a": [1, 2]}\n```') == {"a": [1, 2]}


def test_parse_json_inside_prose():
    text = 'Here is the result:\n{"brand": {"name": "Acme"}}\nHope it helps!'
    assert parse_llm_json(text) == {"brand": {"name": "Acme"}}


def test_parse_trailing_commas():
    assert parse_llm_json('{"a": [1, 2,], "b": 3,}') == {"a": [1, 2], "b": 3}


def test_parse_array():
    assert parse_llm_json('result: [{"x": 1}]') == [{"x": 1}]


def test_parse_truncated_object():
    text = '{"slides": [{"id": "s1", "title": "Cov'
    result = parse_llm_json(text)
    assert result["slides"][0]["id"] == "s1"


def test_parse_empty_raises():
    with pytest.raises(ValueError):
        parse_llm_json("   ")


def test_parse_garbage_raises():
    with pytest.raises(ValueError):
        parse_llm_json("no json here at all")


def test_fix_truncated_json_closes_brackets():
    assert fix_truncated_json('{"a": [1, 2') == '{"a": [1, 2]}'


def test_fix_truncated_json_drops_dangling_key():
    assert fix_truncated_json('{"a": 1, "b":') == '{"a": 1}'


def test_deep_stringify_list_of_dicts():
    value = [{"title": "Reach", "description": "1M"}, "plain"]
    assert deep_stringify(value) == ["title: Reach, description: 1M", "plain"]


def test_safe_stringify_dict():
    assert safe_stringify({"a": 1, "b": None, "c": "x"}) == "a: 1; c: x"
