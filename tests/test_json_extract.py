"""Tests for utils.json_extract."""

import pytest

from core.errors import ParseError
from utils.json_extract import parse_json


@pytest.mark.parametrize("text,expected", [
    ('{"score": 90}', {"score": 90}),
    ('```json\n{"score": 91}\n```', {"score": 91}),
    ('Here you go:\n```\n{"score": 92}\n```\nThanks', {"score": 92}),
    ('The result is {"score": 93, "issues": []} as requested.', {"score": 93, "issues": []}),
    ('Scores: [90, 85] done', [90, 85]),
])
def test_fallback_chain(text, expected):
    result = parse_json(text)
    assert result.ok
    assert result.value == expected


@pytest.mark.parametrize("text", ["", "   ", None, "no json here", "{broken: json"])
def test_failures_are_tagged_not_raised(text):
    result = parse_json(text)
    assert result.ok is False
    assert result.error
    assert result.get("score", 0) == 0
    with pytest.raises(ParseError):
        result.unwrap()


def test_get_on_non_object():
    result = parse_json("[1, 2]")
    assert result.ok
    assert result.get("score") is None
    assert result.unwrap() == [1, 2]
