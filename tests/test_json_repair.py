"""
Tests for two-stage model output parsing.
"""
import pytest

from storyframe.providers.exceptions import ParseFailed
from storyframe.services.json_repair import ParseStatus, parse_model_json


class TestParseModelJson:
    """Tests for parse_model_json."""

    def test_strict_json(self):
        outcome = parse_model_json('{"storyboards": []}')
        assert outcome.status is ParseStatus.OK
        assert outcome.value == {"storyboards": []}

    def test_repairs_wrapped_json(self):
        text = 'Here is your storyboard:\n```json\n{"storyboards": [{"scene_id": 1}]}\n```\nEnjoy!'
        outcome = parse_model_json(text)

        assert outcome.status is ParseStatus.REPAIRED
        assert outcome.value["storyboards"][0]["scene_id"] == 1

    def test_repair_spans_first_to_last_brace(self):
        outcome = parse_model_json('x {"a": {"b": 1}} y')
        assert outcome.value == {"a": {"b": 1}}

    def test_no_object_fails(self):
        outcome = parse_model_json("sorry, I cannot help with that")
        assert outcome.status is ParseStatus.FAILED
        assert not outcome.ok

    def test_broken_object_fails(self):
        outcome = parse_model_json('prefix {"a": 1,,} suffix')
        assert outcome.status is ParseStatus.FAILED

    @pytest.mark.parametrize("text", [None, "", "   "])
    def test_empty_output_fails(self, text):
        assert parse_model_json(text).status is ParseStatus.FAILED

    def test_unwrap_raises_parse_failed(self):
        with pytest.raises(ParseFailed):
            parse_model_json("not json").unwrap()
