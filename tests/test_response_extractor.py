"""Tests for payload extraction from heterogeneous reply envelopes."""

import pytest

from innerself_ai.response_extractor import extract_payload
from tests.conftest import object_reply, text_reply


class TestConvenienceText:

    def test_prefers_non_empty_output_text(self):
        envelope = text_reply('{"from": "blocks"}', convenience='{"from": "top"}')
        assert extract_payload(envelope) == '{"from": "top"}'

    def test_empty_output_text_falls_through_to_blocks(self):
        envelope = text_reply('{"from": "blocks"}', convenience="")
        assert extract_payload(envelope) == '{"from": "blocks"}'


class TestContentBlocks:

    def test_concatenates_text_blocks_in_order(self):
        envelope = {
            "output_text": "",
            "output": [
                {"type": "message", "content": [
                    {"type": "output_text", "text": '{"a":'},
                    {"type": "text", "text": " 1"},
                ]},
                {"type": "message", "content": [{"type": "output_json", "text": "}"}]},
            ],
        }
        assert extract_payload(envelope) == '{"a": 1}'

    def test_parsed_object_short_circuits(self):
        obj = {"version": "clear_v1_json"}
        assert extract_payload(object_reply(obj)) == obj

    def test_json_block_with_object_short_circuits(self):
        envelope = {"output": [{"content": [
            {"type": "output_text", "text": "ignored"},
            {"type": "json", "json": {"a": 1}},
        ]}]}
        assert extract_payload(envelope) == {"a": 1}

    def test_unknown_block_kinds_are_skipped(self):
        envelope = {"output": [{"content": [
            {"type": "refusal", "refusal": "I can't help with that"},
            {"type": "output_audio", "text": "should not be used"},
        ]}]}
        assert extract_payload(envelope) == ""

    def test_malformed_items_are_ignored(self):
        envelope = {"output": [None, "junk", {"content": "not-a-list"}, {"content": [42, None]}]}
        assert extract_payload(envelope) == ""

    @pytest.mark.parametrize("choices", [
        [{"message": "hi"}],
        [{"message": ["hi"]}],
        [{"message": None}, "junk", 7],
    ])
    def test_malformed_choices_are_ignored(self, choices):
        assert extract_payload({"choices": choices}) == ""


class TestChatCompletionsShape:

    def test_reads_message_content(self):
        envelope = {"choices": [{"message": {"role": "assistant", "content": '{"a": 1}'}}]}
        assert extract_payload(envelope) == '{"a": 1}'

    def test_reads_message_parsed(self):
        envelope = {"choices": [{"message": {"content": None, "parsed": {"a": 1}}}]}
        assert extract_payload(envelope) == {"a": 1}


class TestNothingFound:

    def test_empty_envelope(self):
        assert extract_payload({}) == ""

    def test_non_dict_envelope(self):
        assert extract_payload(None) == ""
        assert extract_payload("raw text") == ""

    def test_incomplete_reply_with_only_reasoning(self):
        envelope = {
            "status": "incomplete",
            "output_text": "",
            "output": [{"type": "reasoning", "summary": []}],
        }
        assert extract_payload(envelope) == ""
