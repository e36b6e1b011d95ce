"""Tests for envelope validation, prose length checks and the strict schema."""

import copy

import pytest

from innerself_ai.errors import ErrorCode, SchemaValidationError
from innerself_ai.models import ReadingRequest, Variant
from innerself_ai.response_schema import (
    build_json_schema,
    check_prose_lengths,
    fullwidth_length,
    validate_envelope,
)
from tests.conftest import MAIN_CARDS, make_basic_envelope, make_detailed_envelope


def _assert_rejected(data, variant, path, request=None):
    with pytest.raises(SchemaValidationError) as exc_info:
        validate_envelope(data, variant, request)
    assert exc_info.value.code == ErrorCode.SCHEMA_VALIDATION_FAILED
    assert exc_info.value.path == path
    return exc_info.value


class TestValidEnvelopes:

    def test_basic_envelope_is_returned_unmodified(self, basic_request):
        envelope = make_basic_envelope(basic_request)
        snapshot = copy.deepcopy(envelope)
        assert validate_envelope(envelope, Variant.BASIC, basic_request) is envelope
        assert envelope == snapshot

    def test_detailed_envelope_passes(self, detailed_request):
        envelope = make_detailed_envelope(detailed_request)
        assert validate_envelope(envelope, Variant.DETAILED, detailed_request) == envelope

    def test_request_is_optional(self, basic_request):
        envelope = make_basic_envelope(basic_request)
        envelope["directions"][0]["cardText"] = "something else"
        assert validate_envelope(envelope, Variant.BASIC) == envelope

    def test_extra_fields_are_tolerated(self, basic_request):
        envelope = make_basic_envelope(basic_request)
        envelope["note"] = "extra"
        validate_envelope(envelope, Variant.BASIC, basic_request)


class TestStructuralViolations:

    def test_rejects_non_object(self):
        _assert_rejected([1, 2, 3], Variant.BASIC, "$")

    def test_rejects_missing_top_level_field(self, basic_request):
        envelope = make_basic_envelope(basic_request)
        del envelope["language"]
        _assert_rejected(envelope, Variant.BASIC, "language")

    def test_rejects_wrong_version_tag(self, basic_request):
        envelope = make_basic_envelope(basic_request)
        _assert_rejected(envelope, Variant.DETAILED, "version")

    def test_rejects_wrong_language(self, basic_request):
        envelope = make_basic_envelope(basic_request)
        envelope["language"] = "en"
        _assert_rejected(envelope, Variant.BASIC, "language")

    def test_rejects_two_directions(self, basic_request):
        envelope = make_basic_envelope(basic_request)
        envelope["directions"].pop()
        _assert_rejected(envelope, Variant.BASIC, "directions")

    def test_rejects_out_of_order_ids(self, basic_request):
        envelope = make_basic_envelope(basic_request)
        envelope["directions"].reverse()
        _assert_rejected(envelope, Variant.BASIC, "directions[0].id")

    def test_rejects_basic_direction_missing_possible_outcome(self, basic_request):
        envelope = make_basic_envelope(basic_request)
        del envelope["directions"][2]["possibleOutcome"]
        _assert_rejected(envelope, Variant.BASIC, "directions[2].possibleOutcome")

    def test_rejects_blank_action_direction(self, basic_request):
        envelope = make_basic_envelope(basic_request)
        envelope["directions"][1]["actionDirection"] = "   "
        _assert_rejected(envelope, Variant.BASIC, "directions[1].actionDirection")

    def test_rejects_detailed_second_direction_with_two_branches(self, detailed_request):
        envelope = make_detailed_envelope(detailed_request)
        envelope["directions"][1]["branches"].pop()
        _assert_rejected(envelope, Variant.DETAILED, "directions[1].branches")

    def test_rejects_detailed_direction_without_branches(self, detailed_request):
        envelope = make_detailed_envelope(detailed_request)
        del envelope["directions"][0]["branches"]
        _assert_rejected(envelope, Variant.DETAILED, "directions[0].branches")

    def test_rejects_branch_with_wrong_id(self, detailed_request):
        envelope = make_detailed_envelope(detailed_request)
        envelope["directions"][2]["branches"][0]["id"] = "A-1"
        _assert_rejected(envelope, Variant.DETAILED, "directions[2].branches[0].id")

    def test_rejects_branch_with_empty_outcome(self, detailed_request):
        envelope = make_detailed_envelope(detailed_request)
        envelope["directions"][0]["branches"][1]["possibleOutcome"] = ""
        _assert_rejected(envelope, Variant.DETAILED, "directions[0].branches[1].possibleOutcome")

    def test_reports_first_offending_path(self, basic_request):
        envelope = make_basic_envelope(basic_request)
        del envelope["directions"][0]["cardText"]
        del envelope["directions"][2]["possibleOutcome"]
        error = _assert_rejected(envelope, Variant.BASIC, "directions[0].cardText")
        assert "directions[0].cardText" in error.message


class TestRequestBoundInvariants:

    def test_rejects_rewritten_card_text(self, basic_request):
        envelope = make_basic_envelope(basic_request)
        envelope["directions"][1]["cardText"] = "星星（正位）"
        _assert_rejected(envelope, Variant.BASIC, "directions[1].cardText", basic_request)

    def test_rejects_rewritten_branch_card_text(self, detailed_request):
        envelope = make_detailed_envelope(detailed_request)
        envelope["directions"][1]["branches"][2]["cardText"] = "權杖 9"
        _assert_rejected(
            envelope, Variant.DETAILED, "directions[1].branches[2].cardText", detailed_request
        )

    @pytest.mark.parametrize("context", ["", "null", "已經決定"])
    def test_rejects_non_null_context_when_request_has_none(self, basic_request, context):
        envelope = make_basic_envelope(basic_request)
        envelope["context"] = context
        _assert_rejected(envelope, Variant.BASIC, "context", basic_request)

    def test_rejects_non_string_context(self):
        request = ReadingRequest(question="要不要換工作？", context="已經決定", main_cards=MAIN_CARDS)
        envelope = make_basic_envelope(request)
        envelope["context"] = {"text": "已經決定"}
        _assert_rejected(envelope, Variant.BASIC, "context", request)


class TestProseLengths:

    def test_fullwidth_length_counts_cjk_as_one(self):
        assert fullwidth_length("力量") == 2
        assert fullwidth_length("，。") == 2

    def test_fullwidth_length_counts_ascii_as_half(self):
        assert fullwidth_length("ab") == 1
        assert fullwidth_length("A 力") == 2

    def test_valid_envelope_has_no_violations(self, detailed_request):
        assert check_prose_lengths(make_detailed_envelope(detailed_request)) == []

    def test_reports_short_action_and_long_outcome(self, detailed_request):
        envelope = make_detailed_envelope(detailed_request)
        envelope["directions"][0]["actionDirection"] = "太短"
        envelope["directions"][2]["branches"][1]["possibleOutcome"] = "長" * 51
        paths = [v.path for v in check_prose_lengths(envelope)]
        assert paths == [
            "directions[0].actionDirection",
            "directions[2].branches[1].possibleOutcome",
        ]

    @pytest.mark.parametrize("variant", [Variant.BASIC, None])
    def test_basic_reply_branches_are_not_measured(self, basic_request, variant):
        envelope = make_basic_envelope(basic_request)
        envelope["directions"][0]["branches"] = [{"id": "A-1"}, 1, "oops"]
        assert check_prose_lengths(envelope, variant) == []


class TestStrictSchema:

    def test_basic_schema_pins_tags_and_cardinality(self):
        schema = build_json_schema(Variant.BASIC)
        assert schema["properties"]["version"]["enum"] == ["basic_v1_json"]
        assert schema["properties"]["language"]["enum"] == ["zh-Hant"]
        directions = schema["properties"]["directions"]
        assert directions["minItems"] == directions["maxItems"] == 3
        assert directions["items"]["properties"]["id"]["enum"] == ["A", "B", "C"]
        assert "branches" not in directions["items"]["properties"]

    def test_detailed_schema_requires_branches(self):
        schema = build_json_schema(Variant.DETAILED)
        direction = schema["properties"]["directions"]["items"]
        assert "branches" in direction["required"]
        assert direction["properties"]["branches"]["maxItems"] == 3

    @pytest.mark.parametrize("variant", list(Variant))
    def test_every_object_is_closed_and_fully_required(self, variant):
        def walk(node):
            if isinstance(node, dict):
                if node.get("type") == "object":
                    assert node["additionalProperties"] is False
                    assert set(node["required"]) == set(node["properties"])
                for value in node.values():
                    walk(value)
            elif isinstance(node, list):
                for value in node:
                    walk(value)

        walk(build_json_schema(variant))
