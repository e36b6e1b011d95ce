"""Tests for prompt rendering."""

import pytest

from innerself_ai.models import ReadingRequest, Variant
from innerself_ai.prompts import (
    NULL_CONTEXT,
    build_basic_prompt,
    build_detailed_prompt,
    build_prompt,
)
from tests.conftest import BRANCH_CARDS, MAIN_CARDS


class TestBasicPrompt:
    """The basic prompt carries every constraint the reading depends on."""

    def test_echoes_cards_with_positional_ids(self, basic_request):
        prompt = build_basic_prompt(basic_request)
        assert "A) 力量" in prompt
        assert "B) 星星" in prompt
        assert "C) 寶劍二" in prompt

    def test_forbids_rewriting_card_text(self, basic_request):
        assert "不改寫牌文" in build_basic_prompt(basic_request)

    def test_states_length_limits(self, basic_request):
        prompt = build_basic_prompt(basic_request)
        assert "15～30" in prompt
        assert "≤50" in prompt

    def test_contains_anchoring_rule(self, basic_request):
        prompt = build_basic_prompt(basic_request)
        assert "【定錨規則】" in prompt
        assert "使用者問題" in prompt
        assert "不得只描述抽象態度或通用建議" in prompt

    def test_absent_context_renders_as_null(self, basic_request):
        prompt = build_basic_prompt(basic_request)
        assert f"既有前提／已選擇的路徑：{NULL_CONTEXT}" in prompt

    def test_present_context_is_included_trimmed(self):
        request = ReadingRequest(question="要不要換工作？", context="  已經投了履歷  ", main_cards=MAIN_CARDS)
        assert "既有前提／已選擇的路徑：已經投了履歷\n" in build_basic_prompt(request)

    def test_includes_version_tag_and_question(self, basic_request):
        prompt = build_basic_prompt(basic_request)
        assert '"version": "basic_v1_json"' in prompt
        assert "要不要換工作？" in prompt
        assert "branches" not in prompt

    def test_is_pure(self, basic_request):
        assert build_basic_prompt(basic_request) == build_basic_prompt(basic_request)


class TestDetailedPrompt:
    """The detailed prompt adds branch cards grouped per main card."""

    def test_lists_branch_cards_in_groups(self, detailed_request):
        prompt = build_detailed_prompt(detailed_request)
        assert "A-1) 聖杯一  A-2) 權杖三  A-3) 錢幣六" in prompt
        assert "B-1) 寶劍四  B-2) 聖杯七  B-3) 權杖九" in prompt
        assert "C-1) 錢幣十  C-2) 寶劍侍者  C-3) 聖杯王后" in prompt

    def test_shape_lists_every_branch_id(self, detailed_request):
        prompt = build_detailed_prompt(detailed_request)
        for main_id in "ABC":
            for n in (1, 2, 3):
                assert f'"id": "{main_id}-{n}"' in prompt
        assert '"version": "clear_v1_json"' in prompt

    def test_context_is_included(self, detailed_request):
        assert "已經決定先不裸辭" in build_detailed_prompt(detailed_request)


@pytest.mark.parametrize(
    "variant,builder",
    [(Variant.BASIC, build_basic_prompt), (Variant.DETAILED, build_detailed_prompt)],
)
def test_build_prompt_dispatches_on_variant(detailed_request, variant, builder):
    assert build_prompt(detailed_request, variant) == builder(detailed_request)


def test_all_branch_labels_appear_verbatim(detailed_request):
    prompt = build_prompt(detailed_request, Variant.DETAILED)
    for label in BRANCH_CARDS:
        assert label in prompt
