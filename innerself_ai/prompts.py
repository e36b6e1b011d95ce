"""Prompt templates for three-card readings.

The drawing happens in the app; the model only interprets the cards it is
given. Every prompt carries:
- Role framing for the variant
- The card labels verbatim with positional ids
- A ban on rewriting card text
- Per-field length limits (full-width characters)
- The anchoring rule tying every sentence to the question, the context and the card
- The output JSON shape
"""

import json

from .models import (
    LANGUAGE_TAG,
    MAIN_IDS,
    ReadingRequest,
    Variant,
    branch_ids,
)

# Length limits stated in the prompt, counted in full-width characters
ACTION_DIRECTION_MIN_CHARS = 15
ACTION_DIRECTION_MAX_CHARS = 30
POSSIBLE_OUTCOME_MAX_CHARS = 50

# Absent context is shown to the model as a literal null
NULL_CONTEXT = "null"

ANCHORING_RULE = """【定錨規則】{target}必須同時回應：
   - 使用者問題
   -（若有）既有前提／已選擇的路徑
   - 該牌卡在此情境下提供的行動視角
   不得只描述抽象態度或通用建議。"""


def _render_input(request: ReadingRequest) -> str:
    context = request.context if request.context else NULL_CONTEXT
    lines = [
        "【輸入】",
        f"- 使用者問題：{request.question}",
        f"-（可選）既有前提／已選擇的路徑：{context}",
        "",
        "主牌：",
    ]
    lines.extend(f"{card_id}) {label}" for card_id, label in request.labelled_main_cards())
    return "\n".join(lines)


def _render_branch_cards(request: ReadingRequest) -> str:
    lines = ["子牌："]
    for index in range(len(MAIN_IDS)):
        row = "  ".join(f"{card_id}) {label}" for card_id, label in request.branches_for(index))
        lines.append(row)
    return "\n".join(lines)


def _output_shape(variant: Variant) -> str:
    """Render the expected envelope as an annotated JSON skeleton."""
    directions = []
    for main_id in MAIN_IDS:
        direction = {
            "id": main_id,
            "cardText": "string",
            "actionDirection": "string",
            "possibleOutcome": "string",
        }
        if variant == Variant.DETAILED:
            direction["branches"] = [
                {"id": branch_id, "cardText": "string", "possibleOutcome": "string"}
                for branch_id in branch_ids(main_id)
            ]
        directions.append(direction)

    skeleton = {
        "version": variant.version_tag,
        "language": LANGUAGE_TAG,
        "question": "string",
        "context": "string | null",
        "directions": directions,
    }
    return json.dumps(skeleton, ensure_ascii=False, indent=2)


def build_basic_prompt(request: ReadingRequest) -> str:
    """Build the prompt for a basic (three direction) reading."""
    anchoring = ANCHORING_RULE.format(target="actionDirection 與 possibleOutcome ")
    return f"""你是 innerSelf App 的「基礎版三張回應卡」引導者。
抽牌已在 App 端完成，你不需要也不可以再抽牌。

{_render_input(request)}

【嚴格規則】
1) 不改寫牌文（cardText 必須逐字等於輸入）。
2) 每張牌都要有 actionDirection（{ACTION_DIRECTION_MIN_CHARS}～{ACTION_DIRECTION_MAX_CHARS} 個全形中文字）與 possibleOutcome（≤{POSSIBLE_OUTCOME_MAX_CHARS} 個全形中文字）。
3) {anchoring}
4) 不占卜、不保證、不下結論。
5) 嚴格輸出 JSON，不得有多餘文字。

【輸出 JSON Schema】
{_output_shape(Variant.BASIC)}

請直接輸出 JSON。"""


def build_detailed_prompt(request: ReadingRequest) -> str:
    """Build the prompt for a detailed reading (three directions, three branches each)."""
    anchoring = ANCHORING_RULE.format(target="主牌 actionDirection 與 possibleOutcome ")
    return f"""你是 innerSelf App 的「明晰版三張回應卡」引導者。
抽牌已在 App 端完成，你不需要也不可以再抽牌。

{_render_input(request)}

{_render_branch_cards(request)}

【嚴格規則】
1) 不改寫牌文（cardText 必須逐字等於輸入）。
2) 主牌 actionDirection（{ACTION_DIRECTION_MIN_CHARS}～{ACTION_DIRECTION_MAX_CHARS} 全形字）與 possibleOutcome（≤{POSSIBLE_OUTCOME_MAX_CHARS} 全形字）。
3) 子牌只輸出 possibleOutcome（≤{POSSIBLE_OUTCOME_MAX_CHARS} 全形字），並延續所屬主牌的方向。
4) {anchoring}
5) 不占卜、不保證、不下結論。
6) 嚴格輸出 JSON，不得有多餘文字。

【輸出 JSON Schema】
{_output_shape(Variant.DETAILED)}

請直接輸出 JSON。"""


def build_prompt(request: ReadingRequest, variant: Variant) -> str:
    """Render the instruction for the given variant."""
    if variant == Variant.DETAILED:
        return build_detailed_prompt(request)
    return build_basic_prompt(request)
