"""Deterministic fallback readings.

When generation, extraction, parsing or validation fails, the service still
answers with a schema-valid envelope built from fixed prose templates and the
verbatim card labels. The same request always produces the same envelope.
"""

from .models import (
    LANGUAGE_TAG,
    ReadingRequest,
    Variant,
)

# (actionDirection, possibleOutcome) per main card position
BASIC_TEMPLATES = (
    ("先把注意力拉回眼前可控的一小步再出發", "焦慮會下降，下一步也更容易啟動。"),
    ("用一個低風險的小試探換取更真實的回饋", "資訊會變多，判斷也會更貼近現況。"),
    ("先調整節奏與界線，再穩穩地往前推進", "消耗會變少，行動也更能持續下去。"),
)

DETAILED_TEMPLATES = (
    ("先觀察整體狀態與限制，再決定推進的力道", "方向會逐漸明朗，但仍需要一些時間。"),
    ("重新調整資源配置與界線，讓選擇更一致", "壓力會降低，做出的選擇也更一致。"),
    ("先踏出一小步行動，再依回饋修正方向", "進展會出現，但需要反覆調整。"),
)

# possibleOutcome per branch, grouped by main card position
BRANCH_TEMPLATES = (
    ("你會察覺目前真正的限制在哪裡。", "行動的節奏感會變得更清楚。", "內在的拉扯會慢慢減少。"),
    ("你會釐清這件事真正的重點。", "身邊可能出現支援的機會。", "你會更安心地採取行動。"),
    ("你會獲得來自現實的回饋。", "原本的假設會被重新檢視。", "下一步會逐漸成形。"),
)


def _envelope(request: ReadingRequest, variant: Variant, directions: list[dict]) -> dict:
    return {
        "version": variant.version_tag,
        "language": LANGUAGE_TAG,
        "question": request.question,
        "context": request.context,
        "directions": directions,
    }


def fallback_basic_response(request: ReadingRequest) -> dict:
    """Fallback envelope for a basic reading."""
    directions = []
    for (card_id, label), (action, outcome) in zip(request.labelled_main_cards(), BASIC_TEMPLATES):
        directions.append({
            "id": card_id,
            "cardText": label,
            "actionDirection": action,
            "possibleOutcome": outcome,
        })
    return _envelope(request, Variant.BASIC, directions)


def fallback_detailed_response(request: ReadingRequest) -> dict:
    """Fallback envelope for a detailed reading."""
    directions = []
    for index, (card_id, label) in enumerate(request.labelled_main_cards()):
        action, outcome = DETAILED_TEMPLATES[index]
        branches = [
            {"id": branch_id, "cardText": branch_label, "possibleOutcome": branch_outcome}
            for (branch_id, branch_label), branch_outcome in zip(
                request.branches_for(index), BRANCH_TEMPLATES[index]
            )
        ]
        directions.append({
            "id": card_id,
            "cardText": label,
            "actionDirection": action,
            "possibleOutcome": outcome,
            "branches": branches,
        })
    return _envelope(request, Variant.DETAILED, directions)


def build_fallback(request: ReadingRequest, variant: Variant) -> dict:
    """Build the fallback envelope for a request and variant."""
    if variant == Variant.DETAILED:
        return fallback_detailed_response(request)
    return fallback_basic_response(request)
