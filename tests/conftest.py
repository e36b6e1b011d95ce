"""
Pytest configuration and fixtures for innerself-ai tests.

This conftest.py provides:
- Basic and detailed reading requests
- Helpers that build schema-valid generated envelopes
- A fake generation client returning canned reply envelopes
"""

import copy
from typing import Any, Optional

import pytest

from innerself_ai.llm_client import OutputStrategy
from innerself_ai.models import ReadingRequest

MAIN_CARDS = ("力量", "星星", "寶劍二")
BRANCH_CARDS = (
    "聖杯一", "權杖三", "錢幣六",
    "寶劍四", "聖杯七", "權杖九",
    "錢幣十", "寶劍侍者", "聖杯王后",
)


class FakeGenerationClient:
    """Generation client returning a canned envelope or raising an error."""

    def __init__(self, reply: Optional[dict] = None, error: Optional[BaseException] = None):
        self.reply = reply
        self.error = error
        self.calls: list[dict[str, Any]] = []

    async def generate(
        self,
        prompt: str,
        strategy: OutputStrategy,
        max_output_tokens: int,
        response_schema: Optional[dict] = None,
    ) -> dict:
        self.calls.append({
            "prompt": prompt,
            "strategy": strategy,
            "max_output_tokens": max_output_tokens,
            "response_schema": response_schema,
        })
        if self.error is not None:
            raise self.error
        return copy.deepcopy(self.reply)

    def get_client_type(self) -> str:
        return "fake"

    async def close(self) -> None:
        return None


def text_reply(text: str, convenience: str = "") -> dict:
    """Responses-API-shaped envelope carrying text in a content block."""
    return {
        "id": "resp_test",
        "status": "completed",
        "output_text": convenience,
        "output": [
            {"type": "reasoning", "summary": []},
            {
                "type": "message",
                "role": "assistant",
                "content": [{"type": "output_text", "text": text, "annotations": []}],
            },
        ],
    }


def object_reply(obj: dict) -> dict:
    """Envelope whose content block already carries a parsed object."""
    return {
        "id": "resp_test",
        "status": "completed",
        "output_text": "",
        "output": [
            {
                "type": "message",
                "role": "assistant",
                "content": [{"type": "output_text", "text": "", "parsed": obj}],
            },
        ],
    }


def make_basic_envelope(request: ReadingRequest) -> dict:
    """A schema-valid generated basic reading for the request."""
    return {
        "version": "basic_v1_json",
        "language": "zh-Hant",
        "question": request.question,
        "context": request.context,
        "directions": [
            {
                "id": card_id,
                "cardText": label,
                "actionDirection": "把換工作的念頭拆成本週可以完成的一步",
                "possibleOutcome": "你會更清楚自己想離開的是工作本身還是眼前的壓力。",
            }
            for card_id, label in request.labelled_main_cards()
        ],
    }


def make_detailed_envelope(request: ReadingRequest) -> dict:
    """A schema-valid generated detailed reading for the request."""
    envelope = make_basic_envelope(request)
    envelope["version"] = "clear_v1_json"
    for index, direction in enumerate(envelope["directions"]):
        direction["branches"] = [
            {"id": branch_id, "cardText": label, "possibleOutcome": "這個面向會讓下一步更具體。"}
            for branch_id, label in request.branches_for(index)
        ]
    return envelope


@pytest.fixture
def basic_request():
    """The basic request used across tests (no context)."""
    return ReadingRequest(question="要不要換工作？", context=None, main_cards=MAIN_CARDS)


@pytest.fixture
def detailed_request():
    """A detailed request with context and nine branch cards."""
    return ReadingRequest(
        question="要不要換工作？",
        context="已經決定先不裸辭",
        main_cards=MAIN_CARDS,
        branch_cards=BRANCH_CARDS,
    )
