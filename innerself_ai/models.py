"""Request and envelope types for three-card readings.

Envelopes are kept as plain JSON-compatible dicts: a validated generation
reply is returned to the caller unmodified, so there is no typed envelope
object to round-trip through.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional


LANGUAGE_TAG = "zh-Hant"

MAIN_CARD_COUNT = 3
BRANCHES_PER_CARD = 3
BRANCH_CARD_COUNT = MAIN_CARD_COUNT * BRANCHES_PER_CARD

MAIN_IDS = ("A", "B", "C")


class Variant(str, Enum):
    """Reading variants."""
    BASIC = "basic"
    DETAILED = "detailed"

    @property
    def version_tag(self) -> str:
        """Fixed envelope version tag for this variant."""
        return VERSION_TAGS[self]


# The app calls the detailed reading "clear"
VERSION_TAGS = {
    Variant.BASIC: "basic_v1_json",
    Variant.DETAILED: "clear_v1_json",
}


def branch_ids(main_id: str) -> list[str]:
    """Positional branch ids for a main card, e.g. A -> [A-1, A-2, A-3]."""
    return [f"{main_id}-{n}" for n in range(1, BRANCHES_PER_CARD + 1)]


def normalize_context(context: Optional[str]) -> Optional[str]:
    """Blank context is treated as absent."""
    if context is None:
        return None
    stripped = context.strip()
    return stripped or None


@dataclass(frozen=True)
class ReadingRequest:
    """A single reading request.

    Cards are opaque labels; they are echoed verbatim and never rewritten.
    Branch cards are only present for the detailed variant and are grouped
    three per main card in source order.
    """
    question: str
    main_cards: tuple[str, ...]
    context: Optional[str] = None
    branch_cards: tuple[str, ...] = field(default_factory=tuple)

    def __post_init__(self):
        # frozen dataclass: normalize through object.__setattr__
        object.__setattr__(self, "context", normalize_context(self.context))
        object.__setattr__(self, "main_cards", tuple(self.main_cards))
        object.__setattr__(self, "branch_cards", tuple(self.branch_cards or ()))

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "ReadingRequest":
        """Build from a wire-shaped body (camelCase card keys)."""
        return cls(
            question=payload["question"],
            context=payload.get("context"),
            main_cards=tuple(payload["mainCards"]),
            branch_cards=tuple(payload.get("branchCards") or ()),
        )

    def labelled_main_cards(self) -> list[tuple[str, str]]:
        """(id, label) pairs for the main cards."""
        return list(zip(MAIN_IDS, self.main_cards))

    def branches_for(self, index: int) -> list[tuple[str, str]]:
        """(id, label) pairs for the branch cards under main card `index`."""
        start = index * BRANCHES_PER_CARD
        labels = self.branch_cards[start:start + BRANCHES_PER_CARD]
        return list(zip(branch_ids(MAIN_IDS[index]), labels))
