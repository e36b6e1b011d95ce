"""Reading envelope schema and validation.

This module defines the JSON contract for generated readings, enabling:
- Deterministic structural validation before a reply reaches the app
- A strict JSON schema for the schema-enforced generation strategy
- Advisory (or optionally enforced) prose length checks
"""

import logging
import unicodedata
from dataclasses import dataclass
from typing import Any, Optional

from .errors import SchemaValidationError
from .models import (
    BRANCHES_PER_CARD,
    LANGUAGE_TAG,
    MAIN_CARD_COUNT,
    MAIN_IDS,
    ReadingRequest,
    Variant,
    branch_ids,
)
from .prompts import (
    ACTION_DIRECTION_MAX_CHARS,
    ACTION_DIRECTION_MIN_CHARS,
    POSSIBLE_OUTCOME_MAX_CHARS,
)

logger = logging.getLogger(__name__)

REQUIRED_TOP_LEVEL_FIELDS = ("version", "language", "question", "context", "directions")
DIRECTION_TEXT_FIELDS = ("cardText", "actionDirection", "possibleOutcome")
BRANCH_TEXT_FIELDS = ("id", "cardText", "possibleOutcome")


# =============================================================================
# Structural Validation
# =============================================================================

def _is_non_empty_string(value: Any) -> bool:
    return isinstance(value, str) and bool(value.strip())


class EnvelopeValidator:
    """Validates parsed replies against the reading envelope shape.

    Checks run in a fixed order and stop at the first violation, so the
    raised error always names the first offending path.
    """

    @classmethod
    def validate(
        cls,
        data: Any,
        variant: Variant,
        request: Optional[ReadingRequest] = None,
    ) -> dict:
        """Validate an envelope.

        Args:
            data: Parsed reply
            variant: Expected reading variant
            request: Original request; when given, card text and context are
                     also checked against it

        Returns:
            The same dict, unmodified

        Raises:
            SchemaValidationError: On the first violation found
        """
        if not isinstance(data, dict):
            raise SchemaValidationError(
                f"expected object, got {type(data).__name__}", path="$"
            )

        for field_name in REQUIRED_TOP_LEVEL_FIELDS:
            if field_name not in data:
                raise SchemaValidationError("missing required field", path=field_name)

        if data["version"] != variant.version_tag:
            raise SchemaValidationError(
                f"expected {variant.version_tag!r}, got {data['version']!r}", path="version"
            )
        if data["language"] != LANGUAGE_TAG:
            raise SchemaValidationError(
                f"expected {LANGUAGE_TAG!r}, got {data['language']!r}", path="language"
            )

        directions = data["directions"]
        if not isinstance(directions, list) or len(directions) != MAIN_CARD_COUNT:
            raise SchemaValidationError(
                f"must be an array of exactly {MAIN_CARD_COUNT} objects", path="directions"
            )

        for index, (direction, expected_id) in enumerate(zip(directions, MAIN_IDS)):
            cls._validate_direction(direction, expected_id, index, variant)

        if request is not None:
            cls._validate_against_request(data, variant, request)

        return data

    @classmethod
    def _validate_direction(
        cls,
        direction: Any,
        expected_id: str,
        index: int,
        variant: Variant,
    ) -> None:
        path = f"directions[{index}]"
        if not isinstance(direction, dict):
            raise SchemaValidationError("must be an object", path=path)

        if direction.get("id") != expected_id:
            raise SchemaValidationError(
                f"expected id {expected_id!r}, got {direction.get('id')!r}", path=f"{path}.id"
            )

        for field_name in DIRECTION_TEXT_FIELDS:
            if not _is_non_empty_string(direction.get(field_name)):
                raise SchemaValidationError(
                    "must be a non-empty string", path=f"{path}.{field_name}"
                )

        if variant != Variant.DETAILED:
            return

        branches = direction.get("branches")
        if not isinstance(branches, list) or len(branches) != BRANCHES_PER_CARD:
            raise SchemaValidationError(
                f"must be an array of exactly {BRANCHES_PER_CARD} objects",
                path=f"{path}.branches",
            )

        for branch_index, (branch, expected_branch_id) in enumerate(
            zip(branches, branch_ids(expected_id))
        ):
            branch_path = f"{path}.branches[{branch_index}]"
            if not isinstance(branch, dict):
                raise SchemaValidationError("must be an object", path=branch_path)
            for field_name in BRANCH_TEXT_FIELDS:
                if not _is_non_empty_string(branch.get(field_name)):
                    raise SchemaValidationError(
                        "must be a non-empty string", path=f"{branch_path}.{field_name}"
                    )
            if branch["id"] != expected_branch_id:
                raise SchemaValidationError(
                    f"expected id {expected_branch_id!r}, got {branch['id']!r}",
                    path=f"{branch_path}.id",
                )

    @classmethod
    def _validate_against_request(
        cls,
        data: dict,
        variant: Variant,
        request: ReadingRequest,
    ) -> None:
        """Request-bound invariants: verbatim card text and the null-context rule."""
        context = data["context"]
        if context is not None and not isinstance(context, str):
            raise SchemaValidationError("must be a string or null", path="context")
        if request.context is None and context is not None:
            raise SchemaValidationError(
                "must be null when the request has no context", path="context"
            )

        for index, (card_id, label) in enumerate(request.labelled_main_cards()):
            direction = data["directions"][index]
            if direction["cardText"] != label:
                raise SchemaValidationError(
                    f"card text for {card_id} was rewritten",
                    path=f"directions[{index}].cardText",
                )
            if variant != Variant.DETAILED:
                continue
            for branch_index, (branch_id, branch_label) in enumerate(request.branches_for(index)):
                if direction["branches"][branch_index]["cardText"] != branch_label:
                    raise SchemaValidationError(
                        f"card text for {branch_id} was rewritten",
                        path=f"directions[{index}].branches[{branch_index}].cardText",
                    )


def validate_envelope(
    data: Any,
    variant: Variant,
    request: Optional[ReadingRequest] = None,
) -> dict:
    """Validate a parsed reply; see EnvelopeValidator.validate."""
    return EnvelopeValidator.validate(data, variant, request)


# =============================================================================
# Prose Length Checks
# =============================================================================

def fullwidth_length(text: str) -> float:
    """Length in full-width characters.

    Wide and fullwidth characters (CJK, full-width punctuation) count as one,
    everything else as half.
    """
    total = 0.0
    for char in text:
        if unicodedata.east_asian_width(char) in ("W", "F"):
            total += 1
        else:
            total += 0.5
    return total


@dataclass
class ProseViolation:
    """A prose field outside its length window."""
    path: str
    length: float
    limit: str

    def __str__(self) -> str:
        return f"{self.path} length={self.length:g} limit={self.limit}"


def check_prose_lengths(envelope: dict, variant: Optional[Variant] = None) -> list[ProseViolation]:
    """Measure generated prose against the limits stated in the prompt.

    Expects an envelope that already passed structural validation for
    `variant` (read from the version tag when omitted). Branches are only
    measured for detailed readings; a basic reply may carry unchecked extras.
    """
    if variant is None:
        variant = Variant.DETAILED if envelope.get("version") == Variant.DETAILED.version_tag else Variant.BASIC
    violations = []
    action_limit = f"{ACTION_DIRECTION_MIN_CHARS}-{ACTION_DIRECTION_MAX_CHARS}"
    outcome_limit = f"<={POSSIBLE_OUTCOME_MAX_CHARS}"

    for index, direction in enumerate(envelope["directions"]):
        path = f"directions[{index}]"
        action_length = fullwidth_length(direction["actionDirection"])
        if not ACTION_DIRECTION_MIN_CHARS <= action_length <= ACTION_DIRECTION_MAX_CHARS:
            violations.append(ProseViolation(f"{path}.actionDirection", action_length, action_limit))

        outcome_length = fullwidth_length(direction["possibleOutcome"])
        if outcome_length > POSSIBLE_OUTCOME_MAX_CHARS:
            violations.append(ProseViolation(f"{path}.possibleOutcome", outcome_length, outcome_limit))

        if variant != Variant.DETAILED:
            continue
        for branch_index, branch in enumerate(direction["branches"]):
            branch_length = fullwidth_length(branch["possibleOutcome"])
            if branch_length > POSSIBLE_OUTCOME_MAX_CHARS:
                violations.append(ProseViolation(
                    f"{path}.branches[{branch_index}].possibleOutcome", branch_length, outcome_limit
                ))

    return violations


# =============================================================================
# Strict JSON Schema (schema-enforced generation strategy)
# =============================================================================

def _string_property(description: Optional[str] = None) -> dict:
    prop: dict[str, Any] = {"type": "string"}
    if description:
        prop["description"] = description
    return prop


def build_json_schema(variant: Variant) -> dict:
    """Build the JSON schema sent to the service in strict-schema mode.

    Strict mode requires every property to be listed in `required` and
    additionalProperties to be false at every level.
    """
    branch_schema = {
        "type": "object",
        "properties": {
            "id": {"type": "string", "enum": [b for m in MAIN_IDS for b in branch_ids(m)]},
            "cardText": _string_property("Verbatim branch card label"),
            "possibleOutcome": _string_property(
                f"At most {POSSIBLE_OUTCOME_MAX_CHARS} full-width characters"
            ),
        },
        "required": ["id", "cardText", "possibleOutcome"],
        "additionalProperties": False,
    }

    direction_properties: dict[str, Any] = {
        "id": {"type": "string", "enum": list(MAIN_IDS)},
        "cardText": _string_property("Verbatim main card label"),
        "actionDirection": _string_property(
            f"{ACTION_DIRECTION_MIN_CHARS}-{ACTION_DIRECTION_MAX_CHARS} full-width characters"
        ),
        "possibleOutcome": _string_property(
            f"At most {POSSIBLE_OUTCOME_MAX_CHARS} full-width characters"
        ),
    }
    direction_required = ["id", "cardText", "actionDirection", "possibleOutcome"]
    if variant == Variant.DETAILED:
        direction_properties["branches"] = {
            "type": "array",
            "items": branch_schema,
            "minItems": BRANCHES_PER_CARD,
            "maxItems": BRANCHES_PER_CARD,
        }
        direction_required.append("branches")

    return {
        "type": "object",
        "properties": {
            "version": {"type": "string", "enum": [variant.version_tag]},
            "language": {"type": "string", "enum": [LANGUAGE_TAG]},
            "question": {"type": "string"},
            "context": {"type": ["string", "null"]},
            "directions": {
                "type": "array",
                "items": {
                    "type": "object",
                    "properties": direction_properties,
                    "required": direction_required,
                    "additionalProperties": False,
                },
                "minItems": MAIN_CARD_COUNT,
                "maxItems": MAIN_CARD_COUNT,
            },
        },
        "required": list(REQUIRED_TOP_LEVEL_FIELDS),
        "additionalProperties": False,
    }
