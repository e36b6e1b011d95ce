"""Tolerant JSON parsing for model output.

Fallback order:
1. Direct JSON parse of the trimmed text
2. Parse the span from the first '{' to the last '}' (drops leading or
   trailing commentary the model was told not to write)
3. Raise JSON_PARSE_FAILED with a bounded preview
"""

import json
import logging
from typing import Any, Optional

from .errors import (
    DEFAULT_PREVIEW_CHARS,
    EmptyModelOutputError,
    JSONParseFailedError,
    truncate_preview,
)

logger = logging.getLogger(__name__)


def carve_outer_object(text: str) -> Optional[str]:
    """Return the substring from the first '{' to the last '}', if any."""
    start = text.find("{")
    end = text.rfind("}")
    if start == -1 or end <= start:
        return None
    return text[start:end + 1]


def parse_model_json(text: Optional[str], preview_chars: int = DEFAULT_PREVIEW_CHARS) -> Any:
    """Parse extracted model text as JSON.

    Args:
        text: Extracted reply text
        preview_chars: Bound for the preview attached to parse failures

    Returns:
        The parsed value

    Raises:
        EmptyModelOutputError: If the text is empty or whitespace
        JSONParseFailedError: If neither the text nor its carved object parses
    """
    stripped = (text or "").strip()
    if not stripped:
        raise EmptyModelOutputError("model output was empty")

    try:
        return json.loads(stripped)
    except json.JSONDecodeError as e:
        direct_error = e

    carved = carve_outer_object(stripped)
    if carved is not None and carved != stripped:
        try:
            value = json.loads(carved)
            logger.debug(
                f"Recovered JSON by brace carving: dropped {len(stripped) - len(carved)} chars"
            )
            return value
        except json.JSONDecodeError as e:
            direct_error = e

    raise JSONParseFailedError(
        "model output is not valid JSON",
        preview=truncate_preview(stripped, preview_chars),
        details=str(direct_error),
    )
