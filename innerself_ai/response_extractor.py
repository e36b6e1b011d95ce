"""Payload extraction from raw generation reply envelopes.

The service nests its output in variant-tagged blocks whose tagging differs by
output strategy and API version:

    envelope
    ├── output_text            (SDK convenience; may be empty on success)
    ├── output[*].content[*]   (Responses API blocks)
    │     {type: output_text|text, text: "..."}
    │     {type: output_json|json, text: "..."} or {json: {...}}
    │     {..., parsed: {...}}  (already parsed in strict-schema mode)
    │     {type: refusal|reasoning|..., ...}  -> skipped
    └── choices[*].message.content  (Chat Completions shape)

Unknown block kinds are skipped, so format drift degrades to an empty payload
(EMPTY_MODEL_OUTPUT downstream) instead of an exception.
"""

import logging
from typing import Any, Union

logger = logging.getLogger(__name__)

TEXT_BLOCK_TYPES = {"output_text", "text"}
JSON_BLOCK_TYPES = {"output_json", "json"}

Payload = Union[str, dict]


def _parsed_object(block: dict) -> Any:
    """Return an already-parsed object carried by a block, if any."""
    parsed = block.get("parsed")
    if isinstance(parsed, dict):
        return parsed
    if block.get("type") in JSON_BLOCK_TYPES and isinstance(block.get("json"), dict):
        return block["json"]
    return None


def _walk_content_blocks(blocks: Any) -> Payload:
    chunks = []
    for block in blocks if isinstance(blocks, list) else []:
        if not isinstance(block, dict):
            continue
        parsed = _parsed_object(block)
        if parsed is not None:
            return parsed
        block_type = block.get("type")
        if block_type not in TEXT_BLOCK_TYPES and block_type not in JSON_BLOCK_TYPES:
            logger.debug(f"Skipping content block of type {block_type!r}")
            continue
        text = block.get("text")
        if isinstance(text, str) and text:
            chunks.append(text)
    return "".join(chunks)


def _walk_output_items(items: Any) -> Payload:
    chunks = []
    for item in items if isinstance(items, list) else []:
        if not isinstance(item, dict):
            continue
        result = _walk_content_blocks(item.get("content"))
        if isinstance(result, dict):
            return result
        if result:
            chunks.append(result)
    return "".join(chunks)


def _walk_choices(choices: Any) -> Payload:
    chunks = []
    for choice in choices if isinstance(choices, list) else []:
        if not isinstance(choice, dict):
            continue
        message = choice.get("message")
        if not isinstance(message, dict):
            continue
        parsed = message.get("parsed")
        if isinstance(parsed, dict):
            return parsed
        content = message.get("content")
        if isinstance(content, str) and content:
            chunks.append(content)
        elif isinstance(content, list):
            result = _walk_content_blocks(content)
            if isinstance(result, dict):
                return result
            if result:
                chunks.append(result)
    return "".join(chunks)


def extract_payload(envelope: Any) -> Payload:
    """Extract the best-effort payload from a reply envelope.

    Args:
        envelope: Raw reply envelope as a dict

    Returns:
        A parsed dict when a block already carries one, otherwise the
        concatenated text ("" when nothing textual was found)
    """
    if not isinstance(envelope, dict):
        return ""

    output_text = envelope.get("output_text")
    if isinstance(output_text, str) and output_text:
        return output_text

    result = _walk_output_items(envelope.get("output"))
    if isinstance(result, dict) or result:
        return result

    return _walk_choices(envelope.get("choices"))
