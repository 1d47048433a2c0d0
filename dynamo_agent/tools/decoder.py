"""Normalization of heterogeneous tool-result shapes."""

import json
from typing import Any

from dynamo_agent.models.llm import DecodedResult


def render_json(value: Any) -> str:
    """Pretty-print a JSON value with two-space indentation."""
    return json.dumps(value, indent=2, ensure_ascii=False)


def _first_block_text(content: Any) -> str | None:
    if not isinstance(content, list | tuple) or not content:
        return None

    first = content[0]
    text = first.get("text") if isinstance(first, dict) else getattr(first, "text", None)
    return text if isinstance(text, str) else None


def _decode_text(text: str) -> DecodedResult:
    try:
        structured = json.loads(text)
    except (ValueError, RecursionError):
        return DecodedResult(display_text=text)

    return DecodedResult(display_text=render_json(structured), structured=structured)


def decode_tool_result(raw_result: Any) -> DecodedResult:
    """Decode a tool-execution result into display text and an optional JSON value.

    The result's ``content`` may be a string or a list of content blocks whose first
    block carries the text. Text that is not JSON is passed through unchanged; any
    other shape decodes to empty text. This function never raises.
    """
    content = raw_result.get("content") if isinstance(raw_result, dict) else getattr(raw_result, "content", None)

    if isinstance(content, str):
        return _decode_text(content)

    text = _first_block_text(content)
    if text is not None:
        return _decode_text(text)

    return DecodedResult(display_text="")
