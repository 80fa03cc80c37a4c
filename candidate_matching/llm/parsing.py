"""Helpers for reading JSON out of LLM responses."""

import json
from typing import Any

from candidate_matching.errors import ValidationError


def response_text(response: dict[str, Any]) -> str:
    """Message content of the first choice of a chat completion response."""
    try:
        return response["choices"][0]["message"]["content"] or ""
    except (KeyError, IndexError, TypeError) as e:
        raise ValidationError(f"Completion response has no message content: {e}") from e


def extract_json_object(raw: str) -> dict[str, Any]:
    """Parse the text between the first "{" and the last "}"."""
    text = raw.strip()
    first = text.find("{")
    last = text.rfind("}")
    if first < 0 or last <= first:
        raise ValidationError("LLM output is not a JSON object")
    try:
        parsed = json.loads(text[first : last + 1])
    except json.JSONDecodeError as e:
        raise ValidationError(f"LLM output is not valid JSON: {e}") from e
    if not isinstance(parsed, dict):
        raise ValidationError("LLM output is not a JSON object")
    return parsed


def text_field(parsed: dict[str, Any], key: str) -> str:
    value = parsed.get(key)
    return value.strip() if isinstance(value, str) else ""
