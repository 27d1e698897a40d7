"""Shared utilities for parsing LLM responses."""

from __future__ import annotations

import json
from typing import Any, List

from .errors import MalformedResponseError


def strip_code_fences(raw: str) -> str:
    """Remove markdown code-fence lines (```json, ```) around a response."""
    text = (raw or "").strip()
    if "```" not in text:
        return text
    lines = text.split("\n")
    lines = [l for l in lines if not l.strip().startswith("```")]
    return "\n".join(lines).strip()


def parse_json_array(raw: str) -> List[Any]:
    """Parse an LLM response that must be a JSON array.

    Code fences are stripped first. Anything else (empty text, prose,
    an object instead of an array) raises ``MalformedResponseError``;
    there is no best-effort extraction.
    """
    text = strip_code_fences(raw)
    if not text:
        raise MalformedResponseError("Empty response from model")

    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise MalformedResponseError(f"Model response is not valid JSON: {e}") from e

    if not isinstance(data, list):
        raise MalformedResponseError(
            f"Model response must be a JSON array, got {type(data).__name__}"
        )
    return data
