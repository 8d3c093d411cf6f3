"""Lenient JSON-object extraction from model output."""

from __future__ import annotations

import json
import math
from json import JSONDecodeError
from typing import Any


def parse_json_object(content: str) -> dict[str, Any] | None:
    """Return the JSON object in content, or None if there is none.

    Accepts bare JSON, JSON wrapped in prose and markdown code fences.
    Never raises.
    """
    if not content or not content.strip():
        return None
    try:
        parsed = json.loads(content)
    except JSONDecodeError:
        parsed = _extract_first_json_object(content)
    return parsed if isinstance(parsed, dict) else None


def _extract_first_json_object(content: str) -> dict[str, Any] | None:
    """Extract the first decodable JSON object from an arbitrary string."""
    decoder = json.JSONDecoder()
    for index, char in enumerate(content):
        if char != "{":
            continue
        try:
            candidate, _ = decoder.raw_decode(content[index:])
        except JSONDecodeError:
            continue
        if isinstance(candidate, dict):
            return candidate
    return None


def as_text(value: Any) -> str | None:
    return value.strip() if isinstance(value, str) and value.strip() else None


def as_confidence(value: Any, default: float) -> float:
    """Coerce value to a float clamped into [0, 1]; default when not numeric."""
    if isinstance(value, bool):
        return default
    try:
        number = float(value)
    except (TypeError, ValueError):
        return default
    if math.isnan(number):
        return default
    return max(0.0, min(1.0, number))
