from __future__ import annotations

import json
import re
from typing import Any, Dict

_FENCED_JSON = re.compile(r"```(?:json)?\s*([\s\S]*?)\s*```")
_TRAILING_COMMA = re.compile(r",\s*([}\]])")


def extract_json_object(text: str) -> Dict[str, Any]:
    """Extract and parse the JSON object embedded in raw model output.

    Raises ValueError when no object can be recovered.
    """
    text = (text or "").strip()
    if not text:
        raise ValueError("Empty model response")

    # 1. Whole response is the object
    candidate = _loads_object(text)
    if candidate is not None:
        return candidate

    # 2. Fenced ```json blocks
    for match in _FENCED_JSON.findall(text):
        candidate = _loads_object(match) or _repair(match)
        if candidate is not None:
            return candidate

    # 3. Outermost braces
    start = text.find("{")
    end = text.rfind("}")
    if start != -1 and end > start:
        block = text[start : end + 1]
        candidate = _loads_object(block) or _repair(block)
        if candidate is not None:
            return candidate

    raise ValueError("No JSON object found in model response")


def _loads_object(text: str) -> Dict[str, Any] | None:
    try:
        value = json.loads(text)
    except json.JSONDecodeError:
        return None
    return value if isinstance(value, dict) else None


def _repair(text: str) -> Dict[str, Any] | None:
    """Drop trailing commas and tolerate raw control characters."""
    stripped = text.strip()
    if not stripped.endswith("}"):
        return None
    candidate = _TRAILING_COMMA.sub(r"\1", stripped)
    try:
        value = json.loads(candidate, strict=False)
    except json.JSONDecodeError:
        return None
    return value if isinstance(value, dict) else None
