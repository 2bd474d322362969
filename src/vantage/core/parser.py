"""
Model output parsing with layered recovery.

Model text is never trusted to be valid JSON. Every parse goes through
the same pipeline: strict parse, outermost brace-delimited substring,
trailing-comma repair, then a caller-supplied default shape.
"""

import json
import re
from collections.abc import Callable
from typing import Any

from vantage.core.base import BUCKETS
from vantage.core.logging import get_logger

logger = get_logger("core.parser")

# Per-bucket cap applied to any extracted state
DEFAULT_BUCKET_LIMIT = 12


def _try_parse(text: str) -> dict[str, Any] | None:
    """Attempt to parse a JSON object."""
    try:
        data = json.loads(text)
    except (json.JSONDecodeError, TypeError):
        return None
    return data if isinstance(data, dict) else None


def _brace_slice(text: str) -> str:
    """Substring from the first '{' to the last '}' (empty if none)."""
    start = text.find("{")
    end = text.rfind("}")
    if start == -1 or end == -1 or end <= start:
        return ""
    return text[start : end + 1]


def _fix_common_issues(text: str) -> str:
    """Fix common JSON formatting issues."""
    fixed = re.sub(r",\s*}", "}", text)
    fixed = re.sub(r",\s*]", "]", fixed)
    return fixed


def parse_json_object(raw: str | None) -> dict[str, Any] | None:
    """
    Parse a JSON object out of possibly-malformed model text.

    Args:
        raw: Raw model output

    Returns:
        Parsed object, or None if every strategy failed
    """
    if not raw or not raw.strip():
        return None

    strategies: list[Callable[[str], dict[str, Any] | None]] = [
        lambda s: _try_parse(s),
        lambda s: _try_parse(_brace_slice(s)),
        lambda s: _try_parse(_fix_common_issues(_brace_slice(s))),
    ]

    for strategy in strategies:
        result = strategy(raw)
        if result is not None:
            return result

    logger.debug(f"Failed to parse JSON object: {raw[:100]}...")
    return None


def coerce_string_list(value: Any, limit: int = DEFAULT_BUCKET_LIMIT) -> list[str]:
    """Keep non-empty strings only, trimmed, deduplicated case-insensitively, capped."""
    if not isinstance(value, list):
        return []
    out: list[str] = []
    seen: set[str] = set()
    for item in value:
        if not isinstance(item, str):
            continue
        text = item.strip()
        key = text.lower()
        if not text or key in seen:
            continue
        seen.add(key)
        out.append(text)
        if len(out) >= limit:
            break
    return out


def empty_state() -> dict[str, list[str]]:
    """All seven buckets, empty."""
    return {bucket: [] for bucket in BUCKETS}


def coerce_state(data: Any, limit: int = DEFAULT_BUCKET_LIMIT) -> dict[str, list[str]]:
    """
    Normalize an arbitrary object into exactly the seven state buckets.

    Unknown keys are dropped, non-array fields become empty, non-string
    entries are removed and each bucket is capped at ``limit``.
    """
    if isinstance(data, dict) and isinstance(data.get("state"), dict):
        data = data["state"]
    if not isinstance(data, dict):
        return empty_state()
    return {bucket: coerce_string_list(data.get(bucket), limit) for bucket in BUCKETS}


def parse_state(raw: str | None, limit: int = DEFAULT_BUCKET_LIMIT) -> dict[str, list[str]]:
    """Raw model text to a Perspective-State-shaped dict, never failing."""
    return coerce_state(parse_json_object(raw), limit)


def parse_tool_arguments(raw: str | None) -> dict[str, Any]:
    """Tool-call arguments; invalid JSON yields an empty dict."""
    parsed = parse_json_object(raw)
    if parsed is None:
        if raw and raw.strip():
            logger.warning(f"Discarding unparseable tool arguments: {raw[:100]}")
        return {}
    return parsed
