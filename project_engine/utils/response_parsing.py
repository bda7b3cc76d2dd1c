"""Helpers for preparing reasoning service input and reading its output."""

import json
import re
from typing import Any, Dict, Optional

from project_engine.exceptions import UpstreamFatalError

ELLIPSIS = "..."

_FENCE_RE = re.compile(r"^```[a-zA-Z0-9_-]*\s*(.*?)\s*```$", re.DOTALL)


def strip_code_fence(text: str) -> str:
    """Remove a surrounding markdown code fence (```json ... ```), if any."""
    cleaned = text.strip()
    match = _FENCE_RE.match(cleaned)
    if match:
        return match.group(1).strip()
    return cleaned


def parse_json_object(text: str) -> Dict[str, Any]:
    """Parse a response body that must be a single JSON object.

    Raises:
        UpstreamFatalError: if the body is not valid JSON or not an object
    """
    cleaned = strip_code_fence(text)
    try:
        parsed = json.loads(cleaned)
    except json.JSONDecodeError as e:
        raise UpstreamFatalError(
            f"Response is not valid JSON: {e}", reason="bad_response"
        ) from e

    if not isinstance(parsed, dict):
        raise UpstreamFatalError(
            f"Response must be a JSON object, got {type(parsed).__name__}",
            reason="bad_response",
        )
    return parsed


def truncate_text(text: Optional[str], max_length: int) -> str:
    """Truncate text to ``max_length`` characters, marking the cut with an ellipsis."""
    if not text:
        return ""
    if len(text) <= max_length:
        return text
    if max_length <= len(ELLIPSIS):
        return ELLIPSIS[:max_length]
    return text[: max_length - len(ELLIPSIS)] + ELLIPSIS
