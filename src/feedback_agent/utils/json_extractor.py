"""
JSON extraction utilities for LLM responses.

Models asked for JSON still wrap it in code fences or prose now and then;
these helpers recover the object or report that there is none.
"""

import json
import logging
import re
from typing import Optional, Dict, Any

logger = logging.getLogger(__name__)

_FENCE_RE = re.compile(r"```[a-zA-Z]*\s*\n?(.*?)```", re.DOTALL)


def _unfence(text: str) -> str:
    match = _FENCE_RE.search(text)
    return match.group(1).strip() if match else text


def extract_json_from_response(raw_response: str) -> Optional[Dict[str, Any]]:
    """
    Extract a JSON object from an LLM response.

    Tries, in order: the whole text, the first fenced block, and the span
    from the first ``{`` to the last ``}`` (with a light repair pass).

    Args:
        raw_response: The raw text response from an LLM

    Returns:
        Parsed JSON dictionary, or None if extraction/parsing fails
    """
    if not raw_response or not raw_response.strip():
        return None

    text = raw_response.strip()
    try:
        parsed = json.loads(text)
        return parsed if isinstance(parsed, dict) else None
    except json.JSONDecodeError:
        pass

    text = _unfence(text)

    brace_start = text.find('{')
    brace_end = text.rfind('}')
    if brace_start < 0 or brace_end <= brace_start:
        return None

    json_str = text[brace_start:brace_end + 1]
    try:
        parsed = json.loads(json_str)
    except json.JSONDecodeError as e:
        logger.debug(f"JSON parse error: {e}")
        parsed = _try_repair_and_parse(json_str)
    return parsed if isinstance(parsed, dict) else None


def _try_repair_and_parse(json_str: str) -> Optional[Any]:
    """Remove trailing commas, smart quotes and control characters, then parse."""
    repaired = re.sub(r',\s*([}\]])', r'\1', json_str)
    repaired = repaired.replace('“', '"').replace('”', '"')
    repaired = re.sub(r'[\x00-\x08\x0b\x0c\x0e-\x1f]', '', repaired)

    try:
        return json.loads(repaired)
    except json.JSONDecodeError:
        return None


def strip_code_fences(text: str) -> str:
    """Drop ``` and ```markdown fence markers, keeping the content."""
    cleaned = re.sub(r"```markdown", "", text or "", flags=re.IGNORECASE)
    return cleaned.replace("```", "").strip()
