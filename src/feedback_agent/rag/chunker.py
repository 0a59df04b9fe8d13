"""
Fixed-window text chunking for retrieval.

Pure functions: identical normalized text always yields identical chunks.
"""

import math
import re
from typing import List

from feedback_agent.config.constants import CHUNK_SIZE, CHUNK_OVERLAP, TOKEN_ESTIMATE_CHARS
from feedback_agent.core.exceptions import InvalidInputError

_WHITESPACE_RE = re.compile(r"\s+")


def normalize_text(text: str) -> str:
    """Collapse whitespace runs to single spaces and trim."""
    return _WHITESPACE_RE.sub(" ", text or "").strip()


def estimate_tokens(text: str) -> int:
    """Conservative token estimate: one token per three characters, at least one."""
    return max(1, math.ceil(len(text) / TOKEN_ESTIMATE_CHARS))


def chunk_text(text: str, size: int = CHUNK_SIZE, overlap: int = CHUNK_OVERLAP) -> List[str]:
    """
    Split text into overlapping windows.

    Windows start every ``size - overlap`` characters; the window that reaches
    the end of the text is the last one.

    Args:
        text: Raw or normalized text
        size: Window length in characters
        overlap: Characters shared by consecutive windows

    Returns:
        List of chunks, empty for empty input
    """
    if size <= 0 or overlap < 0 or overlap >= size:
        raise InvalidInputError(
            "Chunk overlap must be non-negative and smaller than chunk size",
            {"size": size, "overlap": overlap}
        )

    normalized = normalize_text(text)
    if not normalized:
        return []

    step = size - overlap
    chunks = []
    index = 0
    while index < len(normalized):
        chunks.append(normalized[index:index + size])
        if index + size >= len(normalized):
            break
        index += step
    return chunks


def limit_chunks_by_token_budget(chunks: List[str], budget: int) -> List[str]:
    """Longest prefix of chunks whose summed token estimate fits the budget."""
    kept = []
    total = 0
    for chunk in chunks:
        tokens = estimate_tokens(chunk)
        if total + tokens > budget:
            break
        kept.append(chunk)
        total += tokens
    return kept
