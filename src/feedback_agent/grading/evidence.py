"""
Evidence quote validation.

A grading model must justify each verdict with a literal excerpt from the
student text. Quotes are accepted when they appear verbatim after
normalization, or when some window of the text is a close bigram match
(tolerating whitespace and punctuation drift, rejecting invented quotes).
"""

import re
from collections import Counter

from feedback_agent.config.constants import (
    EVIDENCE_MIN_CHARS,
    FUZZY_MATCH_THRESHOLD,
    FUZZY_STEP_MIN,
    FUZZY_WINDOW_MAX,
    FUZZY_WINDOW_MIN,
    FUZZY_WINDOW_PADDING,
)

_WHITESPACE_RE = re.compile(r"\s+")
_DOUBLE_QUOTES_RE = re.compile(r"[“”„]")
_SINGLE_QUOTES_RE = re.compile(r"[‘’]")


def normalize_match_text(text: str) -> str:
    """Lowercase, fold typographic quotes, collapse whitespace."""
    text = _WHITESPACE_RE.sub(" ", (text or "").lower())
    text = _DOUBLE_QUOTES_RE.sub('"', text)
    text = _SINGLE_QUOTES_RE.sub("'", text)
    return text.strip()


def _bigrams(text: str) -> Counter:
    return Counter(text[i:i + 2] for i in range(len(text) - 1))


def bigram_dice(a: str, b: str) -> float:
    """
    Dice coefficient over character bigram multisets.

    Strings too short to have a bigram only match when equal.
    """
    if not a or not b:
        return 0.0
    if len(a) < 2 or len(b) < 2:
        return 1.0 if a == b else 0.0

    a_grams, b_grams = _bigrams(a), _bigrams(b)
    intersection = sum((a_grams & b_grams).values())
    total = sum(a_grams.values()) + sum(b_grams.values())
    return 2 * intersection / total if total else 0.0


def _best_alignment(needle: str, needle_grams: Counter, text: str) -> float:
    """
    Highest Dice score between ``needle`` and any same-length span of ``text``.

    The span's bigram counts and its overlap with the needle are updated
    incrementally as it slides, so one pass costs O(len(text)).
    """
    length = len(needle)
    if len(text) <= length:
        return bigram_dice(needle, text)

    denominator = 2 * (length - 1)
    span = _bigrams(text[:length])
    overlap = sum((needle_grams & span).values())
    best = overlap / (length - 1)

    for i in range(1, len(text) - length + 1):
        leaving = text[i - 1:i + 1]
        if span[leaving] <= needle_grams[leaving]:
            overlap -= 1
        span[leaving] -= 1

        entering = text[i + length - 2:i + length]
        span[entering] += 1
        if span[entering] <= needle_grams[entering]:
            overlap += 1

        best = max(best, 2 * overlap / denominator)
    return best


def fuzzy_contains(haystack: str, needle: str, threshold: float = FUZZY_MATCH_THRESHOLD) -> bool:
    """
    True if ``needle`` occurs in ``haystack`` exactly or approximately.

    Exact containment is checked on normalized text. Approximate matching
    only applies to needles of at least the minimum evidence length: the
    haystack is cut into windows of ``clamp(len + 50, 200, 800)`` characters
    taken in half-window steps (at least 120), always including the window
    that touches the end of the text, and a window matches when some
    needle-length span inside it reaches ``threshold``.
    """
    needle = normalize_match_text(needle)
    haystack = normalize_match_text(haystack)
    if not needle or not haystack:
        return False
    if needle in haystack:
        return True
    if len(needle) < EVIDENCE_MIN_CHARS:
        return False

    window = min(max(len(needle) + FUZZY_WINDOW_PADDING, FUZZY_WINDOW_MIN), FUZZY_WINDOW_MAX)
    step = max(window // 2, FUZZY_STEP_MIN)

    final_start = max(len(haystack) - window, 0)
    starts = list(range(0, final_start + 1, step))
    if starts[-1] != final_start:
        starts.append(final_start)

    needle_grams = _bigrams(needle)
    return any(
        _best_alignment(needle, needle_grams, haystack[start:start + window]) >= threshold
        for start in starts
    )


def validate_evidence_quote(student_text: str, quote: str) -> bool:
    """Whether a model's evidence quote genuinely appears in the student text."""
    quote = (quote or "").strip()
    if len(quote) < EVIDENCE_MIN_CHARS:
        return False
    return fuzzy_contains(student_text, quote, FUZZY_MATCH_THRESHOLD)
