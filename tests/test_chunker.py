"""
Tests for text chunking and token estimates.
"""

import pytest

from feedback_agent.core.exceptions import InvalidInputError
from feedback_agent.rag.chunker import chunk_text, estimate_tokens, limit_chunks_by_token_budget, normalize_text


def test_normalize_text_collapses_whitespace():
    assert normalize_text("  a\n\n b\t c  ") == "a b c"
    assert normalize_text(None) == ""


def test_estimate_tokens():
    assert estimate_tokens("") == 1
    assert estimate_tokens("abc") == 1
    assert estimate_tokens("abcd") == 2


def test_chunk_text_windows_and_overlap():
    text = "".join(chr(ord("a") + i % 26) for i in range(2500))
    chunks = chunk_text(text, size=1200, overlap=200)

    assert [len(c) for c in chunks] == [1200, 1200, 500]
    assert chunks[0][-200:] == chunks[1][:200]
    assert chunks[2] == text[2000:]
    assert chunks[0] + "".join(c[200:] for c in chunks[1:]) == text


def test_chunk_text_short_and_empty():
    assert chunk_text("short text") == ["short text"]
    assert chunk_text("   \n ") == []


def test_chunk_text_is_deterministic():
    text = "Mitokondrien är cellens kraftverk. " * 100
    assert chunk_text(text) == chunk_text(text)


def test_chunk_text_rejects_bad_overlap():
    with pytest.raises(InvalidInputError):
        chunk_text("abc", size=100, overlap=100)


def test_limit_chunks_by_token_budget_keeps_prefix():
    chunks = ["a" * 30, "b" * 30, "c" * 30]  # 10 tokens each
    assert limit_chunks_by_token_budget(chunks, 25) == chunks[:2]
    assert limit_chunks_by_token_budget(chunks, 5) == []
