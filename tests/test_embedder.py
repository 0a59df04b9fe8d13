"""
Tests for embedding batching and provider error mapping.
"""

import pytest

from conftest import FakeProvider
from feedback_agent.core.exceptions import APIResponseError, TokenLimitError
from feedback_agent.rag.embedder import EmbeddingClient, as_token_limit_error, build_batches


def test_build_batches_respects_item_cap():
    batches = build_batches(["abc"] * 250, max_items=100, max_tokens=10_000)
    assert [len(b) for b in batches] == [100, 100, 50]


def test_build_batches_respects_token_cap():
    texts = ["x" * 300] * 5  # 100 tokens each
    batches = build_batches(texts, max_items=100, max_tokens=250)
    assert [len(b) for b in batches] == [2, 2, 1]


def test_oversized_text_is_truncated_into_its_own_batch():
    batches = build_batches(["small", "y" * 1000, "tail"], max_items=100, max_tokens=100)
    assert batches == [["small"], ["y" * 400], ["tail"]]


def test_embed_texts_preserves_order_across_batches():
    provider = FakeProvider()
    client = EmbeddingClient(lambda: (provider, "embed-model"), max_items=2)
    texts = ["a", "bb", "ccc", "dddd", "eeeee"]

    vectors = client.embed_texts(texts)

    assert len(vectors) == 5
    assert [len(call) for call in provider.embed_calls] == [2, 2, 1]
    assert vectors[2] == [float(len("ccc") % 7 + 1), 1.0, 1.0]


def test_embed_texts_empty_input_skips_provider():
    provider = FakeProvider()
    assert EmbeddingClient(lambda: (provider, "m")).embed_texts([]) == []
    assert provider.embed_calls == []


def test_token_limit_rejection_is_mapped():
    error = RuntimeError("400 The input token count is 21000 but the model supports up to 20000 tokens")
    provider = FakeProvider(embed_error=error)

    with pytest.raises(TokenLimitError) as info:
        EmbeddingClient(lambda: (provider, "m")).embed_texts(["text"])

    assert info.value.token_count == 21000
    assert info.value.token_limit == 20000


def test_other_provider_errors_propagate():
    provider = FakeProvider(embed_error=ConnectionError("reset"))
    with pytest.raises(ConnectionError):
        EmbeddingClient(lambda: (provider, "m")).embed_texts(["text"])


def test_vector_count_mismatch_raises():
    class ShortProvider(FakeProvider):
        def embed(self, model, texts):
            return [[1.0]]

    with pytest.raises(APIResponseError):
        EmbeddingClient(lambda: (ShortProvider(), "m")).embed_texts(["a", "b"])


def test_as_token_limit_error_ignores_unrelated_messages():
    assert as_token_limit_error(RuntimeError("quota exceeded")) is None
