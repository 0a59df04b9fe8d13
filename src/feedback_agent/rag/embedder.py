"""
Embedding client with count- and token-bounded batching.
"""

import re
from typing import Callable, List, Optional, Tuple

from loguru import logger

from feedback_agent.ai.base_provider import BaseProvider
from feedback_agent.config.constants import (
    EMBEDDING_BATCH_SIZE,
    EMBEDDING_BATCH_TOKEN_LIMIT,
    EMBEDDING_CHARS_PER_TOKEN,
)
from feedback_agent.core.exceptions import APIResponseError, TokenLimitError
from feedback_agent.rag.chunker import estimate_tokens

# () -> (provider, model); resolved per call so routing changes apply
EmbeddingRoute = Callable[[], Tuple[BaseProvider, str]]

_TOKEN_COUNT_RE = re.compile(r"input token count is (\d+).*?supports up to (\d+)", re.IGNORECASE | re.DOTALL)


def as_token_limit_error(error: Exception) -> Optional[TokenLimitError]:
    """Recognise a provider's "input too long" rejection by its message."""
    message = str(error)
    if not (re.search(r"input token count", message, re.IGNORECASE)
            and re.search(r"supports up to", message, re.IGNORECASE)):
        return None
    match = _TOKEN_COUNT_RE.search(message)
    token_count = int(match.group(1)) if match else None
    token_limit = int(match.group(2)) if match else None
    return TokenLimitError(message, token_count=token_count, token_limit=token_limit)


def build_batches(
    texts: List[str],
    max_items: int = EMBEDDING_BATCH_SIZE,
    max_tokens: int = EMBEDDING_BATCH_TOKEN_LIMIT
) -> List[List[str]]:
    """
    Group texts into batches under both an item and an estimated-token cap.

    A text whose own estimate exceeds ``max_tokens`` is truncated and placed
    in a batch by itself. Input order is preserved across batches.
    """
    batches: List[List[str]] = []
    current: List[str] = []
    current_tokens = 0

    for text in texts:
        tokens = estimate_tokens(text)
        if tokens > max_tokens:
            if current:
                batches.append(current)
                current, current_tokens = [], 0
            safe_length = max_tokens * EMBEDDING_CHARS_PER_TOKEN
            logger.warning(
                f"Chunk of ~{tokens} tokens exceeds the per-batch budget of {max_tokens}; "
                f"truncating to {safe_length} characters"
            )
            batches.append([text[:safe_length]])
            continue

        if current and (len(current) >= max_items or current_tokens + tokens > max_tokens):
            batches.append(current)
            current, current_tokens = [], 0

        current.append(text)
        current_tokens += tokens

    if current:
        batches.append(current)
    return batches


class EmbeddingClient:
    """Converts text chunks into vectors through the routed embedding provider."""

    def __init__(
        self,
        route: EmbeddingRoute,
        max_items: int = EMBEDDING_BATCH_SIZE,
        max_tokens: int = EMBEDDING_BATCH_TOKEN_LIMIT
    ):
        self._route = route
        self.max_items = max_items
        self.max_tokens = max_tokens

    def embed_texts(self, texts: List[str]) -> List[List[float]]:
        """
        Embed texts, one vector per input, in input order.

        Raises:
            TokenLimitError: The provider rejected a batch as too long
            APIResponseError: The provider returned the wrong number of vectors
        """
        if not texts:
            return []

        provider, model = self._route()
        vectors: List[List[float]] = []
        for batch in build_batches(texts, self.max_items, self.max_tokens):
            try:
                batch_vectors = provider.embed(model, batch)
            except Exception as e:
                token_error = as_token_limit_error(e)
                if token_error is not None:
                    raise token_error from e
                raise
            if len(batch_vectors) != len(batch):
                raise APIResponseError(
                    f"Embedding provider returned {len(batch_vectors)} vectors for {len(batch)} texts",
                    {"provider": provider.id, "model": model}
                )
            vectors.extend(batch_vectors)

        logger.debug(f"Embedded {len(texts)} texts with {provider.id}/{model}")
        return vectors

    def embed_query(self, text: str) -> Optional[List[float]]:
        """Embed a single query; None when the provider returns nothing."""
        vectors = self.embed_texts([text])
        return vectors[0] if vectors and vectors[0] else None
