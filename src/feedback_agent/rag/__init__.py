"""
Retrieval-augmented generation subsystem.

Turns uploaded material into searchable chunks and serves reference context
back to the grading pipeline.
"""

from feedback_agent.rag.chunker import chunk_text, estimate_tokens, limit_chunks_by_token_budget, normalize_text
from feedback_agent.rag.embedder import EmbeddingClient, build_batches
from feedback_agent.rag.extractor import TextExtractor
from feedback_agent.rag.lifecycle import MaterialLifecycleController
from feedback_agent.rag.retriever import Retriever
from feedback_agent.rag.vector_index import ChromaVectorIndex, VectorIndex

__all__ = [
    'chunk_text',
    'estimate_tokens',
    'limit_chunks_by_token_budget',
    'normalize_text',
    'EmbeddingClient',
    'build_batches',
    'TextExtractor',
    'MaterialLifecycleController',
    'Retriever',
    'ChromaVectorIndex',
    'VectorIndex',
]
