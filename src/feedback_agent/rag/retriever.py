"""
Reference-context retrieval for grading and criterion tools.

Never raises: any failure on the vector path degrades to the raw extracted
text of the agent's most recent ready materials.
"""

from typing import List, Optional

from loguru import logger

from feedback_agent.config.constants import FALLBACK_MATERIAL_LIMIT, NEIGHBOR_COUNT
from feedback_agent.core.models import MaterialStatus
from feedback_agent.rag.embedder import EmbeddingClient
from feedback_agent.rag.vector_index import VectorIndex
from feedback_agent.storage.document_store import CHUNKS, DocumentStore, materials_collection


class Retriever:
    """Builds the labelled reference block passed to the models."""

    def __init__(
        self,
        store: DocumentStore,
        embedder: Optional[EmbeddingClient],
        index: Optional[VectorIndex],
        k: int = NEIGHBOR_COUNT
    ):
        self.store = store
        self.embedder = embedder
        self.index = index
        self.k = k

    def get_reference_context(self, agent_id: str, query_text: str) -> str:
        """
        Retrieve context for a query, restricted to one agent.

        Returns an empty string only when the agent has no usable material.
        """
        if self.index is None or self.embedder is None or not (query_text or "").strip():
            return self.fallback_context(agent_id)

        try:
            vector = self.embedder.embed_query(query_text)
            if not vector:
                return self.fallback_context(agent_id)

            ids = self.index.query(agent_id, vector, self.k)
            if not ids:
                return self.fallback_context(agent_id)

            chunks = self.store.get_many(CHUNKS, ids)
            # Keep neighbour order; drop ids whose chunk is gone or belongs elsewhere
            texts = [
                chunks[i]["text"] for i in ids
                if i in chunks and chunks[i].get("agent_id") == agent_id and chunks[i].get("text")
            ]
            if not texts:
                return self.fallback_context(agent_id)

            return "\n\n".join(f"--- KALLA {n} ---\n{text}" for n, text in enumerate(texts, start=1))
        except Exception as e:
            logger.warning(f"Vector retrieval failed for agent {agent_id}, using raw materials: {e}")
            return self.fallback_context(agent_id)

    def fallback_context(self, agent_id: str) -> str:
        """Extracted text of up to six most recently updated ready materials."""
        docs = self.store.list(
            materials_collection(agent_id),
            where={"status": MaterialStatus.READY.value},
            order_by="updated_at",
            descending=True,
            limit=FALLBACK_MATERIAL_LIMIT,
        )
        blocks: List[str] = []
        for doc in docs:
            text = doc.data.get("extracted_text")
            if not text:
                continue
            name = doc.data.get("file_name") or doc.id
            blocks.append(f"--- DOKUMENT: {name} ---\n{text}")
        return "\n\n".join(blocks)
