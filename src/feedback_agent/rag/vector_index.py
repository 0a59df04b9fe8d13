"""
Nearest-neighbour index over material chunk vectors.

Every datapoint carries the owning agent id as a restrict, and every write,
delete and query is filtered by it: one agent can never see or touch another
agent's vectors.
"""

from abc import ABC, abstractmethod
from pathlib import Path
from typing import List, Optional, Sequence

import numpy as np
import chromadb
from chromadb.config import Settings as ChromaSettings
from loguru import logger

from feedback_agent.config.constants import NEIGHBOR_COUNT, VECTOR_UPSERT_BATCH_SIZE


def datapoint_id(material_id: str, index: int) -> str:
    return f"{material_id}-{index}"


class VectorIndex(ABC):
    """Agent-partitioned vector index."""

    @abstractmethod
    def upsert(self, agent_id: str, material_id: str, vectors: Sequence[Sequence[float]]) -> int:
        """Store one datapoint per vector with ids ``{material_id}-{i}``."""

    @abstractmethod
    def remove(self, agent_id: str, material_id: str) -> None:
        """Remove every datapoint of a material."""

    @abstractmethod
    def remove_agent(self, agent_id: str) -> None:
        """Remove every datapoint of an agent."""

    @abstractmethod
    def query(self, agent_id: str, vector: Sequence[float], k: int = NEIGHBOR_COUNT) -> List[str]:
        """Ids of the ``k`` nearest datapoints within the agent's partition."""


class ChromaVectorIndex(VectorIndex):
    """
    ChromaDB-backed index.

    Features:
    - Single collection, agent restrict stored as metadata
    - Bounded upsert batches
    - Where-filtered deletes and queries
    """

    def __init__(
        self,
        persist_directory: Optional[str] = None,
        collection_name: str = "material_chunks",
        client=None,
        batch_size: int = VECTOR_UPSERT_BATCH_SIZE
    ):
        if client is None:
            if persist_directory:
                Path(persist_directory).mkdir(parents=True, exist_ok=True)
                client = chromadb.PersistentClient(
                    path=str(persist_directory),
                    settings=ChromaSettings(anonymized_telemetry=False)
                )
            else:
                client = chromadb.EphemeralClient(settings=ChromaSettings(anonymized_telemetry=False))
        self.client = client
        self.batch_size = batch_size
        self.collection = self.client.get_or_create_collection(
            name=collection_name,
            metadata={"hnsw:space": "cosine", "description": "Material chunk vectors"}
        )
        logger.info(f"Vector index ready: collection={collection_name}")

    def upsert(self, agent_id: str, material_id: str, vectors: Sequence[Sequence[float]]) -> int:
        if len(vectors) == 0:
            return 0
        matrix = np.asarray(vectors, dtype=np.float32)
        if matrix.ndim != 2:
            raise ValueError(f"Expected a 2-D array of vectors, got shape {matrix.shape}")

        total = 0
        for start in range(0, len(matrix), self.batch_size):
            batch = matrix[start:start + self.batch_size]
            ids = [datapoint_id(material_id, start + i) for i in range(len(batch))]
            self.collection.upsert(
                ids=ids,
                embeddings=batch.tolist(),
                metadatas=[
                    {"agent_id": agent_id, "material_id": material_id, "chunk_index": start + i}
                    for i in range(len(batch))
                ],
            )
            total += len(batch)
        logger.info(f"Upserted {total} datapoints for material {material_id}")
        return total

    def remove(self, agent_id: str, material_id: str) -> None:
        self.collection.delete(where={"$and": [{"agent_id": agent_id}, {"material_id": material_id}]})

    def remove_agent(self, agent_id: str) -> None:
        self.collection.delete(where={"agent_id": agent_id})

    def query(self, agent_id: str, vector: Sequence[float], k: int = NEIGHBOR_COUNT) -> List[str]:
        result = self.collection.query(
            query_embeddings=[np.asarray(vector, dtype=np.float32).tolist()],
            n_results=k,
            where={"agent_id": agent_id},
        )
        ids = result.get("ids") or [[]]
        return list(ids[0]) if ids else []
