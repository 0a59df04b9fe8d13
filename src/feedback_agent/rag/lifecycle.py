"""
Material lifecycle: uploaded -> processing -> ready | failed | needs_review.

The controller is an explicit state machine. Whatever delivers the "material
written" event (API handler, CLI, queue consumer) calls ``ingest_material``;
the transition table below decides whether any work happens.
"""

from typing import Any, Dict, List, Optional

from loguru import logger

from feedback_agent.config.constants import (
    CHUNK_OVERLAP,
    CHUNK_SIZE,
    MAX_PREVIEW_CHARS,
    TRIM_TOKEN_BUDGET,
)
from feedback_agent.core.exceptions import NotFoundError, TokenLimitError
from feedback_agent.core.models import Material, MaterialStatus, utc_now
from feedback_agent.rag.chunker import chunk_text, estimate_tokens, limit_chunks_by_token_budget, normalize_text
from feedback_agent.rag.embedder import EmbeddingClient
from feedback_agent.rag.extractor import TextExtractor
from feedback_agent.rag.vector_index import VectorIndex, datapoint_id
from feedback_agent.storage.blob_store import BlobStore
from feedback_agent.storage.document_store import (
    AGENT_ACCESS,
    AGENTS,
    CHUNKS,
    DocumentStore,
    materials_collection,
)

UPLOADED = MaterialStatus.UPLOADED.value
PROCESSING = MaterialStatus.PROCESSING.value

_CLEARED_ERRORS = {"error": None, "error_code": None, "token_count": None, "token_limit": None}


class MaterialProcessingFailed(Exception):
    """Terminal, teacher-facing failure with a fixed message."""


def _timestamp() -> str:
    return utc_now().isoformat()


class MaterialLifecycleController:
    """
    Drives materials through extraction, chunking, embedding and indexing.

    No exception escapes ``ingest_material``: every component error becomes a
    status on the material document.
    """

    def __init__(
        self,
        store: DocumentStore,
        blobs: BlobStore,
        extractor: TextExtractor,
        embedder: EmbeddingClient,
        index: Optional[VectorIndex] = None,
        chunk_size: int = CHUNK_SIZE,
        chunk_overlap: int = CHUNK_OVERLAP,
        trim_budget: int = TRIM_TOKEN_BUDGET
    ):
        self.store = store
        self.blobs = blobs
        self.extractor = extractor
        self.embedder = embedder
        self.index = index
        self.chunk_size = chunk_size
        self.chunk_overlap = chunk_overlap
        self.trim_budget = trim_budget

    # ==================== UPLOAD ====================

    def register_material(self, agent_id: str, file_name: str, mime_type: str, data: bytes) -> Material:
        """Store the uploaded bytes and create the material in ``uploaded``."""
        if self.store.get(AGENTS, agent_id) is None:
            raise NotFoundError(f"Agent {agent_id} not found")

        material = Material(agent_id=agent_id, file_name=file_name, mime_type=mime_type)
        material.storage_path = self.blobs.save(
            BlobStore.material_path(agent_id, material.id, file_name), data
        )
        self.store.set(materials_collection(agent_id), material.id, material.model_dump(mode="json"))
        logger.info(f"Registered material {material.id} ({file_name}, {len(data)} bytes) for agent {agent_id}")
        return material

    def request_reprocess(self, agent_id: str, material_id: str, force_trim: bool = True) -> Optional[str]:
        """
        Re-queue a material, typically one in ``needs_review``.

        Returns the status the material had before, to be passed on to
        ``ingest_material`` as ``previous_status``.
        """
        collection = materials_collection(agent_id)
        current = self.store.require(collection, material_id)
        self.store.update(collection, material_id, {
            "status": UPLOADED,
            "reprocess_requested": True,
            "force_trim": force_trim,
            "updated_at": _timestamp(),
            **_CLEARED_ERRORS,
        })
        return current.get("status")

    # ==================== PROCESSING ====================

    def ingest_material(self, agent_id: str, material_id: str, previous_status: Optional[str] = None) -> Optional[str]:
        """
        Process one material if the transition table allows it.

        Args:
            agent_id: Owning agent
            material_id: Material to process
            previous_status: Status before the write that triggered this call

        Returns:
            The resulting status, or None when the trigger was ignored or the
            material was deleted while processing
        """
        collection = materials_collection(agent_id)
        material = self.store.get(collection, material_id)
        if material is None:
            logger.debug(f"Material {material_id} vanished before processing")
            return None

        if (material.get("status") or UPLOADED) != UPLOADED:
            return None
        reprocess = material.get("reprocess_requested") is True
        if previous_status == UPLOADED and not reprocess:
            return None

        # Single flight: only one caller wins uploaded -> processing
        claimed = self.store.transition(collection, material_id, "status", UPLOADED, {
            "status": PROCESSING,
            "reprocess_requested": False,
            "updated_at": _timestamp(),
        })
        if not claimed:
            logger.debug(f"Material {material_id} already claimed by another worker")
            return None

        try:
            result = self._process(agent_id, material_id, material)
            status = self._finish(agent_id, material_id, {**result, **_CLEARED_ERRORS, "status": MaterialStatus.READY.value})
            if status:
                logger.info(f"Material {material_id} ready with {result['chunk_count']} chunks")
            return status
        except MaterialProcessingFailed as e:
            logger.warning(f"Material {material_id} failed: {e}")
            return self._finish(agent_id, material_id, {"status": MaterialStatus.FAILED.value, "error": str(e)})
        except TokenLimitError as e:
            logger.warning(f"Material {material_id} exceeds embedding token limit: {e.message}")
            return self._finish(agent_id, material_id, {
                "status": MaterialStatus.NEEDS_REVIEW.value,
                "error_code": TokenLimitError.code,
                "error": e.message or "Token limit exceeded.",
                "token_count": e.token_count,
                "token_limit": e.token_limit,
            })
        except Exception as e:
            logger.exception(f"Material {material_id} processing failed")
            return self._finish(agent_id, material_id, {
                "status": MaterialStatus.FAILED.value,
                "error": str(e) or "Processing failed.",
            })

    def _process(self, agent_id: str, material_id: str, material: Dict[str, Any]) -> Dict[str, Any]:
        storage_path = material.get("storage_path")
        if not storage_path:
            raise MaterialProcessingFailed("Missing storage path.")

        data = self.blobs.load(storage_path)
        normalized = normalize_text(self.extractor.extract_text(data, material.get("mime_type") or ""))
        if not normalized:
            raise MaterialProcessingFailed("No text could be extracted.")

        chunks = chunk_text(normalized, self.chunk_size, self.chunk_overlap)
        if not chunks:
            raise MaterialProcessingFailed("Chunking produced no output.")

        self._clear_chunks(agent_id, material_id)
        token_estimate = sum(estimate_tokens(chunk) for chunk in chunks)

        force_trim = material.get("force_trim") is True
        kept = limit_chunks_by_token_budget(chunks, self.trim_budget) if force_trim else chunks
        if not kept:
            raise MaterialProcessingFailed("Trimmed content is empty.")

        vectors = self.embedder.embed_texts(kept)
        self._write_chunks(agent_id, material_id, kept)
        if self.index is not None and len(vectors) == len(kept):
            self.index.upsert(agent_id, material_id, vectors)

        return {
            "extracted_text": normalized[:MAX_PREVIEW_CHARS],
            "chunk_count": len(kept),
            "original_chunk_count": len(chunks),
            "token_estimate": token_estimate,
            "trimmed": force_trim,
        }

    def _finish(self, agent_id: str, material_id: str, fields: Dict[str, Any]) -> Optional[str]:
        """Write the final status; None when the material was deleted meanwhile."""
        try:
            self.store.update(materials_collection(agent_id), material_id, {**fields, "updated_at": _timestamp()})
        except NotFoundError:
            # Chunks and datapoints never outlive their material
            self._remove_from_index(agent_id, material_id)
            dropped = self.store.batch_delete(CHUNKS, self._chunk_ids(material_id))
            logger.warning(f"Material {material_id} deleted during processing; dropped {dropped} chunks")
            return None
        return fields["status"]

    # ==================== CHUNKS ====================

    def _chunk_ids(self, material_id: str) -> List[str]:
        return [doc.id for doc in self.store.list(CHUNKS, where={"material_id": material_id})]

    def _write_chunks(self, agent_id: str, material_id: str, chunks: List[str]) -> None:
        self.store.batch_set(CHUNKS, [
            (datapoint_id(material_id, i), {
                "agent_id": agent_id,
                "material_id": material_id,
                "text": chunk,
                "chunk_index": i,
            })
            for i, chunk in enumerate(chunks)
        ])

    def _clear_chunks(self, agent_id: str, material_id: str) -> int:
        ids = self._chunk_ids(material_id)
        if not ids:
            return 0
        self._remove_from_index(agent_id, material_id)
        return self.store.batch_delete(CHUNKS, ids)

    def _remove_from_index(self, agent_id: str, material_id: str) -> None:
        if self.index is None:
            return
        try:
            self.index.remove(agent_id, material_id)
        except Exception as e:
            logger.warning(f"Failed to remove index datapoints for material {material_id}: {e}")

    # ==================== REMOVAL ====================

    def remove_material(self, agent_id: str, material_id: str) -> int:
        """
        Remove a material with its chunks, datapoints and stored file.

        Index removal is best effort. Returns the number of chunks deleted.
        """
        collection = materials_collection(agent_id)
        material = self.store.get(collection, material_id) or {}

        self._remove_from_index(agent_id, material_id)
        deleted = self.store.batch_delete(CHUNKS, self._chunk_ids(material_id))
        self.store.delete(collection, material_id)

        storage_path = material.get("storage_path")
        if storage_path:
            try:
                self.blobs.delete(storage_path)
            except Exception as e:
                logger.warning(f"Failed to delete stored file {storage_path}: {e}")

        logger.info(f"Removed material {material_id} ({deleted} chunks)")
        return deleted

    def remove_agent(self, agent_id: str) -> None:
        """Cascade an agent deletion to its materials and access config."""
        for doc in self.store.list(materials_collection(agent_id)):
            try:
                self.remove_material(agent_id, doc.id)
            except Exception as e:
                logger.warning(f"Failed to remove material {doc.id} of agent {agent_id}: {e}")

        if self.index is not None:
            try:
                self.index.remove_agent(agent_id)
            except Exception as e:
                logger.warning(f"Failed to remove index datapoints for agent {agent_id}: {e}")

        for collection, doc_id in ((AGENT_ACCESS, agent_id), (AGENTS, agent_id)):
            try:
                self.store.delete(collection, doc_id)
            except Exception as e:
                logger.warning(f"Failed to delete {collection}/{doc_id}: {e}")

        try:
            self.blobs.delete_prefix(f"agents/{agent_id}")
        except Exception as e:
            logger.warning(f"Failed to delete stored files of agent {agent_id}: {e}")
        logger.info(f"Removed agent {agent_id}")
