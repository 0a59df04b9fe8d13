"""
Service wiring.

Builds the object graph shared by the API and the CLI from settings:
storage, model routing, the RAG pipeline and the grading services.
"""

from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Optional

from loguru import logger

from feedback_agent.access.sessions import AccessSessionService
from feedback_agent.ai.model_router import ModelRouter
from feedback_agent.config.constants import BLOB_DIR_NAME
from feedback_agent.config.providers import TASK_OCR
from feedback_agent.config.settings import Settings, get_settings
from feedback_agent.grading.arbitration import ArbitrationEngine
from feedback_agent.grading.assessment_service import AssessmentService
from feedback_agent.grading.criterion_designer import CriterionDesigner
from feedback_agent.grading.feedback import FeedbackGenerator
from feedback_agent.grading.orchestrator import GradingOrchestrator
from feedback_agent.rag.embedder import EmbeddingClient
from feedback_agent.rag.extractor import TextExtractor
from feedback_agent.rag.lifecycle import MaterialLifecycleController
from feedback_agent.rag.retriever import Retriever
from feedback_agent.rag.vector_index import ChromaVectorIndex, VectorIndex
from feedback_agent.storage.blob_store import BlobStore
from feedback_agent.storage.document_store import DocumentStore
from feedback_agent.storage.submission_log import SubmissionLog


@dataclass
class Services:
    settings: Settings
    store: DocumentStore
    blobs: BlobStore
    router: ModelRouter
    index: Optional[VectorIndex]
    lifecycle: MaterialLifecycleController
    retriever: Retriever
    sessions: AccessSessionService
    submissions: SubmissionLog
    assessments: AssessmentService
    designer: CriterionDesigner


def build_services(
    settings: Optional[Settings] = None,
    store: Optional[DocumentStore] = None,
    router: Optional[ModelRouter] = None,
    index: Optional[VectorIndex] = None
) -> Services:
    """Wire every service; explicit arguments replace the configured backends."""
    settings = settings or get_settings()
    store = store or DocumentStore.from_url(settings.resolved_database_url)
    blobs = BlobStore(Path(settings.data_dir) / BLOB_DIR_NAME)
    router = router or ModelRouter(store, settings)

    if index is None and settings.vector_index_enabled:
        index = ChromaVectorIndex(settings.resolved_chroma_dir, collection_name=settings.vector_collection)

    def ocr(data: bytes, mime_type: str) -> str:
        provider, model = router.chat_route(TASK_OCR)
        return provider.extract_text_from_image(model, data, mime_type)

    embedder = EmbeddingClient(router.embedding_route)
    retriever = Retriever(store, embedder, index)
    lifecycle = MaterialLifecycleController(store, blobs, TextExtractor(ocr=ocr), embedder, index)

    orchestrator = GradingOrchestrator(
        router.chat_route,
        timeout_s=settings.assessment_timeout_s,
        adjudicator_timeout_s=settings.adjudicator_timeout_s,
    )
    sessions = AccessSessionService(store, ttl_hours=settings.access_session_ttl_hours)
    submissions = SubmissionLog(store)
    assessments = AssessmentService(
        store,
        sessions,
        retriever,
        ArbitrationEngine(orchestrator),
        FeedbackGenerator(orchestrator),
        submissions,
    )

    logger.info(f"Services ready (vector index: {'on' if index is not None else 'off'})")
    return Services(
        settings=settings,
        store=store,
        blobs=blobs,
        router=router,
        index=index,
        lifecycle=lifecycle,
        retriever=retriever,
        sessions=sessions,
        submissions=submissions,
        assessments=assessments,
        designer=CriterionDesigner(orchestrator, retriever),
    )


@lru_cache()
def get_services() -> Services:
    """Process-wide services built from the cached settings."""
    return build_services()
