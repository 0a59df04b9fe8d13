"""
Storage layer: JSON document store, uploaded file blobs and the submission log.
"""

from feedback_agent.storage.blob_store import BlobStore
from feedback_agent.storage.document_store import (
    DocumentStore,
    Document,
    AGENTS,
    CHUNKS,
    ACCESS_SESSIONS,
    AGENT_ACCESS,
    SUBMISSIONS,
    CONFIG,
    MODEL_PROVIDERS,
    materials_collection,
)
from feedback_agent.storage.submission_log import SubmissionLog

__all__ = [
    'BlobStore',
    'DocumentStore',
    'Document',
    'AGENTS',
    'CHUNKS',
    'ACCESS_SESSIONS',
    'AGENT_ACCESS',
    'SUBMISSIONS',
    'CONFIG',
    'MODEL_PROVIDERS',
    'materials_collection',
    'SubmissionLog',
]
