"""
Core data models for the feedback agent.

This module defines the Pydantic models used throughout the system:
agents and their rubrics, uploaded materials, access sessions, and the
normalized assessment that ends up in a submission record.
"""

from __future__ import annotations

from pydantic import BaseModel, Field, field_validator
from typing import List, Dict, Optional, Literal, Any
from datetime import datetime, timezone
from enum import Enum
import time
import uuid

from feedback_agent.config.constants import (
    DEFAULT_BLOOM_LEVEL,
    DEFAULT_RELIABILITY,
    DEFAULT_WEIGHT,
    DEFAULT_STRINGENCY,
)


Stringency = Literal["generous", "standard", "strict"]
PassFail = Literal["G", "U"]


class MaterialStatus(str, Enum):
    """Lifecycle of an uploaded reference document."""
    UPLOADED = "uploaded"
    PROCESSING = "processing"
    READY = "ready"
    FAILED = "failed"
    NEEDS_REVIEW = "needs_review"


class ReviewTrigger(str, Enum):
    """Why an assessment was (or was not) escalated."""
    CONSENSUS = "CONSENSUS"
    DISAGREEMENT = "DISAGREEMENT"
    HIGH_UNCERTAINTY = "HIGH_UNCERTAINTY"
    TIMEOUT_FALLBACK = "TIMEOUT_FALLBACK"


class DecisionSource(str, Enum):
    """Which stage produced the final assessment."""
    MODELS_AB = "MODELS_AB"
    ADJUDICATOR = "ADJUDICATOR"
    HUMAN_REQUIRED = "HUMAN_REQUIRED"


def generate_id() -> str:
    """Generate a unique ID."""
    return str(uuid.uuid4())


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def now_ms() -> int:
    """Current time as epoch milliseconds."""
    return int(time.time() * 1000)


# ==================== RUBRIC ====================

class Criterion(BaseModel):
    """
    One gradeable row of a criteria matrix.

    Defaults mirror what a teacher's partially filled rubric row means:
    mandatory unless stated, neutral reliability, unit weight.
    """
    id: str
    name: str
    description: str
    indicator: str
    is_mandatory: bool = True
    bloom_level: str = DEFAULT_BLOOM_LEVEL
    bloom_index: int = 0
    reliability_score: float = DEFAULT_RELIABILITY
    weight: float = DEFAULT_WEIGHT

    @field_validator('reliability_score')
    @classmethod
    def clamp_reliability(cls, v: float) -> float:
        return max(0.0, min(1.0, v))

    @field_validator('weight')
    @classmethod
    def positive_weight(cls, v: float) -> float:
        return v if v > 0 else DEFAULT_WEIGHT


class Agent(BaseModel):
    """An assessment configuration owned by a teacher."""
    id: str = Field(default_factory=generate_id)
    name: str = ""
    description: str = ""
    criteria_matrix: List[Dict[str, Any]] = Field(default_factory=list)
    criteria: List[str] = Field(default_factory=list)  # legacy plain-text criteria
    word_count_min: Optional[int] = None
    word_count_max: Optional[int] = None
    stringency: Stringency = DEFAULT_STRINGENCY
    pass_threshold: int = 0
    verification_prefix: Optional[int] = None
    owner_uid: Optional[str] = None
    visible_to: List[str] = Field(default_factory=list)

    def viewers(self) -> List[str]:
        """Uids allowed to read this agent's submissions."""
        if self.visible_to:
            return list(self.visible_to)
        return [self.owner_uid] if self.owner_uid else []


# ==================== MATERIALS ====================

class Material(BaseModel):
    """One uploaded reference document and its processing state."""
    id: str = Field(default_factory=generate_id)
    agent_id: str
    file_name: str = ""
    storage_path: Optional[str] = None
    mime_type: str = ""
    status: MaterialStatus = MaterialStatus.UPLOADED

    extracted_text: Optional[str] = None
    chunk_count: Optional[int] = None
    original_chunk_count: Optional[int] = None
    token_estimate: Optional[int] = None
    trimmed: bool = False

    force_trim: bool = False
    reprocess_requested: bool = False

    error: Optional[str] = None
    error_code: Optional[str] = None
    token_count: Optional[int] = None
    token_limit: Optional[int] = None

    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)


class ChunkRecord(BaseModel):
    """Stored text of one chunk, keyed by {material_id}-{chunk_index}."""
    agent_id: str
    material_id: str
    text: str
    chunk_index: int

    @property
    def doc_id(self) -> str:
        return f"{self.material_id}-{self.chunk_index}"


# ==================== ACCESS ====================

class AccessSession(BaseModel):
    """Short-lived token binding a student browser to one agent."""
    token: str
    agent_id: str
    created_at: datetime = Field(default_factory=utc_now)
    expires_at: datetime
    accepted_at: Optional[datetime] = None

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        return (now or utc_now()) >= self.expires_at


# ==================== ASSESSMENT ====================

class Formalia(BaseModel):
    status: str = "PASS"
    word_count: int = 0
    ref_check: str = "OK"


class TeacherInsights(BaseModel):
    common_errors: List[str] = Field(default_factory=list)
    strengths: List[str] = Field(default_factory=list)
    teaching_actions: List[str] = Field(default_factory=list)


class CriterionResult(BaseModel):
    """A model's verdict on one criterion after normalization."""
    id: str
    met: bool
    score: float
    evidence_quote: str = ""
    self_reflection_score: float
    evidence_valid: bool = False


class NormalizedAssessment(BaseModel):
    """One model's output reduced to the signals arbitration needs."""
    criteria_results: List[CriterionResult]
    evidence_gap_score: float
    avg_self_reflection: float
    boundary_score: int
    pass_fail: PassFail


class TriageMetadata(BaseModel):
    difficulty_score: float
    review_trigger: ReviewTrigger
    final_decision_source: DecisionSource
    is_escalated: bool
    evidence_gap_score: float
    disagreement_score: int
    boundary_score: int
    # Inverted confidence: (100 - avg self reflection) / 100
    self_reflection_score: float
    avg_self_reflection: float


class FinalMetrics(BaseModel):
    score_100k: int
    reliability_index: float


class Assessment(BaseModel):
    """Final, normalized assessment returned to the student and stored."""
    formalia: Formalia
    criteria_results: List[CriterionResult]
    pass_fail: PassFail
    final_metrics: FinalMetrics
    triage_metadata: TriageMetadata
    teacher_insights: TeacherInsights


class Submission(BaseModel):
    """Append-only record of one grading event."""
    agent_id: str
    verification_code: str
    score: int
    timestamp: int = Field(default_factory=now_ms)
    session_id: str
    stringency: Stringency
    criteria_matrix: List[Dict[str, Any]]
    criteria_results: List[CriterionResult] = Field(default_factory=list)
    insights: TeacherInsights
    pass_fail: PassFail
    triage_metadata: TriageMetadata
    visible_to: List[str] = Field(default_factory=list)


class AssessmentOutcome(BaseModel):
    """What submit_assessment hands back to the caller."""
    assessment: Assessment
    feedback: str
    verification_code: str


# ==================== AUDIT ====================

class AICallResult(BaseModel):
    """
    Result of an AI call with metadata for audit trail.
    """
    call_id: str = Field(default_factory=generate_id)
    timestamp: datetime = Field(default_factory=utc_now)

    prompt_type: str
    # "chat", "embed", "ocr"

    model_name: Optional[str] = None
    input_summary: str
    response_summary: str

    duration_ms: Optional[float] = None
    prompt_tokens: Optional[int] = None
    completion_tokens: Optional[int] = None
