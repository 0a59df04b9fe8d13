"""
Grading: dual-model assessment, arbitration, feedback and verification codes.
"""

from feedback_agent.grading.orchestrator import GradingOrchestrator, GradingRequest, ModelRun
from feedback_agent.grading.arbitration import ArbitrationEngine, ArbitrationResult
from feedback_agent.grading.feedback import FeedbackGenerator
from feedback_agent.grading.criterion_designer import CriterionDesigner, CriterionAnalysis
from feedback_agent.grading.assessment_service import AssessmentService
from feedback_agent.grading.evidence import fuzzy_contains, validate_evidence_quote

__all__ = [
    'GradingOrchestrator',
    'GradingRequest',
    'ModelRun',
    'ArbitrationEngine',
    'ArbitrationResult',
    'FeedbackGenerator',
    'CriterionDesigner',
    'CriterionAnalysis',
    'AssessmentService',
    'fuzzy_contains',
    'validate_evidence_quote',
]
