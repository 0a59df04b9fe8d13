"""
Core module for the feedback agent.

Exports key models and exceptions for easy access.
"""

from feedback_agent.core.models import (
    Agent,
    Criterion,
    Material,
    MaterialStatus,
    AccessSession,
    Assessment,
    AssessmentOutcome,
    CriterionResult,
    NormalizedAssessment,
    TriageMetadata,
    ReviewTrigger,
    DecisionSource,
    Submission,
    generate_id,
)

from feedback_agent.core.exceptions import (
    FeedbackAgentError,
    ConfigurationError,
    ProviderError,
    MalformedOutputError,
    TokenLimitError,
    InputError,
    InvalidInputError,
    AccessError,
    AccessDeniedError,
    SessionExpiredError,
    NotFoundError,
    ExtractionError,
    StorageError,
)

__all__ = [
    'Agent',
    'Criterion',
    'Material',
    'MaterialStatus',
    'AccessSession',
    'Assessment',
    'AssessmentOutcome',
    'CriterionResult',
    'NormalizedAssessment',
    'TriageMetadata',
    'ReviewTrigger',
    'DecisionSource',
    'Submission',
    'generate_id',
    'FeedbackAgentError',
    'ConfigurationError',
    'ProviderError',
    'MalformedOutputError',
    'TokenLimitError',
    'InputError',
    'InvalidInputError',
    'AccessError',
    'AccessDeniedError',
    'SessionExpiredError',
    'NotFoundError',
    'ExtractionError',
    'StorageError',
]
