"""
Formative feedback for students.

Turns the final assessment into tutor-style prose in the student's own
language, grounded in the agent's reference material.
"""

from loguru import logger

from feedback_agent.config.constants import FEEDBACK_FALLBACK_TEXT
from feedback_agent.config.providers import TASK_FEEDBACK
from feedback_agent.core.models import Assessment
from feedback_agent.grading.orchestrator import GradingOrchestrator, GradingRequest
from feedback_agent.prompts.grading import FEEDBACK_SYSTEM_PROMPT, build_assessment_data_part


class FeedbackGenerator:
    """
    Generates personalized feedback for a graded submission.

    Features:
    - Student-language response
    - Fixed four-section structure
    - Hedged wording when the rubric's reliability index is low
    - Never reveals the numeric score
    """

    def __init__(self, orchestrator: GradingOrchestrator):
        self.orchestrator = orchestrator

    async def generate(self, request: GradingRequest, assessment: Assessment) -> str:
        """
        Generate feedback for one assessment.

        Args:
            request: Parts used for grading (reference, context, student)
            assessment: Final assessment used as grounding data

        Returns:
            Markdown feedback, or a fixed fallback text if the call fails
        """
        parts = [
            request.reference_part,
            build_assessment_data_part(assessment.model_dump(mode="json")),
            request.context_part,
            request.student_part,
        ]
        try:
            text = await self.orchestrator.generate(
                TASK_FEEDBACK,
                parts,
                system_instruction=FEEDBACK_SYSTEM_PROMPT,
            )
        except Exception as e:
            logger.warning(f"Feedback generation failed: {e}")
            return FEEDBACK_FALLBACK_TEXT
        return (text or "").strip() or FEEDBACK_FALLBACK_TEXT
