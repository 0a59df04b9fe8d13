"""
Assessment service - the end-to-end student submission flow.

validate input -> check access session -> load agent and rubric ->
retrieve reference context -> grade (A and B, adjudicator if needed) ->
feedback -> verification code -> persist submission.
"""

import asyncio
import random
from typing import Optional

from loguru import logger
from pydantic import ValidationError

from feedback_agent.access.sessions import AccessSessionService, session_id_for
from feedback_agent.config.constants import SENTINEL_CODE, STUDENT_TEXT_MAX_CHARS
from feedback_agent.core.exceptions import AccessDeniedError, InvalidInputError, NotFoundError
from feedback_agent.core.models import Agent, AssessmentOutcome, Submission
from feedback_agent.grading import codec
from feedback_agent.grading.arbitration import ArbitrationEngine, ArbitrationResult
from feedback_agent.grading.criteria import normalize_criteria_matrix, rubric_snapshot
from feedback_agent.grading.feedback import FeedbackGenerator
from feedback_agent.grading.orchestrator import GradingRequest
from feedback_agent.rag.retriever import Retriever
from feedback_agent.storage.document_store import AGENTS, DocumentStore
from feedback_agent.storage.submission_log import SubmissionLog


def verification_code_for(result: ArbitrationResult, min_prefix: int, rng: Optional[random.Random] = None) -> str:
    """
    Code for a final assessment.

    Cases routed to a human get the sentinel; escalated but resolved cases
    get the normal code times ten.
    """
    if result.hard_failure or result.needs_human:
        return SENTINEL_CODE
    assessment = result.assessment
    code = codec.generate_code(result.score, assessment.pass_fail == "G", min_prefix, rng)
    if assessment.triage_metadata.is_escalated:
        code = codec.escalate(code)
    return code


class AssessmentService:
    """Grades one student text against one agent."""

    def __init__(
        self,
        store: DocumentStore,
        sessions: AccessSessionService,
        retriever: Retriever,
        engine: ArbitrationEngine,
        feedback: FeedbackGenerator,
        submissions: SubmissionLog,
        rng: Optional[random.Random] = None
    ):
        self.store = store
        self.sessions = sessions
        self.retriever = retriever
        self.engine = engine
        self.feedback = feedback
        self.submissions = submissions
        self.rng = rng

    def load_agent(self, agent_id: str) -> Agent:
        data = self.store.get(AGENTS, agent_id)
        if data is None:
            raise NotFoundError("Agent not found.")
        try:
            return Agent.model_validate({**data, "id": agent_id})
        except ValidationError as e:
            raise InvalidInputError("Agent configuration is invalid.", {"agent_id": agent_id}) from e

    def ensure_prefix(self, agent: Agent) -> int:
        """
        The agent's minimum verification prefix, assigned on first use.

        The assigned value is a pure function of the agent id, so concurrent
        first assignments write the same number.
        """
        prefix = codec.normalize_prefix(agent.verification_prefix)
        if prefix is None:
            prefix = codec.derive_prefix(agent.id)
            self.store.set(AGENTS, agent.id, {"verification_prefix": prefix}, merge=True)
            logger.info(f"Assigned verification prefix {prefix} to agent {agent.id}")
        return prefix

    async def submit_assessment(self, agent_id: str, student_text: str, access_token: str) -> AssessmentOutcome:
        """
        Grade a submission and persist it.

        Raises:
            InvalidInputError: missing fields, text too long, or no rubric
            AccessDeniedError / SessionExpiredError: bad access session
            NotFoundError: unknown agent
        """
        if not agent_id or not isinstance(agent_id, str):
            raise InvalidInputError("Missing agentId.")
        if not access_token or not isinstance(access_token, str):
            raise AccessDeniedError("Missing access token.")
        if not student_text or not isinstance(student_text, str) or not student_text.strip():
            raise InvalidInputError("Missing studentText.")
        if len(student_text) > STUDENT_TEXT_MAX_CHARS:
            raise InvalidInputError("Student text is too long.", {"max_chars": STUDENT_TEXT_MAX_CHARS})

        # Store reads and writes run in worker threads, off the event loop
        await asyncio.to_thread(self.sessions.require_session, agent_id, access_token, accepted=True)
        agent = await asyncio.to_thread(self.load_agent, agent_id)
        criteria = normalize_criteria_matrix(agent)

        reference = await asyncio.to_thread(self.retriever.get_reference_context, agent_id, student_text)
        request = GradingRequest.build(student_text, agent.description, criteria, reference, agent.stringency)

        result = await self.engine.assess(request, student_text)
        feedback = await self.feedback.generate(request, result.assessment)

        min_prefix = await asyncio.to_thread(self.ensure_prefix, agent)
        code = verification_code_for(result, min_prefix, self.rng)

        assessment = result.assessment
        submission = Submission(
            agent_id=agent_id,
            verification_code=code,
            score=result.score,
            session_id=session_id_for(access_token),
            stringency=agent.stringency,
            criteria_matrix=rubric_snapshot(agent, criteria),
            criteria_results=assessment.criteria_results,
            insights=assessment.teacher_insights,
            pass_fail=assessment.pass_fail,
            triage_metadata=assessment.triage_metadata,
            visible_to=agent.viewers(),
        )
        await asyncio.to_thread(self.submissions.append, submission)

        logger.info(
            f"Assessment for agent {agent_id}: pass_fail={assessment.pass_fail} score={result.score} "
            f"source={assessment.triage_metadata.final_decision_source.value} "
            f"runs={[run.summary() for run in result.runs]}"
        )
        return AssessmentOutcome(assessment=assessment, feedback=feedback, verification_code=code)
