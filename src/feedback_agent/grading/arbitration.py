"""
Arbitration Engine - reconciles the graders into one final assessment.

Signals computed from the two normalized gradings:
- disagreement: graders reached different pass/fail outcomes
- boundary: any criterion score within +/-5 of the pass threshold
- evidence gap: share of criteria, across both graders, whose quote failed
- self reflection: inverted mean confidence, higher means less sure

difficulty = 0.5*D + 0.2*B + 0.15*SR + 0.15*E, clamped to [0, 1].
Disagreement or difficulty above 0.7 escalates to the adjudicator. When the
graders cannot be trusted at all the case goes to a human instead of being
given a plausible-looking score.
"""

import math
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from loguru import logger

from feedback_agent.config.constants import (
    BOUNDARY_MARGIN,
    CRITERION_PASS_THRESHOLD,
    DEFAULT_SELF_REFLECTION,
    DIFFICULTY_WEIGHTS,
    ESCALATION_THRESHOLD,
)
from feedback_agent.core.models import (
    Assessment,
    Criterion,
    CriterionResult,
    DecisionSource,
    FinalMetrics,
    Formalia,
    NormalizedAssessment,
    ReviewTrigger,
    TeacherInsights,
    TriageMetadata,
)
from feedback_agent.grading.criteria import reliability_index
from feedback_agent.grading.evidence import validate_evidence_quote
from feedback_agent.grading.orchestrator import GradingOrchestrator, GradingRequest, ModelRun
from feedback_agent.prompts.grading import ADJUDICATOR_DISAGREEMENT_SUFFIX, ADJUDICATOR_FALLBACK_SUFFIX


def _clamp(value: float, low: float, high: float) -> float:
    return min(high, max(low, value))


def _number(value: Any) -> Optional[float]:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return float(value) if math.isfinite(value) else None


def normalize_score(raw: Any, met: bool) -> float:
    """
    Coerce a model's criterion score into [0, 100].

    Missing scores follow ``met``. Values of 1 or below are read as
    fractions and rescaled; this guards against models answering on a 0-1
    scale despite the instructions.
    """
    score = _number(raw)
    if score is None:
        score = 100.0 if met else 0.0
    if score <= 1:
        score *= 100
    return _clamp(score, 0.0, 100.0)


def is_boundary(score: float) -> bool:
    return CRITERION_PASS_THRESHOLD - BOUNDARY_MARGIN <= score <= CRITERION_PASS_THRESHOLD + BOUNDARY_MARGIN


def normalize_assessment(raw: Dict[str, Any], criteria: List[Criterion], student_text: str) -> NormalizedAssessment:
    """
    Reduce one model's raw JSON to per-criterion results in rubric order.

    Criteria the model skipped count as not met with no evidence.
    """
    raw_results = raw.get("criteria_results") if isinstance(raw, dict) else None
    by_id: Dict[str, Dict[str, Any]] = {}
    for item in raw_results if isinstance(raw_results, list) else []:
        if isinstance(item, dict) and item.get("id") not in (None, ""):
            by_id[str(item["id"])] = item

    results: List[CriterionResult] = []
    evidence_failures = 0
    boundary_hit = False
    reflection_total = 0.0

    for criterion in criteria:
        item = by_id.get(criterion.id, {})
        met = bool(item.get("met"))
        score = normalize_score(item.get("score"), met)
        boundary_hit = boundary_hit or is_boundary(score)

        quote = item.get("evidence_quote")
        quote = quote.strip() if isinstance(quote, str) else ""
        evidence_valid = validate_evidence_quote(student_text, quote)
        if not evidence_valid:
            evidence_failures += 1

        reflection = _number(item.get("self_reflection_score"))
        reflection = _clamp(reflection, 0.0, 100.0) if reflection is not None else DEFAULT_SELF_REFLECTION
        reflection_total += reflection

        results.append(CriterionResult(
            id=criterion.id,
            met=met,
            score=score,
            evidence_quote=quote,
            self_reflection_score=reflection,
            evidence_valid=evidence_valid,
        ))

    count = len(results)
    mandatory = {c.id for c in criteria if c.is_mandatory}
    passed = all(r.met for r in results if r.id in mandatory)
    return NormalizedAssessment(
        criteria_results=results,
        evidence_gap_score=evidence_failures / count if count else 0.0,
        avg_self_reflection=reflection_total / count if count else DEFAULT_SELF_REFLECTION,
        boundary_score=1 if boundary_hit else 0,
        pass_fail="G" if passed else "U",
    )


def difficulty_score(disagreement: int, boundary: int, self_reflection: float, evidence_gap: float) -> float:
    weights = DIFFICULTY_WEIGHTS
    return _clamp(
        weights["disagreement"] * disagreement
        + weights["boundary"] * boundary
        + weights["self_reflection"] * self_reflection
        + weights["evidence_gap"] * evidence_gap,
        0.0,
        1.0,
    )


def weighted_score(results: List[CriterionResult], criteria: List[Criterion]) -> int:
    """Weighted mean criterion score on the 0-100,000 scale."""
    weights = {c.id: c.weight for c in criteria}
    total_weight = sum(weights.get(r.id, 1.0) for r in results)
    if total_weight <= 0:
        return 0
    weighted = sum(r.score * weights.get(r.id, 1.0) for r in results)
    return round(weighted / total_weight * 1000)


def word_count(text: str) -> int:
    return len(text.split())


@dataclass
class ArbitrationResult:
    """Final assessment plus what the caller needs for code generation and audit."""
    assessment: Assessment
    hard_failure: bool
    runs: List[ModelRun]

    @property
    def score(self) -> int:
        return self.assessment.final_metrics.score_100k

    @property
    def needs_human(self) -> bool:
        return self.assessment.triage_metadata.final_decision_source == DecisionSource.HUMAN_REQUIRED


class ArbitrationEngine:
    """
    Runs the primary pair, decides on escalation and builds the final Assessment.
    """

    def __init__(self, orchestrator: GradingOrchestrator):
        self.orchestrator = orchestrator

    async def assess(self, request: GradingRequest, student_text: str) -> ArbitrationResult:
        criteria = request.criteria
        run_a, run_b = await self.orchestrator.run_primary_pair(request)
        runs = [run_a, run_b]

        norm_a = normalize_assessment(run_a.parsed, criteria, student_text) if run_a.ok else None
        norm_b = normalize_assessment(run_b.parsed, criteria, student_text) if run_b.ok else None

        if norm_a and norm_b:
            disagreement = 1 if norm_a.pass_fail != norm_b.pass_fail else 0
            boundary = max(norm_a.boundary_score, norm_b.boundary_score)
            avg_reflection = (norm_a.avg_self_reflection + norm_b.avg_self_reflection) / 2
            inverted_reflection = _clamp((100 - avg_reflection) / 100, 0.0, 1.0)
            evidence_gap = (norm_a.evidence_gap_score + norm_b.evidence_gap_score) / 2
            difficulty = difficulty_score(disagreement, boundary, inverted_reflection, evidence_gap)

            escalate = disagreement == 1 or difficulty > ESCALATION_THRESHOLD
            if disagreement == 1:
                trigger = ReviewTrigger.DISAGREEMENT
            elif escalate:
                trigger = ReviewTrigger.HIGH_UNCERTAINTY
            else:
                trigger = ReviewTrigger.CONSENSUS

            final_raw, final_norm, source = run_a.parsed, norm_a, DecisionSource.MODELS_AB
            if escalate:
                adjudicator = await self.orchestrator.run_adjudicator(
                    request, run_a, run_b, ADJUDICATOR_DISAGREEMENT_SUFFIX
                )
                runs.append(adjudicator)
                if adjudicator.ok:
                    final_raw = adjudicator.parsed
                    final_norm = normalize_assessment(adjudicator.parsed, criteria, student_text)
                    source = DecisionSource.ADJUDICATOR
                else:
                    # Trigger keeps the reason for escalation; the source records the outcome
                    source = DecisionSource.HUMAN_REQUIRED
            hard_failure = False

        elif norm_a or norm_b:
            # One grader survived: let the adjudicator decide from what is available
            survivor_raw, survivor = (run_a.parsed, norm_a) if norm_a else (run_b.parsed, norm_b)
            disagreement, boundary = 1, survivor.boundary_score
            avg_reflection = survivor.avg_self_reflection
            inverted_reflection = _clamp((100 - avg_reflection) / 100, 0.0, 1.0)
            evidence_gap = survivor.evidence_gap_score
            difficulty, escalate, trigger = 1.0, True, ReviewTrigger.TIMEOUT_FALLBACK

            adjudicator = await self.orchestrator.run_adjudicator(
                request, run_a, run_b, ADJUDICATOR_FALLBACK_SUFFIX
            )
            runs.append(adjudicator)
            if adjudicator.ok:
                final_raw = adjudicator.parsed
                final_norm = normalize_assessment(adjudicator.parsed, criteria, student_text)
                source = DecisionSource.ADJUDICATOR
            else:
                final_raw, final_norm, source = survivor_raw, survivor, DecisionSource.HUMAN_REQUIRED
            hard_failure = False

        else:
            logger.error(f"Both graders failed: A={run_a.error!r} B={run_b.error!r}")
            final_raw = {}
            final_norm = NormalizedAssessment(
                criteria_results=[
                    CriterionResult(id=c.id, met=False, score=0, self_reflection_score=0)
                    for c in criteria
                ],
                evidence_gap_score=1.0,
                avg_self_reflection=0.0,
                boundary_score=0,
                pass_fail="U",
            )
            disagreement, boundary, evidence_gap = 1, 0, 1.0
            avg_reflection, inverted_reflection = 0.0, 1.0
            difficulty, escalate = 1.0, True
            trigger, source = ReviewTrigger.TIMEOUT_FALLBACK, DecisionSource.HUMAN_REQUIRED
            hard_failure = True

        assessment = Assessment(
            formalia=self._formalia(final_raw, student_text),
            criteria_results=final_norm.criteria_results,
            pass_fail=final_norm.pass_fail,
            final_metrics=FinalMetrics(
                score_100k=weighted_score(final_norm.criteria_results, criteria),
                reliability_index=reliability_index(criteria),
            ),
            triage_metadata=TriageMetadata(
                difficulty_score=difficulty,
                review_trigger=trigger,
                final_decision_source=source,
                is_escalated=escalate,
                evidence_gap_score=evidence_gap,
                disagreement_score=disagreement,
                boundary_score=boundary,
                self_reflection_score=inverted_reflection,
                avg_self_reflection=avg_reflection,
            ),
            teacher_insights=self._insights(final_raw),
        )
        logger.info(
            f"Arbitration: source={source.value} trigger={trigger.value} "
            f"difficulty={difficulty:.2f} score={assessment.final_metrics.score_100k}"
        )
        return ArbitrationResult(assessment=assessment, hard_failure=hard_failure, runs=runs)

    @staticmethod
    def _formalia(raw: Dict[str, Any], student_text: str) -> Formalia:
        data = raw.get("formalia") if isinstance(raw, dict) else None
        if isinstance(data, dict):
            try:
                return Formalia.model_validate(data)
            except ValueError:
                logger.debug("Model formalia block did not validate; using fallback")
        return Formalia(status="PASS", word_count=word_count(student_text), ref_check="OK")

    @staticmethod
    def _insights(raw: Dict[str, Any]) -> TeacherInsights:
        data = raw.get("teacher_insights") if isinstance(raw, dict) else None
        if not isinstance(data, dict):
            return TeacherInsights()
        return TeacherInsights(**{
            key: [str(item) for item in data.get(key) or [] if item is not None]
            if isinstance(data.get(key), list) else []
            for key in ("common_errors", "strengths", "teaching_actions")
        })
