"""
Tests for arbitration between the two graders and the adjudicator.
"""

import asyncio

import pytest

from conftest import STUDENT_TEXT, FakeProvider, grading_json, route_to
from feedback_agent.core.models import Criterion, CriterionResult, DecisionSource, ReviewTrigger
from feedback_agent.grading.arbitration import (
    ArbitrationEngine,
    difficulty_score,
    normalize_assessment,
    normalize_score,
    weighted_score,
)
from feedback_agent.grading.orchestrator import ERROR_INVALID_JSON, ERROR_TIMEOUT, GradingOrchestrator, GradingRequest

CRITERIA = [
    Criterion(id="c1", name="Begrepp", description="Begrepp", indicator="Definierar", weight=2),
    Criterion(id="c2", name="Jämförelse", description="Jämför", indicator="Jämför", reliability_score=0.8),
]


def assess(provider: FakeProvider):
    engine = ArbitrationEngine(GradingOrchestrator(route_to(provider), timeout_s=2, adjudicator_timeout_s=2))
    request = GradingRequest.build(STUDENT_TEXT, "Förklara fotosyntesen", CRITERIA, None, "standard")
    return asyncio.run(engine.assess(request, STUDENT_TEXT))


def test_normalize_score():
    assert normalize_score(85, True) == 85.0
    assert normalize_score(0.75, True) == 75.0
    assert normalize_score(None, True) == 100.0
    assert normalize_score("high", False) == 0.0
    assert normalize_score(140, True) == 100.0
    assert normalize_score(-5, False) == 0.0


def test_weighted_score_uses_criterion_weights():
    results = [
        CriterionResult(id="c1", met=True, score=90, self_reflection_score=80),
        CriterionResult(id="c2", met=False, score=30, self_reflection_score=80),
    ]
    assert weighted_score(results, CRITERIA) == 70000


def test_difficulty_is_weighted_and_clamped():
    assert difficulty_score(0, 0, 0.0, 0.0) == 0.0
    assert difficulty_score(1, 1, 1.0, 1.0) == 1.0
    assert difficulty_score(0, 1, 0.5, 0.0) == pytest.approx(0.275)


def test_normalize_assessment_fills_missing_criteria():
    raw = {"criteria_results": [{"id": "c1", "met": True, "score": 90,
                                 "evidence_quote": "ljusenergi till kemisk energi i kloroplasterna"}]}
    normalized = normalize_assessment(raw, CRITERIA, STUDENT_TEXT)

    assert [r.id for r in normalized.criteria_results] == ["c1", "c2"]
    assert normalized.criteria_results[0].evidence_valid
    assert normalized.criteria_results[1].met is False
    assert normalized.evidence_gap_score == 0.5
    assert normalized.pass_fail == "U"


def test_optional_criteria_do_not_block_pass():
    criteria = [CRITERIA[0], Criterion(id="c2", name="x", description="x", indicator="x", is_mandatory=False)]
    raw = {"criteria_results": [{"id": "c1", "met": True, "score": 90}, {"id": "c2", "met": False, "score": 10}]}
    assert normalize_assessment(raw, criteria, STUDENT_TEXT).pass_fail == "G"


def test_consensus_uses_model_a():
    provider = FakeProvider(responses={"assessment": [grading_json()], "assessmentB": [grading_json(score=80)]})

    result = assess(provider)
    triage = result.assessment.triage_metadata

    assert not result.hard_failure
    assert triage.review_trigger == ReviewTrigger.CONSENSUS
    assert triage.final_decision_source == DecisionSource.MODELS_AB
    assert triage.is_escalated is False
    assert triage.difficulty_score == pytest.approx(0.015)
    assert result.score == 90000
    assert result.assessment.pass_fail == "G"
    assert result.assessment.final_metrics.reliability_index == pytest.approx(0.7)
    assert result.assessment.teacher_insights.strengths == ["Tydlig begreppsanvändning"]
    assert provider.calls_for("adjudicator") == []


def test_disagreement_goes_to_adjudicator():
    provider = FakeProvider(responses={
        "assessment": [grading_json(met=True)],
        "assessmentB": [grading_json(met=False, score=20)],
        "adjudicator": [grading_json(met=True, score=80)],
    })

    result = assess(provider)
    triage = result.assessment.triage_metadata

    assert triage.review_trigger == ReviewTrigger.DISAGREEMENT
    assert triage.final_decision_source == DecisionSource.ADJUDICATOR
    assert triage.disagreement_score == 1
    assert triage.is_escalated
    assert result.score == 80000
    assert len(result.runs) == 3


def test_failed_adjudicator_requires_human():
    provider = FakeProvider(responses={
        "assessment": [grading_json(met=True)],
        "assessmentB": [grading_json(met=False, score=20)],
        "adjudicator": ["not json at all"],
    })

    result = assess(provider)

    assert result.needs_human
    assert result.assessment.triage_metadata.review_trigger == ReviewTrigger.DISAGREEMENT
    assert not result.hard_failure


def test_single_survivor_falls_back_to_adjudicator():
    provider = FakeProvider(responses={
        "assessment": [grading_json()],
        "assessmentB": [RuntimeError("quota exceeded")],
        "adjudicator": [grading_json(score=75)],
    })

    result = assess(provider)
    triage = result.assessment.triage_metadata

    assert triage.review_trigger == ReviewTrigger.TIMEOUT_FALLBACK
    assert triage.final_decision_source == DecisionSource.ADJUDICATOR
    assert triage.difficulty_score == 1.0
    assert result.score == 75000
    adjudicator_parts = provider.calls_for("adjudicator")[0]["parts"]
    assert adjudicator_parts[3] == "MODEL_B_ASSESSMENT:\nnull"


def test_single_survivor_without_adjudicator_requires_human():
    provider = FakeProvider(responses={
        "assessment": [RuntimeError("down")],
        "assessmentB": [grading_json(score=60, met=False)],
        "adjudicator": [RuntimeError("down")],
    })

    result = assess(provider)

    assert result.needs_human
    assert result.score == 60000
    assert not result.hard_failure


def test_both_graders_failing_is_a_hard_failure():
    provider = FakeProvider(responses={"assessment": ["{broken"], "assessmentB": [RuntimeError("down")]})

    result = assess(provider)
    assessment = result.assessment

    assert result.hard_failure
    assert result.needs_human
    assert result.score == 0
    assert assessment.pass_fail == "U"
    assert all(not r.met for r in assessment.criteria_results)
    assert assessment.formalia.word_count == len(STUDENT_TEXT.split())
    assert provider.calls_for("adjudicator") == []


def test_both_graders_returning_invalid_json_is_a_hard_failure():
    provider = FakeProvider(responses={"assessment": ["inte json"], "assessmentB": ["{\"criteria_results\": ["]})

    result = assess(provider)
    triage = result.assessment.triage_metadata

    assert result.hard_failure
    assert triage.final_decision_source == DecisionSource.HUMAN_REQUIRED
    assert [run.error_kind for run in result.runs] == [ERROR_INVALID_JSON, ERROR_INVALID_JSON]
    assert len(provider.calls_for("assessment")) == 2
    assert len(provider.calls_for("assessmentB")) == 2
    assert provider.calls_for("adjudicator") == []


def test_late_grader_answer_is_discarded():
    provider = FakeProvider(
        responses={
            "assessment": [grading_json()],
            "assessmentB": [grading_json(met=False, score=10)],
            "adjudicator": [grading_json(score=75)],
        },
        delays={"assessmentB": 0.5},
    )
    engine = ArbitrationEngine(GradingOrchestrator(route_to(provider), timeout_s=0.2, adjudicator_timeout_s=2))
    request = GradingRequest.build(STUDENT_TEXT, "Förklara fotosyntesen", CRITERIA, None, "standard")

    result = asyncio.run(engine.assess(request, STUDENT_TEXT))
    triage = result.assessment.triage_metadata

    run_b = result.runs[1]
    assert run_b.error_kind == ERROR_TIMEOUT
    assert run_b.parsed is None
    assert triage.review_trigger == ReviewTrigger.TIMEOUT_FALLBACK
    assert result.score == 75000
    assert result.assessment.pass_fail == "G"
    assert provider.calls_for("adjudicator")[0]["parts"][3] == "MODEL_B_ASSESSMENT:\nnull"
