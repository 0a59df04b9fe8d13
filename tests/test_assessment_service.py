"""
End-to-end tests for the student submission flow.
"""

import asyncio
import random
import threading

import pytest

from conftest import STUDENT_TEXT, FakeProvider, grading_json, route_to
from feedback_agent.access.sessions import AccessSessionService, session_id_for
from feedback_agent.config.constants import FEEDBACK_FALLBACK_TEXT, SENTINEL_CODE
from feedback_agent.core.exceptions import AccessDeniedError, InvalidInputError
from feedback_agent.grading import codec
from feedback_agent.grading.arbitration import ArbitrationEngine
from feedback_agent.grading.assessment_service import AssessmentService
from feedback_agent.grading.feedback import FeedbackGenerator
from feedback_agent.grading.orchestrator import GradingOrchestrator
from feedback_agent.rag.retriever import Retriever
from feedback_agent.storage.document_store import AGENTS
from feedback_agent.storage.submission_log import SubmissionLog


@pytest.fixture
def sessions(store, agent_id):
    service = AccessSessionService(store)
    service.set_access_code(agent_id, "FOTO")
    return service


@pytest.fixture
def token(sessions, agent_id):
    token = sessions.validate_access(agent_id, "foto").token
    sessions.accept_session(agent_id, token)
    return token


def make_service(store, sessions, provider):
    orchestrator = GradingOrchestrator(route_to(provider), timeout_s=2, adjudicator_timeout_s=2)
    return AssessmentService(
        store,
        sessions,
        Retriever(store, None, None),
        ArbitrationEngine(orchestrator),
        FeedbackGenerator(orchestrator),
        SubmissionLog(store),
        rng=random.Random(7),
    )


def submit(service, agent_id, token, text=STUDENT_TEXT):
    return asyncio.run(service.submit_assessment(agent_id, text, token))


def test_passing_submission_gets_code_at_or_above_prefix(store, sessions, token, agent_id):
    provider = FakeProvider(responses={
        "assessment": [grading_json()],
        "assessmentB": [grading_json()],
        "feedback": ["### Det här fungerar bra\n- Tydliga begrepp"],
    })
    service = make_service(store, sessions, provider)

    outcome = submit(service, agent_id, token)

    min_prefix = codec.derive_prefix(agent_id)
    assert store.get(AGENTS, agent_id)["verification_prefix"] == min_prefix
    decoded = codec.decode(outcome.verification_code)
    assert decoded.prefix >= min_prefix
    assert decoded.bucket == 900
    assert outcome.feedback.startswith("### Det här fungerar bra")
    assert outcome.assessment.pass_fail == "G"

    rows = service.submissions.list_submissions(agent_id)
    assert len(rows) == 1
    row = rows[0]
    assert row["verification_code"] == outcome.verification_code
    assert row["score"] == 90000
    assert row["session_id"] == session_id_for(token)
    assert row["visible_to"] == ["teacher-2"]
    assert row["criteria_matrix"][0]["id"] == "c1"
    assert STUDENT_TEXT not in str(row)


def test_failing_submission_gets_code_below_prefix(store, sessions, token, agent_id):
    store.set(AGENTS, agent_id, {"verification_prefix": 500}, merge=True)
    provider = FakeProvider(responses={
        "assessment": [grading_json(met=False, score=20)],
        "assessmentB": [grading_json(met=False, score=20)],
        "feedback": ["Feedback"],
    })

    outcome = submit(make_service(store, sessions, provider), agent_id, token)

    decoded = codec.decode(outcome.verification_code)
    assert outcome.assessment.pass_fail == "U"
    assert 200 <= decoded.prefix < 500
    assert decoded.bucket == 200
    assert store.get(AGENTS, agent_id)["verification_prefix"] == 500


def test_resolved_escalation_multiplies_code(store, sessions, token, agent_id):
    provider = FakeProvider(responses={
        "assessment": [grading_json(met=True)],
        "assessmentB": [grading_json(met=False, score=30)],
        "adjudicator": [grading_json(met=True, score=80)],
        "feedback": ["Feedback"],
    })

    outcome = submit(make_service(store, sessions, provider), agent_id, token)

    code = outcome.verification_code
    assert code.endswith("0")
    assert len(code) == 10
    assert codec.decode(int(code) // 10).bucket == 800


def test_unresolved_case_gets_sentinel(store, sessions, token, agent_id):
    provider = FakeProvider(responses={
        "assessment": [RuntimeError("down")],
        "assessmentB": ["no json"],
        "feedback": ["Feedback"],
    })
    service = make_service(store, sessions, provider)

    outcome = submit(service, agent_id, token)

    assert outcome.verification_code == SENTINEL_CODE
    row = service.submissions.list_submissions(agent_id)[0]
    assert row["verification_code"] == SENTINEL_CODE
    assert row["triage_metadata"]["final_decision_source"] == "HUMAN_REQUIRED"


def test_feedback_failure_uses_fallback_text(store, sessions, token, agent_id):
    provider = FakeProvider(responses={
        "assessment": [grading_json()],
        "assessmentB": [grading_json()],
        "feedback": [RuntimeError("quota")],
    })

    outcome = submit(make_service(store, sessions, provider), agent_id, token)

    assert outcome.feedback == FEEDBACK_FALLBACK_TEXT
    assert outcome.verification_code != SENTINEL_CODE


def test_input_is_validated_before_any_model_call(store, sessions, token, agent_id):
    provider = FakeProvider()
    service = make_service(store, sessions, provider)

    with pytest.raises(InvalidInputError):
        submit(service, agent_id, token, text="   ")
    with pytest.raises(InvalidInputError):
        submit(service, agent_id, token, text="x" * 20_001)
    with pytest.raises(InvalidInputError):
        submit(service, "", token)
    with pytest.raises(AccessDeniedError):
        submit(service, agent_id, "")
    assert provider.calls == []


def test_unaccepted_session_is_denied(store, sessions, agent_id):
    token = sessions.validate_access(agent_id, "FOTO").token
    provider = FakeProvider()

    with pytest.raises(AccessDeniedError):
        submit(make_service(store, sessions, provider), agent_id, token)
    assert provider.calls == []


def test_invalid_json_from_both_graders_gets_sentinel(store, sessions, token, agent_id):
    provider = FakeProvider(responses={
        "assessment": ["Här är min bedömning utan JSON"],
        "assessmentB": ['{"criteria_results": [{"id": "c1", "score": 95'],
        "feedback": ["Feedback"],
    })
    service = make_service(store, sessions, provider)

    outcome = submit(service, agent_id, token)

    assert outcome.verification_code == "9999" == SENTINEL_CODE
    assert outcome.assessment.triage_metadata.final_decision_source == "HUMAN_REQUIRED"
    assert len(provider.calls_for("assessment")) == 2
    assert len(provider.calls_for("assessmentB")) == 2


class LowestRandom(random.Random):
    """Always draws the lowest value of a range."""

    def randint(self, a, b):
        return a


def test_single_criterion_with_verbatim_passage(store, sessions):
    store.set(AGENTS, "agent-solo", {
        "name": "Biologi 2",
        "description": "Förklara fotosyntesen.",
        "criteria_matrix": [
            {"id": "k1", "name": "Begrepp", "description": "Förklarar fotosyntes", "indicator": "Beskriver energiomvandlingen",
             "weight": 1},
        ],
        "stringency": "standard",
        "owner_uid": "teacher-1",
        "verification_prefix": 417,
    })
    sessions.set_access_code("agent-solo", "SOLO")
    token = sessions.validate_access("agent-solo", "solo").token
    sessions.accept_session("agent-solo", token)

    passage = STUDENT_TEXT[:40]
    answer = grading_json(met=True, score=90, quote=passage, criterion_ids=("k1",))
    provider = FakeProvider(responses={"assessment": [answer], "assessmentB": [answer], "feedback": ["Bra jobbat"]})
    service = make_service(store, sessions, provider)
    service.rng = LowestRandom()

    outcome = submit(service, "agent-solo", token)
    triage = outcome.assessment.triage_metadata

    assert len(passage) == 40
    assert outcome.assessment.pass_fail == "G"
    assert outcome.assessment.criteria_results[0].evidence_valid
    assert triage.review_trigger == "CONSENSUS"
    assert triage.final_decision_source == "MODELS_AB"
    assert not triage.is_escalated
    assert triage.difficulty_score < 0.05
    assert outcome.verification_code == "417900000"
    assert int(outcome.verification_code) >= codec.get_minimum_accepted_value(417)


def test_store_access_runs_off_the_event_loop(store, sessions, token, agent_id, monkeypatch):
    threads = []
    for name in ("get", "set", "add", "list", "update", "transition"):
        def recording(*args, _original=getattr(store, name), **kwargs):
            threads.append(threading.current_thread())
            return _original(*args, **kwargs)
        monkeypatch.setattr(store, name, recording)
    provider = FakeProvider(responses={
        "assessment": [grading_json()],
        "assessmentB": [grading_json()],
        "feedback": ["Feedback"],
    })

    submit(make_service(store, sessions, provider), agent_id, token)

    assert threads
    assert threading.main_thread() not in threads
