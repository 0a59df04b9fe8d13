"""
Tests for the submission log and its teacher exports.
"""

import csv
import io
import json

import pytest

from feedback_agent.core.exceptions import AccessDeniedError, InvalidInputError, NotFoundError
from feedback_agent.core.models import Submission, TeacherInsights, TriageMetadata
from feedback_agent.storage.document_store import SUBMISSIONS
from feedback_agent.storage.submission_log import SubmissionLog


def make_submission(agent_id, timestamp, score=85000, common_errors=("Vag slutsats",)):
    return Submission(
        agent_id=agent_id,
        verification_code="512085123",
        score=score,
        timestamp=timestamp,
        session_id="abcdef0123456789",
        stringency="standard",
        criteria_matrix=[{"id": "c1"}],
        insights=TeacherInsights(common_errors=list(common_errors), strengths=["Struktur"]),
        pass_fail="G",
        triage_metadata=TriageMetadata(
            difficulty_score=0.1,
            review_trigger="CONSENSUS",
            final_decision_source="MODELS_AB",
            is_escalated=False,
            evidence_gap_score=0.0,
            disagreement_score=0,
            boundary_score=0,
            self_reflection_score=0.1,
            avg_self_reflection=90.0,
        ),
        visible_to=["teacher-2"],
    )


@pytest.fixture
def log(store, agent_id):
    log = SubmissionLog(store)
    log.append(make_submission(agent_id, 3000, score=70000))
    log.append(make_submission(agent_id, 1000, common_errors=['Skriver "kanske"', "Saknar källor"]))
    log.append(make_submission("agent-2", 2000))
    return log


def test_append_stores_json_document(store, log):
    docs = store.list(SUBMISSIONS, where={"agent_id": "agent-2"})
    assert len(docs) == 1
    assert docs[0].data["triage_metadata"]["review_trigger"] == "CONSENSUS"


def test_list_is_ordered_and_bounded(log, agent_id):
    assert [r["timestamp"] for r in log.list_submissions(agent_id)] == [1000, 3000]
    assert [r["timestamp"] for r in log.list_submissions(agent_id, start=1500)] == [3000]
    assert [r["timestamp"] for r in log.list_submissions(agent_id, end=1000)] == [1000]


def test_csv_export_quotes_every_field(log, agent_id):
    lines = log.export_submissions(agent_id, "teacher-1", "csv").split("\n")

    assert lines[0] == "timestamp,session_id,score_100k,stringency,common_errors,strengths,teaching_actions"
    assert lines[1] == (
        '"1000","abcdef0123456789","85000","standard",'
        '"Skriver ""kanske"" | Saknar källor","Struktur",""'
    )
    assert len(lines) == 3


def test_json_export(log, agent_id):
    payload = json.loads(log.export_submissions(agent_id, "teacher-2", "JSON"))

    assert payload["agent_id"] == agent_id
    assert payload["count"] == 2
    assert payload["records"][1]["score_100k"] == 70000
    assert payload["records"][0]["common_errors"] == ['Skriver "kanske"', "Saknar källor"]
    assert "student_text" not in payload["records"][0]


def test_txt_export(log, agent_id):
    text = log.export_submissions(agent_id, "teacher-1", "txt")

    assert text.startswith(f"agent_id: {agent_id}\nrecords: 2\n")
    assert "score_100k: 70000" in text
    assert text.count("---") == 2


def test_export_authorization(log, agent_id):
    with pytest.raises(AccessDeniedError):
        log.export_submissions(agent_id, "student-9", "csv")
    with pytest.raises(NotFoundError):
        log.export_submissions("missing", "teacher-1", "csv")
    with pytest.raises(InvalidInputError):
        log.export_submissions(agent_id, "teacher-1", "xlsx")


def test_clear_is_owner_only(log, store, agent_id):
    with pytest.raises(AccessDeniedError):
        log.clear_submissions(agent_id, "teacher-2")

    assert log.clear_submissions(agent_id, "teacher-1") == 2
    assert log.list_submissions(agent_id) == []
    assert len(store.list(SUBMISSIONS)) == 1


def test_csv_export_parses_back_with_commas_and_newlines(store, agent_id):
    log = SubmissionLog(store)
    log.append(make_submission(agent_id, 5000, common_errors=["Slutsats, utan stöd", "Rad ett\nrad två"]))

    rows = list(csv.reader(io.StringIO(log.export_submissions(agent_id, "teacher-1", "csv"))))

    assert rows[0][0] == "timestamp"
    assert rows[1][:3] == ["5000", "abcdef0123456789", "85000"]
    assert rows[1][4] == "Slutsats, utan stöd | Rad ett\nrad två"
    assert len(rows) == 2
