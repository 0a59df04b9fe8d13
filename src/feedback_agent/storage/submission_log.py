"""
Submission log: append, export and clear grading records.

Exports expose only what a teacher needs to follow up on a class (time,
pseudonymous session id, score, stringency and insights), never student text.
"""

import csv
import io
import json
from typing import Any, Dict, List, Optional

from loguru import logger

from feedback_agent.core.exceptions import AccessDeniedError, InvalidInputError, NotFoundError
from feedback_agent.core.models import Agent, Submission
from feedback_agent.storage.document_store import AGENTS, SUBMISSIONS, DocumentStore

EXPORT_FORMATS = ("csv", "json", "txt")
EXPORT_FIELDS = ["timestamp", "session_id", "score_100k", "stringency", "common_errors", "strengths", "teaching_actions"]
LIST_SEPARATOR = " | "

CONTENT_TYPES = {
    "csv": "text/csv; charset=utf-8",
    "json": "application/json; charset=utf-8",
    "txt": "text/plain; charset=utf-8",
}


def _export_record(row: Dict[str, Any]) -> Dict[str, Any]:
    insights = row.get("insights") or {}
    return {
        "timestamp": row.get("timestamp") or 0,
        "session_id": row.get("session_id") or "",
        "score_100k": row.get("score") or 0,
        "stringency": row.get("stringency") or "",
        "common_errors": list(insights.get("common_errors") or []),
        "strengths": list(insights.get("strengths") or []),
        "teaching_actions": list(insights.get("teaching_actions") or []),
    }


def _flatten(value: Any) -> Any:
    return LIST_SEPARATOR.join(str(v) for v in value) if isinstance(value, list) else value


def render_export(agent_id: str, records: List[Dict[str, Any]], fmt: str) -> str:
    """Render export records as csv, json or txt."""
    if fmt == "json":
        return json.dumps({"agent_id": agent_id, "count": len(records), "records": records},
                          indent=2, ensure_ascii=False)

    if fmt == "txt":
        lines = [f"agent_id: {agent_id}", f"records: {len(records)}", ""]
        for record in records:
            lines.extend(f"{name}: {_flatten(record[name])}" for name in EXPORT_FIELDS)
            lines.append("---")
        return "\n".join(lines)

    buffer = io.StringIO()
    csv.writer(buffer, lineterminator="\n").writerow(EXPORT_FIELDS)
    writer = csv.writer(buffer, quoting=csv.QUOTE_ALL, lineterminator="\n")
    for record in records:
        writer.writerow(["" if record[name] is None else _flatten(record[name]) for name in EXPORT_FIELDS])
    return buffer.getvalue().rstrip("\n")


class SubmissionLog:
    """Submission persistence with teacher-scoped export and clear."""

    def __init__(self, store: DocumentStore):
        self.store = store

    def append(self, submission: Submission) -> str:
        doc_id = self.store.add(SUBMISSIONS, submission.model_dump(mode="json"))
        logger.debug(f"Stored submission {doc_id} for agent {submission.agent_id}")
        return doc_id

    def _agent(self, agent_id: str) -> Agent:
        if not agent_id:
            raise InvalidInputError("Missing agentId.")
        data = self.store.get(AGENTS, agent_id)
        if data is None:
            raise NotFoundError("Agent not found.")
        return Agent.model_validate({**data, "id": agent_id})

    def list_submissions(
        self,
        agent_id: str,
        start: Optional[int] = None,
        end: Optional[int] = None
    ) -> List[Dict[str, Any]]:
        """Raw submission rows of an agent in timestamp order, optionally bounded (inclusive)."""
        docs = self.store.list(SUBMISSIONS, where={"agent_id": agent_id}, order_by="timestamp", order_type=int)
        rows = [doc.data for doc in docs]
        if start is not None:
            rows = [r for r in rows if (r.get("timestamp") or 0) >= start]
        if end is not None:
            rows = [r for r in rows if (r.get("timestamp") or 0) <= end]
        return rows

    def export_submissions(
        self,
        agent_id: str,
        requester: str,
        fmt: str = "csv",
        start: Optional[int] = None,
        end: Optional[int] = None
    ) -> str:
        """
        Export an agent's submissions for its owner or shared viewers.

        Raises:
            InvalidInputError: unknown format or missing agent id
            NotFoundError: agent does not exist
            AccessDeniedError: requester may not read this agent's log
        """
        fmt = (fmt or "csv").lower()
        if fmt not in EXPORT_FORMATS:
            raise InvalidInputError(f"Unsupported export format: {fmt}")

        agent = self._agent(agent_id)
        if requester != agent.owner_uid and requester not in agent.visible_to:
            raise AccessDeniedError("Not authorized.")

        records = [_export_record(row) for row in self.list_submissions(agent_id, start, end)]
        logger.info(f"Exported {len(records)} submissions of agent {agent_id} as {fmt}")
        return render_export(agent_id, records, fmt)

    def clear_submissions(self, agent_id: str, requester: str) -> int:
        """
        Delete every submission of an agent. Owner only.

        Returns:
            Number of deleted submissions
        """
        agent = self._agent(agent_id)
        if requester != agent.owner_uid:
            raise AccessDeniedError("Not authorized.")

        ids = [doc.id for doc in self.store.list(SUBMISSIONS, where={"agent_id": agent_id})]
        deleted = self.store.batch_delete(SUBMISSIONS, ids)
        logger.info(f"Cleared {deleted} submissions of agent {agent_id}")
        return deleted
