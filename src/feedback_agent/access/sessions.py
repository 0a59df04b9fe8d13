"""
Access sessions.

A student unlocks an agent with its access code and receives an opaque token
valid for a few hours. The token must then be accepted (consent gate) before
it can be used for grading. Only a truncated hash of the token is ever
stored with submissions.
"""

import hashlib
import re
import secrets
from datetime import datetime, timedelta
from typing import Callable

from loguru import logger

from feedback_agent.config.constants import ACCESS_TOKEN_BYTES, SESSION_ID_LENGTH
from feedback_agent.core.exceptions import (
    AccessDeniedError,
    InvalidInputError,
    NotFoundError,
    SessionExpiredError,
)
from feedback_agent.core.models import AccessSession, utc_now
from feedback_agent.storage.document_store import ACCESS_SESSIONS, AGENT_ACCESS, AGENTS, DocumentStore

_NON_ALNUM_RE = re.compile(r"[^A-Za-z0-9]")

DEFAULT_TTL_HOURS = 6.0


def normalize_access_code(value: str) -> str:
    """Codes compare case-insensitively, ignoring spaces and punctuation."""
    return _NON_ALNUM_RE.sub("", value or "").upper()


def session_id_for(token: str) -> str:
    """Non-reversible session id stored with submissions."""
    return hashlib.sha256(token.encode("utf-8")).hexdigest()[:SESSION_ID_LENGTH]


def generate_token() -> str:
    return secrets.token_urlsafe(ACCESS_TOKEN_BYTES)


class AccessSessionService:
    """Issues, accepts and checks access sessions."""

    def __init__(
        self,
        store: DocumentStore,
        ttl_hours: float = DEFAULT_TTL_HOURS,
        clock: Callable[[], datetime] = utc_now
    ):
        self.store = store
        self.ttl = timedelta(hours=ttl_hours)
        self._clock = clock

    def set_access_code(self, agent_id: str, code: str) -> None:
        """Store (or replace) the code students use to unlock an agent."""
        if not normalize_access_code(code):
            raise InvalidInputError("Access code must contain letters or digits.")
        if self.store.get(AGENTS, agent_id) is None:
            raise NotFoundError("Agent not found.")
        self.store.set(AGENT_ACCESS, agent_id, {"code": code.strip()})
        logger.info(f"Access code updated for agent {agent_id}")

    def validate_access(self, agent_id: str, access_code: str) -> AccessSession:
        """
        Exchange an access code for a new session.

        Raises:
            InvalidInputError: agent id or code missing
            NotFoundError: the agent has no access code configured
            AccessDeniedError: the code does not match
        """
        if not agent_id:
            raise InvalidInputError("Missing agentId.")
        if not access_code:
            raise InvalidInputError("Missing accessCode.")

        access = self.store.get(AGENT_ACCESS, agent_id)
        if access is None:
            raise NotFoundError("Access code not configured.")
        stored = access.get("code") if isinstance(access.get("code"), str) else ""
        if not stored or normalize_access_code(stored) != normalize_access_code(access_code):
            raise AccessDeniedError("Invalid access code.")

        now = self._clock()
        session = AccessSession(token=generate_token(), agent_id=agent_id, created_at=now, expires_at=now + self.ttl)
        self.store.set(ACCESS_SESSIONS, session.token, session.model_dump(mode="json", exclude={"token"}))
        logger.info(f"Access granted for agent {agent_id}")
        return session

    def require_session(self, agent_id: str, token: str, accepted: bool = True) -> AccessSession:
        """
        Raises:
            AccessDeniedError: unknown token, other agent, or not yet accepted
            SessionExpiredError: the session is past its expiry
        """
        if not token:
            raise AccessDeniedError("Missing access token.")
        data = self.store.get(ACCESS_SESSIONS, token)
        if data is None or data.get("agent_id") != agent_id:
            raise AccessDeniedError("Invalid or expired access token.")
        session = AccessSession.model_validate({**data, "token": token})
        if session.is_expired(self._clock()):
            raise SessionExpiredError("Invalid or expired access token.")
        if accepted and session.accepted_at is None:
            raise AccessDeniedError("Access session has not been accepted.")
        return session

    def accept_session(self, agent_id: str, token: str) -> AccessSession:
        """Mark a live session as accepted (student passed the consent gate)."""
        if not agent_id:
            raise InvalidInputError("Missing agentId.")
        if not token:
            raise InvalidInputError("Missing accessToken.")
        session = self.require_session(agent_id, token, accepted=False)
        session.accepted_at = self._clock()
        self.store.set(ACCESS_SESSIONS, token, {"accepted_at": session.accepted_at.isoformat()}, merge=True)
        logger.info(f"Access session accepted for agent {agent_id}")
        return session
