"""
Student access control: access codes and short-lived sessions.
"""

from feedback_agent.access.sessions import AccessSessionService, normalize_access_code, session_id_for

__all__ = [
    'AccessSessionService',
    'normalize_access_code',
    'session_id_for',
]
