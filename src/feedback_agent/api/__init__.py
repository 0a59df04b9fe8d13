"""
HTTP API for the feedback agent.

Provides the FastAPI application factory and routes.
"""

from feedback_agent.api.app import create_app, app

__all__ = ['create_app', 'app']
