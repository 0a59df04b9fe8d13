"""HTTP middleware and error handling."""

from feedback_agent.middleware.error_handler import (
    init_sentry,
    domain_exception_handler,
    sentry_exception_handler,
    set_user_context,
)

__all__ = [
    'init_sentry',
    'domain_exception_handler',
    'sentry_exception_handler',
    'set_user_context',
]
