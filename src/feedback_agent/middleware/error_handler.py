"""
Error tracking and exception-to-response mapping.

Domain errors become 4xx/502 responses with their message; anything else is
captured by Sentry and answered with a generic 500.
"""

import logging

import sentry_sdk
from fastapi import Request
from fastapi.responses import JSONResponse
from loguru import logger
from sentry_sdk.integrations.fastapi import FastApiIntegration
from sentry_sdk.integrations.logging import LoggingIntegration

from feedback_agent.core.exceptions import (
    AccessError,
    FeedbackAgentError,
    InputError,
    NotFoundError,
    ProviderError,
)

SENSITIVE_HEADERS = ["authorization", "cookie", "x-api-key", "x-access-token"]
SENSITIVE_KEYS = ["password", "token", "access_token", "access_code", "api_key", "secret", "jwt_secret"]


def init_sentry(
    dsn: str,
    environment: str,
    sample_rate: float = 0.1,
    debug: bool = False
) -> None:
    """
    Initialize Sentry with FastAPI integration.

    Args:
        dsn: Sentry DSN
        environment: deployment environment name
        sample_rate: Traces sample rate outside development
        debug: Enable Sentry debug logging
    """
    if not dsn:
        logger.warning("SENTRY_DSN not configured - error tracking disabled")
        return

    traces_sample_rate = 1.0 if environment == "development" else sample_rate

    sentry_sdk.init(
        dsn=dsn,
        environment=environment,
        traces_sample_rate=traces_sample_rate,
        debug=debug,
        integrations=[
            FastApiIntegration(),
            LoggingIntegration(
                level=logging.INFO,
                event_level=logging.ERROR
            )
        ],
        before_send_transaction=lambda event, hint: (
            None if event.get("transaction", "").startswith("/health") else event
        ),
        before_send=_filter_sensitive_data
    )

    logger.info(f"Sentry initialized: environment={environment}, traces_sample_rate={traces_sample_rate}")


def _filter_sensitive_data(event, hint):
    """Strip auth headers, access tokens and secrets; student text never leaves via Sentry."""
    request = event.get("request")
    if request:
        request["headers"] = {
            k: v for k, v in (request.get("headers") or {}).items()
            if k.lower() not in SENSITIVE_HEADERS
        }
        request.pop("data", None)

    if "extra" in event:
        for key in SENSITIVE_KEYS:
            event["extra"].pop(key, None)

    return event


def status_for(exc: FeedbackAgentError) -> int:
    if isinstance(exc, InputError):
        return 400
    if isinstance(exc, AccessError):
        return 403
    if isinstance(exc, NotFoundError):
        return 404
    if isinstance(exc, ProviderError):
        return 502
    return 500


async def domain_exception_handler(request: Request, exc: FeedbackAgentError) -> JSONResponse:
    """Map a FeedbackAgentError to its HTTP status."""
    status_code = status_for(exc)
    if status_code == 500:
        return await sentry_exception_handler(request, exc)
    if status_code == 502:
        sentry_sdk.capture_exception(exc)
        logger.warning(f"{request.method} {request.url.path} provider failure: {exc}")
        return JSONResponse(status_code=502, content={"error": "Model provider unavailable."})

    logger.info(f"{request.method} {request.url.path} rejected ({status_code}): {exc.message}")
    return JSONResponse(status_code=status_code, content={"error": exc.message})


async def sentry_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Capture an unexpected exception and return a generic error."""
    sentry_sdk.capture_exception(exc)

    logger.opt(exception=exc).error(
        f"Unhandled exception on {request.method} {request.url.path}: {type(exc).__name__}"
    )

    return JSONResponse(
        status_code=500,
        content={"error": "An internal error occurred."}
    )


def set_user_context(user_id: str) -> None:
    """Associate subsequent Sentry events with a teacher uid."""
    sentry_sdk.set_user({"id": user_id})
