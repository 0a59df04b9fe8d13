"""
FastAPI application for the feedback agent.

Student routes are gated by access sessions; teacher routes by a bearer JWT
whose subject must own (or, for read-only routes, be shared on) the agent.
"""

import asyncio
import time
from typing import Optional

from fastapi import BackgroundTasks, Depends, FastAPI, File, Query, Request, UploadFile, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

# Rate limiting
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address

from asgi_correlation_id import CorrelationIdMiddleware
from loguru import logger

from feedback_agent import __version__
from feedback_agent.api.auth import get_teacher_uid
from feedback_agent.api.health import router as health_router
from feedback_agent.api.schemas import (
    AcceptAccessRequest,
    AccessCodeRequest,
    AnalyzeCriterionRequest,
    AssessmentRequest,
    AssessmentResponse,
    ClearLogsRequest,
    CodeValueResponse,
    DeletedResponse,
    ExportRequest,
    ImproveCriterionRequest,
    ImproveCriterionResponse,
    MaterialResponse,
    ReprocessRequest,
    ValidateAccessRequest,
    ValidateAccessResponse,
)
from feedback_agent.config.logging_config import setup_structured_logging
from feedback_agent.config.settings import get_settings
from feedback_agent.container import Services, get_services
from feedback_agent.core.exceptions import AccessDeniedError, FeedbackAgentError, InvalidInputError, NotFoundError
from feedback_agent.core.models import Agent
from feedback_agent.grading.codec import get_maximum_accepted_value, get_minimum_accepted_value
from feedback_agent.grading.criterion_designer import CriterionAnalysis
from feedback_agent.middleware.error_handler import (
    domain_exception_handler,
    init_sentry,
    sentry_exception_handler,
)
from feedback_agent.storage.document_store import AGENTS
from feedback_agent.storage.submission_log import CONTENT_TYPES


def get_client_key(request: Request) -> str:
    """Rate limit per teacher when authenticated, otherwise per IP."""
    if hasattr(request.state, 'user_id'):
        return f"user:{request.state.user_id}"
    return f"ip:{get_remote_address(request)}"


limiter = Limiter(key_func=get_client_key)

# Maximum file size for material uploads (50 MB)
MAX_UPLOAD_SIZE = 50 * 1024 * 1024

ASSESSMENT_RATE_LIMIT = "20/minute"
ACCESS_RATE_LIMIT = "30/minute"


# ============================================================================
# Middleware
# ============================================================================

class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Add security headers to all responses."""

    async def dispatch(self, request: Request, call_next):
        response: Response = await call_next(request)
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        if request.url.scheme == "https":
            response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"
        return response


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Log every request with its correlation id, status and latency."""

    async def dispatch(self, request: Request, call_next):
        correlation_id = request.headers.get("X-Request-ID", "unknown")
        start_time = time.time()

        with logger.contextualize(correlation_id=correlation_id):
            response = await call_next(request)
            latency_ms = (time.time() - start_time) * 1000
            logger.info(
                f"{request.method} {request.url.path} -> {response.status_code} ({latency_ms:.1f} ms)"
            )
            return response


# ============================================================================
# Helpers
# ============================================================================

def get_app_services(request: Request) -> Services:
    return request.app.state.services


def load_agent_for(services: Services, agent_id: str, uid: str, allow_viewers: bool = False) -> Agent:
    """
    Load an agent on behalf of a teacher.

    Raises:
        NotFoundError: unknown agent
        AccessDeniedError: the teacher is neither the owner nor (when allowed) a viewer
    """
    data = services.store.get(AGENTS, agent_id)
    if data is None:
        raise NotFoundError("Agent not found.")
    agent = Agent.model_validate({**data, "id": agent_id})
    if agent.owner_uid == uid or (allow_viewers and uid in agent.visible_to):
        return agent
    raise AccessDeniedError("Not authorized.")


# ============================================================================
# Application Factory
# ============================================================================

def create_app(services: Optional[Services] = None) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        services: Pre-built services; built from settings on startup when omitted

    Returns:
        FastAPI application instance
    """
    settings = get_settings()

    app = FastAPI(
        title="Feedback Agent",
        description="Evidence-grounded dual-model assessment of student texts",
        version=__version__
    )
    app.state.services = services
    app.state.limiter = limiter

    @app.exception_handler(RateLimitExceeded)
    async def rate_limit_handler(request: Request, exc: RateLimitExceeded):
        return JSONResponse(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            content={"error": "Too many requests. Try again later."},
            headers={"Retry-After": str(getattr(exc, "retry_after", 60))}
        )

    app.add_exception_handler(FeedbackAgentError, domain_exception_handler)
    app.add_exception_handler(Exception, sentry_exception_handler)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization", "X-Request-ID"],
    )
    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(CorrelationIdMiddleware, validator=lambda x: True)

    @app.on_event("startup")
    async def startup_event():
        current = get_settings()
        setup_structured_logging(level=current.log_level, log_file=current.log_file)
        init_sentry(
            dsn=current.sentry_dsn,
            environment=current.environment,
            debug=(current.environment == "development")
        )
        if app.state.services is None:
            app.state.services = get_services()
        logger.info(f"Feedback agent API started ({current.environment})")

    app.include_router(health_router, tags=["health"])

    # ============================================================================
    # Student Endpoints
    # ============================================================================

    @app.post("/access/validate", response_model=ValidateAccessResponse)
    @limiter.limit(ACCESS_RATE_LIMIT)
    def validate_access(
        request: Request,
        body: ValidateAccessRequest,
        services: Services = Depends(get_app_services)
    ):
        """Exchange an agent's access code for a session token."""
        session = services.sessions.validate_access(body.agent_id, body.access_code)
        return ValidateAccessResponse(access_token=session.token, expires_at=session.expires_at.isoformat())

    @app.post("/access/accept")
    def accept_access(body: AcceptAccessRequest, services: Services = Depends(get_app_services)):
        """Record that the student accepted the terms for this session."""
        services.sessions.accept_session(body.agent_id, body.access_token)
        return {"accepted": True}

    @app.post("/assessment", response_model=AssessmentResponse)
    @limiter.limit(ASSESSMENT_RATE_LIMIT)
    async def submit_assessment(
        request: Request,
        body: AssessmentRequest,
        services: Services = Depends(get_app_services)
    ):
        """Grade a student text against the agent's rubric."""
        outcome = await services.assessments.submit_assessment(body.agent_id, body.student_text, body.access_token)
        return AssessmentResponse(**outcome.model_dump())

    # ============================================================================
    # Criterion Design Endpoints
    # ============================================================================

    @app.post("/criterion/improve", response_model=ImproveCriterionResponse)
    async def improve_criterion(
        body: ImproveCriterionRequest,
        uid: str = Depends(get_teacher_uid),
        services: Services = Depends(get_app_services)
    ):
        await asyncio.to_thread(load_agent_for, services, body.agent_id, uid, True)
        text = await services.designer.improve_criterion(body.agent_id, body.sketch, body.task_description)
        return ImproveCriterionResponse(text=text)

    @app.post("/criterion/analyze", response_model=CriterionAnalysis)
    async def analyze_criterion(
        body: AnalyzeCriterionRequest,
        uid: str = Depends(get_teacher_uid),
        services: Services = Depends(get_app_services)
    ):
        await asyncio.to_thread(load_agent_for, services, body.agent_id, uid, True)
        return await services.designer.analyze_criterion(
            body.agent_id,
            name=body.name,
            description=body.description,
            indicator=body.indicator,
            bloom_level=body.bloom_level,
            bloom_index=body.bloom_index,
            weight=body.weight,
            task_description=body.task_description,
        )

    # ============================================================================
    # Teacher Material Endpoints
    # ============================================================================

    @app.post("/teacher/agents/{agent_id}/materials", response_model=MaterialResponse,
              status_code=status.HTTP_202_ACCEPTED)
    async def upload_material(
        agent_id: str,
        background_tasks: BackgroundTasks,
        file: UploadFile = File(...),
        uid: str = Depends(get_teacher_uid),
        services: Services = Depends(get_app_services)
    ):
        """Store an uploaded document and queue it for ingestion."""
        await asyncio.to_thread(load_agent_for, services, agent_id, uid)
        data = await file.read()
        if not data:
            raise InvalidInputError("Uploaded file is empty.")
        if len(data) > MAX_UPLOAD_SIZE:
            raise InvalidInputError(
                "Uploaded file is too large.",
                {"max_bytes": MAX_UPLOAD_SIZE, "received_bytes": len(data)}
            )

        material = await asyncio.to_thread(
            services.lifecycle.register_material,
            agent_id,
            file.filename or "upload",
            file.content_type or "application/octet-stream",
            data,
        )
        background_tasks.add_task(services.lifecycle.ingest_material, agent_id, material.id)
        return MaterialResponse(
            id=material.id,
            agent_id=agent_id,
            file_name=material.file_name,
            mime_type=material.mime_type,
            status=material.status.value,
        )

    @app.post("/teacher/agents/{agent_id}/materials/{material_id}/reprocess")
    def reprocess_material(
        agent_id: str,
        material_id: str,
        background_tasks: BackgroundTasks,
        body: Optional[ReprocessRequest] = None,
        uid: str = Depends(get_teacher_uid),
        services: Services = Depends(get_app_services)
    ):
        """Re-queue a material, trimming it to the token budget by default."""
        load_agent_for(services, agent_id, uid)
        force_trim = body.force_trim if body is not None else True
        previous = services.lifecycle.request_reprocess(agent_id, material_id, force_trim=force_trim)
        background_tasks.add_task(services.lifecycle.ingest_material, agent_id, material_id, previous)
        return {"queued": True, "previous_status": previous}

    @app.delete("/teacher/agents/{agent_id}/materials/{material_id}", response_model=DeletedResponse)
    def delete_material(
        agent_id: str,
        material_id: str,
        uid: str = Depends(get_teacher_uid),
        services: Services = Depends(get_app_services)
    ):
        load_agent_for(services, agent_id, uid)
        return DeletedResponse(deleted=services.lifecycle.remove_material(agent_id, material_id))

    @app.delete("/teacher/agents/{agent_id}")
    def delete_agent(
        agent_id: str,
        uid: str = Depends(get_teacher_uid),
        services: Services = Depends(get_app_services)
    ):
        """Delete an agent with its materials, chunks, vectors and access code."""
        load_agent_for(services, agent_id, uid)
        services.lifecycle.remove_agent(agent_id)
        return {"deleted": True}

    @app.put("/teacher/agents/{agent_id}/access-code")
    def set_access_code(
        agent_id: str,
        body: AccessCodeRequest,
        uid: str = Depends(get_teacher_uid),
        services: Services = Depends(get_app_services)
    ):
        load_agent_for(services, agent_id, uid)
        services.sessions.set_access_code(agent_id, body.code)
        return {"updated": True}

    # ============================================================================
    # Teacher Log Endpoints
    # ============================================================================

    @app.post("/teacher/logs/export")
    def export_logs(
        body: ExportRequest,
        uid: str = Depends(get_teacher_uid),
        services: Services = Depends(get_app_services)
    ):
        """Download an agent's submission log as csv, json or txt."""
        content = services.submissions.export_submissions(body.agent_id, uid, body.format, body.start, body.end)
        return Response(
            content=content,
            media_type=CONTENT_TYPES[body.format],
            headers={"Content-Disposition": f"attachment; filename=submissions-{body.agent_id}.{body.format}"}
        )

    @app.post("/teacher/logs/clear", response_model=DeletedResponse)
    def clear_logs(
        body: ClearLogsRequest,
        uid: str = Depends(get_teacher_uid),
        services: Services = Depends(get_app_services)
    ):
        return DeletedResponse(deleted=services.submissions.clear_submissions(body.agent_id, uid))

    # ============================================================================
    # Verification Code Range Endpoints
    # ============================================================================

    @app.get("/codes/minimum", response_model=CodeValueResponse)
    async def minimum_accepted_value(prefix: int = Query(...)):
        return CodeValueResponse(value=get_minimum_accepted_value(prefix))

    @app.get("/codes/maximum", response_model=CodeValueResponse)
    async def maximum_accepted_value():
        return CodeValueResponse(value=get_maximum_accepted_value())

    return app


# Create app instance; services are built on startup
app = create_app()
