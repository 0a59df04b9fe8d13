"""
Health check endpoint.

Provides system health status for load balancers and monitoring.
"""

from fastapi import APIRouter, HTTPException, Request
from loguru import logger

from feedback_agent import __version__
from feedback_agent.core.exceptions import StorageError

router = APIRouter()


@router.get("/health")
async def health_check(request: Request):
    """
    Health check endpoint with document store status.

    Returns:
        JSON with status, version and database connection status.
        HTTP 200 if healthy, 503 if the store is unreachable.
    """
    health_status = {
        "status": "healthy",
        "version": __version__,
        "database": "unknown",
        "vector_index": "disabled",
    }

    services = request.app.state.services
    try:
        services.store.ping()
        health_status["database"] = "connected"
    except StorageError as e:
        health_status["status"] = "unhealthy"
        health_status["database"] = f"disconnected: {e.message}"
        logger.error(f"Health check failed: {e}")
        raise HTTPException(status_code=503, detail=health_status)

    if services.index is not None:
        health_status["vector_index"] = "enabled"

    return health_status
