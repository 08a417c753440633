"""
Health check and metrics endpoints for monitoring and load balancers.
"""

from fastapi import APIRouter, HTTPException
from fastapi.responses import Response
from sqlalchemy import text

from piper_tracking.core.config import settings
from piper_tracking.db.postgres import async_session_maker
from piper_tracking.monitoring.metrics import get_metrics, metrics_content_type

router = APIRouter(prefix="/health", tags=["Health"])
metrics_router = APIRouter(tags=["Monitoring"])


@router.get("")
async def health_check():
    """
    Health check for the PostgreSQL event store.

    HTTP Status Codes:
        - 200: Database reachable
        - 503: Database unreachable
    """
    health_status = {
        "status": "healthy",
        "version": settings.app_version,
        "environment": settings.environment,
        "checks": {}
    }

    # Check PostgreSQL database
    try:
        async with async_session_maker() as session:
            result = await session.execute(text("SELECT 1"))
            result.scalar()
        health_status["checks"]["postgres"] = {
            "status": "healthy",
            "host": settings.postgres_host,
            "port": settings.postgres_port,
            "database": settings.postgres_db
        }
    except Exception as e:
        health_status["checks"]["postgres"] = {
            "status": "unhealthy",
            "error": str(e)
        }
        health_status["status"] = "unhealthy"

    if health_status["status"] == "unhealthy":
        raise HTTPException(status_code=503, detail=health_status)

    return health_status


@router.get("/live")
async def liveness_check():
    """
    Kubernetes-style liveness probe.
    Returns 200 if the service is alive (no deadlock, no infinite loop).
    """
    return {"status": "alive", "version": settings.app_version}


@metrics_router.get("/metrics")
async def metrics():
    """Prometheus text exposition of the service counters."""
    return Response(content=get_metrics(), media_type=metrics_content_type())
