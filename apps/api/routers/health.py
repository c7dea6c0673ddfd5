"""
Health check endpoints.
"""

import asyncio

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy import text
import redis.asyncio as redis

from config import is_configured_key, provider_credential_name, settings
from database import engine
from services.recording_queue import RecordingQueue, get_recording_queue

router = APIRouter()


def _provider_credential_state() -> str:
    credential = provider_credential_name()
    return "configured" if is_configured_key(getattr(settings, credential, "")) else "missing"


@router.get("/health")
async def health_check():
    """
    Health check endpoint.
    Returns database, queue and provider state. A missing provider
    credential only degrades output to placeholders, so it does not mark
    the service unhealthy.
    """
    health_status = {
        "status": "healthy",
        "api": "up",
        "database": "unknown",
        "redis": "unknown",
        "provider": settings.AI_PROVIDER,
        "provider_credential": _provider_credential_state(),
    }

    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        health_status["database"] = "up"
    except Exception as e:
        health_status["database"] = f"down: {str(e)}"
        health_status["status"] = "degraded"

    try:
        r = redis.from_url(settings.REDIS_URL)
        try:
            await r.ping()
        finally:
            await r.aclose()
        health_status["redis"] = "up"
    except Exception as e:
        health_status["redis"] = f"down: {str(e)}"
        health_status["status"] = "degraded"

    return health_status


@router.get("/health/ready")
async def readiness_check(recording_queue: RecordingQueue = Depends(get_recording_queue)):
    """Kubernetes-style readiness probe: the recording queue must be reachable."""
    try:
        await asyncio.to_thread(recording_queue.ping)
    except Exception as e:
        return JSONResponse(
            status_code=503,
            content={"ready": False, "missing": ["redis"], "error": str(e)},
        )
    return {"ready": True}


@router.get("/health/live")
async def liveness_check():
    """Kubernetes-style liveness probe."""
    return {"alive": True}
