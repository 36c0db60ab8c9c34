"""Health check endpoints for the GitLab KB Refresh API."""

import logging
from datetime import datetime, timezone

from fastapi import APIRouter
from fastapi.responses import JSONResponse, PlainTextResponse

from gitlab_kb_refresh import __version__
from gitlab_kb_refresh.core.config import settings
from gitlab_kb_refresh.core.redis import ping_redis

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/", response_class=PlainTextResponse)
@router.head("/")
async def root_health_check():
    """Simple, fast health check for load balancer - no external dependencies."""
    return f"{settings.app_name} is running!"


@router.get("/health", response_model=None)
@router.head("/health")
async def detailed_health_check():
    """Health check testing Redis connectivity."""
    redis_ok = await ping_redis()
    components = {"redis_connection": "available" if redis_ok else "unavailable"}

    response_data = {
        "status": "healthy" if redis_ok else "unhealthy",
        "components": components,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "version": __version__,
        "settings": {"task_queue": settings.task_queue_name},
    }
    return JSONResponse(content=response_data, status_code=200 if redis_ok else 503)
