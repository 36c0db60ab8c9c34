"""Main FastAPI application for GitLab KB Refresh."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from gitlab_kb_refresh import __version__
from gitlab_kb_refresh.api.gitlab import router as gitlab_router
from gitlab_kb_refresh.api.health import router as health_router
from gitlab_kb_refresh.core.config import settings
from gitlab_kb_refresh.core.connections import mask_url

# Configure logging with consistent format
LOG_FORMAT = "%(asctime)s %(name)s %(levelname)s %(message)s"
LOG_DATE_FORMAT = "%H:%M:%S"

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format=LOG_FORMAT,
    datefmt=LOG_DATE_FORMAT,
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """FastAPI lifespan context manager for startup and shutdown."""
    logger.info(f"Starting up {settings.app_name}...")

    try:
        from gitlab_kb_refresh.core.docket_tasks import register_refresh_tasks

        await register_refresh_tasks()
        logger.info("✅ Refresh tasks registered with Docket")
    except Exception as e:
        # Let the app start for health checks
        logger.warning(f"Failed to register refresh tasks: {e}")

    logger.info(f"Redis URL: {mask_url(settings.redis_url.get_secret_value())}")
    logger.info(f"Archive directory: {settings.archive_dir}")
    if settings.token_encryption_key is None:
        logger.warning("TOKEN_ENCRYPTION_KEY is not set; saving connections and refreshes will fail")

    yield

    logger.info("Shutting down FastAPI application...")


app = FastAPI(
    title=settings.app_name,
    description="Refreshes tenant knowledge bases from GitLab documentation repositories",
    version=__version__,
    lifespan=lifespan,
    debug=settings.debug,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_hosts,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(health_router, prefix="/api/v1", tags=["Health"])
app.include_router(gitlab_router, prefix="/api/v1", tags=["GitLab"])


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "gitlab_kb_refresh.api.app:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        log_level=settings.log_level.lower(),
    )
