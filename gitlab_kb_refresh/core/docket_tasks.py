"""Docket task definitions for knowledge base refreshes."""

import logging
from typing import Any, Dict

from docket import Docket, Retry

from gitlab_kb_refresh.core.config import settings
from gitlab_kb_refresh.core.progress import LoggingProgressCallback

logger = logging.getLogger(__name__)

# Refresh task registry
REFRESH_TASK_COLLECTION = []


def refresh_task(func):
    """Decorator to register refresh tasks."""
    REFRESH_TASK_COLLECTION.append(func)
    return func


async def get_redis_url() -> str:
    """Get Redis URL for Docket."""
    return settings.redis_url.get_secret_value()


def refresh_task_key(tenant_id: str) -> str:
    return f"refresh:{tenant_id}"


@refresh_task
async def refresh_knowledge_base(
    tenant_id: str,
    retry: Retry = Retry(attempts=1),
) -> Dict[str, Any]:
    """
    Refresh a tenant's knowledge base from its GitLab connection.

    Failures after the run starts are recorded on the refresh run, so the
    task is not retried.

    Args:
        tenant_id: Tenant whose knowledge base is replaced
        retry: Retry configuration

    Returns:
        Dictionary with the refresh result
    """
    from gitlab_kb_refresh.pipelines.orchestrator import RefreshOrchestrator

    logger.info(f"Running knowledge base refresh task for tenant {tenant_id}")
    try:
        orchestrator = RefreshOrchestrator.from_settings()
        result = await orchestrator.execute_refresh(
            tenant_id, progress_callback=LoggingProgressCallback(__name__)
        )
    except Exception as e:
        logger.error(f"Refresh task for tenant {tenant_id} could not start: {e}")
        raise

    return result.model_dump(mode="json")


async def register_refresh_tasks() -> None:
    """Register all refresh tasks with Docket."""
    try:
        async with Docket(url=await get_redis_url(), name=settings.task_queue_name) as docket:
            for task in REFRESH_TASK_COLLECTION:
                docket.register(task)

            logger.info(f"Registered {len(REFRESH_TASK_COLLECTION)} refresh tasks with Docket")
    except Exception as e:
        logger.error(f"Failed to register refresh tasks: {e}")
        raise


async def submit_refresh(tenant_id: str) -> str:
    """Queue a refresh for background execution.

    Returns:
        The Docket task key (one pending refresh per tenant)
    """
    key = refresh_task_key(tenant_id)
    async with Docket(url=await get_redis_url(), name=settings.task_queue_name) as docket:
        task_func = docket.add(refresh_knowledge_base, key=key)
        await task_func(tenant_id=tenant_id)

    logger.info(f"Queued knowledge base refresh for tenant {tenant_id} ({key})")
    return key
