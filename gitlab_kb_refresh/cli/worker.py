"""Top-level `worker` CLI command."""

from __future__ import annotations

import asyncio

import click
from docket import Worker

from gitlab_kb_refresh.core.config import settings
from gitlab_kb_refresh.core.docket_tasks import register_refresh_tasks


@click.command()
@click.option("--concurrency", "-c", default=2, help="Number of concurrent refreshes")
def worker(concurrency: int):
    """Start the background refresh worker."""

    async def _worker():
        import logging
        import sys
        from datetime import timedelta

        logger = logging.getLogger(__name__)

        # Validate Redis URL
        if not settings.redis_url or not settings.redis_url.get_secret_value():
            click.echo("❌ Redis URL not configured")
            sys.exit(1)

        redis_url = settings.redis_url.get_secret_value()
        logger.info("Starting refresh Docket worker connected to Redis")

        try:
            await register_refresh_tasks()
            click.echo("✅ Refresh tasks registered with Docket")

            click.echo("✅ Worker started, waiting for refresh tasks... Press Ctrl+C to stop")
            await Worker.run(
                docket_name=settings.task_queue_name,
                url=redis_url,
                concurrency=concurrency,
                redelivery_timeout=timedelta(seconds=settings.task_timeout),
                tasks=["gitlab_kb_refresh.core.docket_tasks:REFRESH_TASK_COLLECTION"],
            )
        except Exception as e:
            logger.error(f"❌ Worker error: {e}")
            raise

    try:
        asyncio.run(_worker())
    except KeyboardInterrupt:
        click.echo("\nRefresh worker stopped by user")
