"""Refresh run audit log and per-tenant refresh lock.

A RefreshRun is created in ``running`` before any network call and moves
exactly once to ``completed`` or ``failed``. Runs are stored as JSON strings
and indexed per tenant in a sorted set scored by start time.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field
from ulid import ULID

from gitlab_kb_refresh.core.config import settings
from gitlab_kb_refresh.core.exceptions import RefreshRunNotFoundError, RefreshRunStateError
from gitlab_kb_refresh.core.keys import RedisKeys
from gitlab_kb_refresh.core.redis import get_redis_client

logger = logging.getLogger(__name__)

# Delete the lock only if it still holds our token
RELEASE_LOCK_SCRIPT = """
if redis.call("get", KEYS[1]) == ARGV[1] then
    return redis.call("del", KEYS[1])
else
    return 0
end
"""

# Push the expiry out only while the lock still holds our token
EXTEND_LOCK_SCRIPT = """
if redis.call("get", KEYS[1]) == ARGV[1] then
    return redis.call("pexpire", KEYS[1], ARGV[2])
else
    return 0
end
"""


class RefreshStatus(str, Enum):
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class RefreshRun(BaseModel):
    id: str = Field(default_factory=lambda: str(ULID()))
    tenant_id: str
    status: RefreshStatus = RefreshStatus.RUNNING
    started_at: str = Field(default_factory=lambda: datetime.now(timezone.utc).isoformat())
    completed_at: Optional[str] = None
    files_processed: int = 0
    files_converted: int = 0
    files_skipped: int = 0
    archive_path: Optional[str] = None
    archive_size: Optional[int] = None
    commit_sha: Optional[str] = None
    error_message: Optional[str] = None

    @property
    def is_terminal(self) -> bool:
        return self.status != RefreshStatus.RUNNING


class RefreshRunManager:
    """Persists refresh runs and guards refreshes with a per-tenant lock."""

    def __init__(self, redis_client=None, lock_ttl: Optional[int] = None):
        self._redis = redis_client or get_redis_client()
        self._lock_ttl = lock_ttl or settings.refresh_lock_ttl

    async def create_run(self, tenant_id: str) -> RefreshRun:
        run = RefreshRun(tenant_id=tenant_id)
        await self._save(run)
        score = datetime.fromisoformat(run.started_at).timestamp()
        await self._redis.zadd(RedisKeys.tenant_refresh_runs(tenant_id), {run.id: score})
        logger.info(f"Created refresh run {run.id} for tenant {tenant_id}")
        return run

    async def complete_run(
        self,
        run_id: str,
        *,
        files_processed: int,
        files_converted: int,
        files_skipped: int,
        archive_path: Optional[str] = None,
        archive_size: Optional[int] = None,
        commit_sha: Optional[str] = None,
    ) -> RefreshRun:
        run = await self._get_running(run_id)
        run.status = RefreshStatus.COMPLETED
        run.completed_at = datetime.now(timezone.utc).isoformat()
        run.files_processed = files_processed
        run.files_converted = files_converted
        run.files_skipped = files_skipped
        run.archive_path = archive_path
        run.archive_size = archive_size
        run.commit_sha = commit_sha
        await self._save(run)
        logger.info(
            f"Refresh run {run_id} completed: {files_processed} processed, "
            f"{files_converted} converted, {files_skipped} skipped"
        )
        return run

    async def fail_run(
        self,
        run_id: str,
        error_message: str,
        *,
        files_processed: int = 0,
        files_converted: int = 0,
        files_skipped: int = 0,
        archive_path: Optional[str] = None,
        archive_size: Optional[int] = None,
        commit_sha: Optional[str] = None,
    ) -> RefreshRun:
        run = await self._get_running(run_id)
        run.status = RefreshStatus.FAILED
        run.completed_at = datetime.now(timezone.utc).isoformat()
        run.error_message = error_message
        run.files_processed = files_processed
        run.files_converted = files_converted
        run.files_skipped = files_skipped
        run.archive_path = archive_path
        run.archive_size = archive_size
        run.commit_sha = commit_sha
        await self._save(run)
        logger.error(f"Refresh run {run_id} failed: {error_message}")
        return run

    async def get_run(self, run_id: str) -> Optional[RefreshRun]:
        raw = await self._redis.get(RedisKeys.refresh_run(run_id))
        if not raw:
            return None
        if isinstance(raw, bytes):
            raw = raw.decode("utf-8")
        return RefreshRun.model_validate_json(raw)

    async def list_runs(self, tenant_id: str, limit: Optional[int] = None) -> List[RefreshRun]:
        """Return the tenant's runs, newest first."""
        limit = limit or settings.refresh_history_limit
        run_ids = await self._redis.zrevrange(
            RedisKeys.tenant_refresh_runs(tenant_id), 0, limit - 1
        )
        runs = []
        for raw_id in run_ids or []:
            run_id = raw_id.decode("utf-8") if isinstance(raw_id, bytes) else raw_id
            run = await self.get_run(run_id)
            if run:
                runs.append(run)
        return runs

    async def delete_run(self, run_id: str) -> RefreshRun:
        run = await self.get_run(run_id)
        if run is None:
            raise RefreshRunNotFoundError(run_id)
        if not run.is_terminal:
            raise RefreshRunStateError(
                f"Refresh run {run_id} is still running and cannot be deleted"
            )
        await self._redis.delete(RedisKeys.refresh_run(run_id))
        await self._redis.zrem(RedisKeys.tenant_refresh_runs(run.tenant_id), run_id)
        logger.info(f"Deleted refresh run {run_id}")
        return run

    async def acquire_lock(self, tenant_id: str) -> Optional[str]:
        """Take the tenant's refresh lock.

        Returns:
            The owner token, or None if another refresh holds the lock
        """
        token = str(ULID())
        acquired = await self._redis.set(
            RedisKeys.refresh_lock(tenant_id), token, ex=self._lock_ttl, nx=True
        )
        return token if acquired else None

    async def release_lock(self, tenant_id: str, token: str) -> bool:
        released = await self._redis.eval(
            RELEASE_LOCK_SCRIPT, 1, RedisKeys.refresh_lock(tenant_id), token
        )
        if not released:
            logger.warning(f"Refresh lock for tenant {tenant_id} was not held by this run")
        return bool(released)

    async def extend_lock(self, tenant_id: str, token: str) -> bool:
        """Reset the lock expiry to the full TTL if this token still owns it."""
        extended = await self._redis.eval(
            EXTEND_LOCK_SCRIPT,
            1,
            RedisKeys.refresh_lock(tenant_id),
            token,
            self._lock_ttl * 1000,
        )
        if not extended:
            logger.warning(f"Refresh lock for tenant {tenant_id} is no longer held by this run")
        return bool(extended)

    async def is_locked(self, tenant_id: str) -> bool:
        return bool(await self._redis.exists(RedisKeys.refresh_lock(tenant_id)))

    async def _get_running(self, run_id: str) -> RefreshRun:
        run = await self.get_run(run_id)
        if run is None:
            raise RefreshRunNotFoundError(run_id)
        if run.is_terminal:
            raise RefreshRunStateError(
                f"Refresh run {run_id} is already {run.status.value} and cannot be changed"
            )
        return run

    async def _save(self, run: RefreshRun) -> None:
        await self._redis.set(RedisKeys.refresh_run(run.id), run.model_dump_json())
