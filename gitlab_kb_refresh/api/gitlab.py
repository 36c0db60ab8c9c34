"""GitLab connection and refresh endpoints, scoped per tenant."""

import logging
import os
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Query
from fastapi.responses import FileResponse

from gitlab_kb_refresh.core.config import settings
from gitlab_kb_refresh.core.connections import ConnectionManager, GitLabConnectionConfig
from gitlab_kb_refresh.core.encryption import CredentialError
from gitlab_kb_refresh.core.exceptions import RefreshRunStateError
from gitlab_kb_refresh.core.refresh_runs import RefreshRun, RefreshRunManager
from gitlab_kb_refresh.pipelines.gitlab.archive import resolve_archive_path
from gitlab_kb_refresh.pipelines.gitlab.client import ValidationResult

logger = logging.getLogger(__name__)


async def verify_api_key(x_api_key: Optional[str] = Header(default=None)) -> None:
    """Require X-API-Key when an API key is configured."""
    if settings.api_key and x_api_key != settings.api_key:
        raise HTTPException(status_code=401, detail="Invalid or missing API key")


router = APIRouter(
    prefix="/tenants/{tenant_id}/gitlab", dependencies=[Depends(verify_api_key)]
)


def get_connection_manager() -> ConnectionManager:
    return ConnectionManager()


def get_run_manager() -> RefreshRunManager:
    return RefreshRunManager()


async def _get_tenant_run(tenant_id: str, run_id: str) -> RefreshRun:
    run = await get_run_manager().get_run(run_id)
    if run is None or run.tenant_id != tenant_id:
        raise HTTPException(status_code=404, detail=f"Refresh run not found: {run_id}")
    return run


# ---------------------------- connection ---------------------------- #


@router.get("/connection")
async def get_connection(tenant_id: str) -> Dict[str, Any]:
    conn = await get_connection_manager().get_connection(tenant_id)
    if conn is None:
        raise HTTPException(status_code=404, detail="GitLab connection not configured")
    return conn.to_public_dict()


@router.put("/connection")
async def save_connection(tenant_id: str, config: GitLabConnectionConfig) -> Dict[str, Any]:
    try:
        conn = await get_connection_manager().save_connection(tenant_id, config)
    except CredentialError as e:
        logger.error(f"Cannot save GitLab connection for tenant {tenant_id}: {e}")
        raise HTTPException(status_code=500, detail="Token encryption is not available")
    return conn.to_public_dict()


@router.delete("/connection")
async def delete_connection(tenant_id: str) -> Dict[str, Any]:
    deleted = await get_connection_manager().delete_connection(tenant_id)
    if not deleted:
        raise HTTPException(status_code=404, detail="GitLab connection not configured")
    return {"status": "deleted", "tenant_id": tenant_id}


@router.post("/validate", response_model=ValidationResult)
async def validate_connection(tenant_id: str, config: GitLabConnectionConfig) -> ValidationResult:
    return await ConnectionManager.validate_connection(config, settings.gitlab_timeout)


# ---------------------------- refresh ---------------------------- #


@router.post("/refresh", status_code=202)
async def trigger_refresh(tenant_id: str) -> Dict[str, Any]:
    """Queue a refresh; 409 while another refresh holds the tenant lock."""
    if await get_connection_manager().get_connection(tenant_id) is None:
        raise HTTPException(status_code=404, detail="GitLab connection not configured")
    if await get_run_manager().is_locked(tenant_id):
        raise HTTPException(status_code=409, detail="A refresh is already in progress")

    from gitlab_kb_refresh.core.docket_tasks import submit_refresh

    try:
        task_key = await submit_refresh(tenant_id)
    except Exception as e:
        logger.error(f"Failed to queue refresh for tenant {tenant_id}: {e}")
        raise HTTPException(status_code=500, detail="Failed to queue refresh")
    return {"status": "queued", "tenant_id": tenant_id, "task_key": task_key}


@router.get("/refreshes", response_model=List[RefreshRun])
async def list_refreshes(
    tenant_id: str, limit: Optional[int] = Query(default=None, ge=1, le=500)
) -> List[RefreshRun]:
    return await get_run_manager().list_runs(tenant_id, limit or settings.refresh_history_limit)


@router.get("/refreshes/{run_id}", response_model=RefreshRun)
async def get_refresh(tenant_id: str, run_id: str) -> RefreshRun:
    return await _get_tenant_run(tenant_id, run_id)


@router.delete("/refreshes/{run_id}")
async def delete_refresh(tenant_id: str, run_id: str) -> Dict[str, Any]:
    await _get_tenant_run(tenant_id, run_id)
    try:
        await get_run_manager().delete_run(run_id)
    except RefreshRunStateError as e:
        raise HTTPException(status_code=409, detail=str(e))
    return {"status": "deleted", "id": run_id}


@router.get("/refreshes/{run_id}/archive")
async def download_archive(tenant_id: str, run_id: str) -> FileResponse:
    run = await _get_tenant_run(tenant_id, run_id)
    path = resolve_archive_path(run.archive_path, settings.archive_dir)
    if path is None:
        raise HTTPException(status_code=404, detail="Archive not available")
    return FileResponse(path, media_type="application/zip", filename=os.path.basename(path))
