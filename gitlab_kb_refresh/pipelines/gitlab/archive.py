"""Zip snapshots of converted documentation.

Every refresh writes an archive before the tenant's knowledge base is
cleared, so the archive is the recovery point for that run.

Layout:
    manifest.json   {agentId, timestamp, commitSha, fileCount, files: [{filename, originalPath}]}
    <output filename> for each converted file, in processing order
"""

import asyncio
import json
import logging
import os
import tempfile
import zipfile
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional

from pydantic import BaseModel
from ulid import ULID

from .converters import ProcessedFile

logger = logging.getLogger(__name__)

MANIFEST_NAME = "manifest.json"


class ArchiveError(Exception):
    """Raised when an archive cannot be written."""

    pass


class ArchiveResult(BaseModel):
    path: str
    size: int


def archive_timestamp(now: Optional[datetime] = None) -> str:
    """UTC timestamp safe for filenames, e.g. 2026-01-31T09-15-02."""
    now = now or datetime.now(timezone.utc)
    return now.astimezone(timezone.utc).strftime("%Y-%m-%dT%H-%M-%S")


def build_manifest(tenant_id: str, timestamp: str, commit_sha: str, files: List[ProcessedFile]) -> dict:
    return {
        "agentId": tenant_id,
        "timestamp": timestamp,
        "commitSha": commit_sha,
        "fileCount": len(files),
        "files": [{"filename": f.output_filename, "originalPath": f.original_path} for f in files],
    }


class ArchiveBuilder:
    def __init__(self, archive_dir: str):
        self.archive_dir = Path(archive_dir)

    async def build(
        self,
        tenant_id: str,
        files: List[ProcessedFile],
        commit_sha: str,
        refresh_id: Optional[str] = None,
    ) -> ArchiveResult:
        """Write the archive and return its path and size.

        The file name carries the refresh id, or a fresh ULID when none is given.

        Raises:
            ArchiveError: If the archive could not be durably written
        """
        try:
            return await asyncio.to_thread(
                self._write, tenant_id, files, commit_sha, refresh_id or str(ULID())
            )
        except ArchiveError:
            raise
        except (OSError, zipfile.BadZipFile, ValueError) as e:
            logger.error(f"Failed to write archive for tenant {tenant_id}: {e}")
            raise ArchiveError(f"Failed to create archive: {e}") from e

    def _write(
        self, tenant_id: str, files: List[ProcessedFile], commit_sha: str, refresh_id: str
    ) -> ArchiveResult:
        self.archive_dir.mkdir(parents=True, exist_ok=True)
        timestamp = archive_timestamp()
        final_path = self.archive_dir / f"agent-{tenant_id}-{timestamp}-{refresh_id}.zip"
        manifest = build_manifest(tenant_id, timestamp, commit_sha, files)

        fd, tmp_name = tempfile.mkstemp(dir=self.archive_dir, prefix=".archive-", suffix=".zip.tmp")
        try:
            with os.fdopen(fd, "wb") as raw:
                with zipfile.ZipFile(
                    raw, "w", compression=zipfile.ZIP_DEFLATED, compresslevel=9
                ) as zf:
                    zf.writestr(MANIFEST_NAME, json.dumps(manifest, indent=2))
                    for f in files:
                        zf.writestr(f.output_filename, f.content)
                raw.flush()
                os.fsync(raw.fileno())
            os.replace(tmp_name, final_path)
        except BaseException:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise

        size = final_path.stat().st_size
        logger.info(f"Wrote archive {final_path} ({size} bytes, {len(files)} files)")
        return ArchiveResult(path=str(final_path.resolve()), size=size)


def resolve_archive_path(archive_path: Optional[str], archive_dir: Optional[str] = None) -> Optional[str]:
    """Locate an archive on disk for download.

    Absolute paths are used as-is; anything else is looked up by basename
    under the archive directory. Returns None when the file does not exist.
    """
    if not archive_path:
        return None
    if os.path.isabs(archive_path) and os.path.exists(archive_path):
        return archive_path

    if archive_dir is None:
        from gitlab_kb_refresh.core.config import settings

        archive_dir = settings.archive_dir
    candidate = Path(archive_dir) / os.path.basename(archive_path)
    if candidate.exists():
        return str(candidate.resolve())
    return None
