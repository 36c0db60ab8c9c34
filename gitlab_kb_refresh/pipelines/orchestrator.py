"""Refresh orchestrator: replaces a tenant's knowledge base from GitLab.

Phases run strictly in order, one awaited call at a time:

    pulling -> converting -> archiving -> clearing -> uploading -> done

The knowledge base is only cleared after the archive of the new content has
been written, so a failure before clearing leaves the existing knowledge
base untouched and a failure after it leaves the archive as the snapshot to
recover from.
"""

import logging
from typing import Callable, List, Optional

from pydantic import BaseModel

from gitlab_kb_refresh.core.config import settings
from gitlab_kb_refresh.core.connections import ConnectionManager, GitLabConnection, mask_url
from gitlab_kb_refresh.core.exceptions import (
    ConnectionNotConfiguredError,
    RefreshAlreadyRunningError,
    RefreshLockLostError,
)
from gitlab_kb_refresh.core.knowledge_store import KnowledgeStore, RedisKnowledgeStore
from gitlab_kb_refresh.core.progress import (
    ProgressCallback,
    RefreshPhase,
    RefreshProgress,
    safe_emit,
)
from gitlab_kb_refresh.core.redis import get_redis_client
from gitlab_kb_refresh.core.refresh_runs import RefreshRunManager, RefreshStatus

from .gitlab.archive import ArchiveBuilder, ArchiveResult
from .gitlab.client import GitLabClient, filter_by_extension
from .gitlab.converters import ProcessedFile, process_file
from .gitlab.folders import FolderResolver
from .gitlab.smart_index import SMART_INDEX_FILENAME, SMART_INDEX_PATH, generate_smart_index
from .gitlab.urls import UrlDerivationConfig

logger = logging.getLogger(__name__)

ClientFactory = Callable[[GitLabConnection, str], GitLabClient]


class RefreshResult(BaseModel):
    refresh_id: str
    status: RefreshStatus
    files_processed: int = 0
    files_converted: int = 0
    files_skipped: int = 0
    archive_path: Optional[str] = None
    archive_size: Optional[int] = None
    commit_sha: Optional[str] = None
    error_message: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.status == RefreshStatus.COMPLETED


class RefreshOrchestrator:
    """Runs a full pull/convert/archive/replace refresh for one tenant."""

    def __init__(
        self,
        connections: ConnectionManager,
        runs: RefreshRunManager,
        store: KnowledgeStore,
        archive_builder: ArchiveBuilder,
        client_factory: Optional[ClientFactory] = None,
    ):
        self.connections = connections
        self.runs = runs
        self.store = store
        self.archive_builder = archive_builder
        self.client_factory = client_factory or self._default_client

    @classmethod
    def from_settings(cls, redis_client=None) -> "RefreshOrchestrator":
        redis_client = redis_client or get_redis_client()
        return cls(
            connections=ConnectionManager(redis_client=redis_client),
            runs=RefreshRunManager(redis_client=redis_client),
            store=RedisKnowledgeStore(redis_client=redis_client),
            archive_builder=ArchiveBuilder(settings.archive_dir),
        )

    @staticmethod
    def _default_client(connection: GitLabConnection, access_token: str) -> GitLabClient:
        return GitLabClient(
            project_url=connection.project_url,
            access_token=access_token,
            branch=connection.branch,
            timeout=settings.gitlab_timeout,
            per_page=settings.gitlab_per_page,
        )

    async def execute_refresh(
        self, tenant_id: str, progress_callback: Optional[ProgressCallback] = None
    ) -> RefreshResult:
        """Refresh the tenant's knowledge base.

        Raises:
            ConnectionNotConfiguredError: No connection saved for the tenant
            EncryptionError: The stored token cannot be decrypted
            RefreshAlreadyRunningError: Another refresh holds the tenant lock

        Errors after the run record exists do not raise; they are recorded on
        the run and returned as a failed RefreshResult. Cancellation is
        recorded the same way and then propagates.
        """
        connection = await self.connections.get_connection(tenant_id)
        if connection is None:
            raise ConnectionNotConfiguredError(tenant_id)

        access_token = self.connections.decrypt_token(connection)

        lock_token = await self.runs.acquire_lock(tenant_id)
        if lock_token is None:
            raise RefreshAlreadyRunningError(tenant_id)

        try:
            run = await self.runs.create_run(tenant_id)
            logger.info(
                f"Starting refresh {run.id} for tenant {tenant_id} from "
                f"{mask_url(connection.project_url)}@{connection.branch}"
            )
            return await self._run(
                run.id, tenant_id, connection, access_token, lock_token, progress_callback
            )
        finally:
            await self.runs.release_lock(tenant_id, lock_token)

    async def _run(
        self,
        refresh_id: str,
        tenant_id: str,
        connection: GitLabConnection,
        access_token: str,
        lock_token: str,
        progress_callback: Optional[ProgressCallback],
    ) -> RefreshResult:
        def emit(phase: RefreshPhase, current: int, total: int, current_file: Optional[str] = None):
            safe_emit(
                progress_callback,
                RefreshProgress(phase=phase, current=current, total=total, current_file=current_file),
            )

        async def hold_lock():
            # Renews the TTL; a run that lost its lock must not touch the knowledge base
            if not await self.runs.extend_lock(tenant_id, lock_token):
                raise RefreshLockLostError(tenant_id)

        commit_sha: Optional[str] = None
        archive: Optional[ArchiveResult] = None
        files_converted = 0
        files_skipped = 0

        try:
            client = self.client_factory(connection, access_token)
            commit_sha = await client.get_current_commit()

            emit(RefreshPhase.PULLING, 0, 0)
            tree = await client.list_tree(connection.path_filter, recursive=True)
            to_process = filter_by_extension(tree, connection.file_extensions)
            total_files = len(to_process)
            emit(RefreshPhase.PULLING, 0, total_files)

            url_config = (
                UrlDerivationConfig(
                    docs_base_url=connection.docs_base_url,
                    product_mappings=connection.product_mappings,
                )
                if connection.docs_base_url
                else None
            )

            processed: List[ProcessedFile] = []
            for i, entry in enumerate(to_process):
                await hold_lock()
                emit(RefreshPhase.CONVERTING, i + 1, total_files, entry.path)
                try:
                    content = await client.get_file_content(entry.path)
                    result = process_file(
                        entry.path,
                        content,
                        url_config,
                        connection.product_context,
                        convert_asciidoc=connection.convert_asciidoc,
                    )
                except Exception as e:
                    logger.warning(f"Skipping {entry.path}: {e}")
                    files_skipped += 1
                    continue
                processed.append(result)
                if result.was_converted:
                    files_converted += 1

            await hold_lock()
            emit(RefreshPhase.ARCHIVING, 0, 1)
            archive = await self.archive_builder.build(tenant_id, processed, commit_sha, refresh_id)

            await hold_lock()
            emit(RefreshPhase.CLEARING, 0, 1)
            await self.store.clear_tenant(tenant_id)

            emit(RefreshPhase.UPLOADING, 0, len(processed))
            folders = FolderResolver(self.store, tenant_id)
            for i, file in enumerate(processed):
                await hold_lock()
                emit(RefreshPhase.UPLOADING, i + 1, len(processed), file.output_filename)
                folder_id = await folders.resolve_for_file(file.original_path)
                await self.store.ingest_document(
                    tenant_id,
                    file.output_filename,
                    file.mime_type,
                    len(file.content.encode("utf-8")),
                    file.content,
                    metadata={
                        "gitlab_path": file.original_path,
                        "was_converted": file.was_converted,
                        "refresh_id": refresh_id,
                    },
                    folder_id=folder_id,
                    category="knowledge",
                )

            emit(RefreshPhase.UPLOADING, len(processed), len(processed) + 1, SMART_INDEX_FILENAME)
            index_content = generate_smart_index(processed, connection.product_context)
            await self.store.ingest_document(
                tenant_id,
                SMART_INDEX_FILENAME,
                "text/markdown",
                len(index_content.encode("utf-8")),
                index_content,
                metadata={
                    "gitlab_path": SMART_INDEX_PATH,
                    "was_converted": False,
                    "refresh_id": refresh_id,
                    "is_smart_index": True,
                },
                folder_id=None,
                category="knowledge",
            )

            await hold_lock()
            files_processed = len(processed) + 1
            await self.runs.complete_run(
                refresh_id,
                files_processed=files_processed,
                files_converted=files_converted,
                files_skipped=files_skipped,
                archive_path=archive.path,
                archive_size=archive.size,
                commit_sha=commit_sha,
            )
            emit(RefreshPhase.DONE, files_processed, files_processed)
            logger.info(
                f"Refresh {refresh_id} completed for tenant {tenant_id}: "
                f"{files_processed} processed, {files_converted} converted, {files_skipped} skipped"
            )
            return RefreshResult(
                refresh_id=refresh_id,
                status=RefreshStatus.COMPLETED,
                files_processed=files_processed,
                files_converted=files_converted,
                files_skipped=files_skipped,
                archive_path=archive.path,
                archive_size=archive.size,
                commit_sha=commit_sha,
            )

        except Exception as e:
            error_message = str(e) or type(e).__name__
            logger.error(f"Refresh {refresh_id} failed for tenant {tenant_id}: {error_message}")
            await self.runs.fail_run(
                refresh_id,
                error_message,
                files_skipped=files_skipped,
                archive_path=archive.path if archive else None,
                archive_size=archive.size if archive else None,
                commit_sha=commit_sha,
            )
            safe_emit(
                progress_callback,
                RefreshProgress(phase=RefreshPhase.ERROR, current=0, total=0, message=error_message),
            )
            return RefreshResult(
                refresh_id=refresh_id,
                status=RefreshStatus.FAILED,
                files_skipped=files_skipped,
                archive_path=archive.path if archive else None,
                archive_size=archive.size if archive else None,
                commit_sha=commit_sha,
                error_message=error_message,
            )

        except BaseException as e:
            error_message = f"Refresh interrupted: {type(e).__name__}"
            logger.error(f"Refresh {refresh_id} interrupted for tenant {tenant_id}")
            await self.runs.fail_run(
                refresh_id,
                error_message,
                files_skipped=files_skipped,
                archive_path=archive.path if archive else None,
                archive_size=archive.size if archive else None,
                commit_sha=commit_sha,
            )
            raise
