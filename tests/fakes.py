"""In-memory implementations of the refresh pipeline's collaborators."""

from typing import Dict, List, Optional

from gitlab_kb_refresh.core.exceptions import RefreshRunStateError
from gitlab_kb_refresh.core.knowledge_store import Document, Folder, KnowledgeStore
from gitlab_kb_refresh.core.refresh_runs import RefreshRun, RefreshStatus
from gitlab_kb_refresh.pipelines.gitlab.client import GitLabAPIError, GitLabFile


class InMemoryKnowledgeStore(KnowledgeStore):
    def __init__(self):
        self.documents: Dict[str, Document] = {}
        self.contents: Dict[str, str] = {}
        self.folders: Dict[int, Folder] = {}
        self.created_folders = 0
        self.clear_calls = 0
        self.fail_ingest_after: Optional[int] = None
        self._next_folder_id = 1

    async def ingest_document(
        self,
        tenant_id,
        filename,
        mime_type,
        size,
        content,
        metadata=None,
        folder_id=None,
        category="knowledge",
    ):
        if self.fail_ingest_after is not None and len(self.documents) >= self.fail_ingest_after:
            raise ConnectionError("datastore unavailable")
        doc = Document(
            tenant_id=tenant_id,
            filename=filename,
            mime_type=mime_type,
            size=size,
            category=category,
            folder_id=folder_id,
            metadata=metadata or {},
        )
        self.contents[doc.id] = content
        self.documents[doc.id] = doc
        return doc

    async def delete_document(self, document_id):
        return self.documents.pop(document_id, None) is not None

    async def clear_tenant(self, tenant_id):
        self.clear_calls += 1
        docs = [d for d in self.documents if self.documents[d].tenant_id == tenant_id]
        folders = [f for f in self.folders if self.folders[f].tenant_id == tenant_id]
        for d in docs:
            del self.documents[d]
        for f in folders:
            del self.folders[f]
        return {"chunks": 0, "documents": len(docs), "folders": len(folders)}

    async def find_folder(self, tenant_id, parent_id, name):
        for folder in self.folders.values():
            if folder.tenant_id == tenant_id and folder.parent_id == parent_id and folder.name == name:
                return folder
        return None

    async def create_folder(self, tenant_id, parent_id, name):
        folder = Folder(id=self._next_folder_id, tenant_id=tenant_id, name=name, parent_id=parent_id)
        self._next_folder_id += 1
        self.folders[folder.id] = folder
        self.created_folders += 1
        return folder

    async def list_documents(self, tenant_id):
        return [d for d in self.documents.values() if d.tenant_id == tenant_id]

    async def list_folders(self, tenant_id):
        return [f for f in self.folders.values() if f.tenant_id == tenant_id]


class InMemoryRunManager:
    def __init__(self):
        self.runs: Dict[str, RefreshRun] = {}
        self.locks: Dict[str, str] = {}
        self.released: List[str] = []
        self.extensions = 0
        self._tokens_issued = 0

    async def create_run(self, tenant_id):
        run = RefreshRun(tenant_id=tenant_id)
        self.runs[run.id] = run
        return run

    async def _finish(self, run_id, status, **fields):
        run = self.runs[run_id]
        if run.is_terminal:
            raise RefreshRunStateError(f"Refresh run {run_id} is already {run.status.value}")
        run.status = status
        for k, v in fields.items():
            setattr(run, k, v)
        return run

    async def complete_run(self, run_id, **fields):
        return await self._finish(run_id, RefreshStatus.COMPLETED, **fields)

    async def fail_run(self, run_id, error_message, **fields):
        return await self._finish(run_id, RefreshStatus.FAILED, error_message=error_message, **fields)

    async def acquire_lock(self, tenant_id):
        if tenant_id in self.locks:
            return None
        self._tokens_issued += 1
        self.locks[tenant_id] = f"token-{self._tokens_issued}"
        return self.locks[tenant_id]

    async def extend_lock(self, tenant_id, token):
        if self.locks.get(tenant_id) != token:
            return False
        self.extensions += 1
        return True

    async def release_lock(self, tenant_id, token):
        self.released.append(tenant_id)
        if self.locks.get(tenant_id) == token:
            del self.locks[tenant_id]
            return True
        return False


class InMemoryConnections:
    def __init__(self, connection=None, token="glpat-test", decrypt_error=None):
        self.connection = connection
        self.token = token
        self.decrypt_error = decrypt_error

    async def get_connection(self, tenant_id):
        return self.connection

    def decrypt_token(self, connection):
        if self.decrypt_error:
            raise self.decrypt_error
        return self.token


class FakeGitLabClient:
    """Serves a fixed repository; paths in `broken` fail to download."""

    def __init__(self, files: Dict[str, str], broken=(), commit_sha="abc123def456"):
        self.files = files
        self.broken = set(broken)
        self.commit_sha = commit_sha
        self.fetched: List[str] = []

    async def get_current_commit(self):
        return self.commit_sha

    async def list_tree(self, path_filter="", recursive=True):
        entries = []
        for path in self.files:
            entries.append(GitLabFile(path=path, name=path.rsplit("/", 1)[-1], type="blob"))
        entries.append(GitLabFile(path="docs", name="docs", type="tree"))
        return entries

    async def get_file_content(self, path):
        self.fetched.append(path)
        if path in self.broken:
            raise GitLabAPIError(f"Failed to get file content for {path}: 500", status_code=500)
        return self.files[path]
