"""GitLab REST API (v4) client for fetching repository documentation."""

import logging
from typing import Any, Dict, List, Optional
from urllib.parse import quote, urlparse

import httpx
from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)


class GitLabAPIError(Exception):
    """Raised when the GitLab API returns an error or cannot be reached."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class GitLabAuthError(GitLabAPIError):
    """Raised on 401: the access token is invalid or expired."""

    pass


class GitLabProjectNotFoundError(GitLabAPIError):
    """Raised on 404 for the project: wrong URL or no access."""

    pass


class GitLabFile(BaseModel):
    """Repository tree entry."""

    path: str
    name: str
    type: str = Field(..., description="'blob' for files, 'tree' for directories")
    id: Optional[str] = None
    mode: Optional[str] = None


class ValidationResult(BaseModel):
    valid: bool
    project_id: Optional[str] = None
    project_name: Optional[str] = None
    error: Optional[str] = None
    file_count: Optional[int] = None
    sample_files: List[str] = Field(default_factory=list)


def extract_project_path(project_url: str) -> str:
    """e.g. https://gitlab.com/group/docs.git -> group/docs"""
    path = urlparse(project_url).path.lstrip("/")
    if path.endswith(".git"):
        path = path[: -len(".git")]
    return path


def get_api_base_url(project_url: str) -> str:
    """e.g. https://gitlab.com/group/docs -> https://gitlab.com/api/v4"""
    parsed = urlparse(project_url)
    return f"{parsed.scheme}://{parsed.netloc.rsplit('@', 1)[-1]}/api/v4"


def filter_by_extension(files: List[GitLabFile], extensions: List[str]) -> List[GitLabFile]:
    """Keep blobs whose name ends with one of the extensions, in listing order."""
    suffixes = tuple(extensions or [])
    return [f for f in files if f.type == "blob" and f.name.endswith(suffixes)]


class GitLabClient:
    """Read-only access to one GitLab project at one branch.

    Example:
        client = GitLabClient("https://gitlab.com/group/docs", token, branch="main")
        sha = await client.get_current_commit()
        files = await client.list_tree("docs")
        text = await client.get_file_content(files[0].path)
    """

    def __init__(
        self,
        project_url: str,
        access_token: str,
        branch: str = "main",
        timeout: float = 30.0,
        per_page: int = 100,
    ):
        self.api_base_url = get_api_base_url(project_url)
        self.project_path = extract_project_path(project_url)
        self.branch = branch or "main"
        self.timeout = timeout
        self.per_page = per_page
        self._access_token = access_token
        self._project_id: Optional[str] = None

    def _headers(self) -> Dict[str, str]:
        return {"PRIVATE-TOKEN": self._access_token}

    async def _request(self, path: str, params: Optional[Dict[str, Any]] = None) -> httpx.Response:
        url = self.api_base_url + path
        try:
            async with httpx.AsyncClient(timeout=self.timeout, headers=self._headers()) as client:
                return await client.get(url, params=params)
        except httpx.HTTPError as e:
            logger.error(f"GitLab request failed: GET {path}: {type(e).__name__}")
            raise GitLabAPIError(f"Failed to reach GitLab: {e}") from e

    async def _get_project(self) -> Dict[str, Any]:
        response = await self._request(f"/projects/{quote(self.project_path, safe='')}")
        if response.status_code == 401:
            raise GitLabAuthError(
                "Invalid access token. Please check your Personal Access Token.", status_code=401
            )
        if response.status_code == 404:
            raise GitLabProjectNotFoundError(
                "Project not found. Verify the URL and that your token has access.",
                status_code=404,
            )
        if response.status_code >= 400:
            raise GitLabAPIError(
                f"GitLab API error: {response.status_code}", status_code=response.status_code
            )
        project = response.json()
        self._project_id = str(project["id"])
        return project

    async def resolve_project(self) -> str:
        """Numeric project id (as a string), cached for the client's lifetime."""
        if self._project_id is None:
            await self._get_project()
        return self._project_id

    async def get_current_commit(self) -> str:
        """SHA of the configured branch head."""
        project_id = await self.resolve_project()
        response = await self._request(
            f"/projects/{project_id}/repository/branches/{quote(self.branch, safe='')}"
        )
        if response.status_code >= 400:
            raise GitLabAPIError(
                f"Failed to get branch info: {response.status_code}",
                status_code=response.status_code,
            )
        return response.json()["commit"]["id"]

    async def list_tree(self, path_filter: str = "", recursive: bool = True) -> List[GitLabFile]:
        """List repository entries under a path, following pagination.

        A missing path (404) yields an empty list.
        """
        project_id = await self.resolve_project()
        path = (path_filter or "").lstrip("/")
        entries: List[GitLabFile] = []
        page = 1

        while True:
            params: Dict[str, Any] = {
                "ref": self.branch,
                "recursive": "true" if recursive else "false",
                "per_page": self.per_page,
                "page": page,
            }
            if path:
                params["path"] = path

            response = await self._request(f"/projects/{project_id}/repository/tree", params=params)
            if response.status_code == 404:
                logger.info(f"Path '{path}' not found in {self.project_path}@{self.branch}")
                return []
            if response.status_code >= 400:
                raise GitLabAPIError(
                    f"Failed to get file tree: {response.status_code}",
                    status_code=response.status_code,
                )

            batch = response.json()
            if not batch:
                break
            entries.extend(GitLabFile.model_validate(item) for item in batch)

            total_pages = int(response.headers.get("x-total-pages") or 1)
            if page >= total_pages:
                break
            page += 1

        return entries

    async def get_file_content(self, path: str) -> str:
        """Raw text of a file at the configured branch."""
        project_id = await self.resolve_project()
        response = await self._request(
            f"/projects/{project_id}/repository/files/{quote(path, safe='')}/raw",
            params={"ref": self.branch},
        )
        if response.status_code >= 400:
            raise GitLabAPIError(
                f"Failed to get file content for {path}: {response.status_code}",
                status_code=response.status_code,
            )
        return response.text

    async def validate(self, path_filter: str = "", extensions: Optional[List[str]] = None) -> ValidationResult:
        """Check project access and count matching files.

        Errors are reported in the result rather than raised.
        """
        try:
            project = await self._get_project()
        except GitLabAPIError as e:
            return ValidationResult(valid=False, error=str(e))
        except Exception as e:
            logger.warning(f"GitLab validation failed for {self.project_path}: {e}")
            return ValidationResult(valid=False, error=str(e) or "Unknown error connecting to GitLab")

        result = ValidationResult(
            valid=True, project_id=str(project["id"]), project_name=project.get("name")
        )
        try:
            files = filter_by_extension(await self.list_tree(path_filter, True), extensions or [])
        except Exception as e:
            logger.warning(f"Could not list files for {self.project_path}: {e}")
            result.file_count = 0
            return result

        result.file_count = len(files)
        result.sample_files = [f.path for f in files[:5]]
        return result
