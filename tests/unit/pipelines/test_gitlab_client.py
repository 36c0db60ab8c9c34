"""Tests for the GitLab REST client."""

from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest

from gitlab_kb_refresh.pipelines.gitlab.client import (
    GitLabAPIError,
    GitLabAuthError,
    GitLabClient,
    GitLabFile,
    GitLabProjectNotFoundError,
    extract_project_path,
    filter_by_extension,
    get_api_base_url,
)

PROJECT_URL = "https://gitlab.example.com/docs/catalyst-docs"
API = "https://gitlab.example.com/api/v4"
PROJECT = f"{API}/projects/docs%2Fcatalyst-docs"
TREE = f"{API}/projects/42/repository/tree"


def _response(status_code=200, json_data=None, text="", headers=None):
    response = MagicMock()
    response.status_code = status_code
    response.json.return_value = json_data
    response.text = text
    response.headers = headers or {}
    return response


def _blob(path):
    return {"id": "x", "name": path.rsplit("/", 1)[-1], "type": "blob", "path": path, "mode": "100644"}


def _mock_http(routes):
    """Patch httpx.AsyncClient; `routes(url, params)` returns the response."""
    mock_client = AsyncMock()
    mock_client.get = AsyncMock(side_effect=lambda url, params=None: routes(url, params))
    mock_client.__aenter__ = AsyncMock(return_value=mock_client)
    mock_client.__aexit__ = AsyncMock(return_value=None)
    return patch("httpx.AsyncClient", return_value=mock_client), mock_client


def _project_routes(extra):
    def routes(url, params):
        if url == PROJECT:
            return _response(json_data={"id": 42, "name": "catalyst-docs"})
        return extra(url, params)

    return routes


class TestHelpers:
    def test_extract_project_path(self):
        assert extract_project_path("https://gitlab.com/group/sub/docs.git") == "group/sub/docs"

    def test_api_base_url_drops_credentials(self):
        assert get_api_base_url("https://user:pw@gitlab.example.com:8443/g/r") == (
            "https://gitlab.example.com:8443/api/v4"
        )

    def test_filter_by_extension(self):
        files = [
            GitLabFile(path="docs", name="docs", type="tree"),
            GitLabFile(path="docs/a.adoc", name="a.adoc", type="blob"),
            GitLabFile(path="docs/b.png", name="b.png", type="blob"),
            GitLabFile(path="docs/c.md", name="c.md", type="blob"),
        ]

        assert [f.path for f in filter_by_extension(files, [".md", ".adoc"])] == [
            "docs/a.adoc",
            "docs/c.md",
        ]


class TestGitLabClient:
    @pytest.mark.asyncio
    async def test_get_current_commit_sends_token_header(self):
        def routes(url, params):
            assert url == f"{API}/projects/42/repository/branches/release%2F1.0"
            return _response(json_data={"commit": {"id": "deadbeef"}})

        patcher, _ = _mock_http(_project_routes(routes))
        with patcher as mock_client_class:
            client = GitLabClient(PROJECT_URL, "glpat-secret", branch="release/1.0")
            sha = await client.get_current_commit()

        assert sha == "deadbeef"
        assert mock_client_class.call_args.kwargs["headers"] == {"PRIVATE-TOKEN": "glpat-secret"}

    @pytest.mark.asyncio
    async def test_list_tree_follows_pagination(self):
        pages = {
            1: [_blob("docs/a.adoc"), {"id": "t", "name": "sub", "type": "tree", "path": "docs/sub"}],
            2: [_blob("docs/sub/b.md")],
        }
        seen_params = []

        def routes(url, params):
            assert url == TREE
            seen_params.append(params)
            return _response(json_data=pages[params["page"]], headers={"x-total-pages": "2"})

        patcher, _ = _mock_http(_project_routes(routes))
        with patcher:
            entries = await GitLabClient(PROJECT_URL, "t", per_page=2).list_tree("/docs")

        assert [e.path for e in entries] == ["docs/a.adoc", "docs/sub", "docs/sub/b.md"]
        assert seen_params[0]["path"] == "docs"
        assert seen_params[0]["recursive"] == "true"
        assert seen_params[0]["per_page"] == 2
        assert [p["page"] for p in seen_params] == [1, 2]

    @pytest.mark.asyncio
    async def test_list_tree_stops_on_empty_page(self):
        calls = []

        def routes(url, params):
            calls.append(params["page"])
            data = [_blob("a.md")] if params["page"] == 1 else []
            return _response(json_data=data, headers={"x-total-pages": "5"})

        patcher, _ = _mock_http(_project_routes(routes))
        with patcher:
            entries = await GitLabClient(PROJECT_URL, "t").list_tree("")

        assert len(entries) == 1
        assert calls == [1, 2]

    @pytest.mark.asyncio
    async def test_list_tree_missing_path_is_empty(self):
        patcher, _ = _mock_http(_project_routes(lambda url, params: _response(status_code=404)))
        with patcher:
            assert await GitLabClient(PROJECT_URL, "t").list_tree("nope") == []

    @pytest.mark.asyncio
    async def test_list_tree_server_error(self):
        patcher, _ = _mock_http(_project_routes(lambda url, params: _response(status_code=500)))
        with patcher:
            with pytest.raises(GitLabAPIError) as exc_info:
                await GitLabClient(PROJECT_URL, "t").list_tree("docs")

        assert exc_info.value.status_code == 500

    @pytest.mark.asyncio
    async def test_get_file_content(self):
        def routes(url, params):
            assert url == f"{API}/projects/42/repository/files/docs%2Fa.adoc/raw"
            assert params == {"ref": "main"}
            return _response(text="= Title\n")

        patcher, _ = _mock_http(_project_routes(routes))
        with patcher:
            assert await GitLabClient(PROJECT_URL, "t").get_file_content("docs/a.adoc") == "= Title\n"

    @pytest.mark.asyncio
    async def test_invalid_token(self):
        patcher, _ = _mock_http(lambda url, params: _response(status_code=401))
        with patcher:
            with pytest.raises(GitLabAuthError):
                await GitLabClient(PROJECT_URL, "bad").get_current_commit()

    @pytest.mark.asyncio
    async def test_network_error_is_wrapped(self):
        def routes(url, params):
            raise httpx.ConnectError("connection refused")

        patcher, _ = _mock_http(routes)
        with patcher:
            with pytest.raises(GitLabAPIError) as exc_info:
                await GitLabClient(PROJECT_URL, "t").resolve_project()

        assert "connection refused" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_project_id_is_cached(self):
        patcher, mock_client = _mock_http(
            _project_routes(lambda url, params: _response(text="content"))
        )
        with patcher:
            client = GitLabClient(PROJECT_URL, "t")
            await client.get_file_content("a.md")
            await client.get_file_content("b.md")

        project_calls = [c for c in mock_client.get.call_args_list if c.args[0] == PROJECT]
        assert len(project_calls) == 1


class TestValidate:
    @pytest.mark.asyncio
    async def test_validate_success(self):
        def routes(url, params):
            files = [_blob(f"docs/{i}.adoc") for i in range(7)] + [_blob("docs/x.png")]
            return _response(json_data=files)

        patcher, _ = _mock_http(_project_routes(routes))
        with patcher:
            result = await GitLabClient(PROJECT_URL, "t").validate("docs", [".adoc"])

        assert result.valid is True
        assert result.project_id == "42"
        assert result.project_name == "catalyst-docs"
        assert result.file_count == 7
        assert len(result.sample_files) == 5

    @pytest.mark.asyncio
    async def test_validate_project_not_found(self):
        patcher, _ = _mock_http(lambda url, params: _response(status_code=404))
        with patcher:
            result = await GitLabClient(PROJECT_URL, "t").validate("docs", [".md"])

        assert result.valid is False
        assert "Project not found" in result.error

    @pytest.mark.asyncio
    async def test_validate_tree_failure_still_valid(self):
        patcher, _ = _mock_http(_project_routes(lambda url, params: _response(status_code=500)))
        with patcher:
            result = await GitLabClient(PROJECT_URL, "t").validate("docs", [".md"])

        assert result.valid is True
        assert result.file_count == 0


def test_error_hierarchy():
    assert issubclass(GitLabAuthError, GitLabAPIError)
    assert issubclass(GitLabProjectNotFoundError, GitLabAPIError)
