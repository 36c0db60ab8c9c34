"""Tests for the `refresh` CLI command group."""

import json
from unittest.mock import AsyncMock, MagicMock, patch

from click.testing import CliRunner

from gitlab_kb_refresh.cli.refresh import refresh
from gitlab_kb_refresh.core.exceptions import (
    RefreshAlreadyRunningError,
    RefreshRunNotFoundError,
    RefreshRunStateError,
)
from gitlab_kb_refresh.core.refresh_runs import RefreshRun, RefreshStatus
from gitlab_kb_refresh.pipelines.orchestrator import RefreshResult

FROM_SETTINGS = "gitlab_kb_refresh.pipelines.orchestrator.RefreshOrchestrator.from_settings"
RUN_MANAGER = "gitlab_kb_refresh.cli.refresh.RefreshRunManager"


def _orchestrator(result=None, error=None):
    orchestrator = MagicMock()
    orchestrator.execute_refresh = AsyncMock(return_value=result, side_effect=error)
    return orchestrator


def test_run_prints_summary():
    result = RefreshResult(
        refresh_id="01RUN",
        status=RefreshStatus.COMPLETED,
        files_processed=5,
        files_converted=2,
        files_skipped=1,
        archive_path="/data/archives/agent-t.zip",
        archive_size=2048,
    )
    orchestrator = _orchestrator(result)
    with patch(FROM_SETTINGS, return_value=orchestrator):
        out = CliRunner().invoke(refresh, ["run", "-t", "tenant-1"])

    assert out.exit_code == 0, out.output
    assert "Refresh 01RUN completed: 5 processed, 2 converted, 1 skipped" in out.output
    assert "/data/archives/agent-t.zip (2048 bytes)" in out.output
    assert orchestrator.execute_refresh.call_args.args == ("tenant-1",)
    assert orchestrator.execute_refresh.call_args.kwargs["progress_callback"] is not None


def test_run_failed_refresh_exits_nonzero():
    result = RefreshResult(
        refresh_id="01RUN", status=RefreshStatus.FAILED, error_message="Failed to create archive"
    )
    with patch(FROM_SETTINGS, return_value=_orchestrator(result)):
        out = CliRunner().invoke(refresh, ["run", "-t", "tenant-1"])

    assert out.exit_code == 1
    assert "Refresh 01RUN failed: Failed to create archive" in out.output


def test_run_while_locked():
    orchestrator = _orchestrator(error=RefreshAlreadyRunningError("tenant-1"))
    with patch(FROM_SETTINGS, return_value=orchestrator):
        out = CliRunner().invoke(refresh, ["run", "-t", "tenant-1"])

    assert out.exit_code == 1
    assert "already running for tenant tenant-1" in out.output


def test_run_queued():
    with (
        patch(
            "gitlab_kb_refresh.core.docket_tasks.submit_refresh",
            new=AsyncMock(return_value="refresh:tenant-1"),
        ) as mock_submit,
        patch(FROM_SETTINGS) as mock_from_settings,
    ):
        out = CliRunner().invoke(refresh, ["run", "-t", "tenant-1", "--queue"])

    assert out.exit_code == 0, out.output
    assert "Refresh queued for tenant tenant-1 (refresh:tenant-1)" in out.output
    mock_submit.assert_awaited_once_with("tenant-1")
    mock_from_settings.assert_not_called()


def test_history_json():
    runs = [
        RefreshRun(tenant_id="tenant-1", status=RefreshStatus.COMPLETED, files_processed=3),
        RefreshRun(tenant_id="tenant-1", status=RefreshStatus.FAILED, error_message="boom"),
    ]
    with patch(RUN_MANAGER) as mock_manager:
        mock_manager.return_value.list_runs = AsyncMock(return_value=runs)
        out = CliRunner().invoke(refresh, ["history", "-t", "tenant-1", "--limit", "2", "--json"])

    assert out.exit_code == 0
    data = json.loads(out.output)
    assert [r["status"] for r in data] == ["completed", "failed"]
    mock_manager.return_value.list_runs.assert_awaited_once_with("tenant-1", 2)


def test_history_table():
    run = RefreshRun(tenant_id="tenant-1", status=RefreshStatus.COMPLETED, commit_sha="abcdef123456")
    with patch(RUN_MANAGER) as mock_manager:
        mock_manager.return_value.list_runs = AsyncMock(return_value=[run])
        out = CliRunner().invoke(refresh, ["history", "-t", "tenant-1"], env={"COLUMNS": "200"})

    assert out.exit_code == 0
    assert "completed" in out.output
    assert "abcdef12" in out.output


def test_history_empty():
    with patch(RUN_MANAGER) as mock_manager:
        mock_manager.return_value.list_runs = AsyncMock(return_value=[])
        out = CliRunner().invoke(refresh, ["history", "-t", "tenant-1"], env={"COLUMNS": "200"})

    assert out.exit_code == 0
    assert "No refreshes found." in out.output


def test_show_json():
    run = RefreshRun(tenant_id="tenant-1")
    with patch(RUN_MANAGER) as mock_manager:
        mock_manager.return_value.get_run = AsyncMock(return_value=run)
        out = CliRunner().invoke(refresh, ["show", run.id, "--json"])

    assert out.exit_code == 0
    assert json.loads(out.output)["id"] == run.id


def test_show_missing():
    with patch(RUN_MANAGER) as mock_manager:
        mock_manager.return_value.get_run = AsyncMock(return_value=None)
        out = CliRunner().invoke(refresh, ["show", "nope"])

    assert out.exit_code == 1
    assert "Refresh run not found: nope" in out.output


def test_delete_running_run_is_refused():
    with patch(RUN_MANAGER) as mock_manager:
        mock_manager.return_value.delete_run = AsyncMock(
            side_effect=RefreshRunStateError("Refresh run 01RUN is still running and cannot be deleted")
        )
        out = CliRunner().invoke(refresh, ["delete", "01RUN"])

    assert out.exit_code == 1
    assert "still running" in out.output


def test_delete_missing():
    with patch(RUN_MANAGER) as mock_manager:
        mock_manager.return_value.delete_run = AsyncMock(side_effect=RefreshRunNotFoundError("nope"))
        out = CliRunner().invoke(refresh, ["delete", "nope"])

    assert out.exit_code == 1
    assert "Refresh run not found: nope" in out.output


def test_archive_copy(tmp_path):
    archive = tmp_path / "agent-tenant-1.zip"
    archive.write_bytes(b"PK")
    run = RefreshRun(
        tenant_id="tenant-1", status=RefreshStatus.COMPLETED, archive_path=str(archive)
    )
    target = tmp_path / "copy.zip"
    with patch(RUN_MANAGER) as mock_manager:
        mock_manager.return_value.get_run = AsyncMock(return_value=run)
        out = CliRunner().invoke(refresh, ["archive", run.id, "-o", str(target)])

    assert out.exit_code == 0, out.output
    assert target.read_bytes() == b"PK"


def test_archive_missing_file(tmp_path):
    run = RefreshRun(
        tenant_id="tenant-1",
        status=RefreshStatus.FAILED,
        archive_path=str(tmp_path / "gone.zip"),
    )
    with (
        patch(RUN_MANAGER) as mock_manager,
        patch("gitlab_kb_refresh.cli.refresh.settings") as mock_settings,
    ):
        mock_manager.return_value.get_run = AsyncMock(return_value=run)
        mock_settings.archive_dir = str(tmp_path / "archives")
        out = CliRunner().invoke(refresh, ["archive", run.id])

    assert out.exit_code == 1
    assert "Archive not available" in out.output
