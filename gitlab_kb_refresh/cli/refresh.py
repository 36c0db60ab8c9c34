"""Refresh CLI commands: run a refresh and inspect the refresh history."""

from __future__ import annotations

import asyncio
import json as _json
import shutil

import click
from rich.console import Console
from rich.table import Table

from gitlab_kb_refresh.core.config import settings
from gitlab_kb_refresh.core.encryption import CredentialError
from gitlab_kb_refresh.core.exceptions import (
    RefreshError,
    RefreshRunNotFoundError,
    RefreshRunStateError,
)
from gitlab_kb_refresh.core.progress import CLIProgressCallback
from gitlab_kb_refresh.core.refresh_runs import RefreshRun, RefreshRunManager
from gitlab_kb_refresh.pipelines.gitlab.archive import resolve_archive_path


@click.group()
def refresh():
    """Run and inspect knowledge base refreshes"""
    pass


def _print_run(run: RefreshRun) -> None:
    console = Console()
    table = Table(title=f"Refresh {run.id}")
    table.add_column("Field", no_wrap=True)
    table.add_column("Value")
    for k, v in run.model_dump(mode="json").items():
        table.add_row(k, "-" if v is None else str(v))
    console.print(table)


@refresh.command("run")
@click.option("--tenant", "-t", "tenant_id", required=True, help="Tenant ID")
@click.option("--queue", is_flag=True, help="Queue the refresh for a background worker")
def refresh_run(tenant_id: str, queue: bool):
    """Refresh a tenant's knowledge base from GitLab."""

    async def _run():
        if queue:
            from gitlab_kb_refresh.core.docket_tasks import submit_refresh

            key = await submit_refresh(tenant_id)
            click.echo(f"✅ Refresh queued for tenant {tenant_id} ({key})")
            return

        from gitlab_kb_refresh.pipelines.orchestrator import RefreshOrchestrator

        orchestrator = RefreshOrchestrator.from_settings()
        try:
            result = await orchestrator.execute_refresh(
                tenant_id, progress_callback=CLIProgressCallback()
            )
        except (RefreshError, CredentialError) as e:
            raise click.ClickException(str(e))

        if not result.success:
            raise click.ClickException(f"Refresh {result.refresh_id} failed: {result.error_message}")

        click.echo(
            f"✅ Refresh {result.refresh_id} completed: {result.files_processed} processed, "
            f"{result.files_converted} converted, {result.files_skipped} skipped"
        )
        click.echo(f"   Archive: {result.archive_path} ({result.archive_size} bytes)")

    asyncio.run(_run())


@refresh.command("history")
@click.option("--tenant", "-t", "tenant_id", required=True, help="Tenant ID")
@click.option("--limit", default=None, type=int, help="Max runs to display")
@click.option("--json", "as_json", is_flag=True, help="Output JSON")
def refresh_history(tenant_id: str, limit: int | None, as_json: bool):
    """List a tenant's refresh runs, newest first."""

    async def _history():
        runs = await RefreshRunManager().list_runs(tenant_id, limit or settings.refresh_history_limit)
        if as_json:
            print(_json.dumps([r.model_dump(mode="json") for r in runs], indent=2))
            return
        if not runs:
            click.echo("No refreshes found.")
            return

        console = Console()
        table = Table(title=f"Refreshes for {tenant_id}", show_lines=False)
        table.add_column("ID", no_wrap=True)
        table.add_column("Status", no_wrap=True)
        table.add_column("Started", no_wrap=True)
        table.add_column("Processed", justify="right")
        table.add_column("Converted", justify="right")
        table.add_column("Skipped", justify="right")
        table.add_column("Commit", no_wrap=True)
        for r in runs:
            table.add_row(
                r.id,
                r.status.value,
                r.started_at,
                str(r.files_processed),
                str(r.files_converted),
                str(r.files_skipped),
                (r.commit_sha or "-")[:8],
            )
        console.print(table)

    asyncio.run(_history())


@refresh.command("show")
@click.argument("run_id")
@click.option("--json", "as_json", is_flag=True, help="Output JSON")
def refresh_show(run_id: str, as_json: bool):
    """Show one refresh run."""

    async def _show():
        run = await RefreshRunManager().get_run(run_id)
        if run is None:
            raise click.ClickException(f"Refresh run not found: {run_id}")
        if as_json:
            print(_json.dumps(run.model_dump(mode="json"), indent=2))
            return
        _print_run(run)

    asyncio.run(_show())


@refresh.command("delete")
@click.argument("run_id")
def refresh_delete(run_id: str):
    """Delete a refresh run from the history (the archive file is kept)."""

    async def _delete():
        try:
            await RefreshRunManager().delete_run(run_id)
        except (RefreshRunNotFoundError, RefreshRunStateError) as e:
            raise click.ClickException(str(e))
        click.echo(f"✅ Deleted refresh run {run_id}")

    asyncio.run(_delete())


@refresh.command("archive")
@click.argument("run_id")
@click.option("--output", "-o", type=click.Path(dir_okay=False), help="Copy the archive here")
def refresh_archive(run_id: str, output: str | None):
    """Locate (or copy) the archive written by a refresh run."""

    async def _archive():
        run = await RefreshRunManager().get_run(run_id)
        if run is None:
            raise click.ClickException(f"Refresh run not found: {run_id}")
        path = resolve_archive_path(run.archive_path, settings.archive_dir)
        if path is None:
            raise click.ClickException(f"Archive not available for refresh {run_id}")
        if output:
            shutil.copyfile(path, output)
            click.echo(f"✅ Copied archive to {output}")
        else:
            click.echo(path)

    asyncio.run(_archive())
