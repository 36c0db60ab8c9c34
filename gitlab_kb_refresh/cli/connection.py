"""Connection CLI commands for managing per-tenant GitLab connections.

This module provides a Click command group `connection` with sub-commands to
set, show, list, delete, and validate a tenant's GitLab connection.
"""

from __future__ import annotations

import asyncio
import json as _json
from typing import Dict, Tuple

import click
from rich.console import Console
from rich.table import Table

from gitlab_kb_refresh.core.config import settings
from gitlab_kb_refresh.core.connections import (
    DEFAULT_FILE_EXTENSIONS,
    ConnectionManager,
    GitLabConnection,
    GitLabConnectionConfig,
    mask_url,
)
from gitlab_kb_refresh.pipelines.gitlab.client import GitLabClient, ValidationResult


@click.group()
def connection():
    """Manage tenant GitLab connections"""
    pass


# ---------------------------- helpers ---------------------------- #


def _parse_mappings(values: Tuple[str, ...]) -> Dict[str, str]:
    mappings = {}
    for value in values:
        key, sep, target = value.partition("=")
        if not sep or not key.strip() or not target.strip():
            raise click.BadParameter(f"Expected FOLDER=SEGMENT, got '{value}'")
        mappings[key.strip()] = target.strip()
    return mappings


def _public(conn: GitLabConnection) -> Dict:
    d = conn.to_public_dict()
    d["project_url"] = mask_url(conn.project_url)
    return d


def _print_validation(result: ValidationResult) -> None:
    if not result.valid:
        click.echo(f"❌ Validation failed: {result.error}")
        return
    click.echo(f"✅ Connected to project {result.project_name} (id {result.project_id})")
    click.echo(f"   Matching files: {result.file_count}")
    for path in result.sample_files:
        click.echo(f"   - {path}")


# ---------------------------- set ---------------------------- #


@connection.command("set")
@click.option("--tenant", "-t", "tenant_id", required=True, help="Tenant ID")
@click.option("--project-url", required=True, help="GitLab project URL")
@click.option(
    "--token",
    envvar="GITLAB_TOKEN",
    prompt="GitLab access token",
    hide_input=True,
    help="GitLab access token (or GITLAB_TOKEN)",
)
@click.option("--branch", default="main", show_default=True)
@click.option("--path-filter", default="/", show_default=True, help="Repository path to pull")
@click.option(
    "--extension",
    "extensions",
    multiple=True,
    help=f"File extension to include (repeatable, default {' '.join(DEFAULT_FILE_EXTENSIONS)})",
)
@click.option("--no-convert", is_flag=True, help="Keep AsciiDoc files unconverted")
@click.option("--docs-base-url", help="Public documentation site for source links")
@click.option("--product-context", help="Product context added to every document")
@click.option(
    "--product-mapping",
    "product_mappings",
    multiple=True,
    help="FOLDER=SEGMENT URL mapping override (repeatable)",
)
@click.option("--validate/--no-validate", default=True, help="Validate before saving")
def connection_set(
    tenant_id: str,
    project_url: str,
    token: str,
    branch: str,
    path_filter: str,
    extensions: Tuple[str, ...],
    no_convert: bool,
    docs_base_url: str | None,
    product_context: str | None,
    product_mappings: Tuple[str, ...],
    validate: bool,
):
    """Create or update a tenant's GitLab connection."""
    config = GitLabConnectionConfig(
        project_url=project_url,
        access_token=token,
        branch=branch,
        path_filter=path_filter,
        file_extensions=list(extensions) or list(DEFAULT_FILE_EXTENSIONS),
        convert_asciidoc=not no_convert,
        docs_base_url=docs_base_url,
        product_context=product_context,
        product_mappings=_parse_mappings(product_mappings) or None,
    )

    async def _set():
        if validate:
            result = await ConnectionManager.validate_connection(config, settings.gitlab_timeout)
            _print_validation(result)
            if not result.valid:
                raise click.ClickException("Connection not saved")

        saved = await ConnectionManager().save_connection(tenant_id, config)
        click.echo(f"✅ Saved GitLab connection for tenant {tenant_id} ({saved.updated_at})")

    asyncio.run(_set())


# ---------------------------- show ---------------------------- #


@connection.command("show")
@click.option("--tenant", "-t", "tenant_id", required=True, help="Tenant ID")
@click.option("--json", "as_json", is_flag=True, help="Output JSON")
def connection_show(tenant_id: str, as_json: bool):
    """Show a tenant's GitLab connection (without the token)."""

    async def _show():
        conn = await ConnectionManager().get_connection(tenant_id)
        if conn is None:
            if as_json:
                print(_json.dumps({"error": "Connection not found", "tenant_id": tenant_id}))
            else:
                click.echo(f"❌ No GitLab connection for tenant {tenant_id}")
            return

        d = _public(conn)
        if as_json:
            print(_json.dumps(d, indent=2))
            return

        console = Console()
        table = Table(title=f"GitLab connection for {tenant_id}")
        table.add_column("Field", no_wrap=True)
        table.add_column("Value")
        for k, v in d.items():
            table.add_row(k, str(v))
        console.print(table)

    asyncio.run(_show())


# ---------------------------- list ---------------------------- #


@connection.command("list")
def connection_list():
    """List tenants with a GitLab connection."""

    async def _list():
        items = await ConnectionManager().list_connections()
        if not items:
            click.echo("No connections found.")
            return

        console = Console()
        table = Table(title="GitLab Connections", show_lines=False)
        table.add_column("Tenant", no_wrap=True)
        table.add_column("Project (masked)")
        table.add_column("Branch", no_wrap=True)
        table.add_column("Path", no_wrap=True)
        table.add_column("Updated", no_wrap=True)
        for conn in items:
            table.add_row(
                conn.tenant_id,
                mask_url(conn.project_url),
                conn.branch,
                conn.path_filter,
                conn.updated_at,
            )
        console.print(table)

    asyncio.run(_list())


# ---------------------------- delete ---------------------------- #


@connection.command("delete")
@click.option("--tenant", "-t", "tenant_id", required=True, help="Tenant ID")
@click.option("--yes", "-y", is_flag=True, help="Do not ask for confirmation")
def connection_delete(tenant_id: str, yes: bool):
    """Delete a tenant's GitLab connection."""
    if not yes:
        click.confirm(f"Delete the GitLab connection for tenant {tenant_id}?", abort=True)

    async def _delete():
        if await ConnectionManager().delete_connection(tenant_id):
            click.echo(f"✅ Deleted GitLab connection for tenant {tenant_id}")
        else:
            click.echo(f"❌ No GitLab connection for tenant {tenant_id}")

    asyncio.run(_delete())


# ---------------------------- validate ---------------------------- #


@connection.command("validate")
@click.option("--tenant", "-t", "tenant_id", required=True, help="Tenant ID")
def connection_validate(tenant_id: str):
    """Validate a tenant's saved GitLab connection."""

    async def _validate():
        manager = ConnectionManager()
        conn = await manager.get_connection(tenant_id)
        if conn is None:
            raise click.ClickException(f"No GitLab connection for tenant {tenant_id}")

        client = GitLabClient(
            project_url=conn.project_url,
            access_token=manager.decrypt_token(conn),
            branch=conn.branch,
            timeout=settings.gitlab_timeout,
            per_page=settings.gitlab_per_page,
        )
        _print_validation(await client.validate(conn.path_filter, conn.file_extensions))

    asyncio.run(_validate())
