"""CLI interface for GitLab KB Refresh."""

import importlib
import logging

import click

from gitlab_kb_refresh.core.config import settings

# Map command names to their module:attribute for lazy import
_COMMANDS = {
    "connection": "gitlab_kb_refresh.cli.connection:connection",
    "refresh": "gitlab_kb_refresh.cli.refresh:refresh",
    "worker": "gitlab_kb_refresh.cli.worker:worker",
}


class LazyGroup(click.Group):
    """
    Lazy loading of CLI commands to avoid hard dependencies at top level.

    This allows us to split up Click commands into separate files
    without having to import all dependencies at the top level.
    """

    def list_commands(self, ctx):
        # Keep stable ordering for help output
        return list(_COMMANDS.keys())

    def get_command(self, ctx, name):
        target = _COMMANDS.get(name)
        if not target:
            return None
        module_path, attr = target.split(":", 1)
        mod = importlib.import_module(module_path)
        return getattr(mod, attr)


def configure_logging() -> None:
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s %(name)s %(levelname)s %(message)s",
        datefmt="%H:%M:%S",
    )


@click.command(cls=LazyGroup)
def main():
    """GitLab knowledge base refresh CLI."""
    configure_logging()


if __name__ == "__main__":
    main()
