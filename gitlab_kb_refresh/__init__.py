"""GitLab Knowledge-Base Refresh - pulls documentation from GitLab into a tenant knowledge base."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("gitlab-kb-refresh")
except PackageNotFoundError:
    __version__ = "0.0.0-dev"  # Fallback for development without install
