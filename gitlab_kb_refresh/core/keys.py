"""
Redis key construction utilities.

Centralizes all Redis key construction to maintain consistency across the codebase.
"""

from typing import Optional


class RedisKeys:
    """Utility class for constructing Redis keys with consistent naming conventions."""

    # Prefixes
    PREFIX = "kb"

    # ============================================================================
    # GitLab connection keys
    # ============================================================================

    @staticmethod
    def gitlab_connection(tenant_id: str) -> str:
        """Key for a tenant's GitLab connection (JSON string)."""
        return f"kb:gitlab:connection:{tenant_id}"

    @staticmethod
    def gitlab_connections_set() -> str:
        """Key for the set of tenant IDs with a configured connection."""
        return "kb:gitlab:connections"

    # ============================================================================
    # Refresh run keys
    # ============================================================================

    @staticmethod
    def refresh_run(run_id: str) -> str:
        """Key for a refresh run record (JSON string)."""
        return f"kb:refresh:{run_id}"

    @staticmethod
    def tenant_refresh_runs(tenant_id: str) -> str:
        """Key for a tenant's refresh runs (sorted set by start timestamp)."""
        return f"kb:tenant:{tenant_id}:refreshes"

    @staticmethod
    def refresh_lock(tenant_id: str) -> str:
        """Key for the per-tenant refresh lock."""
        return f"kb:tenant:{tenant_id}:refresh_lock"

    # ============================================================================
    # Knowledge base keys
    # ============================================================================

    @staticmethod
    def document(document_id: str) -> str:
        """Key for a knowledge base document (hash)."""
        return f"kb:document:{document_id}"

    @staticmethod
    def tenant_documents(tenant_id: str) -> str:
        """Key for the set of a tenant's document IDs."""
        return f"kb:tenant:{tenant_id}:documents"

    @staticmethod
    def document_chunk(document_id: str, chunk_index: int) -> str:
        """Key for a specific document chunk (hash)."""
        return f"kb:document:{document_id}:chunk:{chunk_index}"

    @staticmethod
    def tenant_chunks(tenant_id: str) -> str:
        """Key for the set of a tenant's chunk keys."""
        return f"kb:tenant:{tenant_id}:chunks"

    # ============================================================================
    # Folder keys
    # ============================================================================

    @staticmethod
    def folder_id_counter() -> str:
        """Key for the folder ID sequence."""
        return "kb:folders:next_id"

    @staticmethod
    def folder(folder_id: int) -> str:
        """Key for a folder record (hash)."""
        return f"kb:folder:{folder_id}"

    @staticmethod
    def tenant_folders(tenant_id: str) -> str:
        """Key for the set of a tenant's folder IDs."""
        return f"kb:tenant:{tenant_id}:folders"

    @staticmethod
    def folder_children(tenant_id: str, parent_id: Optional[int]) -> str:
        """Key for the name -> folder ID index under one parent (hash).

        Folder names are unique per (tenant, parent, name); the root level uses "root".
        """
        parent = "root" if parent_id is None else str(parent_id)
        return f"kb:tenant:{tenant_id}:folder_children:{parent}"
