"""Knowledge base folder hierarchy derived from repository paths."""

import logging
from typing import Dict, Optional

from gitlab_kb_refresh.core.knowledge_store import KnowledgeStore

logger = logging.getLogger(__name__)

# Antora boilerplate removed from folder paths (first occurrence of each)
ANTORA_SEGMENTS = ("/modules/ROOT/pages/", "/modules/ROOT/", "/modules/services/")


def extract_folder_path(path: str) -> Optional[str]:
    """Folder path for a repository file, or None for root-level files.

    canton/modules/ROOT/pages/validator-mgmt/x.adoc -> canton/validator-mgmt
    catbm/modules/ROOT/pages/x.adoc -> catbm
    README.md -> None
    """
    clean = path.replace("\\", "/")
    for segment in ANTORA_SEGMENTS:
        clean = clean.replace(segment, "/", 1)

    parts = clean.split("/")[:-1]
    if not parts or parts == [""]:
        return None
    return "/".join(parts)


class FolderResolver:
    """Resolves folder paths to folder ids, creating missing folders.

    Lookups are cached by the full folder path for the lifetime of the
    resolver, which is one refresh run.
    """

    def __init__(self, store: KnowledgeStore, tenant_id: str):
        self.store = store
        self.tenant_id = tenant_id
        self._cache: Dict[str, int] = {}

    async def resolve(self, folder_path: str) -> int:
        """Return the id of the deepest folder, creating the chain top-down."""
        if folder_path in self._cache:
            return self._cache[folder_path]

        parent_id: Optional[int] = None
        for name in [p for p in folder_path.split("/") if p]:
            folder = await self.store.find_folder(self.tenant_id, parent_id, name)
            if folder is None:
                folder = await self.store.create_folder(self.tenant_id, parent_id, name)
            parent_id = folder.id

        if parent_id is None:
            raise ValueError(f"Failed to create folder path: {folder_path}")

        self._cache[folder_path] = parent_id
        return parent_id

    async def resolve_for_file(self, path: str) -> Optional[int]:
        """Folder id for a repository file, or None when it belongs at the root."""
        folder_path = extract_folder_path(path)
        if folder_path is None:
            return None
        return await self.resolve(folder_path)
