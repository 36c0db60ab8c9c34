"""Tenant-scoped knowledge base storage: documents, chunks and folders.

The refresh pipeline only talks to the KnowledgeStore interface; the Redis
implementation stores documents and chunks as hashes with ULID ids and
folders as hashes with integer ids allocated from a counter.
"""

from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field
from ulid import ULID

from gitlab_kb_refresh.core.config import settings
from gitlab_kb_refresh.core.keys import RedisKeys
from gitlab_kb_refresh.core.redis import get_redis_client

logger = logging.getLogger(__name__)


class Folder(BaseModel):
    id: int
    tenant_id: str
    name: str
    parent_id: Optional[int] = None


class Document(BaseModel):
    id: str = Field(default_factory=lambda: str(ULID()))
    tenant_id: str
    filename: str
    mime_type: str
    size: int
    category: str = "knowledge"
    folder_id: Optional[int] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)
    chunk_count: int = 0
    created_at: str = Field(default_factory=lambda: datetime.now(timezone.utc).isoformat())


class DocumentChunk(BaseModel):
    document_id: str
    tenant_id: str
    chunk_index: int
    content: str


class KnowledgeStore(ABC):
    """Interface used by the refresh pipeline to replace a tenant's knowledge base."""

    @abstractmethod
    async def ingest_document(
        self,
        tenant_id: str,
        filename: str,
        mime_type: str,
        size: int,
        content: str,
        metadata: Optional[Dict[str, Any]] = None,
        folder_id: Optional[int] = None,
        category: str = "knowledge",
    ) -> Document: ...

    @abstractmethod
    async def delete_document(self, document_id: str) -> bool: ...

    @abstractmethod
    async def clear_tenant(self, tenant_id: str) -> Dict[str, int]:
        """Delete every chunk, document and folder of a tenant."""
        ...

    @abstractmethod
    async def find_folder(
        self, tenant_id: str, parent_id: Optional[int], name: str
    ) -> Optional[Folder]: ...

    @abstractmethod
    async def create_folder(self, tenant_id: str, parent_id: Optional[int], name: str) -> Folder: ...

    @abstractmethod
    async def list_documents(self, tenant_id: str) -> List[Document]: ...

    @abstractmethod
    async def list_folders(self, tenant_id: str) -> List[Folder]: ...


def chunk_text(
    content: str,
    chunk_size: int = 1000,
    chunk_overlap: int = 200,
    min_chunk_size: int = 100,
) -> List[str]:
    """Split text into overlapping chunks, preferring sentence then word boundaries."""
    if len(content) <= chunk_size:
        return [content]

    chunks = []
    start = 0

    while start < len(content):
        end = start + chunk_size

        # Try to break at word boundaries
        if end < len(content):
            # Look for sentence ending
            sentence_break = content.rfind(".", start, end)
            if sentence_break > start + chunk_size // 2:
                end = sentence_break + 1
            else:
                # Look for word boundary
                word_break = content.rfind(" ", start, end)
                if word_break > start + chunk_size // 2:
                    end = word_break

        chunk_content = content[start:end].strip()
        if len(chunk_content) >= min_chunk_size:
            chunks.append(chunk_content)

        if end >= len(content):
            break

        # Move start position with overlap, always making forward progress
        next_start = end - chunk_overlap
        start = next_start if next_start > start else end

    return chunks


def _decode_hash(raw: Dict[Any, Any]) -> Dict[str, str]:
    decoded = {}
    for k, v in (raw or {}).items():
        key = k.decode("utf-8") if isinstance(k, bytes) else k
        decoded[key] = v.decode("utf-8") if isinstance(v, bytes) else v
    return decoded


def _decode(value: Any) -> str:
    return value.decode("utf-8") if isinstance(value, bytes) else str(value)


class RedisKnowledgeStore(KnowledgeStore):
    def __init__(
        self,
        redis_client=None,
        chunk_size: Optional[int] = None,
        chunk_overlap: Optional[int] = None,
        min_chunk_size: Optional[int] = None,
    ):
        self._redis = redis_client or get_redis_client()
        self.chunk_size = chunk_size or settings.chunk_size
        self.chunk_overlap = chunk_overlap if chunk_overlap is not None else settings.chunk_overlap
        self.min_chunk_size = min_chunk_size if min_chunk_size is not None else settings.min_chunk_size

    async def ingest_document(
        self,
        tenant_id: str,
        filename: str,
        mime_type: str,
        size: int,
        content: str,
        metadata: Optional[Dict[str, Any]] = None,
        folder_id: Optional[int] = None,
        category: str = "knowledge",
    ) -> Document:
        chunks = chunk_text(content, self.chunk_size, self.chunk_overlap, self.min_chunk_size)
        document = Document(
            tenant_id=tenant_id,
            filename=filename,
            mime_type=mime_type,
            size=size,
            category=category,
            folder_id=folder_id,
            metadata=metadata or {},
            chunk_count=len(chunks),
        )

        await self._redis.hset(
            RedisKeys.document(document.id),
            mapping={
                "id": document.id,
                "tenant_id": tenant_id,
                "filename": filename,
                "mime_type": mime_type,
                "size": str(size),
                "category": category,
                "folder_id": "" if folder_id is None else str(folder_id),
                "metadata": json.dumps(document.metadata),
                "chunk_count": str(document.chunk_count),
                "created_at": document.created_at,
            },
        )
        await self._redis.sadd(RedisKeys.tenant_documents(tenant_id), document.id)

        for index, chunk in enumerate(chunks):
            chunk_key = RedisKeys.document_chunk(document.id, index)
            await self._redis.hset(
                chunk_key,
                mapping={
                    "document_id": document.id,
                    "tenant_id": tenant_id,
                    "chunk_index": str(index),
                    "content": chunk,
                },
            )
            await self._redis.sadd(RedisKeys.tenant_chunks(tenant_id), chunk_key)

        logger.debug(f"Ingested {filename} for tenant {tenant_id} ({len(chunks)} chunks)")
        return document

    async def get_document(self, document_id: str) -> Optional[Document]:
        data = _decode_hash(await self._redis.hgetall(RedisKeys.document(document_id)))
        if not data:
            return None
        return Document(
            id=data["id"],
            tenant_id=data["tenant_id"],
            filename=data["filename"],
            mime_type=data["mime_type"],
            size=int(data.get("size") or 0),
            category=data.get("category") or "knowledge",
            folder_id=int(data["folder_id"]) if data.get("folder_id") else None,
            metadata=json.loads(data.get("metadata") or "{}"),
            chunk_count=int(data.get("chunk_count") or 0),
            created_at=data.get("created_at") or "",
        )

    async def get_chunks(self, document_id: str) -> List[DocumentChunk]:
        document = await self.get_document(document_id)
        if document is None:
            return []
        chunks = []
        for index in range(document.chunk_count):
            data = _decode_hash(await self._redis.hgetall(RedisKeys.document_chunk(document_id, index)))
            if data:
                chunks.append(
                    DocumentChunk(
                        document_id=document_id,
                        tenant_id=data["tenant_id"],
                        chunk_index=int(data["chunk_index"]),
                        content=data["content"],
                    )
                )
        return chunks

    async def delete_document(self, document_id: str) -> bool:
        document = await self.get_document(document_id)
        if document is None:
            return False
        chunk_keys = [RedisKeys.document_chunk(document_id, i) for i in range(document.chunk_count)]
        async with self._redis.pipeline(transaction=True) as pipe:
            if chunk_keys:
                pipe.delete(*chunk_keys)
                pipe.srem(RedisKeys.tenant_chunks(document.tenant_id), *chunk_keys)
            pipe.delete(RedisKeys.document(document_id))
            pipe.srem(RedisKeys.tenant_documents(document.tenant_id), document_id)
            await pipe.execute()
        return True

    async def clear_tenant(self, tenant_id: str) -> Dict[str, int]:
        chunk_keys = [_decode(k) for k in await self._redis.smembers(RedisKeys.tenant_chunks(tenant_id)) or []]
        document_ids = [
            _decode(d) for d in await self._redis.smembers(RedisKeys.tenant_documents(tenant_id)) or []
        ]
        folder_ids = [
            _decode(f) for f in await self._redis.smembers(RedisKeys.tenant_folders(tenant_id)) or []
        ]

        keys = list(chunk_keys)
        keys += [RedisKeys.document(doc_id) for doc_id in document_ids]
        keys += [RedisKeys.folder(int(folder_id)) for folder_id in folder_ids]
        keys += [RedisKeys.folder_children(tenant_id, int(folder_id)) for folder_id in folder_ids]
        keys += [
            RedisKeys.folder_children(tenant_id, None),
            RedisKeys.tenant_chunks(tenant_id),
            RedisKeys.tenant_documents(tenant_id),
            RedisKeys.tenant_folders(tenant_id),
        ]

        # Single MULTI/EXEC so a failure cannot leave a half-cleared tenant
        async with self._redis.pipeline(transaction=True) as pipe:
            pipe.delete(*keys)
            await pipe.execute()

        counts = {
            "chunks": len(chunk_keys),
            "documents": len(document_ids),
            "folders": len(folder_ids),
        }
        logger.info(
            f"Cleared knowledge base for tenant {tenant_id}: {counts['documents']} documents, "
            f"{counts['chunks']} chunks, {counts['folders']} folders"
        )
        return counts

    async def get_folder(self, folder_id: int) -> Optional[Folder]:
        data = _decode_hash(await self._redis.hgetall(RedisKeys.folder(folder_id)))
        if not data:
            return None
        return Folder(
            id=int(data["id"]),
            tenant_id=data["tenant_id"],
            name=data["name"],
            parent_id=int(data["parent_id"]) if data.get("parent_id") else None,
        )

    async def find_folder(
        self, tenant_id: str, parent_id: Optional[int], name: str
    ) -> Optional[Folder]:
        folder_id = await self._redis.hget(RedisKeys.folder_children(tenant_id, parent_id), name)
        if folder_id is None:
            return None
        return await self.get_folder(int(_decode(folder_id)))

    async def create_folder(self, tenant_id: str, parent_id: Optional[int], name: str) -> Folder:
        folder_id = int(await self._redis.incr(RedisKeys.folder_id_counter()))
        claimed = await self._redis.hsetnx(
            RedisKeys.folder_children(tenant_id, parent_id), name, str(folder_id)
        )
        if not claimed:
            # Another writer created the same (tenant, parent, name) first
            existing = await self.find_folder(tenant_id, parent_id, name)
            if existing is not None:
                return existing

        folder = Folder(id=folder_id, tenant_id=tenant_id, name=name, parent_id=parent_id)
        await self._redis.hset(
            RedisKeys.folder(folder_id),
            mapping={
                "id": str(folder_id),
                "tenant_id": tenant_id,
                "name": name,
                "parent_id": "" if parent_id is None else str(parent_id),
            },
        )
        await self._redis.sadd(RedisKeys.tenant_folders(tenant_id), str(folder_id))
        logger.debug(f"Created folder {name} ({folder_id}) for tenant {tenant_id}")
        return folder

    async def list_documents(self, tenant_id: str) -> List[Document]:
        documents = []
        for raw_id in await self._redis.smembers(RedisKeys.tenant_documents(tenant_id)) or []:
            document = await self.get_document(_decode(raw_id))
            if document:
                documents.append(document)
        return sorted(documents, key=lambda d: d.id)

    async def list_folders(self, tenant_id: str) -> List[Folder]:
        folders = []
        for raw_id in await self._redis.smembers(RedisKeys.tenant_folders(tenant_id)) or []:
            folder = await self.get_folder(int(_decode(raw_id)))
            if folder:
                folders.append(folder)
        return sorted(folders, key=lambda f: f.id)
