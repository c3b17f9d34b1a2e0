"""CRUD facade for knowledge bases, documents and chunks.

Thin layer over :class:`IKnowledgeStore` that turns "missing" into
:class:`NotFoundError` for callers that address entities by id, and logs
every mutation.  Cascading deletes are performed by the store.
"""

from __future__ import annotations

from typing import Any

import structlog

from knowledge_engine.interfaces.knowledge_store import IKnowledgeStore
from knowledge_engine.models.knowledge import (
    Chunk,
    ChunkingConfig,
    Document,
    EmbeddingConfig,
    KnowledgeBase,
    ParserConfig,
)
from knowledge_engine.utils.errors import KnowledgeBaseNotFound, NotFoundError

logger = structlog.get_logger(logger_name=__name__)

_UPDATABLE_KB_FIELDS = frozenset(
    {
        "name",
        "description",
        "status",
        "chunking_config",
        "parser_config",
        "embedding_config",
        "metadata",
    }
)


class KnowledgeService:
    """Knowledge base, document and chunk management."""

    def __init__(self, store: IKnowledgeStore) -> None:
        self._store = store

    # -- Knowledge bases -----------------------------------------------------

    async def create_knowledge_base(
        self,
        name: str,
        description: str = "",
        chunking_config: ChunkingConfig | None = None,
        parser_config: ParserConfig | None = None,
        embedding_config: EmbeddingConfig | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> KnowledgeBase:
        knowledge_base = KnowledgeBase(
            name=name,
            description=description,
            chunking_config=chunking_config,
            parser_config=parser_config,
            embedding_config=embedding_config,
            metadata=metadata or {},
        )
        created = await self._store.create_knowledge_base(knowledge_base)
        logger.info("knowledge_base_created", knowledge_base_id=created.id, name=created.name)
        return created

    async def get_knowledge_base(self, knowledge_base_id: str) -> KnowledgeBase:
        """Return the knowledge base or raise :class:`KnowledgeBaseNotFound`."""
        knowledge_base = await self._store.get_knowledge_base(knowledge_base_id)
        if knowledge_base is None:
            raise KnowledgeBaseNotFound(knowledge_base_id)
        return knowledge_base

    async def list_knowledge_bases(self) -> list[KnowledgeBase]:
        return await self._store.list_knowledge_bases()

    async def update_knowledge_base(self, knowledge_base_id: str, **changes: Any) -> KnowledgeBase:
        """Apply *changes* to a knowledge base.

        Only ``name``, ``description``, ``status``, the three config blobs
        and ``metadata`` may change; anything else raises ``ValueError``.
        """
        unknown = set(changes) - _UPDATABLE_KB_FIELDS
        if unknown:
            msg = f"Cannot update knowledge base fields: {', '.join(sorted(unknown))}"
            raise ValueError(msg)
        current = await self.get_knowledge_base(knowledge_base_id)
        # Re-validate so config dicts become models.
        updated = KnowledgeBase.model_validate({**current.model_dump(), **changes})
        saved = await self._store.update_knowledge_base(updated)
        logger.info("knowledge_base_updated", knowledge_base_id=knowledge_base_id, fields=sorted(changes))
        return saved

    async def delete_knowledge_base(self, knowledge_base_id: str) -> bool:
        deleted = await self._store.delete_knowledge_base(knowledge_base_id)
        logger.info("knowledge_base_deleted", knowledge_base_id=knowledge_base_id, deleted=deleted)
        return deleted

    # -- Documents -----------------------------------------------------------

    async def get_document(self, document_id: str) -> Document:
        document = await self._store.get_document(document_id)
        if document is None:
            raise NotFoundError(
                message=f"Document not found: {document_id}",
                entity="document",
                entity_id=document_id,
            )
        return document

    async def list_documents(
        self, knowledge_base_id: str, limit: int = 20, offset: int = 0
    ) -> tuple[list[Document], int]:
        await self.get_knowledge_base(knowledge_base_id)
        return await self._store.list_documents(knowledge_base_id, limit, offset)

    async def delete_document(self, document_id: str) -> bool:
        deleted = await self._store.delete_document(document_id)
        logger.info("document_deleted", document_id=document_id, deleted=deleted)
        return deleted

    # -- Chunks --------------------------------------------------------------

    async def get_chunk(self, chunk_id: str) -> Chunk:
        chunk = await self._store.get_chunk(chunk_id)
        if chunk is None:
            raise NotFoundError(
                message=f"Chunk not found: {chunk_id}",
                entity="chunk",
                entity_id=chunk_id,
            )
        return chunk

    async def list_chunks(
        self, document_id: str, limit: int = 20, offset: int = 0
    ) -> tuple[list[Chunk], int]:
        """Enabled chunks of a document in ``chunk_index`` order, plus the total."""
        return await self._store.list_chunks_by_document(document_id, limit, offset)

    async def list_knowledge_base_chunks(
        self, knowledge_base_id: str, limit: int = 20, offset: int = 0
    ) -> tuple[list[Chunk], int]:
        """All chunks of a knowledge base (enabled or not), newest first."""
        return await self._store.list_chunks_by_knowledge_base(knowledge_base_id, limit, offset)

    async def set_chunk_enabled(self, chunk_id: str, enabled: bool) -> Chunk:
        """Toggle whether a chunk takes part in search."""
        if not await self._store.set_chunk_enabled(chunk_id, enabled):
            raise NotFoundError(
                message=f"Chunk not found: {chunk_id}",
                entity="chunk",
                entity_id=chunk_id,
            )
        logger.info("chunk_enabled_changed", chunk_id=chunk_id, enabled=enabled)
        return await self.get_chunk(chunk_id)

    async def delete_chunk(self, chunk_id: str) -> bool:
        deleted = await self._store.delete_chunk(chunk_id)
        logger.info("chunk_deleted", chunk_id=chunk_id, deleted=deleted)
        return deleted
