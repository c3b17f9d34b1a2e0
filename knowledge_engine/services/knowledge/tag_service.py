"""Tag index: tag CRUD and chunk/tag associations.

Tags belong to a knowledge base and are attached to chunks of that same
knowledge base.  Attaching is idempotent; deleting a tag removes its
associations first.
"""

from __future__ import annotations

import structlog

from knowledge_engine.interfaces.knowledge_store import IKnowledgeStore
from knowledge_engine.models.knowledge import Chunk, Tag
from knowledge_engine.utils.errors import KnowledgeBaseNotFound, NotFoundError

logger = structlog.get_logger(logger_name=__name__)


class TagService:
    """Manages tags and their attachment to chunks."""

    def __init__(self, store: IKnowledgeStore) -> None:
        self._store = store

    async def create_tag(
        self,
        knowledge_base_id: str,
        name: str,
        color: str = "",
        description: str = "",
    ) -> Tag:
        if await self._store.get_knowledge_base(knowledge_base_id) is None:
            raise KnowledgeBaseNotFound(knowledge_base_id)
        tag = await self._store.create_tag(
            Tag(knowledge_base_id=knowledge_base_id, name=name, color=color, description=description)
        )
        logger.info("tag_created", tag_id=tag.id, knowledge_base_id=knowledge_base_id, name=name)
        return tag

    async def get_tag(self, tag_id: str) -> Tag:
        tag = await self._store.get_tag(tag_id)
        if tag is None:
            raise NotFoundError(message=f"Tag not found: {tag_id}", entity="tag", entity_id=tag_id)
        return tag

    async def list_tags(self, knowledge_base_id: str) -> list[Tag]:
        """Tags of a knowledge base, ordered by name."""
        return await self._store.list_tags(knowledge_base_id)

    async def update_tag(
        self,
        tag_id: str,
        name: str | None = None,
        color: str | None = None,
        description: str | None = None,
    ) -> Tag:
        current = await self.get_tag(tag_id)
        changes = {
            key: value
            for key, value in (("name", name), ("color", color), ("description", description))
            if value is not None
        }
        if not changes:
            return current
        updated = Tag.model_validate({**current.model_dump(), **changes})
        return await self._store.update_tag(updated)

    async def delete_tag(self, tag_id: str) -> bool:
        return await self._store.delete_tag(tag_id)

    # -- Associations --------------------------------------------------------

    async def add_tag_to_chunk(self, chunk_id: str, tag_id: str) -> None:
        """Attach *tag_id* to *chunk_id*; repeating the call changes nothing."""
        await self._store.add_tag_to_chunk(chunk_id, tag_id)
        logger.debug("chunk_tagged", chunk_id=chunk_id, tag_id=tag_id)

    async def remove_tag_from_chunk(self, chunk_id: str, tag_id: str) -> bool:
        return await self._store.remove_tag_from_chunk(chunk_id, tag_id)

    async def list_tags_for_chunk(self, chunk_id: str) -> list[Tag]:
        return await self._store.list_tags_for_chunk(chunk_id)

    async def list_chunks_for_tag(
        self, tag_id: str, limit: int = 20, offset: int = 0
    ) -> tuple[list[Chunk], int]:
        return await self._store.list_chunks_for_tag(tag_id, limit, offset)
