"""Lexical (BM25) search over chunk content."""

from __future__ import annotations

import structlog

from knowledge_engine.interfaces.knowledge_store import IKnowledgeStore
from knowledge_engine.models.search import ChunkWithScore
from knowledge_engine.utils.errors import SearchError, StoreError

logger = structlog.get_logger(logger_name=__name__)

DEFAULT_LIMIT = 5


class FullTextSearchEngine:
    """Ranks enabled chunks by BM25 relevance to a plain-text query.

    An empty (or whitespace-only) query means "nothing to search" and
    returns an empty list instead of raising.
    """

    def __init__(self, store: IKnowledgeStore) -> None:
        self._store = store

    async def search(
        self,
        knowledge_base_ids: list[str],
        query: str,
        limit: int = DEFAULT_LIMIT,
    ) -> list[ChunkWithScore]:
        if not query or not query.strip():
            return []
        if limit <= 0:
            limit = DEFAULT_LIMIT

        try:
            hits = await self._store.search_by_full_text(knowledge_base_ids, query, limit)
        except StoreError as exc:
            raise SearchError(
                message=f"Full-text search failed: {exc.message}",
                provider_name=exc.provider_name,
            ) from exc

        logger.debug("fulltext_search_complete", query_len=len(query), results=len(hits))
        return hits
