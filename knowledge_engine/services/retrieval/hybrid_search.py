"""Weighted fusion of vector and full-text search.

Both legs run with ``2 * limit`` candidates (cosine for the vector leg) and
are merged by :func:`knowledge_engine.utils.fusion.fuse`.  Either leg
failing fails the whole search; there is no single-modality fallback.
"""

from __future__ import annotations

import structlog

from knowledge_engine.interfaces.knowledge_store import IKnowledgeStore
from knowledge_engine.models.search import ChunkWithScore
from knowledge_engine.utils.errors import SearchError, StoreError
from knowledge_engine.utils.fusion import resolve_weights

logger = structlog.get_logger(logger_name=__name__)

DEFAULT_LIMIT = 5


class HybridSearchEngine:
    """Combines vector and BM25 rankings with per-call linear weights."""

    def __init__(self, store: IKnowledgeStore) -> None:
        self._store = store

    async def search(
        self,
        knowledge_base_ids: list[str],
        query: str,
        query_vector: list[float],
        limit: int = DEFAULT_LIMIT,
        vector_weight: float | None = None,
        text_weight: float | None = None,
    ) -> list[ChunkWithScore]:
        """Return up to *limit* chunks ranked by the weighted combined score.

        Parameters
        ----------
        vector_weight, text_weight:
            Linear weights; ``None`` falls back to 0.7 / 0.3.

        Raises
        ------
        ValueError
            If either weight is negative.
        SearchError
            If the query vector is empty or either leg fails.
        """
        vw, tw = resolve_weights(vector_weight, text_weight)
        if not query_vector:
            raise SearchError(message="Query vector is empty")
        if limit <= 0:
            limit = DEFAULT_LIMIT

        try:
            hits = await self._store.search_hybrid(
                knowledge_base_ids, query, query_vector, limit, vw, tw
            )
        except StoreError as exc:
            raise SearchError(
                message=f"Hybrid search failed: {exc.message}",
                provider_name=exc.provider_name,
            ) from exc

        logger.debug(
            "hybrid_search_complete",
            vector_weight=vw,
            text_weight=tw,
            results=len(hits),
        )
        return hits
