"""Vector similarity search over stored chunk embeddings.

Validates the caller's options up front (distance function, query vector,
extra predicate) so an invalid request never reaches the database, then
delegates to :meth:`IKnowledgeStore.search_by_vector` for a single round
trip.  Scores come back normalized so that higher is always better:

==============  ===================  ============================
Function        Raw distance          Score
==============  ===================  ============================
cosine          ``1 - cos(a, b)``     ``1 - distance``
l2              ``||a - b||``         ``1 / (1 + distance)``
inner_product   ``max(0, 1 - a.b)``   ``1 / (1 + distance)``
==============  ===================  ============================
"""

from __future__ import annotations

import time

import structlog

from knowledge_engine.interfaces.knowledge_store import IKnowledgeStore
from knowledge_engine.models.search import ChunkWithScore, DistanceFunction, SearchOptions
from knowledge_engine.utils.errors import SearchError, StoreError
from knowledge_engine.utils.sql_safety import check_safe_predicate

logger = structlog.get_logger(logger_name=__name__)

DEFAULT_LIMIT = 5


class VectorSearchEngine:
    """Ranks enabled chunks by distance to a query vector."""

    def __init__(self, store: IKnowledgeStore) -> None:
        self._store = store

    async def search(
        self,
        knowledge_base_ids: list[str],
        query_vector: list[float],
        limit: int = DEFAULT_LIMIT,
        options: SearchOptions | None = None,
    ) -> list[ChunkWithScore]:
        """Return up to *limit* chunks ordered by raw distance ascending.

        Raises
        ------
        SearchError
            If *query_vector* is empty or the store query fails.
        InvalidDistanceFunction
            If ``options.distance_function`` is not cosine, l2 or inner_product.
        UnsafePredicate
            If ``options.extra_predicate`` contains a mutating keyword.
        """
        options = options or SearchOptions()
        if not query_vector:
            raise SearchError(message="Query vector is empty")
        distance_function = DistanceFunction.parse(options.distance_function)
        if options.extra_predicate:
            check_safe_predicate(options.extra_predicate)
        if limit <= 0:
            limit = DEFAULT_LIMIT

        start = time.monotonic()
        try:
            hits = await self._store.search_by_vector(
                knowledge_base_ids, query_vector, limit, options
            )
        except StoreError as exc:
            raise SearchError(
                message=f"Vector search failed: {exc.message}",
                provider_name=exc.provider_name,
            ) from exc

        logger.debug(
            "vector_search_complete",
            distance_function=distance_function.value,
            knowledge_bases=len(knowledge_base_ids),
            results=len(hits),
            elapsed_ms=round((time.monotonic() - start) * 1000, 1),
        )
        return hits
