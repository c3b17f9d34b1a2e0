"""Outward-facing retrieval facade.

:class:`RetrievalService` is what callers (CLI, agents, an eventual HTTP
layer) use to query a knowledge base.  It embeds the query text with the
configured :class:`IEmbeddingProvider`, runs the hybrid engine and flattens
the hits into :class:`ChunkResult` objects with the source document title
attached.

Degraded mode: when no embedder is configured :meth:`RetrievalService.search`
returns an empty :class:`SearchResult` and logs a warning instead of raising,
so features built on top keep working without retrieval.  A configured
embedder that fails raises :class:`SearchError`.  Keyword search does not
need an embedder and is always available.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from typing import TYPE_CHECKING

import structlog

from knowledge_engine.models.search import (
    ChunkResult,
    ChunkWithScore,
    SearchOptions,
    SearchResult,
)
from knowledge_engine.services.retrieval.fulltext_search import FullTextSearchEngine
from knowledge_engine.services.retrieval.hybrid_search import HybridSearchEngine
from knowledge_engine.services.retrieval.vector_search import VectorSearchEngine
from knowledge_engine.utils.errors import EmbeddingError, SearchError
from knowledge_engine.utils.reranking import edge_rerank

if TYPE_CHECKING:
    from knowledge_engine.interfaces.embedding_provider import IEmbeddingProvider
    from knowledge_engine.interfaces.knowledge_store import IKnowledgeStore

logger = structlog.get_logger(logger_name=__name__)


class RetrievalService:
    """Query facade over the vector, full-text and hybrid engines.

    Parameters
    ----------
    store:
        Knowledge store the engines query.
    embedding_provider:
        Embeds query text.  ``None`` enables degraded mode.
    default_top_k:
        Result count used when a caller passes no (or a non-positive) ``top_k``.
    default_vector_weight, default_text_weight:
        Fusion weights used when a caller passes none.
    reranker:
        Reorders hybrid hits for :meth:`reranked_search`.  Defaults to
        :func:`edge_rerank`.
    """

    def __init__(
        self,
        store: IKnowledgeStore,
        embedding_provider: IEmbeddingProvider | None = None,
        default_top_k: int = 5,
        default_vector_weight: float | None = None,
        default_text_weight: float | None = None,
        reranker: Callable[[Sequence[ChunkResult]], list[ChunkResult]] | None = None,
    ) -> None:
        self._store = store
        self._embedding_provider = embedding_provider
        self._default_top_k = default_top_k if default_top_k > 0 else 5
        self._default_vector_weight = default_vector_weight
        self._default_text_weight = default_text_weight
        self._reranker = reranker or edge_rerank
        self._vector_engine = VectorSearchEngine(store)
        self._fulltext_engine = FullTextSearchEngine(store)
        self._hybrid_engine = HybridSearchEngine(store)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def search(
        self,
        knowledge_base_id: str,
        query: str,
        top_k: int | None = None,
        vector_weight: float | None = None,
        text_weight: float | None = None,
    ) -> SearchResult:
        """Hybrid search within one knowledge base.

        Returns an empty result (not an error) when no embedder is
        available.  Any engine failure propagates.
        """
        limit = self._resolve_top_k(top_k)
        query_vector = await self._embed_query(query)
        if query_vector is None:
            return SearchResult()

        hits = await self._hybrid_engine.search(
            [knowledge_base_id],
            query,
            query_vector,
            limit,
            vector_weight if vector_weight is not None else self._default_vector_weight,
            text_weight if text_weight is not None else self._default_text_weight,
        )
        result = await self._to_result(hits)
        logger.info(
            "retrieval_search_complete",
            knowledge_base_id=knowledge_base_id,
            top_k=limit,
            results=result.total_count,
        )
        return result

    async def reranked_search(
        self,
        knowledge_base_id: str,
        query: str,
        top_k: int | None = None,
        vector_weight: float | None = None,
        text_weight: float | None = None,
    ) -> SearchResult:
        """Hybrid search with the strongest hits moved to both ends.

        Scores are unchanged; only the order differs from :meth:`search`.
        If the reranker fails the hybrid order is returned as is.
        """
        result = await self.search(knowledge_base_id, query, top_k, vector_weight, text_weight)
        if len(result.chunks) <= 1:
            return result
        try:
            reordered = self._reranker(result.chunks)
        except Exception as exc:  # noqa: BLE001
            logger.warning("rerank_failed", knowledge_base_id=knowledge_base_id, error=str(exc))
            return result
        return SearchResult(chunks=reordered, total_count=len(reordered))

    async def semantic_search(
        self,
        knowledge_base_ids: list[str],
        query: str,
        top_k: int | None = None,
        options: SearchOptions | None = None,
    ) -> SearchResult:
        """Vector-only search; same degraded mode as :meth:`search`."""
        query_vector = await self._embed_query(query)
        if query_vector is None:
            return SearchResult()
        hits = await self._vector_engine.search(
            knowledge_base_ids, query_vector, self._resolve_top_k(top_k), options
        )
        return await self._to_result(hits)

    async def keyword_search(
        self,
        knowledge_base_ids: list[str],
        query: str,
        top_k: int | None = None,
    ) -> SearchResult:
        """BM25-only search; needs no embedder."""
        hits = await self._fulltext_engine.search(
            knowledge_base_ids, query, self._resolve_top_k(top_k)
        )
        return await self._to_result(hits)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _resolve_top_k(self, top_k: int | None) -> int:
        if top_k is None or top_k <= 0:
            return self._default_top_k
        return top_k

    async def _embed_query(self, query: str) -> list[float] | None:
        provider = self._embedding_provider
        if provider is None:
            logger.warning("retrieval_degraded", reason="no embedding provider configured")
            return None
        try:
            return await provider.embed_single(query)
        except EmbeddingError as exc:
            raise SearchError(
                message=f"Query embedding failed: {exc.message}",
                provider_name=exc.provider_name,
            ) from exc

    async def _to_result(self, hits: list[ChunkWithScore]) -> SearchResult:
        if not hits:
            return SearchResult()
        documents = await self._store.get_documents([hit.chunk.document_id for hit in hits])
        chunks = []
        for hit in hits:
            document = documents.get(hit.chunk.document_id)
            chunks.append(
                ChunkResult(
                    id=hit.chunk.id,
                    document_id=hit.chunk.document_id,
                    document_title=document.title if document else "",
                    knowledge_base_id=hit.chunk.knowledge_base_id,
                    chunk_index=hit.chunk.chunk_index,
                    content=hit.chunk.content,
                    score=hit.score,
                )
            )
        return SearchResult(chunks=chunks, total_count=len(chunks))
