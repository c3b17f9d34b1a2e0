"""Retrieval engines and the query-side service facade."""

from knowledge_engine.services.retrieval.fulltext_search import FullTextSearchEngine
from knowledge_engine.services.retrieval.hybrid_search import HybridSearchEngine
from knowledge_engine.services.retrieval.retrieval_service import RetrievalService
from knowledge_engine.services.retrieval.vector_search import VectorSearchEngine

__all__ = [
    "FullTextSearchEngine",
    "HybridSearchEngine",
    "RetrievalService",
    "VectorSearchEngine",
]
