"""Knowledge engine domain models -- re-exports all public model classes.

Submodules by concern:
    - knowledge.py  -- persisted entities and knowledge-base config blobs
    - search.py     -- distance functions, search options, ranked results
    - ingestion.py  -- import request / result
"""

from __future__ import annotations

from knowledge_engine.models.ingestion import ImportRequest, ImportResult
from knowledge_engine.models.knowledge import (
    DEFAULT_RECURSIVE_SEPARATORS,
    DEFAULT_SEMANTIC_SEPARATORS,
    Chunk,
    ChunkingConfig,
    Document,
    Embedding,
    EmbeddingConfig,
    KnowledgeBase,
    KnowledgeBaseStatus,
    ParserConfig,
    ParseStatus,
    RecursiveChunkingConfig,
    SemanticChunkingConfig,
    SourceType,
    Tag,
    chunking_config_adapter,
)
from knowledge_engine.models.search import (
    ChunkResult,
    ChunkWithScore,
    DistanceFunction,
    SearchOptions,
    SearchResult,
)

__all__ = [
    "DEFAULT_RECURSIVE_SEPARATORS",
    "DEFAULT_SEMANTIC_SEPARATORS",
    "Chunk",
    "ChunkResult",
    "ChunkWithScore",
    "ChunkingConfig",
    "DistanceFunction",
    "Document",
    "Embedding",
    "EmbeddingConfig",
    "ImportRequest",
    "ImportResult",
    "KnowledgeBase",
    "KnowledgeBaseStatus",
    "ParseStatus",
    "ParserConfig",
    "RecursiveChunkingConfig",
    "SearchOptions",
    "SearchResult",
    "SemanticChunkingConfig",
    "SourceType",
    "Tag",
    "chunking_config_adapter",
]
