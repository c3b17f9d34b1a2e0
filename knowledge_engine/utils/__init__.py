"""Utility modules for the knowledge engine.

- **errors** -- exception hierarchy rooted at KnowledgeEngineError
  (re-exported here).
- **logging** -- structlog setup with a dual console / JSON renderer.
- **vector_math** -- float32 BLOB codec and the three distance functions.
- **sql_safety** -- identifier validation and the filter-predicate denylist.
- **fusion** -- weighted hybrid score fusion (not re-exported here; it
  depends on the models package).
- **hashing** -- MD5 content fingerprints.
"""

from knowledge_engine.utils.errors import (
    ConfigurationError,
    EmbeddingError,
    EmbeddingUnavailable,
    EmptyContentAfterSplit,
    IngestionError,
    InvalidDistanceFunction,
    KnowledgeBaseNotFound,
    KnowledgeEngineError,
    NotFoundError,
    ParseError,
    SearchError,
    StoreError,
    UnsafePredicate,
    UnsupportedSourceType,
)

__all__ = [
    "ConfigurationError",
    "EmbeddingError",
    "EmbeddingUnavailable",
    "EmptyContentAfterSplit",
    "IngestionError",
    "InvalidDistanceFunction",
    "KnowledgeBaseNotFound",
    "KnowledgeEngineError",
    "NotFoundError",
    "ParseError",
    "SearchError",
    "StoreError",
    "UnsafePredicate",
    "UnsupportedSourceType",
]
