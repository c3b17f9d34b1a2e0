"""Public interface definitions for the engine's collaborators.

Every external service is reached only through the abstract base classes in
this package; concrete adapters live in ``knowledge_engine/providers/`` and
are wired together in ``knowledge_engine/main.py``.  Tests inject fakes
through the same seams.

    Interface            ->  Concrete implementations
    ----------------------------------------------------------------
    IEmbeddingProvider   ->  OpenAIEmbeddingProvider, OllamaEmbeddingProvider
    IContentParser       ->  ParserRegistry
    IUrlLoader           ->  WebLoaderProvider
    IKnowledgeStore      ->  SQLiteKnowledgeStore
"""

from knowledge_engine.interfaces.content_parser import IContentParser
from knowledge_engine.interfaces.embedding_provider import IEmbeddingProvider
from knowledge_engine.interfaces.knowledge_store import IKnowledgeStore
from knowledge_engine.interfaces.url_loader import IUrlLoader

__all__ = [
    "IContentParser",
    "IEmbeddingProvider",
    "IKnowledgeStore",
    "IUrlLoader",
]
