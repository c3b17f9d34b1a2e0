"""Embedding provider implementations.

Two implementations of IEmbeddingProvider, in selection priority order:
    1. OpenAIEmbeddingProvider -- text-embedding-3-small (1536 dims) or any
       OpenAI-compatible host; needs an API key.
    2. OllamaEmbeddingProvider -- nomic-embed-text (768 dims) on a local
       Ollama server.
"""

from knowledge_engine.providers.embedding.ollama_embedding_provider import OllamaEmbeddingProvider
from knowledge_engine.providers.embedding.openai_embedding_provider import OpenAIEmbeddingProvider

__all__ = ["OllamaEmbeddingProvider", "OpenAIEmbeddingProvider"]
