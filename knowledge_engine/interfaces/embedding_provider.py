"""Abstract base class for text-embedding service providers.

Defines the contract for turning text into fixed-length vectors.
Implementations wrap an OpenAI-compatible embeddings endpoint or a local
Ollama server; the ingestion pipeline, the semantic chunker and the
retrieval service only ever see this interface.
"""

from __future__ import annotations

from abc import ABC, abstractmethod


# Concrete implementations:
#   OpenAIEmbeddingProvider  -- text-embedding-3-small or any OpenAI-compatible model
#   OllamaEmbeddingProvider  -- nomic-embed-text (or another model) via Ollama
# Located in: knowledge_engine/providers/embedding/
class IEmbeddingProvider(ABC):
    """Contract for text-embedding services used by ingestion and retrieval."""

    @abstractmethod
    async def embed(self, texts: list[str]) -> list[list[float]]:
        """Generate embedding vectors for a batch of texts.

        Parameters
        ----------
        texts:
            Text strings to embed.  Implementations handle per-call API
            limits internally; callers always make a single call.

        Returns
        -------
        list[list[float]]
            Vectors corresponding positionally to *texts*.  A backend may
            return fewer vectors than inputs; callers tolerate a short list
            and treat the trailing inputs as unembedded.

        Raises
        ------
        knowledge_engine.utils.errors.EmbeddingError
            If the embedding API call fails.
        """

    @abstractmethod
    async def embed_single(self, text: str) -> list[float]:
        """Generate an embedding vector for a single text (e.g. a search query)."""

    @abstractmethod
    def get_dimension(self) -> int:
        """Return the dimensionality of the embedding vectors.

        Constant for the lifetime of the provider instance.
        """

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a human-readable identifier for this embedding provider."""

    def get_model_name(self) -> str:
        """Return the model identifier recorded on each stored embedding."""
        return self.get_provider_name()

    @abstractmethod
    def is_available(self) -> bool:
        """Return ``True`` if the provider is configured and reachable."""
