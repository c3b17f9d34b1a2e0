"""Ollama embedding provider adapter (local, no API key).

Talks to the OpenAI-compatible ``/v1`` endpoint that Ollama exposes,
defaulting to ``nomic-embed-text`` (768 dimensions).
"""

from __future__ import annotations

import httpx
import openai
import structlog

from knowledge_engine.config.settings import Settings
from knowledge_engine.interfaces.embedding_provider import IEmbeddingProvider
from knowledge_engine.utils.errors import EmbeddingError

logger = structlog.get_logger(logger_name=__name__)

_OLLAMA_BATCH_LIMIT = 512

_MODEL_DIMENSIONS: dict[str, int] = {
    "nomic-embed-text": 768,
    "mxbai-embed-large": 1024,
    "all-minilm": 384,
    "bge-m3": 1024,
}


class OllamaEmbeddingProvider(IEmbeddingProvider):
    """Embedding provider backed by a model served via Ollama."""

    def __init__(self, settings: Settings) -> None:
        self._base_url = settings.ollama_base_url.rstrip("/")
        self._client = openai.AsyncOpenAI(
            base_url=f"{self._base_url}/v1",
            api_key="ollama",  # Ollama ignores the key but the SDK requires one
        )
        self._model = settings.ollama_embedding_model or "nomic-embed-text"
        self._dimension = _MODEL_DIMENSIONS.get(self._model, 768)

    # ------------------------------------------------------------------
    # IEmbeddingProvider implementation
    # ------------------------------------------------------------------

    async def embed(self, texts: list[str]) -> list[list[float]]:
        """Generate embedding vectors, batching 512 texts per request."""
        if not texts:
            return []

        try:
            all_embeddings: list[list[float]] = []
            for start in range(0, len(texts), _OLLAMA_BATCH_LIMIT):
                batch = texts[start : start + _OLLAMA_BATCH_LIMIT]
                response = await self._client.embeddings.create(
                    input=batch,
                    model=self._model,
                )
                all_embeddings.extend(item.embedding for item in response.data)
                logger.info(
                    "ollama_embedding_batch",
                    model=self._model,
                    batch_size=len(batch),
                )
            return all_embeddings
        except openai.APIError as exc:
            raise EmbeddingError(
                message=f"Ollama embedding API error: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

    async def embed_single(self, text: str) -> list[float]:
        result = await self.embed([text])
        if not result:
            raise EmbeddingError(
                message="Embedding API returned no vector",
                provider_name=self.get_provider_name(),
            )
        return result[0]

    def get_dimension(self) -> int:
        return self._dimension

    def get_provider_name(self) -> str:
        return "ollama_embedding"

    def get_model_name(self) -> str:
        return self._model

    def is_available(self) -> bool:
        """Return ``True`` if the Ollama server answers on ``/api/tags``."""
        if not self._base_url:
            return False
        try:
            response = httpx.get(f"{self._base_url}/api/tags", timeout=3.0)
            return response.status_code == 200
        except (httpx.ConnectError, httpx.TimeoutException):
            return False
