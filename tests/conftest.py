"""Shared pytest fixtures for the knowledge engine test suite."""

from __future__ import annotations

import hashlib
from pathlib import Path

import pytest

from knowledge_engine.interfaces.embedding_provider import IEmbeddingProvider
from knowledge_engine.models.knowledge import (
    Chunk,
    Document,
    Embedding,
    KnowledgeBase,
    ParseStatus,
    SourceType,
)
from knowledge_engine.providers.store.sqlite_knowledge_store import SQLiteKnowledgeStore
from knowledge_engine.utils.errors import EmbeddingError

# ---------------------------------------------------------------------------
# Embedding fixtures
# ---------------------------------------------------------------------------

EMBEDDING_DIM = 32


def hash_to_vector(text: str, dim: int = EMBEDDING_DIM) -> list[float]:
    """Generate a deterministic unit vector by hashing *text*.

    Every component is positive, so the cosine similarity of any two
    vectors is positive and identical texts have similarity 1.0.
    """
    raw = hashlib.sha256(text.encode("utf-8")).digest()
    while len(raw) < dim:
        raw += hashlib.sha256(raw).digest()
    values = [0.05 + b / 255.0 for b in raw[:dim]]
    magnitude = sum(v * v for v in values) ** 0.5
    return [v / magnitude for v in values]


class MockEmbeddingProvider(IEmbeddingProvider):
    """In-memory deterministic embedding provider for tests.

    Records every ``embed`` batch in ``calls``.  ``max_vectors`` truncates
    the returned batch to simulate a provider returning fewer vectors
    than inputs.  ``available=False`` behaves like an unreachable server:
    every embed call raises :class:`EmbeddingError`.
    """

    def __init__(self, available: bool = True, max_vectors: int | None = None) -> None:
        self.available = available
        self.max_vectors = max_vectors
        self.calls: list[list[str]] = []

    def _check_reachable(self) -> None:
        if not self.available:
            raise EmbeddingError(
                message="Connection refused", provider_name=self.get_provider_name()
            )

    async def embed(self, texts: list[str]) -> list[list[float]]:
        self.calls.append(list(texts))
        self._check_reachable()
        vectors = [hash_to_vector(t) for t in texts]
        if self.max_vectors is not None:
            vectors = vectors[: self.max_vectors]
        return vectors

    async def embed_single(self, text: str) -> list[float]:
        self._check_reachable()
        return hash_to_vector(text)

    def get_dimension(self) -> int:
        return EMBEDDING_DIM

    def get_provider_name(self) -> str:
        return "mock-embedding"

    def is_available(self) -> bool:
        return self.available


@pytest.fixture
def mock_embedding_provider() -> MockEmbeddingProvider:
    return MockEmbeddingProvider()


# ---------------------------------------------------------------------------
# Store fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
async def store(tmp_path: Path) -> SQLiteKnowledgeStore:
    """A SQLiteKnowledgeStore on a fresh temporary database."""
    s = SQLiteKnowledgeStore(db_path=tmp_path / "knowledge.db")
    await s.initialize()
    return s


@pytest.fixture
async def knowledge_base(store: SQLiteKnowledgeStore) -> KnowledgeBase:
    return await store.create_knowledge_base(KnowledgeBase(name="test-kb"))


@pytest.fixture
async def document(store: SQLiteKnowledgeStore, knowledge_base: KnowledgeBase) -> Document:
    return await store.create_document(
        Document(
            knowledge_base_id=knowledge_base.id,
            source_type=SourceType.TEXT,
            title="Test document",
            parse_status=ParseStatus.PARSED,
        )
    )


async def add_chunks(
    store: SQLiteKnowledgeStore,
    document: Document,
    contents: list[str],
    embed: bool = True,
) -> list[Chunk]:
    """Persist *contents* as chunks of *document*, each with a hash vector."""
    chunks = [
        Chunk(
            knowledge_base_id=document.knowledge_base_id,
            document_id=document.id,
            chunk_index=i,
            content=text,
        )
        for i, text in enumerate(contents)
    ]
    await store.create_chunks(chunks)
    if embed:
        await store.upsert_embeddings(
            [
                Embedding(
                    knowledge_base_id=c.knowledge_base_id,
                    chunk_id=c.id,
                    vector=hash_to_vector(c.content),
                    dimension=EMBEDDING_DIM,
                    model="mock",
                )
                for c in chunks
            ]
        )
    return chunks
