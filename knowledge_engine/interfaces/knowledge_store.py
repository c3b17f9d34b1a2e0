"""Abstract base class for knowledge store persistence.

The knowledge store persists knowledge bases, documents, chunks, embeddings,
tags and chunk-tag associations, and exposes three search primitives:
vector similarity, full-text ranking and their weighted hybrid.  It is the
only shared mutable resource in the engine; per-row upsert semantics for
embeddings and idempotent tag association are its responsibility.

Relations are explicit: there is no lazy loading.  Callers that need a
chunk's document title fetch documents by id in one batch with
:meth:`IKnowledgeStore.get_documents`.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from knowledge_engine.models.knowledge import (
        Chunk,
        Document,
        Embedding,
        KnowledgeBase,
        ParseStatus,
        Tag,
    )
    from knowledge_engine.models.search import ChunkWithScore, SearchOptions


# Concrete implementations:
#   SQLiteKnowledgeStore -- aiosqlite + FTS5, vectors as float32 BLOBs
# Located in: knowledge_engine/providers/store/
class IKnowledgeStore(ABC):
    """Contract for knowledge persistence and the three search primitives."""

    @abstractmethod
    async def initialize(self) -> None:
        """Create tables, indices and search structures if missing. Idempotent."""

    # -- Knowledge bases -----------------------------------------------------

    @abstractmethod
    async def create_knowledge_base(self, knowledge_base: KnowledgeBase) -> KnowledgeBase:
        """Insert a knowledge base and return it."""

    @abstractmethod
    async def get_knowledge_base(self, knowledge_base_id: str) -> KnowledgeBase | None:
        """Return the knowledge base or ``None``."""

    @abstractmethod
    async def list_knowledge_bases(self) -> list[KnowledgeBase]:
        """Return active knowledge bases, newest first."""

    @abstractmethod
    async def update_knowledge_base(self, knowledge_base: KnowledgeBase) -> KnowledgeBase:
        """Overwrite the mutable fields of an existing knowledge base."""

    @abstractmethod
    async def delete_knowledge_base(self, knowledge_base_id: str) -> bool:
        """Delete a knowledge base and everything it owns.

        Embeddings, chunk-tag associations, chunks, tags and documents are
        removed first, in one transaction.  Returns ``False`` if it did not
        exist.
        """

    # -- Documents -----------------------------------------------------------

    @abstractmethod
    async def create_document(self, document: Document) -> Document:
        """Insert a document row."""

    @abstractmethod
    async def get_document(self, document_id: str) -> Document | None:
        """Return the document or ``None``."""

    @abstractmethod
    async def get_documents(self, document_ids: list[str]) -> dict[str, Document]:
        """Fetch many documents in one query, keyed by id. Missing ids are absent."""

    @abstractmethod
    async def list_documents(
        self, knowledge_base_id: str, limit: int = 20, offset: int = 0
    ) -> tuple[list[Document], int]:
        """Return one page of a knowledge base's documents (newest first) and the total."""

    @abstractmethod
    async def update_document_status(self, document_id: str, status: ParseStatus) -> None:
        """Set a document's parse status."""

    @abstractmethod
    async def delete_document(self, document_id: str) -> bool:
        """Delete a document with its chunks, their embeddings and tag associations."""

    # -- Chunks --------------------------------------------------------------

    @abstractmethod
    async def create_chunks(self, chunks: list[Chunk]) -> None:
        """Insert *chunks* in a single batch write."""

    @abstractmethod
    async def get_chunk(self, chunk_id: str) -> Chunk | None:
        """Return the chunk or ``None``."""

    @abstractmethod
    async def list_chunks_by_document(
        self, document_id: str, limit: int = 20, offset: int = 0
    ) -> tuple[list[Chunk], int]:
        """Return enabled chunks of a document ordered by ``chunk_index``, and the total."""

    @abstractmethod
    async def list_chunks_by_knowledge_base(
        self, knowledge_base_id: str, limit: int = 20, offset: int = 0
    ) -> tuple[list[Chunk], int]:
        """Return a page of a knowledge base's chunks (newest first) and the total."""

    @abstractmethod
    async def set_chunk_enabled(self, chunk_id: str, enabled: bool) -> bool:
        """Toggle whether a chunk takes part in search. ``False`` if missing."""

    @abstractmethod
    async def delete_chunk(self, chunk_id: str) -> bool:
        """Delete a chunk after removing its embedding and tag associations."""

    # -- Embeddings ----------------------------------------------------------

    @abstractmethod
    async def upsert_embeddings(self, embeddings: list[Embedding]) -> None:
        """Insert embeddings in a single batch, replacing any row with the same ``chunk_id``."""

    @abstractmethod
    async def get_embedding_by_chunk(self, chunk_id: str) -> Embedding | None:
        """Return the embedding for *chunk_id* or ``None``."""

    # -- Tags ----------------------------------------------------------------

    @abstractmethod
    async def create_tag(self, tag: Tag) -> Tag:
        """Insert a tag."""

    @abstractmethod
    async def get_tag(self, tag_id: str) -> Tag | None:
        """Return the tag or ``None``."""

    @abstractmethod
    async def list_tags(self, knowledge_base_id: str) -> list[Tag]:
        """Return a knowledge base's tags ordered by name."""

    @abstractmethod
    async def update_tag(self, tag: Tag) -> Tag:
        """Overwrite name, color and description of an existing tag."""

    @abstractmethod
    async def delete_tag(self, tag_id: str) -> bool:
        """Remove the tag's chunk associations, then the tag."""

    @abstractmethod
    async def add_tag_to_chunk(self, chunk_id: str, tag_id: str) -> None:
        """Associate a tag with a chunk. Adding an existing pair is a no-op."""

    @abstractmethod
    async def remove_tag_from_chunk(self, chunk_id: str, tag_id: str) -> bool:
        """Remove one association. ``False`` if it did not exist."""

    @abstractmethod
    async def list_tags_for_chunk(self, chunk_id: str) -> list[Tag]:
        """Return the tags associated with a chunk, ordered by name."""

    @abstractmethod
    async def list_chunks_for_tag(
        self, tag_id: str, limit: int = 20, offset: int = 0
    ) -> tuple[list[Chunk], int]:
        """Return a page of chunks carrying *tag_id* and the total."""

    # -- Search primitives ---------------------------------------------------

    @abstractmethod
    async def search_by_vector(
        self,
        knowledge_base_ids: list[str],
        query_vector: list[float],
        limit: int,
        options: SearchOptions,
    ) -> list[ChunkWithScore]:
        """Rank enabled chunks by vector distance to *query_vector*.

        Parameters
        ----------
        knowledge_base_ids:
            Scope; an empty list searches every knowledge base.
        query_vector:
            The query embedding; must match the stored dimensionality.
        limit:
            Maximum number of results.
        options:
            Distance function, optional score threshold (score space) and
            optional extra WHERE predicate.

        Returns
        -------
        list[ChunkWithScore]
            Ordered by raw distance ascending, scores normalized so that
            higher is more relevant.
        """

    @abstractmethod
    async def search_by_full_text(
        self,
        knowledge_base_ids: list[str],
        query: str,
        limit: int,
    ) -> list[ChunkWithScore]:
        """Rank enabled chunks by BM25 relevance to *query*.

        An empty query (or one with no word tokens) returns ``[]``.
        """

    @abstractmethod
    async def search_hybrid(
        self,
        knowledge_base_ids: list[str],
        query: str,
        query_vector: list[float],
        limit: int,
        vector_weight: float,
        text_weight: float,
    ) -> list[ChunkWithScore]:
        """Run both searches with ``2 * limit`` candidates each and fuse them.

        A failure in either leg fails the whole call.
        """

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a human-readable identifier for this store."""
