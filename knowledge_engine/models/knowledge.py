"""Knowledge base data models.

Defines Pydantic v2 models for the persisted entities of the engine:
knowledge bases, documents, chunks, embeddings, tags and the typed
configuration blobs a knowledge base carries.  All models use frozen config;
updates go through ``model_copy(update=...)``.

Ownership:
    KnowledgeBase -> Document -> Chunk -> (at most one) Embedding
    Tag <-> Chunk through ChunkTag rows (pure relation, neither side owns it)
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, model_validator


def _new_id() -> str:
    return str(uuid.uuid4())


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# Recursive splitting cascades from paragraph to single characters.
DEFAULT_RECURSIVE_SEPARATORS: tuple[str, ...] = ("\n\n", "\n", "。", ".", " ", "")
# Semantic splitting works on sentence-level units.
DEFAULT_SEMANTIC_SEPARATORS: tuple[str, ...] = ("\n\n", "\n", "。", ".", "?", "!")


class KnowledgeBaseStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"


class SourceType(str, Enum):
    """How a document's content reached the engine."""

    FILE = "file"
    URL = "url"
    TEXT = "text"


class ParseStatus(str, Enum):
    PENDING = "pending"
    PARSED = "parsed"
    FAILED = "failed"


# ---------------------------------------------------------------------------
# Configuration blobs -- a tagged union of known variants plus an
# ``extensions`` bag for keys the engine does not interpret.
# ---------------------------------------------------------------------------
class RecursiveChunkingConfig(BaseModel):
    """Fixed-size chunking through a separator cascade."""

    model_config = ConfigDict(frozen=True)

    strategy: Literal["recursive"] = "recursive"
    chunk_size: int = Field(default=512, gt=0, description="Maximum characters per chunk.")
    chunk_overlap: int = Field(
        default=50, ge=0, description="Characters of trailing context carried into the next chunk."
    )
    separators: list[str] = Field(
        default_factory=lambda: list(DEFAULT_RECURSIVE_SEPARATORS),
        description="Ordered separator cascade, coarsest first.",
    )
    extensions: dict[str, Any] = Field(default_factory=dict)

    @model_validator(mode="after")
    def _check_overlap(self) -> RecursiveChunkingConfig:
        if self.chunk_overlap >= self.chunk_size:
            msg = f"chunk_overlap ({self.chunk_overlap}) must be smaller than chunk_size ({self.chunk_size})"
            raise ValueError(msg)
        return self


class SemanticChunkingConfig(BaseModel):
    """Embedding-similarity breakpoint chunking."""

    model_config = ConfigDict(frozen=True)

    strategy: Literal["semantic"] = "semantic"
    percentile: float = Field(
        default=0.9, gt=0.0, le=1.0, description="Distance percentile above which a cut is made."
    )
    buffer_size: int = Field(default=1, ge=0, description="Neighbouring units on each side of a window.")
    min_chunk_size: int = Field(default=100, ge=0, description="Minimum characters per chunk.")
    separators: list[str] = Field(default_factory=lambda: list(DEFAULT_SEMANTIC_SEPARATORS))
    extensions: dict[str, Any] = Field(default_factory=dict)


ChunkingConfig = Annotated[
    Union[RecursiveChunkingConfig, SemanticChunkingConfig],
    Field(discriminator="strategy"),
]

chunking_config_adapter: TypeAdapter[RecursiveChunkingConfig | SemanticChunkingConfig] = TypeAdapter(
    ChunkingConfig
)


class ParserConfig(BaseModel):
    """Parser options stored on a knowledge base; opaque to the engine."""

    model_config = ConfigDict(frozen=True)

    extensions: dict[str, Any] = Field(default_factory=dict)


class EmbeddingConfig(BaseModel):
    """Embedding model the knowledge base was built with."""

    model_config = ConfigDict(frozen=True)

    model: str = ""
    dimension: int | None = Field(default=None, gt=0)
    extensions: dict[str, Any] = Field(default_factory=dict)


# ---------------------------------------------------------------------------
# Persisted entities
# ---------------------------------------------------------------------------
class KnowledgeBase(BaseModel):
    """Top-level scope for documents, chunks and tags."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=_new_id)
    name: str = Field(min_length=1)
    description: str = ""
    status: KnowledgeBaseStatus = KnowledgeBaseStatus.ACTIVE
    chunking_config: ChunkingConfig | None = None
    parser_config: ParserConfig | None = None
    embedding_config: EmbeddingConfig | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)


class Document(BaseModel):
    """A single imported source.

    ``content_hash`` fingerprints the raw bytes (files) or text (url / text
    sources).  ``parse_status`` starts ``pending`` and is moved to ``parsed``
    only after chunks and embeddings are written.
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=_new_id)
    knowledge_base_id: str
    source_type: SourceType
    title: str = ""
    source_uri: str = Field(default="", description="URL, saved file path, or empty for text.")
    content_hash: str = ""
    parse_status: ParseStatus = ParseStatus.PENDING
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)


class Chunk(BaseModel):
    """A contiguous slice of a document's text, the unit of retrieval."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=_new_id)
    knowledge_base_id: str
    document_id: str
    chunk_index: int = Field(ge=0)
    content: str
    content_hash: str = ""
    enabled: bool = True
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)


class Embedding(BaseModel):
    """The vector for one chunk; unique per ``chunk_id``."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=_new_id)
    knowledge_base_id: str
    chunk_id: str
    vector: list[float]
    dimension: int = Field(gt=0)
    model: str = ""
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)

    @model_validator(mode="after")
    def _check_dimension(self) -> Embedding:
        if len(self.vector) != self.dimension:
            msg = f"vector has {len(self.vector)} values, dimension is {self.dimension}"
            raise ValueError(msg)
        return self


class Tag(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=_new_id)
    knowledge_base_id: str
    name: str = Field(min_length=1)
    color: str = ""
    description: str = ""
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)
