"""Retrieval models: distance functions, search options and ranked results.

Every search primitive returns :class:`ChunkWithScore` lists where a higher
``score`` always means more relevant, whatever distance function produced it.
That normalization is what makes weighted hybrid fusion meaningful.
"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from knowledge_engine.models.knowledge import Chunk
from knowledge_engine.utils.errors import InvalidDistanceFunction


class DistanceFunction(str, Enum):
    """Closed set of vector distance metrics understood by the store."""

    COSINE = "cosine"
    L2 = "l2"
    INNER_PRODUCT = "inner_product"

    @classmethod
    def parse(cls, value: DistanceFunction | str) -> DistanceFunction:
        """Return the member for *value* or raise :class:`InvalidDistanceFunction`."""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            allowed = ", ".join(member.value for member in cls)
            raise InvalidDistanceFunction(
                message=f"Unknown distance function {value!r} (expected one of: {allowed})"
            ) from None

    @property
    def sql_function(self) -> str:
        """Name of the SQL scalar function computing this distance."""
        return _SQL_FUNCTIONS[self]

    def to_score(self, distance: float) -> float:
        """Convert a raw distance into a higher-is-better similarity score.

        Cosine scores are ``1 - d`` over ``d`` in ``[0, 2]``, so they span
        ``[-1, 1]``: orthogonal vectors score 0 and opposite vectors -1.
        They fall in ``(0, 1]`` only for positively correlated vectors.
        ``l2`` and ``inner_product`` scores are always in ``(0, 1]``.
        """
        if self is DistanceFunction.COSINE:
            return 1.0 - distance
        if distance == 0:
            return 1.0
        return 1.0 / (1.0 + distance)

    def to_distance_threshold(self, score: float) -> float:
        """Convert a score-space threshold into the matching distance bound."""
        if self is DistanceFunction.COSINE:
            return 1.0 - score
        return score


_SQL_FUNCTIONS: dict[DistanceFunction, str] = {
    DistanceFunction.COSINE: "vec_cosine_distance",
    DistanceFunction.L2: "vec_l2_distance",
    DistanceFunction.INNER_PRODUCT: "vec_inner_product_distance",
}


class SearchOptions(BaseModel):
    """Per-call options for vector search.

    ``distance_function`` is kept as a plain string so that an unknown
    value reaches the engine and is reported as
    :class:`InvalidDistanceFunction` rather than a validation error.
    ``extra_predicate`` is appended to the WHERE clause verbatim after the
    keyword denylist check; it may reference ``c`` (chunks) and ``e``
    (embeddings) columns.
    """

    model_config = ConfigDict(frozen=True)

    distance_function: str = DistanceFunction.COSINE.value
    score_threshold: float | None = Field(
        default=None, description="Minimum score, expressed in score space."
    )
    extra_predicate: str | None = None


class ChunkWithScore(BaseModel):
    """A chunk and its relevance score for one query.

    Hybrid results also carry the per-modality scores that were fused;
    a modality that did not return the chunk contributes 0.
    """

    model_config = ConfigDict(frozen=True)

    chunk: Chunk
    score: float
    distance: float | None = None
    vector_score: float | None = None
    text_score: float | None = None


class ChunkResult(BaseModel):
    """Flattened search hit handed to callers, with the document title attached."""

    model_config = ConfigDict(frozen=True)

    id: str
    document_id: str
    document_title: str = ""
    knowledge_base_id: str
    chunk_index: int
    content: str
    score: float


class SearchResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    chunks: list[ChunkResult] = Field(default_factory=list)
    total_count: int = 0
