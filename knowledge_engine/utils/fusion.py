"""Weighted linear fusion of vector and full-text rankings.

``combined = vector_weight * vector_score + text_weight * text_score``

A chunk returned by only one leg gets 0 for the other modality.  Candidates
whose combined score is not positive are dropped, so a pure-vector weighting
over a corpus that only matches lexically yields nothing.

Ordering is a stable descending sort over the union in candidate order:
vector hits in their rank order first, then text-only hits in text rank
order.  Equal combined scores therefore keep that order.
"""

from __future__ import annotations

from collections.abc import Sequence

from knowledge_engine.models.search import ChunkWithScore

DEFAULT_VECTOR_WEIGHT = 0.7
DEFAULT_TEXT_WEIGHT = 0.3


def resolve_weights(
    vector_weight: float | None,
    text_weight: float | None,
) -> tuple[float, float]:
    """Apply defaults to unset weights and reject negative ones."""
    vw = DEFAULT_VECTOR_WEIGHT if vector_weight is None else float(vector_weight)
    tw = DEFAULT_TEXT_WEIGHT if text_weight is None else float(text_weight)
    if vw < 0 or tw < 0:
        msg = f"Fusion weights must be non-negative (vector={vw}, text={tw})"
        raise ValueError(msg)
    return vw, tw


def fuse(
    vector_hits: Sequence[ChunkWithScore],
    text_hits: Sequence[ChunkWithScore],
    limit: int,
    vector_weight: float = DEFAULT_VECTOR_WEIGHT,
    text_weight: float = DEFAULT_TEXT_WEIGHT,
) -> list[ChunkWithScore]:
    """Merge two ranked candidate lists into one weighted ranking.

    Parameters
    ----------
    vector_hits:
        Vector-leg candidates, best first.
    text_hits:
        Full-text-leg candidates, best first.
    limit:
        Maximum number of fused results.
    vector_weight, text_weight:
        Linear weights for each modality.

    Returns
    -------
    list[ChunkWithScore]
        At most *limit* results with ``score`` set to the combined score and
        ``vector_score`` / ``text_score`` set to the fused inputs.
    """
    vector_scores: dict[str, float] = {}
    text_scores: dict[str, float] = {}
    chunks: dict[str, ChunkWithScore] = {}

    for hit in vector_hits:
        chunk_id = hit.chunk.id
        # Keep the best score if a leg repeats a chunk.
        vector_scores[chunk_id] = max(hit.score, vector_scores.get(chunk_id, hit.score))
        chunks.setdefault(chunk_id, hit)
    for hit in text_hits:
        chunk_id = hit.chunk.id
        text_scores[chunk_id] = max(hit.score, text_scores.get(chunk_id, hit.score))
        chunks.setdefault(chunk_id, hit)

    fused: list[ChunkWithScore] = []
    for chunk_id, hit in chunks.items():
        v = vector_scores.get(chunk_id, 0.0)
        t = text_scores.get(chunk_id, 0.0)
        combined = vector_weight * v + text_weight * t
        if combined <= 0:
            continue
        fused.append(
            ChunkWithScore(
                chunk=hit.chunk,
                score=combined,
                distance=hit.distance if chunk_id in vector_scores else None,
                vector_score=v,
                text_score=t,
            )
        )

    fused.sort(key=lambda item: item.score, reverse=True)
    return fused[: max(limit, 0)]
