"""Score-based reordering of search hits for LLM context windows.

Language models attend best to the start and end of a long context and
worst to its middle.  :func:`edge_rerank` keeps the same hits and scores but
places the strongest ones at both ends::

    scores  0.9 0.8 0.7 0.6 0.5
    order   0.9 0.7 0.5 0.6 0.8
"""

from __future__ import annotations

from collections.abc import Sequence

from knowledge_engine.models.search import ChunkResult


def edge_rerank(hits: Sequence[ChunkResult]) -> list[ChunkResult]:
    """Alternate hits, best first, between the front and the back of the list."""
    ranked = sorted(hits, key=lambda hit: hit.score, reverse=True)
    front: list[ChunkResult] = []
    back: list[ChunkResult] = []
    for i, hit in enumerate(ranked):
        (front if i % 2 == 0 else back).append(hit)
    return front + back[::-1]
