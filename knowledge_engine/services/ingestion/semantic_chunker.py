"""Semantic chunking at embedding-similarity breakpoints.

The text is first cut into sentence-level units with the separator list.
Each unit is widened into a window of ``buffer_size`` neighbours on each
side, all windows are embedded in one batch, and the cosine distance
between adjacent windows is measured.  A chunk boundary is placed after
every unit whose distance to the next exceeds the ``percentile`` of the
document's distance distribution.  Groups shorter than ``min_chunk_size``
characters are merged into their neighbour.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import TYPE_CHECKING

import numpy as np
import structlog

from knowledge_engine.models.knowledge import DEFAULT_SEMANTIC_SEPARATORS
from knowledge_engine.services.ingestion.chunker import split_keeping_separator
from knowledge_engine.utils.errors import EmbeddingUnavailable
from knowledge_engine.utils.vector_math import cosine_distance

if TYPE_CHECKING:
    from knowledge_engine.interfaces.embedding_provider import IEmbeddingProvider

logger = structlog.get_logger(logger_name=__name__)


class SemanticTextChunker:
    """Chunker that cuts where adjacent windows diverge in meaning.

    Parameters
    ----------
    embedding_provider:
        Embeds the sliding windows.  ``None`` makes :meth:`split` raise
        :class:`EmbeddingUnavailable`; provider failures propagate.
    percentile:
        Fraction in ``(0, 1]``; distances above this percentile become cuts.
    buffer_size:
        Units on each side of a unit included in its window.
    min_chunk_size:
        Minimum characters per chunk.
    separators:
        Separators used to cut the text into units.
    """

    def __init__(
        self,
        embedding_provider: IEmbeddingProvider | None,
        percentile: float = 0.9,
        buffer_size: int = 1,
        min_chunk_size: int = 100,
        separators: Sequence[str] | None = None,
    ) -> None:
        if not 0.0 < percentile <= 1.0:
            msg = f"percentile must be in (0, 1], got {percentile}"
            raise ValueError(msg)
        self._embedding_provider = embedding_provider
        self._percentile = percentile
        self._buffer_size = max(0, buffer_size)
        self._min_chunk_size = max(0, min_chunk_size)
        self._separators = [
            s for s in (separators if separators is not None else DEFAULT_SEMANTIC_SEPARATORS) if s
        ]

    async def split(self, text: str) -> list[str]:
        """Split *text* into semantically coherent chunks."""
        provider = self._embedding_provider
        if provider is None:
            raise EmbeddingUnavailable()

        units = self._split_units(text)
        if len(units) <= 1:
            return units

        windows = self._build_windows(units)
        vectors = await provider.embed(windows)
        distances = self._adjacent_distances(vectors, len(units))

        known = [d for d in distances if d is not None]
        if not known:
            # No usable vectors: nothing to cut on.
            return self._enforce_min_size([" ".join(units)])

        threshold = float(np.percentile(known, self._percentile * 100))
        groups: list[list[str]] = [[units[0]]]
        for i, distance in enumerate(distances):
            if distance is not None and distance > threshold:
                groups.append([])
            groups[-1].append(units[i + 1])

        chunks = self._enforce_min_size([" ".join(group) for group in groups])
        logger.debug(
            "semantic_chunking_complete",
            units=len(units),
            num_chunks=len(chunks),
            threshold=round(threshold, 4),
            vectors=len(vectors),
        )
        return chunks

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _split_units(self, text: str) -> list[str]:
        pieces = [text]
        for separator in self._separators:
            pieces = [p for piece in pieces for p in split_keeping_separator(piece, separator)]
        return [piece.strip() for piece in pieces if piece.strip()]

    def _build_windows(self, units: list[str]) -> list[str]:
        b = self._buffer_size
        return [" ".join(units[max(0, i - b) : i + b + 1]) for i in range(len(units))]

    @staticmethod
    def _adjacent_distances(
        vectors: list[list[float]], unit_count: int
    ) -> list[float | None]:
        """Distance between window i and i+1; ``None`` when either vector is missing."""
        distances: list[float | None] = []
        for i in range(unit_count - 1):
            if i + 1 < len(vectors):
                distances.append(cosine_distance(vectors[i], vectors[i + 1]))
            else:
                distances.append(None)
        return distances

    def _enforce_min_size(self, groups: list[str]) -> list[str]:
        """Merge groups shorter than ``min_chunk_size`` into a neighbour."""
        merged: list[str] = []
        for group in groups:
            if merged and len(merged[-1]) < self._min_chunk_size:
                merged[-1] = f"{merged[-1]} {group}"
            else:
                merged.append(group)
        if len(merged) > 1 and len(merged[-1]) < self._min_chunk_size:
            tail = merged.pop()
            merged[-1] = f"{merged[-1]} {tail}"
        return merged
