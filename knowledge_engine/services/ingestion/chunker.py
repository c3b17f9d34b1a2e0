"""Recursive character chunking with a separator cascade and trailing overlap.

Splits plain text into chunks of at most ``chunk_size`` characters.  The
splitter walks an ordered separator list (paragraph, line, sentence enders,
space, then single characters) and uses the first separator that occurs in
the text.  Pieces that are still too long are split again with the
remaining, finer separators.  Adjacent pieces are then greedily packed into
chunks, and up to ``chunk_overlap`` characters of whole trailing pieces are
carried into the next chunk for context.

Separators stay attached to the end of the piece they terminate, so a
sentence keeps its full stop::

    >>> RecursiveTextChunker(chunk_size=20, chunk_overlap=0).split(
    ...     "Alpha Alpha Alpha. Beta Beta Beta.")
    ['Alpha Alpha Alpha.', 'Beta Beta Beta.']
"""

from __future__ import annotations

from collections.abc import Sequence

import structlog

from knowledge_engine.models.knowledge import DEFAULT_RECURSIVE_SEPARATORS

logger = structlog.get_logger(logger_name=__name__)


def split_keeping_separator(text: str, separator: str) -> list[str]:
    """Split *text* on *separator*, keeping it at the end of each piece.

    An empty separator splits into single characters.  Empty pieces are
    dropped.
    """
    if separator == "":
        return list(text)
    parts = text.split(separator)
    pieces = [part + separator for part in parts[:-1]]
    pieces.append(parts[-1])
    return [piece for piece in pieces if piece]


class RecursiveTextChunker:
    """Size-bounded chunking through a separator cascade.

    Parameters
    ----------
    chunk_size:
        Maximum characters per chunk (default 512).
    chunk_overlap:
        Characters of trailing context copied into the next chunk
        (default 50).  Must be smaller than *chunk_size*; 0 disables overlap.
    separators:
        Ordered separator cascade, coarsest first.
    """

    def __init__(
        self,
        chunk_size: int = 512,
        chunk_overlap: int = 50,
        separators: Sequence[str] | None = None,
    ) -> None:
        if chunk_size <= 0:
            msg = f"chunk_size must be positive, got {chunk_size}"
            raise ValueError(msg)
        if chunk_overlap < 0 or chunk_overlap >= chunk_size:
            msg = f"chunk_overlap must be in [0, {chunk_size}), got {chunk_overlap}"
            raise ValueError(msg)
        self._chunk_size = chunk_size
        self._chunk_overlap = chunk_overlap
        self._separators = list(separators) if separators is not None else list(DEFAULT_RECURSIVE_SEPARATORS)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def split(self, text: str) -> list[str]:
        """Split *text* into ordered, stripped, non-empty chunks.

        Whitespace-only input returns an empty list.
        """
        if not text or not text.strip():
            return []

        chunks = self._split_recursive(text, self._separators)
        logger.debug(
            "recursive_chunking_complete",
            num_chunks=len(chunks),
            chunk_size=self._chunk_size,
            chunk_overlap=self._chunk_overlap,
        )
        return chunks

    # ------------------------------------------------------------------
    # Splitting
    # ------------------------------------------------------------------

    def _split_recursive(self, text: str, separators: list[str]) -> list[str]:
        separator = separators[-1] if separators else ""
        remaining: list[str] = []
        for i, candidate in enumerate(separators):
            if candidate == "":
                separator = candidate
                break
            if candidate in text:
                separator = candidate
                remaining = separators[i + 1 :]
                break

        chunks: list[str] = []
        fitting: list[str] = []
        for piece in split_keeping_separator(text, separator):
            if len(piece) <= self._chunk_size:
                fitting.append(piece)
                continue

            if fitting:
                chunks.extend(self._merge(fitting))
                fitting = []
            if remaining:
                chunks.extend(self._split_recursive(piece, remaining))
            else:
                # No finer separator left; emit the oversized piece as-is.
                stripped = piece.strip()
                if stripped:
                    chunks.append(stripped)

        if fitting:
            chunks.extend(self._merge(fitting))
        return chunks

    def _merge(self, pieces: list[str]) -> list[str]:
        """Greedily pack *pieces* into chunks with trailing overlap."""
        chunks: list[str] = []
        current: list[str] = []
        total = 0

        for piece in pieces:
            length = len(piece)
            if current and total + length > self._chunk_size:
                chunk = "".join(current).strip()
                if chunk:
                    chunks.append(chunk)
                # Drop leading pieces until only the overlap tail remains
                # and the next piece fits.
                while current and (
                    total > self._chunk_overlap or total + length > self._chunk_size
                ):
                    total -= len(current[0])
                    current.pop(0)
            current.append(piece)
            total += length

        chunk = "".join(current).strip()
        if chunk:
            chunks.append(chunk)
        return chunks
