"""Abstract base class for file-content parsers.

A content parser turns the raw bytes of an uploaded file into plain text,
dispatching on the file extension.  Parsing is CPU-bound and synchronous;
the ingestion pipeline runs it in a worker thread.
"""

from __future__ import annotations

from abc import ABC, abstractmethod


class IContentParser(ABC):
    """Contract for bytes -> plain-text conversion keyed by file extension."""

    @abstractmethod
    def parse(self, data: bytes, extension: str) -> str:
        """Convert *data* into plain text.

        Parameters
        ----------
        data:
            Raw file bytes.
        extension:
            Lower-cased extension including the dot (``".pdf"``).

        Raises
        ------
        knowledge_engine.utils.errors.UnsupportedSourceType
            If no parser handles *extension*.
        knowledge_engine.utils.errors.ParseError
            If the bytes cannot be decoded as that format.
        """

    @abstractmethod
    def supports(self, extension: str) -> bool:
        """Return ``True`` if *extension* has a registered parser."""

    @abstractmethod
    def supported_extensions(self) -> list[str]:
        """Return every registered extension, sorted."""
