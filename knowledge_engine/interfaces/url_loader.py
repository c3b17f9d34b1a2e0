"""Abstract base class for URL content loaders."""

from __future__ import annotations

from abc import ABC, abstractmethod


class IUrlLoader(ABC):
    """Fetches a URL and returns its readable main text."""

    @abstractmethod
    async def load(self, uri: str) -> str:
        """Return the extracted plain text of *uri*.

        Raises
        ------
        knowledge_engine.utils.errors.ParseError
            If the page cannot be fetched or yields no text.
        """

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a human-readable identifier for this loader."""
