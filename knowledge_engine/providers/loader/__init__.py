"""URL content loaders."""

from knowledge_engine.providers.loader.web_loader_provider import WebLoaderProvider

__all__ = ["WebLoaderProvider"]
