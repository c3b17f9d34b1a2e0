"""Knowledge store implementations."""

from knowledge_engine.providers.store.sqlite_knowledge_store import SQLiteKnowledgeStore

__all__ = ["SQLiteKnowledgeStore"]
