"""Knowledge base management and the tag index."""

from knowledge_engine.services.knowledge.knowledge_service import KnowledgeService
from knowledge_engine.services.knowledge.tag_service import TagService

__all__ = ["KnowledgeService", "TagService"]
