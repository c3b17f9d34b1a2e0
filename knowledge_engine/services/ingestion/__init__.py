"""Document import pipeline.

1. **Resolve** -- file bytes via the parser registry, URLs via the loader,
   raw text verbatim.
2. **Split** (chunker.py / semantic_chunker.py) -- recursive separator
   cascade or embedding-similarity breakpoints.
3. **Embed** -- one batch call to the IEmbeddingProvider.
4. **Persist** -- chunks, then embeddings, through the IKnowledgeStore.

IngestionService orchestrates the stages and tracks the document's parse
status.
"""

from knowledge_engine.services.ingestion.chunker import RecursiveTextChunker
from knowledge_engine.services.ingestion.ingestion_service import IngestionService
from knowledge_engine.services.ingestion.semantic_chunker import SemanticTextChunker

__all__ = [
    "IngestionService",
    "RecursiveTextChunker",
    "SemanticTextChunker",
]
