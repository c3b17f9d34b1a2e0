"""Orchestrator for the document import pipeline.

Pipeline stages: **resolve -> persist document -> split -> embed -> persist
chunks -> persist embeddings -> mark parsed**.

:class:`IngestionService` coordinates the collaborators (parser registry,
URL loader, chunkers, embedding provider, knowledge store) without any of
them knowing about each other.  All of them are injected, so providers can
be swapped without touching this class.

Failure semantics:

- An unsupported file extension, a parse failure or a source that
  resolves to blank text aborts before anything is persisted.
- Once the document row exists (status ``pending``) any later failure
  leaves it ``pending``; the document is never marked ``failed``
  automatically and callers may retry.
- Chunks and embeddings are written in two separate batches.  A failure
  between the two leaves chunks without embeddings: still found by
  full-text search, invisible to vector search.
- Every error is raised as :class:`IngestionError` (or a subclass) with
  ``stage`` naming where it happened; no retries happen here.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path, PurePath
from typing import TYPE_CHECKING

import structlog

from knowledge_engine.models.ingestion import ImportRequest, ImportResult
from knowledge_engine.models.knowledge import (
    Chunk,
    Document,
    Embedding,
    ParseStatus,
    RecursiveChunkingConfig,
    SemanticChunkingConfig,
    SourceType,
)
from knowledge_engine.services.ingestion.chunker import RecursiveTextChunker
from knowledge_engine.services.ingestion.semantic_chunker import SemanticTextChunker
from knowledge_engine.utils.errors import (
    EmptyContentAfterSplit,
    IngestionError,
    KnowledgeBaseNotFound,
    ParseError,
    UnsupportedSourceType,
)
from knowledge_engine.utils.hashing import content_hash

if TYPE_CHECKING:
    from knowledge_engine.interfaces.content_parser import IContentParser
    from knowledge_engine.interfaces.embedding_provider import IEmbeddingProvider
    from knowledge_engine.interfaces.knowledge_store import IKnowledgeStore
    from knowledge_engine.interfaces.url_loader import IUrlLoader
    from knowledge_engine.models.knowledge import KnowledgeBase

logger = structlog.get_logger(logger_name=__name__)


@contextmanager
def _stage(name: str) -> Iterator[None]:
    """Re-raise anything that is not already an IngestionError as one for *name*."""
    try:
        yield
    except IngestionError:
        raise
    except Exception as exc:
        raise IngestionError(
            message=f"Import failed at stage '{name}': {exc}",
            stage=name,
            provider_name=getattr(exc, "provider_name", None),
        ) from exc


class IngestionService:
    """Imports one document per call into a knowledge base.

    Parameters
    ----------
    store:
        Knowledge store the document, chunks and embeddings are written to.
    parser:
        Extension-keyed parser for ``file`` sources.
    url_loader:
        Fetch-and-extract loader for ``url`` sources.
    embedding_provider:
        Optional.  Without it, recursive imports store chunks with no
        embeddings and semantic imports fail with ``EmbeddingUnavailable``.
    files_dir:
        Root directory uploaded files are saved under
        (``<files_dir>/<kb_id>/<document_id>/<file_name>``).
    default_chunking:
        Used when neither the request nor the knowledge base specify a
        chunking config.
    """

    def __init__(
        self,
        store: IKnowledgeStore,
        parser: IContentParser,
        url_loader: IUrlLoader | None = None,
        embedding_provider: IEmbeddingProvider | None = None,
        files_dir: str | Path = "data/files",
        default_chunking: RecursiveChunkingConfig | SemanticChunkingConfig | None = None,
    ) -> None:
        self._store = store
        self._parser = parser
        self._url_loader = url_loader
        self._embedding_provider = embedding_provider
        self._files_dir = Path(files_dir)
        self._default_chunking = default_chunking or RecursiveChunkingConfig()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def import_document(self, request: ImportRequest) -> ImportResult:
        """Run the full pipeline for one document.

        Returns
        -------
        ImportResult
            The new document id, how many chunks were stored and how many
            of them received an embedding.

        Raises
        ------
        KnowledgeBaseNotFound
            If ``request.knowledge_base_id`` does not exist.
        IngestionError
            For any failure, with ``stage`` set.
        """
        start = time.monotonic()
        log = logger.bind(
            knowledge_base_id=request.knowledge_base_id,
            source_type=request.source_type.value,
        )

        with _stage("resolve"):
            knowledge_base = await self._store.get_knowledge_base(request.knowledge_base_id)
        if knowledge_base is None:
            raise KnowledgeBaseNotFound(request.knowledge_base_id)

        # Step 1: resolve plain text; nothing is persisted yet.
        with _stage("resolve"):
            text, fingerprint = await self._resolve_text(request)

        document = Document(
            knowledge_base_id=request.knowledge_base_id,
            source_type=request.source_type,
            title=request.display_title,
            source_uri=request.source_uri,
            content_hash=fingerprint,
            parse_status=ParseStatus.PENDING,
            metadata=dict(request.metadata),
        )

        # Step 2: persist the pending document (saving the upload first).
        with _stage("persist_document"):
            if request.source_type is SourceType.FILE:
                saved_path = await self._save_file(request, document.id)
                document = document.model_copy(update={"source_uri": str(saved_path)})
            await self._store.create_document(document)
        log = log.bind(document_id=document.id)
        log.info("document_pending", title=document.title, chars=len(text))

        # Step 3: split.
        with _stage("split"):
            pieces = await self._split(text, request, knowledge_base)
        if not pieces:
            raise EmptyContentAfterSplit(
                message=f"Document {document.id} produced no chunks after splitting"
            )

        chunks = [
            Chunk(
                knowledge_base_id=document.knowledge_base_id,
                document_id=document.id,
                chunk_index=i,
                content=piece,
                content_hash=content_hash(piece),
            )
            for i, piece in enumerate(pieces)
        ]

        # Step 4: one batch embedding call for every chunk.
        with _stage("embed"):
            vectors = await self._embed([c.content for c in chunks])
        if vectors and len(vectors) < len(chunks):
            log.warning("embedding_short_batch", chunks=len(chunks), vectors=len(vectors))

        model = self._embedding_provider.get_model_name() if self._embedding_provider else ""
        embeddings = [
            Embedding(
                knowledge_base_id=chunk.knowledge_base_id,
                chunk_id=chunk.id,
                vector=vectors[i],
                dimension=len(vectors[i]),
                model=model,
            )
            for i, chunk in enumerate(chunks)
            if i < len(vectors) and vectors[i]
        ]

        # Step 5: two batch writes.
        with _stage("persist_chunks"):
            await self._store.create_chunks(chunks)
        with _stage("persist_embeddings"):
            await self._store.upsert_embeddings(embeddings)

        # Step 6: done.
        with _stage("mark_parsed"):
            await self._store.update_document_status(document.id, ParseStatus.PARSED)

        elapsed = time.monotonic() - start
        log.info(
            "ingestion_complete",
            chunks=len(chunks),
            embedded=len(embeddings),
            elapsed_s=round(elapsed, 3),
        )
        return ImportResult(
            document_id=document.id,
            chunk_count=len(chunks),
            embedded_count=len(embeddings),
            ingestion_time=elapsed,
        )

    # ------------------------------------------------------------------
    # Stages
    # ------------------------------------------------------------------

    async def _resolve_text(self, request: ImportRequest) -> tuple[str, str]:
        """Return the plain text and the content fingerprint for *request*."""
        if request.source_type is SourceType.TEXT:
            text = request.content
            fingerprint = content_hash(text)
        elif request.source_type is SourceType.URL:
            if self._url_loader is None:
                raise ParseError(message="No URL loader configured")
            text = await self._url_loader.load(request.source_uri)
            fingerprint = content_hash(text)
        else:
            extension = request.extension
            if not self._parser.supports(extension):
                raise UnsupportedSourceType(
                    message=f"Unsupported file type: {extension or PurePath(request.file_name).name}"
                )
            text = await asyncio.to_thread(self._parser.parse, request.file_bytes, extension)
            fingerprint = content_hash(request.file_bytes)

        if not text or not text.strip():
            raise ParseError(message="No content loaded from source")
        return text, fingerprint

    async def _save_file(self, request: ImportRequest, document_id: str) -> Path:
        target = (
            self._files_dir
            / request.knowledge_base_id
            / document_id
            / PurePath(request.file_name).name
        )

        def _write() -> None:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(request.file_bytes)

        await asyncio.to_thread(_write)
        return target

    async def _split(
        self,
        text: str,
        request: ImportRequest,
        knowledge_base: KnowledgeBase,
    ) -> list[str]:
        config = request.chunking or knowledge_base.chunking_config or self._default_chunking
        if isinstance(config, SemanticChunkingConfig):
            chunker = SemanticTextChunker(
                embedding_provider=self._embedding_provider,
                percentile=config.percentile,
                buffer_size=config.buffer_size,
                min_chunk_size=config.min_chunk_size,
                separators=config.separators,
            )
            return await chunker.split(text)

        return RecursiveTextChunker(
            chunk_size=config.chunk_size,
            chunk_overlap=config.chunk_overlap,
            separators=config.separators,
        ).split(text)

    async def _embed(self, texts: list[str]) -> list[list[float]]:
        provider = self._embedding_provider
        if provider is None:
            logger.warning("embedding_skipped", reason="no embedding provider", chunks=len(texts))
            return []
        return await provider.embed(texts)
