"""Knowledge engine composition root.

Wires the providers (store, embedder, parser registry, URL loader) into the
services via constructor injection and returns them in one
:class:`KnowledgeEngine` container.  Configuration comes from
:func:`knowledge_engine.config.loader.load_settings` (``.env`` plus
``config/config.yaml``).

Typical use::

    engine = await create_engine()
    try:
        kb = await engine.knowledge.create_knowledge_base("notes")
        await engine.ingestion.import_document(
            ImportRequest(knowledge_base_id=kb.id, source_type="text", content="...")
        )
        result = await engine.retrieval.search(kb.id, "query")
    finally:
        await engine.aclose()
"""

from __future__ import annotations

from dataclasses import dataclass

import structlog

from knowledge_engine.config.settings import EMBEDDING_PROVIDER_CHOICES, Settings
from knowledge_engine.interfaces.embedding_provider import IEmbeddingProvider
from knowledge_engine.models.knowledge import RecursiveChunkingConfig
from knowledge_engine.providers.loader.web_loader_provider import WebLoaderProvider
from knowledge_engine.providers.parser.parser_registry import ParserRegistry
from knowledge_engine.providers.store.sqlite_knowledge_store import SQLiteKnowledgeStore
from knowledge_engine.services.ingestion.ingestion_service import IngestionService
from knowledge_engine.services.knowledge.knowledge_service import KnowledgeService
from knowledge_engine.services.knowledge.tag_service import TagService
from knowledge_engine.services.retrieval.retrieval_service import RetrievalService
from knowledge_engine.utils.errors import ConfigurationError

logger = structlog.get_logger(logger_name=__name__)


@dataclass
class KnowledgeEngine:
    """All wired components of one engine instance."""

    settings: Settings
    store: SQLiteKnowledgeStore
    embedding_provider: IEmbeddingProvider | None
    parser: ParserRegistry
    url_loader: WebLoaderProvider
    ingestion: IngestionService
    retrieval: RetrievalService
    knowledge: KnowledgeService
    tags: TagService

    async def aclose(self) -> None:
        await self.url_loader.aclose()


# ---------------------------------------------------------------------------
# Provider selection
# ---------------------------------------------------------------------------


def _build_embedding_provider(app_settings: Settings) -> IEmbeddingProvider | None:
    """Select the embedding provider named by ``settings.embedding_provider``.

    ``openai`` and ``ollama`` force that provider; ``none`` disables
    embeddings.  ``auto`` (default) picks the first available provider:
    OpenAI/OpenAI-compatible (if an API key is set) -> Ollama (if
    reachable).  Returns ``None`` if no embedding provider is available,
    which puts retrieval into its degraded empty-result mode.
    """
    choice = app_settings.embedding_provider.strip().lower()
    if choice not in EMBEDDING_PROVIDER_CHOICES:
        raise ConfigurationError(
            message=(
                f"Unknown embedding provider {app_settings.embedding_provider!r} "
                f"(expected one of: {', '.join(EMBEDDING_PROVIDER_CHOICES)})"
            )
        )
    if choice == "none":
        return None

    from knowledge_engine.providers.embedding.ollama_embedding_provider import (
        OllamaEmbeddingProvider,
    )
    from knowledge_engine.providers.embedding.openai_embedding_provider import (
        OpenAIEmbeddingProvider,
    )

    if choice == "openai":
        if not app_settings.openai_api_key:
            raise ConfigurationError(
                message="EMBEDDING_PROVIDER=openai requires OPENAI_API_KEY",
                provider_name="openai_embedding",
            )
        return OpenAIEmbeddingProvider(settings=app_settings)
    if choice == "ollama":
        return OllamaEmbeddingProvider(settings=app_settings)

    if app_settings.openai_api_key:
        provider: IEmbeddingProvider = OpenAIEmbeddingProvider(settings=app_settings)
        if provider.is_available():
            return provider

    provider = OllamaEmbeddingProvider(settings=app_settings)
    if provider.is_available():
        return provider

    return None


# ---------------------------------------------------------------------------
# Assembly
# ---------------------------------------------------------------------------


def build_engine(
    app_settings: Settings,
    embedding_provider: IEmbeddingProvider | None = None,
) -> KnowledgeEngine:
    """Construct every provider and service for *app_settings*.

    *embedding_provider* overrides provider selection (tests inject a mock).
    The store is not initialized; use :func:`create_engine` for that.
    """
    store = SQLiteKnowledgeStore(db_path=app_settings.knowledge_db_path)
    embedder = (
        embedding_provider
        if embedding_provider is not None
        else _build_embedding_provider(app_settings)
    )
    parser = ParserRegistry()
    url_loader = WebLoaderProvider(timeout=app_settings.url_fetch_timeout)

    ingestion = IngestionService(
        store=store,
        parser=parser,
        url_loader=url_loader,
        embedding_provider=embedder,
        files_dir=app_settings.files_dir,
        default_chunking=RecursiveChunkingConfig(
            chunk_size=app_settings.chunk_size,
            chunk_overlap=app_settings.chunk_overlap,
        ),
    )
    retrieval = RetrievalService(
        store=store,
        embedding_provider=embedder,
        default_top_k=app_settings.search_top_k,
        default_vector_weight=app_settings.hybrid_vector_weight,
        default_text_weight=app_settings.hybrid_text_weight,
    )

    if embedder is None:
        logger.warning(
            "embedding_provider_unavailable",
            msg="No embedding provider available; search will return empty results.",
        )
    else:
        logger.info(
            "knowledge_engine_built",
            embedding_provider=embedder.get_provider_name(),
            db_path=app_settings.knowledge_db_path,
        )

    return KnowledgeEngine(
        settings=app_settings,
        store=store,
        embedding_provider=embedder,
        parser=parser,
        url_loader=url_loader,
        ingestion=ingestion,
        retrieval=retrieval,
        knowledge=KnowledgeService(store),
        tags=TagService(store),
    )


async def create_engine(
    app_settings: Settings | None = None,
    embedding_provider: IEmbeddingProvider | None = None,
) -> KnowledgeEngine:
    """Build the engine and create the database schema if needed."""
    if app_settings is None:
        from knowledge_engine.config.loader import load_settings

        app_settings = load_settings()
    engine = build_engine(app_settings, embedding_provider=embedding_provider)
    await engine.store.initialize()
    return engine
