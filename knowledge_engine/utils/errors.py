"""Custom exception hierarchy for the knowledge engine.

All application exceptions inherit from :class:`KnowledgeEngineError`, which
carries an optional ``provider_name`` so error handlers can identify which
collaborator (e.g. "openai", "sqlite_knowledge_store", "web_loader") caused
the failure.

The hierarchy is organized by engine domain:

    KnowledgeEngineError  (base -- catch-all for any engine error)
    +-- ConfigurationError         (startup / missing config)
    +-- EmbeddingError             (embedding provider API failure)
    +-- NotFoundError              (missing knowledge base, document, chunk, tag)
    |   +-- KnowledgeBaseNotFound
    +-- StoreError                 (any persistence failure, carries the operation)
    +-- IngestionError             (import pipeline, carries the failing stage)
    |   +-- UnsupportedSourceType
    |   +-- ParseError
    |   +-- EmbeddingUnavailable
    |   +-- EmptyContentAfterSplit
    +-- SearchError                (vector / full-text / hybrid retrieval)
        +-- InvalidDistanceFunction
        +-- UnsafePredicate
"""


class KnowledgeEngineError(Exception):
    """Base exception for all knowledge engine errors.

    Every subclass carries a human-readable ``message`` and an optional
    ``provider_name`` identifying which collaborator triggered the error.
    The ``__str__`` method prefixes the provider name in brackets for
    structured log output, e.g. ``[openai_embedding] API error``.
    """

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        provider_name: str | None = None,
    ) -> None:
        self._message = message
        self._provider_name = provider_name
        super().__init__(self._message)

    @property
    def message(self) -> str:
        return self._message

    @property
    def provider_name(self) -> str | None:
        return self._provider_name

    def __str__(self) -> str:
        if self._provider_name:
            return f"[{self._provider_name}] {self._message}"
        return self._message


# ---------------------------------------------------------------------------
# Configuration / provider errors
# ---------------------------------------------------------------------------

class ConfigurationError(KnowledgeEngineError):
    """Raised when configuration is invalid or missing at startup."""

    def __init__(
        self,
        message: str = "Invalid or missing configuration",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class EmbeddingError(KnowledgeEngineError):
    """Raised when an embedding provider call fails."""

    def __init__(
        self,
        message: str = "Embedding provider call failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


# ---------------------------------------------------------------------------
# Persistence errors
# ---------------------------------------------------------------------------

class NotFoundError(KnowledgeEngineError):
    """Raised when a referenced entity does not exist."""

    def __init__(
        self,
        message: str = "Entity not found",
        entity: str = "",
        entity_id: str = "",
        provider_name: str | None = None,
    ) -> None:
        self._entity = entity
        self._entity_id = entity_id
        super().__init__(message=message, provider_name=provider_name)

    @property
    def entity(self) -> str:
        return self._entity

    @property
    def entity_id(self) -> str:
        return self._entity_id


class KnowledgeBaseNotFound(NotFoundError):
    """Raised when an operation targets a knowledge base that does not exist."""

    def __init__(self, knowledge_base_id: str, provider_name: str | None = None) -> None:
        super().__init__(
            message=f"Knowledge base not found: {knowledge_base_id}",
            entity="knowledge_base",
            entity_id=knowledge_base_id,
            provider_name=provider_name,
        )


class StoreError(KnowledgeEngineError):
    """Raised when a knowledge store operation fails.

    ``operation`` names the store method that failed (e.g.
    ``"create_chunks"``) so callers and logs can pinpoint the write or
    query without parsing the message.
    """

    def __init__(
        self,
        message: str = "Knowledge store operation failed",
        operation: str = "",
        provider_name: str | None = None,
    ) -> None:
        self._operation = operation
        super().__init__(message=message, provider_name=provider_name)

    @property
    def operation(self) -> str:
        return self._operation


# ---------------------------------------------------------------------------
# Ingestion errors
# ---------------------------------------------------------------------------

class IngestionError(KnowledgeEngineError):
    """Raised when a document import fails.

    ``stage`` is one of ``resolve``, ``persist_document``, ``split``,
    ``embed``, ``persist_chunks``, ``persist_embeddings`` or
    ``mark_parsed``.  The import is aborted at that stage and no
    retry is attempted.
    """

    def __init__(
        self,
        message: str = "Document import failed",
        stage: str = "",
        provider_name: str | None = None,
    ) -> None:
        self._stage = stage
        super().__init__(message=message, provider_name=provider_name)

    @property
    def stage(self) -> str:
        return self._stage


class UnsupportedSourceType(IngestionError):
    """Raised when no parser is registered for a file extension."""

    def __init__(
        self,
        message: str = "Unsupported source type",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, stage="resolve", provider_name=provider_name)


class ParseError(IngestionError):
    """Raised when a parser or URL loader cannot produce plain text."""

    def __init__(
        self,
        message: str = "Failed to parse source content",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, stage="resolve", provider_name=provider_name)


class EmbeddingUnavailable(IngestionError):
    """Raised when semantic chunking is requested without an embedder."""

    def __init__(
        self,
        message: str = "Semantic chunking requires an embedding provider",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, stage="split", provider_name=provider_name)


class EmptyContentAfterSplit(IngestionError):
    """Raised when splitting produced zero chunks."""

    def __init__(
        self,
        message: str = "No chunks produced after splitting",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, stage="split", provider_name=provider_name)


# ---------------------------------------------------------------------------
# Retrieval errors
# ---------------------------------------------------------------------------

class SearchError(KnowledgeEngineError):
    """Raised when a vector, full-text or hybrid search fails."""

    def __init__(
        self,
        message: str = "Search failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class InvalidDistanceFunction(SearchError):
    """Raised when a distance function outside cosine / l2 / inner_product is requested."""

    def __init__(
        self,
        message: str = "Invalid distance function",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class UnsafePredicate(SearchError):
    """Raised when an extra filter predicate contains a mutating SQL keyword."""

    def __init__(
        self,
        message: str = "Unsafe filter predicate",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)
