"""Unit tests for the knowledge engine exception hierarchy."""

from __future__ import annotations

import pytest

from knowledge_engine.utils.errors import (
    EmbeddingUnavailable,
    EmptyContentAfterSplit,
    IngestionError,
    InvalidDistanceFunction,
    KnowledgeBaseNotFound,
    KnowledgeEngineError,
    NotFoundError,
    ParseError,
    SearchError,
    StoreError,
    UnsafePredicate,
    UnsupportedSourceType,
)


class TestKnowledgeEngineError:
    def test_str_without_provider(self) -> None:
        assert str(KnowledgeEngineError("boom")) == "boom"

    def test_str_with_provider_prefix(self) -> None:
        err = KnowledgeEngineError("API error", provider_name="openai_embedding")
        assert str(err) == "[openai_embedding] API error"
        assert err.message == "API error"
        assert err.provider_name == "openai_embedding"


class TestIngestionErrors:
    @pytest.mark.parametrize(
        ("cls", "stage"),
        [
            (UnsupportedSourceType, "resolve"),
            (ParseError, "resolve"),
            (EmbeddingUnavailable, "split"),
            (EmptyContentAfterSplit, "split"),
        ],
    )
    def test_subclasses_carry_stage(self, cls: type[IngestionError], stage: str) -> None:
        err = cls()
        assert isinstance(err, IngestionError)
        assert isinstance(err, KnowledgeEngineError)
        assert err.stage == stage

    def test_custom_stage(self) -> None:
        err = IngestionError("write failed", stage="persist_chunks")
        assert err.stage == "persist_chunks"


class TestOtherErrors:
    def test_search_error_subclasses(self) -> None:
        assert issubclass(InvalidDistanceFunction, SearchError)
        assert issubclass(UnsafePredicate, SearchError)

    def test_store_error_operation(self) -> None:
        err = StoreError("disk full", operation="create_chunks", provider_name="sqlite")
        assert err.operation == "create_chunks"
        assert "[sqlite]" in str(err)

    def test_knowledge_base_not_found(self) -> None:
        err = KnowledgeBaseNotFound("kb-1")
        assert isinstance(err, NotFoundError)
        assert err.entity == "knowledge_base"
        assert err.entity_id == "kb-1"
        assert "kb-1" in err.message
