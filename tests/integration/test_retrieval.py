"""End-to-end retrieval tests through the wired KnowledgeEngine.

Builds the engine with :func:`create_engine` on a temporary database and
the deterministic mock embedder, imports a few documents, then queries
them through the retrieval facade, the tag index and the knowledge service.
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from pathlib import Path

import pytest

from knowledge_engine.config.settings import Settings
from knowledge_engine.main import KnowledgeEngine, create_engine
from knowledge_engine.models.ingestion import ImportRequest
from knowledge_engine.models.knowledge import KnowledgeBase, SourceType
from knowledge_engine.models.search import SearchOptions
from knowledge_engine.utils.errors import UnsafePredicate
from tests.conftest import MockEmbeddingProvider

_DOCUMENTS = {
    "Astronomy": "Jupiter is the largest planet in the solar system.",
    "Cooking": "Knead the bread dough for ten minutes before proofing.",
    "Finance": "Diversified portfolios reduce exposure to a single market.",
}


@pytest.fixture
async def engine(tmp_path: Path) -> AsyncIterator[KnowledgeEngine]:
    settings = Settings(
        knowledge_db_path=str(tmp_path / "knowledge.db"),
        files_dir=str(tmp_path / "files"),
        embedding_provider="none",
        chunk_size=200,
        chunk_overlap=0,
    )
    built = await create_engine(settings, embedding_provider=MockEmbeddingProvider())
    yield built
    await built.aclose()


@pytest.fixture
async def populated(engine: KnowledgeEngine) -> tuple[KnowledgeBase, dict[str, str]]:
    kb = await engine.knowledge.create_knowledge_base("library")
    document_ids = {}
    for title, text in _DOCUMENTS.items():
        result = await engine.ingestion.import_document(
            ImportRequest(
                knowledge_base_id=kb.id,
                source_type=SourceType.TEXT,
                title=title,
                content=text,
            )
        )
        document_ids[title] = result.document_id
    return kb, document_ids


class TestEndToEndSearch:
    @pytest.mark.asyncio
    async def test_hybrid_search_finds_exact_text_first(
        self, engine: KnowledgeEngine, populated: tuple[KnowledgeBase, dict[str, str]]
    ) -> None:
        kb, document_ids = populated

        result = await engine.retrieval.search(kb.id, _DOCUMENTS["Cooking"], top_k=3)

        assert result.total_count == 3
        top = result.chunks[0]
        assert top.document_title == "Cooking"
        assert top.document_id == document_ids["Cooking"]
        scores = [c.score for c in result.chunks]
        assert scores == sorted(scores, reverse=True)

    @pytest.mark.asyncio
    async def test_keyword_search(
        self, engine: KnowledgeEngine, populated: tuple[KnowledgeBase, dict[str, str]]
    ) -> None:
        kb, _ = populated
        result = await engine.retrieval.keyword_search([kb.id], "Jupiter")
        assert [c.document_title for c in result.chunks] == ["Astronomy"]

    @pytest.mark.asyncio
    async def test_semantic_search_rejects_unsafe_filter(
        self, engine: KnowledgeEngine, populated: tuple[KnowledgeBase, dict[str, str]]
    ) -> None:
        kb, _ = populated
        with pytest.raises(UnsafePredicate):
            await engine.retrieval.semantic_search(
                [kb.id],
                "planets",
                options=SearchOptions(extra_predicate="1=1; DROP TABLE knowledge_chunks"),
            )
        still_there = await engine.retrieval.keyword_search([kb.id], "Jupiter")
        assert still_there.total_count == 1

    @pytest.mark.asyncio
    async def test_disabled_chunk_drops_out_of_results(
        self, engine: KnowledgeEngine, populated: tuple[KnowledgeBase, dict[str, str]]
    ) -> None:
        kb, document_ids = populated
        chunks, _ = await engine.knowledge.list_chunks(document_ids["Finance"])
        await engine.knowledge.set_chunk_enabled(chunks[0].id, False)

        result = await engine.retrieval.search(kb.id, _DOCUMENTS["Finance"], top_k=5)

        assert document_ids["Finance"] not in {c.document_id for c in result.chunks}

    @pytest.mark.asyncio
    async def test_search_is_scoped_to_knowledge_base(
        self, engine: KnowledgeEngine, populated: tuple[KnowledgeBase, dict[str, str]]
    ) -> None:
        other = await engine.knowledge.create_knowledge_base("empty")
        result = await engine.retrieval.search(other.id, _DOCUMENTS["Astronomy"])
        assert result.total_count == 0

    @pytest.mark.asyncio
    async def test_deleted_document_is_not_returned(
        self, engine: KnowledgeEngine, populated: tuple[KnowledgeBase, dict[str, str]]
    ) -> None:
        kb, document_ids = populated
        await engine.knowledge.delete_document(document_ids["Astronomy"])

        result = await engine.retrieval.keyword_search([kb.id], "Jupiter")

        assert result.total_count == 0


class TestTagging:
    @pytest.mark.asyncio
    async def test_tags_on_imported_chunks(
        self, engine: KnowledgeEngine, populated: tuple[KnowledgeBase, dict[str, str]]
    ) -> None:
        kb, document_ids = populated
        tag = await engine.tags.create_tag(kb.id, "science", color="#00f")
        chunks, _ = await engine.knowledge.list_chunks(document_ids["Astronomy"])

        await engine.tags.add_tag_to_chunk(chunks[0].id, tag.id)

        tagged, total = await engine.tags.list_chunks_for_tag(tag.id)
        assert total == 1
        assert tagged[0].content == _DOCUMENTS["Astronomy"]

        await engine.knowledge.delete_knowledge_base(kb.id)
        assert await engine.tags.list_tags(kb.id) == []
