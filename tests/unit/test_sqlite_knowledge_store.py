"""Unit tests for SQLiteKnowledgeStore -- CRUD, cascades, tags and search primitives."""

from __future__ import annotations

import asyncio
from pathlib import Path

import aiosqlite
import pytest

from knowledge_engine.models.knowledge import (
    Chunk,
    Document,
    Embedding,
    KnowledgeBase,
    ParseStatus,
    SemanticChunkingConfig,
    SourceType,
    Tag,
)
from knowledge_engine.models.search import SearchOptions
from knowledge_engine.providers.store.sqlite_knowledge_store import SQLiteKnowledgeStore
from knowledge_engine.utils.errors import (
    KnowledgeBaseNotFound,
    NotFoundError,
    StoreError,
    UnsafePredicate,
)
from tests.conftest import EMBEDDING_DIM, add_chunks, hash_to_vector

# ======================================================================
# Knowledge bases and documents
# ======================================================================


class TestKnowledgeBases:
    @pytest.mark.asyncio
    async def test_round_trip_keeps_configs(self, store: SQLiteKnowledgeStore) -> None:
        kb = KnowledgeBase(
            name="papers",
            description="research papers",
            chunking_config=SemanticChunkingConfig(percentile=0.8),
            metadata={"owner": "team-a"},
        )
        await store.create_knowledge_base(kb)

        loaded = await store.get_knowledge_base(kb.id)

        assert loaded is not None
        assert loaded.name == "papers"
        assert isinstance(loaded.chunking_config, SemanticChunkingConfig)
        assert loaded.chunking_config.percentile == 0.8
        assert loaded.metadata == {"owner": "team-a"}

    @pytest.mark.asyncio
    async def test_missing_returns_none(self, store: SQLiteKnowledgeStore) -> None:
        assert await store.get_knowledge_base("nope") is None

    @pytest.mark.asyncio
    async def test_update(self, store: SQLiteKnowledgeStore, knowledge_base: KnowledgeBase) -> None:
        updated = await store.update_knowledge_base(
            knowledge_base.model_copy(update={"description": "changed"})
        )
        loaded = await store.get_knowledge_base(knowledge_base.id)
        assert loaded is not None and loaded.description == "changed"
        assert updated.updated_at >= knowledge_base.updated_at

    @pytest.mark.asyncio
    async def test_update_missing_raises(self, store: SQLiteKnowledgeStore) -> None:
        with pytest.raises(KnowledgeBaseNotFound):
            await store.update_knowledge_base(KnowledgeBase(name="ghost"))

    @pytest.mark.asyncio
    async def test_list(self, store: SQLiteKnowledgeStore) -> None:
        await store.create_knowledge_base(KnowledgeBase(name="one"))
        await store.create_knowledge_base(KnowledgeBase(name="two"))
        names = {kb.name for kb in await store.list_knowledge_bases()}
        assert names == {"one", "two"}

    @pytest.mark.asyncio
    async def test_delete_cascades(
        self, store: SQLiteKnowledgeStore, knowledge_base: KnowledgeBase, document: Document
    ) -> None:
        chunks = await add_chunks(store, document, ["alpha", "beta"])
        tag = await store.create_tag(Tag(knowledge_base_id=knowledge_base.id, name="t"))
        await store.add_tag_to_chunk(chunks[0].id, tag.id)

        assert await store.delete_knowledge_base(knowledge_base.id) is True

        assert await store.get_document(document.id) is None
        assert await store.get_chunk(chunks[0].id) is None
        assert await store.get_embedding_by_chunk(chunks[0].id) is None
        assert await store.get_tag(tag.id) is None
        assert await store.delete_knowledge_base(knowledge_base.id) is False


class TestDocuments:
    @pytest.mark.asyncio
    async def test_status_update(self, store: SQLiteKnowledgeStore, knowledge_base: KnowledgeBase) -> None:
        doc = await store.create_document(
            Document(knowledge_base_id=knowledge_base.id, source_type=SourceType.URL, source_uri="https://x")
        )
        assert doc.parse_status is ParseStatus.PENDING

        await store.update_document_status(doc.id, ParseStatus.PARSED)

        loaded = await store.get_document(doc.id)
        assert loaded is not None and loaded.parse_status is ParseStatus.PARSED

    @pytest.mark.asyncio
    async def test_status_update_missing(self, store: SQLiteKnowledgeStore) -> None:
        with pytest.raises(NotFoundError):
            await store.update_document_status("missing", ParseStatus.PARSED)

    @pytest.mark.asyncio
    async def test_document_requires_existing_kb(self, store: SQLiteKnowledgeStore) -> None:
        with pytest.raises(StoreError) as exc_info:
            await store.create_document(Document(knowledge_base_id="missing", source_type=SourceType.TEXT))
        assert exc_info.value.operation == "create_document"

    @pytest.mark.asyncio
    async def test_list_and_batch_get(self, store: SQLiteKnowledgeStore, knowledge_base: KnowledgeBase) -> None:
        docs = [
            await store.create_document(
                Document(knowledge_base_id=knowledge_base.id, source_type=SourceType.TEXT, title=f"d{i}")
            )
            for i in range(3)
        ]
        page, total = await store.list_documents(knowledge_base.id, limit=2)
        assert total == 3
        assert len(page) == 2

        found = await store.get_documents([docs[0].id, docs[0].id, "missing", docs[2].id])
        assert set(found) == {docs[0].id, docs[2].id}
        assert found[docs[2].id].title == "d2"
        assert await store.get_documents([]) == {}

    @pytest.mark.asyncio
    async def test_delete_cascades_to_chunks(self, store: SQLiteKnowledgeStore, document: Document) -> None:
        chunks = await add_chunks(store, document, ["one", "two"])
        assert await store.delete_document(document.id) is True
        assert await store.get_chunk(chunks[1].id) is None
        assert await store.get_embedding_by_chunk(chunks[1].id) is None


# ======================================================================
# Chunks and embeddings
# ======================================================================


class TestChunks:
    @pytest.mark.asyncio
    async def test_list_by_document_in_index_order(self, store: SQLiteKnowledgeStore, document: Document) -> None:
        await add_chunks(store, document, ["c0", "c1", "c2"], embed=False)
        chunks, total = await store.list_chunks_by_document(document.id)
        assert total == 3
        assert [c.chunk_index for c in chunks] == [0, 1, 2]

    @pytest.mark.asyncio
    async def test_disabled_chunks_hidden_from_document_listing(
        self, store: SQLiteKnowledgeStore, document: Document
    ) -> None:
        chunks = await add_chunks(store, document, ["c0", "c1"], embed=False)
        assert await store.set_chunk_enabled(chunks[0].id, False) is True

        listed, total = await store.list_chunks_by_document(document.id)
        assert total == 1
        assert [c.id for c in listed] == [chunks[1].id]

        loaded = await store.get_chunk(chunks[0].id)
        assert loaded is not None and loaded.enabled is False

    @pytest.mark.asyncio
    async def test_set_enabled_missing(self, store: SQLiteKnowledgeStore) -> None:
        assert await store.set_chunk_enabled("missing", True) is False

    @pytest.mark.asyncio
    async def test_list_by_knowledge_base(
        self, store: SQLiteKnowledgeStore, knowledge_base: KnowledgeBase, document: Document
    ) -> None:
        await add_chunks(store, document, ["a", "b", "c"], embed=False)
        page, total = await store.list_chunks_by_knowledge_base(knowledge_base.id, limit=2)
        assert total == 3
        assert len(page) == 2

    @pytest.mark.asyncio
    async def test_delete_chunk(self, store: SQLiteKnowledgeStore, document: Document) -> None:
        chunks = await add_chunks(store, document, ["a"])
        assert await store.delete_chunk(chunks[0].id) is True
        assert await store.get_embedding_by_chunk(chunks[0].id) is None
        assert await store.delete_chunk(chunks[0].id) is False


class TestEmbeddings:
    @pytest.mark.asyncio
    async def test_upsert_replaces_existing_vector(self, store: SQLiteKnowledgeStore, document: Document) -> None:
        chunk = (await add_chunks(store, document, ["text"]))[0]
        first = await store.get_embedding_by_chunk(chunk.id)
        assert first is not None

        replacement = hash_to_vector("other text")
        await store.upsert_embeddings(
            [
                Embedding(
                    knowledge_base_id=chunk.knowledge_base_id,
                    chunk_id=chunk.id,
                    vector=replacement,
                    dimension=EMBEDDING_DIM,
                    model="mock-v2",
                )
            ]
        )

        second = await store.get_embedding_by_chunk(chunk.id)
        assert second is not None
        assert second.id == first.id
        assert second.model == "mock-v2"
        assert second.vector == pytest.approx(replacement, abs=1e-6)


# ======================================================================
# Tags
# ======================================================================


class TestTags:
    @pytest.mark.asyncio
    async def test_add_is_idempotent(
        self, store: SQLiteKnowledgeStore, knowledge_base: KnowledgeBase, document: Document
    ) -> None:
        chunk = (await add_chunks(store, document, ["a"], embed=False))[0]
        tag = await store.create_tag(Tag(knowledge_base_id=knowledge_base.id, name="important"))

        await store.add_tag_to_chunk(chunk.id, tag.id)
        await store.add_tag_to_chunk(chunk.id, tag.id)

        assert [t.id for t in await store.list_tags_for_chunk(chunk.id)] == [tag.id]
        chunks, total = await store.list_chunks_for_tag(tag.id)
        assert total == 1
        assert chunks[0].id == chunk.id

    @pytest.mark.asyncio
    async def test_remove(
        self, store: SQLiteKnowledgeStore, knowledge_base: KnowledgeBase, document: Document
    ) -> None:
        chunk = (await add_chunks(store, document, ["a"], embed=False))[0]
        tag = await store.create_tag(Tag(knowledge_base_id=knowledge_base.id, name="t"))
        await store.add_tag_to_chunk(chunk.id, tag.id)

        assert await store.remove_tag_from_chunk(chunk.id, tag.id) is True
        assert await store.remove_tag_from_chunk(chunk.id, tag.id) is False
        assert await store.list_tags_for_chunk(chunk.id) == []

    @pytest.mark.asyncio
    async def test_delete_tag_removes_relations(
        self, store: SQLiteKnowledgeStore, knowledge_base: KnowledgeBase, document: Document
    ) -> None:
        chunk = (await add_chunks(store, document, ["a"], embed=False))[0]
        tag = await store.create_tag(Tag(knowledge_base_id=knowledge_base.id, name="t"))
        await store.add_tag_to_chunk(chunk.id, tag.id)

        assert await store.delete_tag(tag.id) is True

        assert await store.list_tags_for_chunk(chunk.id) == []
        assert await store.get_chunk(chunk.id) is not None

    @pytest.mark.asyncio
    async def test_chunks_for_tag_ordered_by_document_then_index(
        self, store: SQLiteKnowledgeStore, knowledge_base: KnowledgeBase, document: Document
    ) -> None:
        chunks = await add_chunks(store, document, ["a", "b", "c"], embed=False)
        tag = await store.create_tag(Tag(knowledge_base_id=knowledge_base.id, name="t"))
        for chunk in reversed(chunks):
            await store.add_tag_to_chunk(chunk.id, tag.id)

        listed, _ = await store.list_chunks_for_tag(tag.id)
        assert [c.chunk_index for c in listed] == [0, 1, 2]

    @pytest.mark.asyncio
    async def test_tag_and_chunk_must_share_knowledge_base(
        self, store: SQLiteKnowledgeStore, document: Document
    ) -> None:
        chunk = (await add_chunks(store, document, ["a"], embed=False))[0]
        other_kb = await store.create_knowledge_base(KnowledgeBase(name="other"))
        tag = await store.create_tag(Tag(knowledge_base_id=other_kb.id, name="t"))

        with pytest.raises(ValueError):
            await store.add_tag_to_chunk(chunk.id, tag.id)

    @pytest.mark.asyncio
    async def test_add_with_missing_tag(self, store: SQLiteKnowledgeStore, document: Document) -> None:
        chunk = (await add_chunks(store, document, ["a"], embed=False))[0]
        with pytest.raises(NotFoundError) as exc_info:
            await store.add_tag_to_chunk(chunk.id, "missing")
        assert exc_info.value.entity == "tag"

    @pytest.mark.asyncio
    async def test_update_tag(self, store: SQLiteKnowledgeStore, knowledge_base: KnowledgeBase) -> None:
        tag = await store.create_tag(Tag(knowledge_base_id=knowledge_base.id, name="old"))
        await store.update_tag(tag.model_copy(update={"name": "new", "color": "#ff0000"}))
        loaded = await store.get_tag(tag.id)
        assert loaded is not None
        assert (loaded.name, loaded.color) == ("new", "#ff0000")


# ======================================================================
# Search primitives
# ======================================================================

    @pytest.mark.asyncio
    async def test_delete_chunk_removes_tag_relations(
        self,
        store: SQLiteKnowledgeStore,
        knowledge_base: KnowledgeBase,
        document: Document,
        tmp_path: Path,
    ) -> None:
        chunk = (await add_chunks(store, document, ["a"]))[0]
        tag = await store.create_tag(Tag(knowledge_base_id=knowledge_base.id, name="t"))
        await store.add_tag_to_chunk(chunk.id, tag.id)

        assert await store.delete_chunk(chunk.id) is True

        async with aiosqlite.connect(tmp_path / "knowledge.db") as db:
            cursor = await db.execute("SELECT COUNT(*) FROM chunk_tags WHERE chunk_id = ?", (chunk.id,))
            (relations,) = await cursor.fetchone()
        assert relations == 0
        assert await store.get_tag(tag.id) is not None
        assert await store.list_chunks_for_tag(tag.id) == ([], 0)



class TestSearchPrimitives:
    @pytest.mark.asyncio
    async def test_vector_search_ranks_identical_text_first(
        self, store: SQLiteKnowledgeStore, knowledge_base: KnowledgeBase, document: Document
    ) -> None:
        chunks = await add_chunks(store, document, ["apples", "bananas", "cherries"])

        hits = await store.search_by_vector(
            [knowledge_base.id], hash_to_vector("bananas"), 3, SearchOptions()
        )

        assert len(hits) == 3
        assert hits[0].chunk.id == chunks[1].id
        assert hits[0].score == pytest.approx(1.0, abs=1e-5)
        assert all(0 < h.score <= 1.0 + 1e-6 for h in hits)

    @pytest.mark.asyncio
    async def test_vector_search_skips_disabled_and_unembedded(
        self, store: SQLiteKnowledgeStore, knowledge_base: KnowledgeBase, document: Document
    ) -> None:
        embedded = await add_chunks(store, document, ["one", "two"])
        await add_chunks(store, document, ["three"], embed=False)
        await store.set_chunk_enabled(embedded[0].id, False)

        hits = await store.search_by_vector(
            [knowledge_base.id], hash_to_vector("one"), 10, SearchOptions()
        )
        assert [h.chunk.id for h in hits] == [embedded[1].id]

    @pytest.mark.asyncio
    async def test_vector_search_rejects_unsafe_predicate(
        self, store: SQLiteKnowledgeStore, knowledge_base: KnowledgeBase
    ) -> None:
        with pytest.raises(UnsafePredicate):
            await store.search_by_vector(
                [knowledge_base.id],
                hash_to_vector("q"),
                5,
                SearchOptions(extra_predicate="1=1; DROP TABLE knowledge_chunks"),
            )

    @pytest.mark.asyncio
    async def test_vector_search_with_safe_predicate(
        self, store: SQLiteKnowledgeStore, knowledge_base: KnowledgeBase, document: Document
    ) -> None:
        chunks = await add_chunks(store, document, ["one", "two"])
        hits = await store.search_by_vector(
            [knowledge_base.id],
            hash_to_vector("one"),
            5,
            SearchOptions(extra_predicate="c.chunk_index >= 1"),
        )
        assert [h.chunk.id for h in hits] == [chunks[1].id]

    @pytest.mark.asyncio
    async def test_predicate_with_question_mark_literal(
        self, store: SQLiteKnowledgeStore, knowledge_base: KnowledgeBase, document: Document
    ) -> None:
        chunks = await add_chunks(store, document, ["why is the sky blue?", "because of scattering"])
        hits = await store.search_by_vector(
            [knowledge_base.id],
            hash_to_vector("because of scattering"),
            5,
            SearchOptions(extra_predicate="c.content LIKE '%?%'"),
        )
        assert [h.chunk.id for h in hits] == [chunks[0].id]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("metric", ["l2", "inner_product"])
    async def test_score_threshold_is_a_distance_bound_for_reciprocal_metrics(
        self,
        store: SQLiteKnowledgeStore,
        knowledge_base: KnowledgeBase,
        document: Document,
        metric: str,
    ) -> None:
        chunks = await add_chunks(store, document, ["apples", "bananas", "cherries"])
        query = hash_to_vector("bananas")

        tight = await store.search_by_vector(
            [knowledge_base.id], query, 5, SearchOptions(distance_function=metric, score_threshold=0.01)
        )
        loose = await store.search_by_vector(
            [knowledge_base.id], query, 5, SearchOptions(distance_function=metric, score_threshold=10.0)
        )

        assert [h.chunk.id for h in tight] == [chunks[1].id]
        assert tight[0].distance < 0.01
        assert len(loose) == 3
        assert all(h.distance < 10.0 for h in loose)

    @pytest.mark.asyncio
    async def test_cosine_score_threshold(
        self, store: SQLiteKnowledgeStore, knowledge_base: KnowledgeBase, document: Document
    ) -> None:
        chunks = await add_chunks(store, document, ["apples", "bananas", "cherries"])
        hits = await store.search_by_vector(
            [knowledge_base.id],
            hash_to_vector("bananas"),
            5,
            SearchOptions(score_threshold=0.999),
        )
        assert [h.chunk.id for h in hits] == [chunks[1].id]

    @pytest.mark.asyncio
    async def test_cosine_scores_span_minus_one_to_one(
        self, store: SQLiteKnowledgeStore, knowledge_base: KnowledgeBase, document: Document
    ) -> None:
        same, orthogonal, opposite = await add_chunks(
            store, document, ["same", "orthogonal", "opposite"], embed=False
        )
        axis = [1.0] + [0.0] * (EMBEDDING_DIM - 1)
        vectors = {
            same.id: axis,
            orthogonal.id: [0.0, 1.0] + [0.0] * (EMBEDDING_DIM - 2),
            opposite.id: [-1.0] + [0.0] * (EMBEDDING_DIM - 1),
        }
        await store.upsert_embeddings(
            [
                Embedding(
                    knowledge_base_id=knowledge_base.id,
                    chunk_id=chunk_id,
                    vector=vector,
                    dimension=EMBEDDING_DIM,
                )
                for chunk_id, vector in vectors.items()
            ]
        )

        hits = await store.search_by_vector([knowledge_base.id], axis, 5, SearchOptions())

        assert [h.chunk.id for h in hits] == [same.id, orthogonal.id, opposite.id]
        assert [h.score for h in hits] == pytest.approx([1.0, 0.0, -1.0], abs=1e-6)

        fused = await store.search_hybrid([knowledge_base.id], "nomatch", axis, 5, 1.0, 0.0)
        assert [h.chunk.id for h in fused] == [same.id]

    @pytest.mark.asyncio
    async def test_dimension_mismatch_is_store_error(
        self, store: SQLiteKnowledgeStore, knowledge_base: KnowledgeBase, document: Document
    ) -> None:
        await add_chunks(store, document, ["one"])
        with pytest.raises(StoreError) as exc_info:
            await store.search_by_vector([knowledge_base.id], [1.0, 0.0], 5, SearchOptions())
        assert exc_info.value.operation == "search_by_vector"

    @pytest.mark.asyncio
    async def test_full_text_search(
        self, store: SQLiteKnowledgeStore, knowledge_base: KnowledgeBase, document: Document
    ) -> None:
        chunks = await add_chunks(
            store,
            document,
            ["the quick brown fox", "a lazy dog sleeps", "fox and fox again, fox", "cats nap", "birds sing"],
            embed=False,
        )

        hits = await store.search_by_full_text([knowledge_base.id], "fox", 10)

        assert {h.chunk.id for h in hits} == {chunks[0].id, chunks[2].id}
        assert hits[0].chunk.id == chunks[2].id
        assert all(0 < h.score < 1 for h in hits)

    @pytest.mark.asyncio
    async def test_full_text_query_with_fts_syntax_is_quoted(
        self, store: SQLiteKnowledgeStore, knowledge_base: KnowledgeBase, document: Document
    ) -> None:
        await add_chunks(store, document, ["alpha beta"], embed=False)
        hits = await store.search_by_full_text([knowledge_base.id], 'alpha"* (', 10)
        assert len(hits) == 1

    @pytest.mark.asyncio
    async def test_full_text_reflects_deletes(
        self, store: SQLiteKnowledgeStore, knowledge_base: KnowledgeBase, document: Document
    ) -> None:
        chunks = await add_chunks(store, document, ["unique word zebra"], embed=False)
        await store.delete_chunk(chunks[0].id)
        assert await store.search_by_full_text([knowledge_base.id], "zebra", 10) == []

    @pytest.mark.asyncio
    async def test_search_scoped_to_knowledge_base(
        self, store: SQLiteKnowledgeStore, document: Document
    ) -> None:
        await add_chunks(store, document, ["shared words"])
        other_kb = await store.create_knowledge_base(KnowledgeBase(name="other"))

        assert await store.search_by_full_text([other_kb.id], "shared", 5) == []
        assert await store.search_by_vector(
            [other_kb.id], hash_to_vector("shared words"), 5, SearchOptions()
        ) == []

    @pytest.mark.asyncio
    async def test_hybrid_fuses_both_legs(
        self, store: SQLiteKnowledgeStore, knowledge_base: KnowledgeBase, document: Document
    ) -> None:
        chunks = await add_chunks(store, document, ["solar panels", "wind turbines"])

        hits = await store.search_hybrid(
            [knowledge_base.id], "solar", hash_to_vector("solar panels"), 5, 0.7, 0.3
        )

        assert hits[0].chunk.id == chunks[0].id
        assert hits[0].vector_score is not None and hits[0].vector_score > 0
        assert hits[0].text_score is not None and hits[0].text_score > 0
        wind = next(h for h in hits if h.chunk.id == chunks[1].id)
        assert wind.text_score == 0.0
        assert wind.score == pytest.approx(0.7 * wind.vector_score)

    @pytest.mark.asyncio
    async def test_hybrid_leg_failure_cancels_other_leg(
        self,
        store: SQLiteKnowledgeStore,
        knowledge_base: KnowledgeBase,
        document: Document,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        await add_chunks(store, document, ["solar panels"])
        text_leg_cancelled = asyncio.Event()

        async def _slow_full_text(*args, **kwargs):
            try:
                await asyncio.sleep(30)
            except asyncio.CancelledError:
                text_leg_cancelled.set()
                raise
            return []

        monkeypatch.setattr(store, "search_by_full_text", _slow_full_text)

        with pytest.raises(StoreError) as exc_info:
            await store.search_hybrid([knowledge_base.id], "solar", [1.0, 0.0], 5, 0.7, 0.3)

        assert exc_info.value.operation == "search_by_vector"
        assert text_leg_cancelled.is_set()

    @pytest.mark.asyncio
    async def test_chunk_model_round_trip(self, store: SQLiteKnowledgeStore, document: Document) -> None:
        chunk = Chunk(
            knowledge_base_id=document.knowledge_base_id,
            document_id=document.id,
            chunk_index=0,
            content="body",
            content_hash="abc",
            metadata={"page": 2},
        )
        await store.create_chunks([chunk])
        loaded = await store.get_chunk(chunk.id)
        assert loaded is not None
        assert loaded.metadata == {"page": 2}
        assert loaded.content_hash == "abc"
