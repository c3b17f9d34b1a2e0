"""Unit tests for the knowledge CLI -- knowledge_engine.cli.knowledge."""

from __future__ import annotations

from argparse import Namespace
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from knowledge_engine.cli.knowledge import (
    _HANDLERS,
    _build_parser,
    _handle_chunks,
    _handle_ingest_file,
    _handle_ingest_text,
    _handle_kb_create,
    _handle_search,
    _handle_tag_list,
    _preview,
    _run,
    main,
)
from knowledge_engine.config.settings import Settings
from knowledge_engine.models.ingestion import ImportResult
from knowledge_engine.models.knowledge import (
    Chunk,
    KnowledgeBase,
    RecursiveChunkingConfig,
    SemanticChunkingConfig,
    SourceType,
    Tag,
)
from knowledge_engine.models.search import ChunkResult, SearchResult
from knowledge_engine.utils.errors import KnowledgeBaseNotFound

# ======================================================================
# Shared helpers
# ======================================================================


def _engine(**overrides) -> MagicMock:
    """A MagicMock engine whose services are AsyncMocks."""
    engine = MagicMock()
    engine.settings = Settings(chunk_size=512, chunk_overlap=50)
    engine.embedding_provider = MagicMock()
    engine.knowledge = AsyncMock()
    engine.ingestion = AsyncMock()
    engine.retrieval = AsyncMock()
    engine.tags = AsyncMock()
    engine.aclose = AsyncMock()
    for key, value in overrides.items():
        setattr(engine, key, value)
    return engine


def _import_result() -> ImportResult:
    return ImportResult(document_id="doc-1", chunk_count=3, embedded_count=3, ingestion_time=0.25)


# ======================================================================
# Argument parser
# ======================================================================


class TestBuildParser:
    def test_kb_create(self) -> None:
        args = _build_parser().parse_args(
            ["kb-create", "--name", "notes", "--chunk-size", "256", "--chunk-overlap", "0"]
        )
        assert args.command == "kb-create"
        assert (args.name, args.chunk_size, args.chunk_overlap) == ("notes", 256, 0)
        assert args.semantic is False

    def test_search(self) -> None:
        args = _build_parser().parse_args(
            ["search", "--kb", "kb-1", "--query", "q", "--top-k", "3", "--vector-weight", "1.0"]
        )
        assert (args.kb, args.query, args.top_k) == ("kb-1", "q", 3)
        assert args.vector_weight == 1.0
        assert args.text_weight is None
        assert args.reranked is False
        assert _build_parser().parse_args(["search", "--kb", "k", "--query", "q", "--reranked"]).reranked

    def test_chunks_defaults(self) -> None:
        args = _build_parser().parse_args(["chunks", "--document", "doc-1"])
        assert (args.limit, args.offset) == (20, 0)

    def test_global_config_flag(self) -> None:
        args = _build_parser().parse_args(["--config", "other.yaml", "kb-list"])
        assert args.config == "other.yaml"

    def test_missing_required_argument(self) -> None:
        with pytest.raises(SystemExit):
            _build_parser().parse_args(["ingest-url", "--kb", "kb-1"])

    def test_every_subcommand_has_a_handler(self) -> None:
        parser = _build_parser()
        subparsers = next(a for a in parser._actions if a.dest == "command")
        assert set(subparsers.choices) == set(_HANDLERS)


# ======================================================================
# Handlers
# ======================================================================


class TestHandlers:
    @pytest.mark.asyncio
    async def test_kb_create_recursive_uses_settings_defaults(self, capsys: pytest.CaptureFixture) -> None:
        engine = _engine()
        engine.knowledge.create_knowledge_base.return_value = KnowledgeBase(id="kb-1", name="notes")
        args = Namespace(name="notes", description="", semantic=False, chunk_size=None, chunk_overlap=None)

        assert await _handle_kb_create(args, engine) == 0

        chunking = engine.knowledge.create_knowledge_base.call_args.kwargs["chunking_config"]
        assert chunking == RecursiveChunkingConfig(chunk_size=512, chunk_overlap=50)
        assert "kb-1" in capsys.readouterr().out

    @pytest.mark.asyncio
    async def test_kb_create_semantic(self) -> None:
        engine = _engine()
        engine.knowledge.create_knowledge_base.return_value = KnowledgeBase(id="kb-1", name="notes")
        args = Namespace(name="notes", description="", semantic=True, chunk_size=None, chunk_overlap=None)

        await _handle_kb_create(args, engine)

        chunking = engine.knowledge.create_knowledge_base.call_args.kwargs["chunking_config"]
        assert isinstance(chunking, SemanticChunkingConfig)

    @pytest.mark.asyncio
    async def test_ingest_file(self, tmp_path: Path, capsys: pytest.CaptureFixture) -> None:
        path = tmp_path / "notes.md"
        path.write_text("# Notes\n\nSome text.", encoding="utf-8")
        engine = _engine()
        engine.ingestion.import_document.return_value = _import_result()

        assert await _handle_ingest_file(Namespace(kb="kb-1", file=str(path), title=None), engine) == 0

        request = engine.ingestion.import_document.call_args.args[0]
        assert request.source_type is SourceType.FILE
        assert request.file_name == "notes.md"
        assert request.file_bytes == path.read_bytes()
        assert "Chunks created: 3" in capsys.readouterr().out

    @pytest.mark.asyncio
    async def test_ingest_file_missing(self, tmp_path: Path, capsys: pytest.CaptureFixture) -> None:
        engine = _engine()
        args = Namespace(kb="kb-1", file=str(tmp_path / "absent.pdf"), title=None)

        assert await _handle_ingest_file(args, engine) == 1
        engine.ingestion.import_document.assert_not_called()
        assert "file not found" in capsys.readouterr().err

    @pytest.mark.asyncio
    async def test_ingest_text_from_stdin(self) -> None:
        engine = _engine()
        engine.ingestion.import_document.return_value = _import_result()

        with patch("knowledge_engine.cli.knowledge.sys.stdin") as mock_stdin:
            mock_stdin.read.return_value = "piped text"
            await _handle_ingest_text(Namespace(kb="kb-1", title="memo", text=None), engine)

        request = engine.ingestion.import_document.call_args.args[0]
        assert request.source_type is SourceType.TEXT
        assert request.content == "piped text"

    @pytest.mark.asyncio
    async def test_search_prints_ranked_results(self, capsys: pytest.CaptureFixture) -> None:
        engine = _engine()
        engine.retrieval.search.return_value = SearchResult(
            chunks=[
                ChunkResult(
                    id="c1",
                    document_id="doc-1",
                    document_title="Handbook",
                    knowledge_base_id="kb-1",
                    chunk_index=4,
                    content="Retention is seven years.",
                    score=0.8123,
                )
            ],
            total_count=1,
        )
        args = Namespace(
            kb="kb-1", query="retention", top_k=None, vector_weight=None, text_weight=None, reranked=False
        )

        assert await _handle_search(args, engine) == 0

        out = capsys.readouterr().out
        assert "[0.812] Handbook #4" in out
        assert "Retention is seven years." in out

    @pytest.mark.asyncio
    async def test_search_without_embedder(self, capsys: pytest.CaptureFixture) -> None:
        engine = _engine(embedding_provider=None)
        args = Namespace(kb="kb-1", query="q", top_k=None, vector_weight=None, text_weight=None, reranked=False)

        assert await _handle_search(args, engine) == 0
        engine.retrieval.search.assert_not_called()
        assert "search is disabled" in capsys.readouterr().out

    @pytest.mark.asyncio
    async def test_search_reranked_flag(self) -> None:
        engine = _engine()
        engine.retrieval.reranked_search.return_value = SearchResult()
        args = Namespace(kb="kb-1", query="q", top_k=3, vector_weight=None, text_weight=None, reranked=True)

        await _handle_search(args, engine)

        engine.retrieval.reranked_search.assert_awaited_once_with(
            "kb-1", "q", top_k=3, vector_weight=None, text_weight=None
        )
        engine.retrieval.search.assert_not_called()

    @pytest.mark.asyncio
    async def test_chunks(self, capsys: pytest.CaptureFixture) -> None:
        engine = _engine()
        engine.knowledge.list_chunks.return_value = (
            [Chunk(id="c0", knowledge_base_id="kb", document_id="doc-1", chunk_index=0, content="hello")],
            1,
        )
        await _handle_chunks(Namespace(document="doc-1", limit=20, offset=0), engine)
        assert "1 chunk(s) in document doc-1" in capsys.readouterr().out

    @pytest.mark.asyncio
    async def test_tag_list_requires_scope(self, capsys: pytest.CaptureFixture) -> None:
        assert await _handle_tag_list(Namespace(kb=None, chunk=None), _engine()) == 1
        assert "--kb or --chunk" in capsys.readouterr().err

    @pytest.mark.asyncio
    async def test_tag_list_for_chunk(self, capsys: pytest.CaptureFixture) -> None:
        engine = _engine()
        engine.tags.list_tags_for_chunk.return_value = [Tag(id="t1", knowledge_base_id="kb", name="urgent")]
        assert await _handle_tag_list(Namespace(kb=None, chunk="c1"), engine) == 0
        assert "urgent" in capsys.readouterr().out


def test_preview_truncates_and_flattens() -> None:
    assert _preview("a\n\nb") == "a b"
    long = _preview("x" * 500)
    assert len(long) == 160
    assert long.endswith("...")


# ======================================================================
# Entry point
# ======================================================================


class TestRun:
    @pytest.mark.asyncio
    async def test_engine_errors_become_exit_code(self, capsys: pytest.CaptureFixture) -> None:
        engine = _engine()
        engine.knowledge.list_knowledge_bases.side_effect = KnowledgeBaseNotFound("kb-x")

        with patch("knowledge_engine.main.create_engine", AsyncMock(return_value=engine)):
            code = await _run(Namespace(command="kb-list"), Settings())

        assert code == 1
        assert "Knowledge base not found" in capsys.readouterr().err
        engine.aclose.assert_awaited_once()

    def test_main_without_command_exits(self) -> None:
        with pytest.raises(SystemExit) as exc_info:
            main([])
        assert exc_info.value.code == 1
