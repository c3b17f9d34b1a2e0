# =============================================================================
# knowledge_engine/cli/knowledge.py -- Knowledge Base CLI
# =============================================================================
#
# Operator CLI for the knowledge engine: create knowledge bases, import
# documents, run searches and manage tags against the local SQLite store.
#
# Supported subcommands:
#
#   kb-create    -- Create a knowledge base (optionally semantic chunking)
#   kb-list      -- List active knowledge bases
#   ingest-file  -- Import a local file (.pdf .docx .xlsx .csv .txt .md)
#   ingest-url   -- Import a web page
#   ingest-text  -- Import raw text given on the command line or stdin
#   search       -- Hybrid search within one knowledge base (--reranked for edge order)
#   chunks       -- List the enabled chunks of a document
#   tag-create   -- Create a tag in a knowledge base
#   tag-add      -- Attach a tag to a chunk
#   tag-list     -- List the tags of a knowledge base, or of one chunk
#
# Usage examples:
#   python -m knowledge_engine.cli kb-create --name notes
#   python -m knowledge_engine.cli ingest-file --kb <id> --file report.pdf
#   python -m knowledge_engine.cli search --kb <id> --query "retention policy"
# =============================================================================

"""Command-line interface for the knowledge engine.

Usage::

    python -m knowledge_engine.cli kb-create --name notes
    python -m knowledge_engine.cli ingest-text --kb <id> --title memo --text "..."
    python -m knowledge_engine.cli search --kb <id> --query "..." --top-k 5

Heavy imports (providers, services) are deferred until a command runs.
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from pathlib import Path

from knowledge_engine.config.settings import Settings

_PREVIEW_CHARS = 160


def _preview(text: str) -> str:
    flat = " ".join(text.split())
    return flat if len(flat) <= _PREVIEW_CHARS else flat[: _PREVIEW_CHARS - 3] + "..."


# ---------------------------------------------------------------------------
# Subcommand handlers
# ---------------------------------------------------------------------------


async def _handle_kb_create(args: argparse.Namespace, engine) -> int:  # noqa: ANN001
    """Create a knowledge base."""
    from knowledge_engine.models.knowledge import (
        RecursiveChunkingConfig,
        SemanticChunkingConfig,
    )

    if args.semantic:
        chunking = SemanticChunkingConfig()
    else:
        chunking = RecursiveChunkingConfig(
            chunk_size=args.chunk_size or engine.settings.chunk_size,
            chunk_overlap=(
                args.chunk_overlap if args.chunk_overlap is not None else engine.settings.chunk_overlap
            ),
        )
    kb = await engine.knowledge.create_knowledge_base(
        name=args.name,
        description=args.description,
        chunking_config=chunking,
    )
    print(f"Created knowledge base {kb.id} ({kb.name}, {chunking.strategy} chunking)")
    return 0


async def _handle_kb_list(args: argparse.Namespace, engine) -> int:  # noqa: ANN001
    """List active knowledge bases."""
    knowledge_bases = await engine.knowledge.list_knowledge_bases()
    if not knowledge_bases:
        print("No knowledge bases.")
        return 0
    for kb in knowledge_bases:
        strategy = kb.chunking_config.strategy if kb.chunking_config else "default"
        print(f"{kb.id}  {kb.name:<24} {strategy:<10} {kb.description}")
    return 0


def _print_import_result(result) -> None:  # noqa: ANN001
    print("\nImport complete:")
    print(f"  Document ID:    {result.document_id}")
    print(f"  Chunks created: {result.chunk_count}")
    print(f"  Embedded:       {result.embedded_count}")
    print(f"  Time:           {result.ingestion_time:.2f}s")


async def _handle_ingest_file(args: argparse.Namespace, engine) -> int:  # noqa: ANN001
    """Import a local file."""
    from knowledge_engine.models.ingestion import ImportRequest
    from knowledge_engine.models.knowledge import SourceType

    path = Path(args.file)
    if not path.is_file():
        print(f"Error: file not found: {path}", file=sys.stderr)
        return 1

    print(f"Importing file: {path}")
    result = await engine.ingestion.import_document(
        ImportRequest(
            knowledge_base_id=args.kb,
            source_type=SourceType.FILE,
            title=args.title or "",
            file_name=path.name,
            file_bytes=path.read_bytes(),
        )
    )
    _print_import_result(result)
    return 0


async def _handle_ingest_url(args: argparse.Namespace, engine) -> int:  # noqa: ANN001
    """Import a web page."""
    from knowledge_engine.models.ingestion import ImportRequest
    from knowledge_engine.models.knowledge import SourceType

    print(f"Importing URL: {args.url}")
    result = await engine.ingestion.import_document(
        ImportRequest(
            knowledge_base_id=args.kb,
            source_type=SourceType.URL,
            title=args.title or "",
            source_uri=args.url,
        )
    )
    _print_import_result(result)
    return 0


async def _handle_ingest_text(args: argparse.Namespace, engine) -> int:  # noqa: ANN001
    """Import raw text from ``--text`` or stdin."""
    from knowledge_engine.models.ingestion import ImportRequest
    from knowledge_engine.models.knowledge import SourceType

    text = args.text if args.text is not None else sys.stdin.read()
    result = await engine.ingestion.import_document(
        ImportRequest(
            knowledge_base_id=args.kb,
            source_type=SourceType.TEXT,
            title=args.title,
            content=text,
        )
    )
    _print_import_result(result)
    return 0


async def _handle_search(args: argparse.Namespace, engine) -> int:  # noqa: ANN001
    """Hybrid search and print ranked chunks."""
    if engine.embedding_provider is None:
        print("No embedding provider configured; search is disabled.")
        print("Set OPENAI_API_KEY or OLLAMA_BASE_URL to enable it.")
        return 0
    run_search = engine.retrieval.reranked_search if args.reranked else engine.retrieval.search
    result = await run_search(
        args.kb,
        args.query,
        top_k=args.top_k,
        vector_weight=args.vector_weight,
        text_weight=args.text_weight,
    )
    if not result.chunks:
        print("No results.")
        return 0

    for rank, chunk in enumerate(result.chunks, start=1):
        title = chunk.document_title or chunk.document_id
        print(f"{rank:>2}. [{chunk.score:.3f}] {title} #{chunk.chunk_index}")
        print(f"    {_preview(chunk.content)}")
    return 0


async def _handle_chunks(args: argparse.Namespace, engine) -> int:  # noqa: ANN001
    """List the enabled chunks of a document."""
    chunks, total = await engine.knowledge.list_chunks(args.document, args.limit, args.offset)
    print(f"{total} chunk(s) in document {args.document}")
    for chunk in chunks:
        print(f"  #{chunk.chunk_index:<4} {chunk.id}  {_preview(chunk.content)}")
    return 0


async def _handle_tag_create(args: argparse.Namespace, engine) -> int:  # noqa: ANN001
    tag = await engine.tags.create_tag(
        args.kb, args.name, color=args.color, description=args.description
    )
    print(f"Created tag {tag.id} ({tag.name})")
    return 0


async def _handle_tag_add(args: argparse.Namespace, engine) -> int:  # noqa: ANN001
    await engine.tags.add_tag_to_chunk(args.chunk, args.tag)
    print(f"Tagged chunk {args.chunk} with {args.tag}")
    return 0


async def _handle_tag_list(args: argparse.Namespace, engine) -> int:  # noqa: ANN001
    if args.chunk:
        tags = await engine.tags.list_tags_for_chunk(args.chunk)
    elif args.kb:
        tags = await engine.tags.list_tags(args.kb)
    else:
        print("Error: pass --kb or --chunk", file=sys.stderr)
        return 1
    if not tags:
        print("No tags.")
    for tag in tags:
        print(f"{tag.id}  {tag.name:<20} {tag.color:<8} {tag.description}")
    return 0


_HANDLERS = {
    "kb-create": _handle_kb_create,
    "kb-list": _handle_kb_list,
    "ingest-file": _handle_ingest_file,
    "ingest-url": _handle_ingest_url,
    "ingest-text": _handle_ingest_text,
    "search": _handle_search,
    "chunks": _handle_chunks,
    "tag-create": _handle_tag_create,
    "tag-add": _handle_tag_add,
    "tag-list": _handle_tag_list,
}


# ---------------------------------------------------------------------------
# Argument parser
# ---------------------------------------------------------------------------


def _build_parser() -> argparse.ArgumentParser:
    """Build the argparse parser for the knowledge CLI."""
    parser = argparse.ArgumentParser(
        prog="python -m knowledge_engine.cli",
        description="Manage knowledge bases, import documents and search them.",
    )
    parser.add_argument("--config", default="config/config.yaml", help="YAML config path")
    subparsers = parser.add_subparsers(dest="command", help="Knowledge commands")

    # -- kb-create --
    kb_create = subparsers.add_parser("kb-create", help="Create a knowledge base")
    kb_create.add_argument("--name", required=True, help="Knowledge base name")
    kb_create.add_argument("--description", default="", help="Free-text description")
    kb_create.add_argument(
        "--semantic", action="store_true", help="Use semantic chunking (needs an embedder)"
    )
    kb_create.add_argument("--chunk-size", type=int, dest="chunk_size", help="Recursive chunk size")
    kb_create.add_argument(
        "--chunk-overlap", type=int, dest="chunk_overlap", help="Recursive chunk overlap"
    )

    # -- kb-list --
    subparsers.add_parser("kb-list", help="List knowledge bases")

    # -- ingest-file --
    ingest_file = subparsers.add_parser("ingest-file", help="Import a local file")
    ingest_file.add_argument("--kb", required=True, help="Knowledge base ID")
    ingest_file.add_argument("--file", required=True, help="Path to the file")
    ingest_file.add_argument("--title", help="Document title (default: file name)")

    # -- ingest-url --
    ingest_url = subparsers.add_parser("ingest-url", help="Import a web page")
    ingest_url.add_argument("--kb", required=True, help="Knowledge base ID")
    ingest_url.add_argument("--url", required=True, help="Page URL")
    ingest_url.add_argument("--title", help="Document title (default: URL)")

    # -- ingest-text --
    ingest_text = subparsers.add_parser("ingest-text", help="Import raw text")
    ingest_text.add_argument("--kb", required=True, help="Knowledge base ID")
    ingest_text.add_argument("--title", required=True, help="Document title")
    ingest_text.add_argument("--text", help="Text to import (default: read stdin)")

    # -- search --
    search = subparsers.add_parser("search", help="Hybrid search in a knowledge base")
    search.add_argument("--kb", required=True, help="Knowledge base ID")
    search.add_argument("--query", required=True, help="Search query")
    search.add_argument("--top-k", type=int, dest="top_k", help="Number of results")
    search.add_argument("--vector-weight", type=float, dest="vector_weight")
    search.add_argument("--text-weight", type=float, dest="text_weight")
    search.add_argument(
        "--reranked",
        action="store_true",
        help="Place the strongest hits at both ends of the list",
    )

    # -- chunks --
    chunks = subparsers.add_parser("chunks", help="List the chunks of a document")
    chunks.add_argument("--document", required=True, help="Document ID")
    chunks.add_argument("--limit", type=int, default=20)
    chunks.add_argument("--offset", type=int, default=0)

    # -- tag-create --
    tag_create = subparsers.add_parser("tag-create", help="Create a tag")
    tag_create.add_argument("--kb", required=True, help="Knowledge base ID")
    tag_create.add_argument("--name", required=True, help="Tag name")
    tag_create.add_argument("--color", default="", help="Display color")
    tag_create.add_argument("--description", default="")

    # -- tag-add --
    tag_add = subparsers.add_parser("tag-add", help="Attach a tag to a chunk")
    tag_add.add_argument("--chunk", required=True, help="Chunk ID")
    tag_add.add_argument("--tag", required=True, help="Tag ID")

    # -- tag-list --
    tag_list = subparsers.add_parser("tag-list", help="List tags")
    tag_list.add_argument("--kb", help="Knowledge base ID")
    tag_list.add_argument("--chunk", help="Chunk ID")

    return parser


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


async def _run(args: argparse.Namespace, app_settings: Settings) -> int:
    """Build the engine, dispatch one command, and always close the engine."""
    from knowledge_engine.main import create_engine
    from knowledge_engine.utils.errors import KnowledgeEngineError

    engine = await create_engine(app_settings)
    try:
        return await _HANDLERS[args.command](args, engine)
    except (KnowledgeEngineError, ValueError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    finally:
        await engine.aclose()


def main(argv: list[str] | None = None) -> None:
    """CLI entry point.

    Loads settings from ``.env`` and the YAML config, configures logging
    and dispatches to the subcommand handler.  Exits with the handler's
    status code.
    """
    parser = _build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        sys.exit(1)

    from knowledge_engine.config.loader import load_settings
    from knowledge_engine.utils.logging import configure_logging

    app_settings = load_settings(args.config)
    configure_logging(
        log_level=app_settings.log_level,
        json_output=(app_settings.app_env == "production"),
    )

    sys.exit(asyncio.run(_run(args, app_settings)))


if __name__ == "__main__":
    main()
