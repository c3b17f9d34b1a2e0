"""SQLite-backed knowledge store.

Persists knowledge bases, documents, chunks, embeddings and tags to a local
SQLite database using ``aiosqlite`` for async I/O.  Each operation opens its
own connection; writes spanning several tables commit once at the end, so a
failure part-way rolls the whole operation back.

Search primitives:

- **Vector** -- embeddings are float32 BLOBs; the three distance functions
  are registered on every connection as SQL scalar functions
  (``vec_cosine_distance``, ``vec_l2_distance``,
  ``vec_inner_product_distance``) and ranking is an ``ORDER BY distance``
  scan over enabled chunks.
- **Full text** -- an FTS5 external-content index over chunk content,
  ranked by ``bm25()``.
- **Hybrid** -- both of the above with ``2 * limit`` candidates each,
  merged by :func:`knowledge_engine.utils.fusion.fuse`.

Because every call opens a fresh connection, ``":memory:"`` is not a usable
path; tests use a temporary file.
"""

from __future__ import annotations

import asyncio
import json
import re
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import aiosqlite
import structlog

from knowledge_engine.interfaces.knowledge_store import IKnowledgeStore
from knowledge_engine.models.knowledge import (
    Chunk,
    Document,
    Embedding,
    EmbeddingConfig,
    KnowledgeBase,
    ParserConfig,
    ParseStatus,
    Tag,
    chunking_config_adapter,
)
from knowledge_engine.models.search import ChunkWithScore, DistanceFunction, SearchOptions
from knowledge_engine.providers.store.query_builder import SQLQuery
from knowledge_engine.providers.store.schema import SCHEMA_SQL
from knowledge_engine.utils.errors import (
    KnowledgeBaseNotFound,
    NotFoundError,
    SearchError,
    StoreError,
)
from knowledge_engine.utils.fusion import fuse
from knowledge_engine.utils.sql_safety import check_safe_predicate, validate_identifier
from knowledge_engine.utils.vector_math import (
    cosine_distance,
    decode_vector,
    encode_vector,
    inner_product_distance,
    l2_distance,
)

logger = structlog.get_logger(logger_name=__name__)

_DEFAULT_DB_PATH = Path("data/knowledge.db")

_SQL_FUNCTIONS = {
    DistanceFunction.COSINE.sql_function: cosine_distance,
    DistanceFunction.L2.sql_function: l2_distance,
    DistanceFunction.INNER_PRODUCT.sql_function: inner_product_distance,
}

# Letters and digits only; unicode61 also splits on underscores.
_FTS_TOKEN_RE = re.compile(r"[^\W_]+")

_KB_COLUMNS = (
    "id, name, description, status, chunking_config, parser_config, "
    "embedding_config, metadata, created_at, updated_at"
)
_DOC_COLUMNS = (
    "id, knowledge_base_id, title, source_type, source_uri, content_hash, "
    "parse_status, metadata, created_at, updated_at"
)
_CHUNK_COLUMNS = (
    "c.id, c.knowledge_base_id, c.document_id, c.chunk_index, c.content, "
    "c.content_hash, c.enabled, c.metadata, c.created_at, c.updated_at"
)
_TAG_COLUMNS = "id, knowledge_base_id, name, color, description, created_at, updated_at"

_INSERT_KB_SQL = f"""\
INSERT INTO knowledge_bases ({_KB_COLUMNS})
VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?);
"""

_UPDATE_KB_SQL = """\
UPDATE knowledge_bases
SET name = ?, description = ?, status = ?, chunking_config = ?, parser_config = ?,
    embedding_config = ?, metadata = ?, updated_at = ?
WHERE id = ?;
"""

_INSERT_DOC_SQL = f"""\
INSERT INTO documents ({_DOC_COLUMNS})
VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?);
"""

_INSERT_CHUNK_SQL = """\
INSERT INTO knowledge_chunks (
    id, knowledge_base_id, document_id, chunk_index, content, content_hash,
    enabled, metadata, created_at, updated_at
)
VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?);
"""

_UPSERT_EMBEDDING_SQL = """\
INSERT INTO knowledge_embeddings (
    id, knowledge_base_id, chunk_id, embedding, dimension, model, created_at, updated_at
)
VALUES (?, ?, ?, ?, ?, ?, ?, ?)
ON CONFLICT(chunk_id)
DO UPDATE SET knowledge_base_id = excluded.knowledge_base_id,
              embedding         = excluded.embedding,
              dimension         = excluded.dimension,
              model             = excluded.model,
              updated_at        = excluded.updated_at;
"""

_INSERT_TAG_SQL = f"""\
INSERT INTO knowledge_tags ({_TAG_COLUMNS})
VALUES (?, ?, ?, ?, ?, ?, ?);
"""

_INSERT_CHUNK_TAG_SQL = """\
INSERT OR IGNORE INTO chunk_tags (chunk_id, tag_id, created_at)
VALUES (?, ?, ?);
"""

# Cascades run child-first inside one transaction.
_DELETE_CHUNK_SQL = [
    "DELETE FROM knowledge_embeddings WHERE chunk_id = ?;",
    "DELETE FROM chunk_tags WHERE chunk_id = ?;",
    "DELETE FROM knowledge_chunks WHERE id = ?;",
]

_DELETE_DOCUMENT_SQL = [
    "DELETE FROM knowledge_embeddings WHERE chunk_id IN "
    "(SELECT id FROM knowledge_chunks WHERE document_id = ?);",
    "DELETE FROM chunk_tags WHERE chunk_id IN "
    "(SELECT id FROM knowledge_chunks WHERE document_id = ?);",
    "DELETE FROM knowledge_chunks WHERE document_id = ?;",
    "DELETE FROM documents WHERE id = ?;",
]

_DELETE_KB_SQL = [
    "DELETE FROM knowledge_embeddings WHERE knowledge_base_id = ?;",
    "DELETE FROM chunk_tags WHERE chunk_id IN "
    "(SELECT id FROM knowledge_chunks WHERE knowledge_base_id = ?);",
    "DELETE FROM chunk_tags WHERE tag_id IN "
    "(SELECT id FROM knowledge_tags WHERE knowledge_base_id = ?);",
    "DELETE FROM knowledge_chunks WHERE knowledge_base_id = ?;",
    "DELETE FROM knowledge_tags WHERE knowledge_base_id = ?;",
    "DELETE FROM documents WHERE knowledge_base_id = ?;",
    "DELETE FROM knowledge_bases WHERE id = ?;",
]


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _iso(value: datetime) -> str:
    return value.isoformat()


def _dump_json(value: Any) -> str:
    return json.dumps(value, ensure_ascii=False, default=str)


def _load_json(raw: str | None) -> dict[str, Any]:
    if not raw:
        return {}
    return json.loads(raw)


def _row_to_knowledge_base(row: aiosqlite.Row) -> KnowledgeBase:
    return KnowledgeBase(
        id=row["id"],
        name=row["name"],
        description=row["description"],
        status=row["status"],
        chunking_config=(
            chunking_config_adapter.validate_json(row["chunking_config"])
            if row["chunking_config"]
            else None
        ),
        parser_config=(
            ParserConfig.model_validate_json(row["parser_config"]) if row["parser_config"] else None
        ),
        embedding_config=(
            EmbeddingConfig.model_validate_json(row["embedding_config"])
            if row["embedding_config"]
            else None
        ),
        metadata=_load_json(row["metadata"]),
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


def _row_to_document(row: aiosqlite.Row) -> Document:
    return Document(
        id=row["id"],
        knowledge_base_id=row["knowledge_base_id"],
        title=row["title"],
        source_type=row["source_type"],
        source_uri=row["source_uri"],
        content_hash=row["content_hash"],
        parse_status=row["parse_status"],
        metadata=_load_json(row["metadata"]),
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


def _row_to_chunk(row: aiosqlite.Row) -> Chunk:
    return Chunk(
        id=row["id"],
        knowledge_base_id=row["knowledge_base_id"],
        document_id=row["document_id"],
        chunk_index=row["chunk_index"],
        content=row["content"],
        content_hash=row["content_hash"],
        enabled=bool(row["enabled"]),
        metadata=_load_json(row["metadata"]),
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


def _row_to_tag(row: aiosqlite.Row) -> Tag:
    return Tag(
        id=row["id"],
        knowledge_base_id=row["knowledge_base_id"],
        name=row["name"],
        color=row["color"],
        description=row["description"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


def _fts_match_expression(query: str) -> str:
    """Quote each word token of *query*; FTS5 ANDs adjacent phrases."""
    return " ".join(f'"{token}"' for token in _FTS_TOKEN_RE.findall(query))


def _bm25_to_score(rank: float) -> float:
    """Map FTS5's negative bm25 rank onto ``(0, 1)``, higher is better."""
    relevance = max(0.0, -float(rank))
    return relevance / (1.0 + relevance)


class SQLiteKnowledgeStore(IKnowledgeStore):
    """SQLite-backed knowledge persistence with vector and FTS5 search."""

    def __init__(self, db_path: str | Path = _DEFAULT_DB_PATH) -> None:
        self._db_path = Path(db_path)

    # ------------------------------------------------------------------
    # Connection handling
    # ------------------------------------------------------------------

    @asynccontextmanager
    async def _session(self, operation: str) -> AsyncIterator[aiosqlite.Connection]:
        """Open a connection with foreign keys on and the distance functions registered.

        Any :class:`aiosqlite.Error` (including a ``ValueError`` raised by a
        distance function, which SQLite reports as an OperationalError) is
        re-raised as :class:`StoreError` naming *operation*.
        """
        try:
            async with aiosqlite.connect(str(self._db_path)) as db:
                db.row_factory = aiosqlite.Row
                await db.execute("PRAGMA foreign_keys = ON")
                for name, func in _SQL_FUNCTIONS.items():
                    await db.create_function(name, 2, func, deterministic=True)
                yield db
        except aiosqlite.Error as exc:
            logger.error("knowledge_store_error", operation=operation, error=str(exc))
            raise StoreError(
                message=f"{operation} failed: {exc}",
                operation=operation,
                provider_name=self.get_provider_name(),
            ) from exc

    async def initialize(self) -> None:
        """Create all tables, indices, the FTS index and its triggers."""
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        async with self._session("initialize") as db:
            await db.executescript(SCHEMA_SQL)
            await db.commit()
        logger.info("knowledge_db_initialized", path=str(self._db_path))

    # ------------------------------------------------------------------
    # Knowledge bases
    # ------------------------------------------------------------------

    async def create_knowledge_base(self, knowledge_base: KnowledgeBase) -> KnowledgeBase:
        kb = knowledge_base
        async with self._session("create_knowledge_base") as db:
            await db.execute(
                _INSERT_KB_SQL,
                (
                    kb.id,
                    kb.name,
                    kb.description,
                    kb.status.value,
                    kb.chunking_config.model_dump_json() if kb.chunking_config else None,
                    kb.parser_config.model_dump_json() if kb.parser_config else None,
                    kb.embedding_config.model_dump_json() if kb.embedding_config else None,
                    _dump_json(kb.metadata),
                    _iso(kb.created_at),
                    _iso(kb.updated_at),
                ),
            )
            await db.commit()
        logger.info("knowledge_base_created", knowledge_base_id=kb.id, name=kb.name)
        return kb

    async def get_knowledge_base(self, knowledge_base_id: str) -> KnowledgeBase | None:
        async with self._session("get_knowledge_base") as db:
            cursor = await db.execute(
                f"SELECT {_KB_COLUMNS} FROM knowledge_bases WHERE id = ?",
                (knowledge_base_id,),
            )
            row = await cursor.fetchone()
        return _row_to_knowledge_base(row) if row else None

    async def list_knowledge_bases(self) -> list[KnowledgeBase]:
        async with self._session("list_knowledge_bases") as db:
            cursor = await db.execute(
                f"SELECT {_KB_COLUMNS} FROM knowledge_bases "
                "WHERE status = 'active' ORDER BY created_at DESC",
            )
            rows = await cursor.fetchall()
        return [_row_to_knowledge_base(r) for r in rows]

    async def update_knowledge_base(self, knowledge_base: KnowledgeBase) -> KnowledgeBase:
        kb = knowledge_base.model_copy(update={"updated_at": datetime.now(timezone.utc)})
        async with self._session("update_knowledge_base") as db:
            cursor = await db.execute(
                _UPDATE_KB_SQL,
                (
                    kb.name,
                    kb.description,
                    kb.status.value,
                    kb.chunking_config.model_dump_json() if kb.chunking_config else None,
                    kb.parser_config.model_dump_json() if kb.parser_config else None,
                    kb.embedding_config.model_dump_json() if kb.embedding_config else None,
                    _dump_json(kb.metadata),
                    _iso(kb.updated_at),
                    kb.id,
                ),
            )
            if cursor.rowcount == 0:
                raise KnowledgeBaseNotFound(kb.id, provider_name=self.get_provider_name())
            await db.commit()
        return kb

    async def delete_knowledge_base(self, knowledge_base_id: str) -> bool:
        async with self._session("delete_knowledge_base") as db:
            cursor = None
            for sql in _DELETE_KB_SQL:
                cursor = await db.execute(sql, (knowledge_base_id,))
            deleted = cursor is not None and cursor.rowcount > 0
            await db.commit()
        logger.info("knowledge_base_deleted", knowledge_base_id=knowledge_base_id, deleted=deleted)
        return deleted

    # ------------------------------------------------------------------
    # Documents
    # ------------------------------------------------------------------

    async def create_document(self, document: Document) -> Document:
        doc = document
        async with self._session("create_document") as db:
            await db.execute(
                _INSERT_DOC_SQL,
                (
                    doc.id,
                    doc.knowledge_base_id,
                    doc.title,
                    doc.source_type.value,
                    doc.source_uri,
                    doc.content_hash,
                    doc.parse_status.value,
                    _dump_json(doc.metadata),
                    _iso(doc.created_at),
                    _iso(doc.updated_at),
                ),
            )
            await db.commit()
        return doc

    async def get_document(self, document_id: str) -> Document | None:
        async with self._session("get_document") as db:
            cursor = await db.execute(
                f"SELECT {_DOC_COLUMNS} FROM documents WHERE id = ?",
                (document_id,),
            )
            row = await cursor.fetchone()
        return _row_to_document(row) if row else None

    async def get_documents(self, document_ids: list[str]) -> dict[str, Document]:
        ids = list(dict.fromkeys(document_ids))
        if not ids:
            return {}
        query = SQLQuery(f"SELECT {_DOC_COLUMNS} FROM documents WHERE 1 = 1")
        query.append_in("id", ids)
        async with self._session("get_documents") as db:
            cursor = await db.execute(query.sql, query.params)
            rows = await cursor.fetchall()
        return {row["id"]: _row_to_document(row) for row in rows}

    async def list_documents(
        self, knowledge_base_id: str, limit: int = 20, offset: int = 0
    ) -> tuple[list[Document], int]:
        async with self._session("list_documents") as db:
            cursor = await db.execute(
                "SELECT COUNT(*) FROM documents WHERE knowledge_base_id = ?",
                (knowledge_base_id,),
            )
            total = (await cursor.fetchone())[0]
            cursor = await db.execute(
                f"SELECT {_DOC_COLUMNS} FROM documents WHERE knowledge_base_id = ? "
                "ORDER BY created_at DESC LIMIT ? OFFSET ?",
                (knowledge_base_id, limit, offset),
            )
            rows = await cursor.fetchall()
        return [_row_to_document(r) for r in rows], total

    async def update_document_status(self, document_id: str, status: ParseStatus) -> None:
        async with self._session("update_document_status") as db:
            cursor = await db.execute(
                "UPDATE documents SET parse_status = ?, updated_at = ? WHERE id = ?",
                (ParseStatus(status).value, _now(), document_id),
            )
            if cursor.rowcount == 0:
                raise NotFoundError(
                    message=f"Document not found: {document_id}",
                    entity="document",
                    entity_id=document_id,
                    provider_name=self.get_provider_name(),
                )
            await db.commit()
        logger.debug("document_status_updated", document_id=document_id, status=ParseStatus(status).value)

    async def delete_document(self, document_id: str) -> bool:
        async with self._session("delete_document") as db:
            cursor = None
            for sql in _DELETE_DOCUMENT_SQL:
                cursor = await db.execute(sql, (document_id,))
            deleted = cursor is not None and cursor.rowcount > 0
            await db.commit()
        return deleted

    # ------------------------------------------------------------------
    # Chunks
    # ------------------------------------------------------------------

    async def create_chunks(self, chunks: list[Chunk]) -> None:
        if not chunks:
            return
        rows = [
            (
                c.id,
                c.knowledge_base_id,
                c.document_id,
                c.chunk_index,
                c.content,
                c.content_hash,
                1 if c.enabled else 0,
                _dump_json(c.metadata),
                _iso(c.created_at),
                _iso(c.updated_at),
            )
            for c in chunks
        ]
        async with self._session("create_chunks") as db:
            await db.executemany(_INSERT_CHUNK_SQL, rows)
            await db.commit()
        logger.debug("chunks_created", count=len(chunks), document_id=chunks[0].document_id)

    async def get_chunk(self, chunk_id: str) -> Chunk | None:
        async with self._session("get_chunk") as db:
            cursor = await db.execute(
                f"SELECT {_CHUNK_COLUMNS} FROM knowledge_chunks c WHERE c.id = ?",
                (chunk_id,),
            )
            row = await cursor.fetchone()
        return _row_to_chunk(row) if row else None

    async def list_chunks_by_document(
        self, document_id: str, limit: int = 20, offset: int = 0
    ) -> tuple[list[Chunk], int]:
        async with self._session("list_chunks_by_document") as db:
            cursor = await db.execute(
                "SELECT COUNT(*) FROM knowledge_chunks WHERE document_id = ? AND enabled = 1",
                (document_id,),
            )
            total = (await cursor.fetchone())[0]
            cursor = await db.execute(
                f"SELECT {_CHUNK_COLUMNS} FROM knowledge_chunks c "
                "WHERE c.document_id = ? AND c.enabled = 1 "
                "ORDER BY c.chunk_index ASC LIMIT ? OFFSET ?",
                (document_id, limit, offset),
            )
            rows = await cursor.fetchall()
        return [_row_to_chunk(r) for r in rows], total

    async def list_chunks_by_knowledge_base(
        self, knowledge_base_id: str, limit: int = 20, offset: int = 0
    ) -> tuple[list[Chunk], int]:
        async with self._session("list_chunks_by_knowledge_base") as db:
            cursor = await db.execute(
                "SELECT COUNT(*) FROM knowledge_chunks WHERE knowledge_base_id = ?",
                (knowledge_base_id,),
            )
            total = (await cursor.fetchone())[0]
            cursor = await db.execute(
                f"SELECT {_CHUNK_COLUMNS} FROM knowledge_chunks c "
                "WHERE c.knowledge_base_id = ? "
                "ORDER BY c.created_at DESC, c.seq DESC LIMIT ? OFFSET ?",
                (knowledge_base_id, limit, offset),
            )
            rows = await cursor.fetchall()
        return [_row_to_chunk(r) for r in rows], total

    async def set_chunk_enabled(self, chunk_id: str, enabled: bool) -> bool:
        async with self._session("set_chunk_enabled") as db:
            cursor = await db.execute(
                "UPDATE knowledge_chunks SET enabled = ?, updated_at = ? WHERE id = ?",
                (1 if enabled else 0, _now(), chunk_id),
            )
            updated = cursor.rowcount > 0
            await db.commit()
        return updated

    async def delete_chunk(self, chunk_id: str) -> bool:
        async with self._session("delete_chunk") as db:
            cursor = None
            for sql in _DELETE_CHUNK_SQL:
                cursor = await db.execute(sql, (chunk_id,))
            deleted = cursor is not None and cursor.rowcount > 0
            await db.commit()
        return deleted

    # ------------------------------------------------------------------
    # Embeddings
    # ------------------------------------------------------------------

    async def upsert_embeddings(self, embeddings: list[Embedding]) -> None:
        if not embeddings:
            return
        rows = [
            (
                e.id,
                e.knowledge_base_id,
                e.chunk_id,
                encode_vector(e.vector),
                e.dimension,
                e.model,
                _iso(e.created_at),
                _iso(e.updated_at),
            )
            for e in embeddings
        ]
        async with self._session("upsert_embeddings") as db:
            await db.executemany(_UPSERT_EMBEDDING_SQL, rows)
            await db.commit()
        logger.debug("embeddings_upserted", count=len(embeddings))

    async def get_embedding_by_chunk(self, chunk_id: str) -> Embedding | None:
        async with self._session("get_embedding_by_chunk") as db:
            cursor = await db.execute(
                "SELECT id, knowledge_base_id, chunk_id, embedding, dimension, model, "
                "created_at, updated_at FROM knowledge_embeddings WHERE chunk_id = ?",
                (chunk_id,),
            )
            row = await cursor.fetchone()
        if row is None:
            return None
        return Embedding(
            id=row["id"],
            knowledge_base_id=row["knowledge_base_id"],
            chunk_id=row["chunk_id"],
            vector=decode_vector(row["embedding"]),
            dimension=row["dimension"],
            model=row["model"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )

    # ------------------------------------------------------------------
    # Tags
    # ------------------------------------------------------------------

    async def create_tag(self, tag: Tag) -> Tag:
        async with self._session("create_tag") as db:
            await db.execute(
                _INSERT_TAG_SQL,
                (
                    tag.id,
                    tag.knowledge_base_id,
                    tag.name,
                    tag.color,
                    tag.description,
                    _iso(tag.created_at),
                    _iso(tag.updated_at),
                ),
            )
            await db.commit()
        return tag

    async def get_tag(self, tag_id: str) -> Tag | None:
        async with self._session("get_tag") as db:
            cursor = await db.execute(
                f"SELECT {_TAG_COLUMNS} FROM knowledge_tags WHERE id = ?",
                (tag_id,),
            )
            row = await cursor.fetchone()
        return _row_to_tag(row) if row else None

    async def list_tags(self, knowledge_base_id: str) -> list[Tag]:
        async with self._session("list_tags") as db:
            cursor = await db.execute(
                f"SELECT {_TAG_COLUMNS} FROM knowledge_tags "
                "WHERE knowledge_base_id = ? ORDER BY name ASC",
                (knowledge_base_id,),
            )
            rows = await cursor.fetchall()
        return [_row_to_tag(r) for r in rows]

    async def update_tag(self, tag: Tag) -> Tag:
        updated = tag.model_copy(update={"updated_at": datetime.now(timezone.utc)})
        async with self._session("update_tag") as db:
            cursor = await db.execute(
                "UPDATE knowledge_tags SET name = ?, color = ?, description = ?, updated_at = ? "
                "WHERE id = ?",
                (updated.name, updated.color, updated.description, _iso(updated.updated_at), updated.id),
            )
            if cursor.rowcount == 0:
                raise NotFoundError(
                    message=f"Tag not found: {tag.id}",
                    entity="tag",
                    entity_id=tag.id,
                    provider_name=self.get_provider_name(),
                )
            await db.commit()
        return updated

    async def delete_tag(self, tag_id: str) -> bool:
        async with self._session("delete_tag") as db:
            await db.execute("DELETE FROM chunk_tags WHERE tag_id = ?", (tag_id,))
            cursor = await db.execute("DELETE FROM knowledge_tags WHERE id = ?", (tag_id,))
            deleted = cursor.rowcount > 0
            await db.commit()
        logger.info("tag_deleted", tag_id=tag_id, deleted=deleted)
        return deleted

    async def add_tag_to_chunk(self, chunk_id: str, tag_id: str) -> None:
        async with self._session("add_tag_to_chunk") as db:
            cursor = await db.execute(
                "SELECT knowledge_base_id FROM knowledge_chunks WHERE id = ?", (chunk_id,)
            )
            chunk_row = await cursor.fetchone()
            if chunk_row is None:
                raise NotFoundError(
                    message=f"Chunk not found: {chunk_id}",
                    entity="chunk",
                    entity_id=chunk_id,
                    provider_name=self.get_provider_name(),
                )
            cursor = await db.execute(
                "SELECT knowledge_base_id FROM knowledge_tags WHERE id = ?", (tag_id,)
            )
            tag_row = await cursor.fetchone()
            if tag_row is None:
                raise NotFoundError(
                    message=f"Tag not found: {tag_id}",
                    entity="tag",
                    entity_id=tag_id,
                    provider_name=self.get_provider_name(),
                )
            if chunk_row["knowledge_base_id"] != tag_row["knowledge_base_id"]:
                msg = f"Tag {tag_id} and chunk {chunk_id} belong to different knowledge bases"
                raise ValueError(msg)

            await db.execute(_INSERT_CHUNK_TAG_SQL, (chunk_id, tag_id, _now()))
            await db.commit()

    async def remove_tag_from_chunk(self, chunk_id: str, tag_id: str) -> bool:
        async with self._session("remove_tag_from_chunk") as db:
            cursor = await db.execute(
                "DELETE FROM chunk_tags WHERE chunk_id = ? AND tag_id = ?",
                (chunk_id, tag_id),
            )
            removed = cursor.rowcount > 0
            await db.commit()
        return removed

    async def list_tags_for_chunk(self, chunk_id: str) -> list[Tag]:
        async with self._session("list_tags_for_chunk") as db:
            cursor = await db.execute(
                "SELECT t.id, t.knowledge_base_id, t.name, t.color, t.description, "
                "t.created_at, t.updated_at "
                "FROM knowledge_tags t JOIN chunk_tags ct ON ct.tag_id = t.id "
                "WHERE ct.chunk_id = ? ORDER BY t.name ASC",
                (chunk_id,),
            )
            rows = await cursor.fetchall()
        return [_row_to_tag(r) for r in rows]

    async def list_chunks_for_tag(
        self, tag_id: str, limit: int = 20, offset: int = 0
    ) -> tuple[list[Chunk], int]:
        async with self._session("list_chunks_for_tag") as db:
            cursor = await db.execute(
                "SELECT COUNT(*) FROM chunk_tags ct "
                "JOIN knowledge_chunks c ON c.id = ct.chunk_id WHERE ct.tag_id = ?",
                (tag_id,),
            )
            total = (await cursor.fetchone())[0]
            cursor = await db.execute(
                f"SELECT {_CHUNK_COLUMNS} FROM chunk_tags ct "
                "JOIN knowledge_chunks c ON c.id = ct.chunk_id "
                "WHERE ct.tag_id = ? "
                "ORDER BY c.document_id ASC, c.chunk_index ASC LIMIT ? OFFSET ?",
                (tag_id, limit, offset),
            )
            rows = await cursor.fetchall()
        return [_row_to_chunk(r) for r in rows], total

    # ------------------------------------------------------------------
    # Search primitives
    # ------------------------------------------------------------------

    async def search_by_vector(
        self,
        knowledge_base_ids: list[str],
        query_vector: list[float],
        limit: int,
        options: SearchOptions,
    ) -> list[ChunkWithScore]:
        if not query_vector:
            raise SearchError(message="Query vector is empty", provider_name=self.get_provider_name())
        distance_function = DistanceFunction.parse(options.distance_function)
        distance_sql = validate_identifier(distance_function.sql_function)
        query_blob = encode_vector(query_vector)

        try:
            query = SQLQuery(
                f"SELECT {_CHUNK_COLUMNS}, {distance_sql}(e.embedding, ?) AS distance "
                "FROM knowledge_chunks c "
                "JOIN knowledge_embeddings e ON e.chunk_id = c.id "
                "WHERE c.enabled = 1",
                query_blob,
            )
            query.append_in("c.knowledge_base_id", knowledge_base_ids)
            if options.extra_predicate:
                predicate = check_safe_predicate(options.extra_predicate)
                query.append(f"AND ({predicate})")
            if options.score_threshold is not None:
                query.append(
                    f"AND {distance_sql}(e.embedding, ?) < ?",
                    query_blob,
                    distance_function.to_distance_threshold(options.score_threshold),
                )
            query.append("ORDER BY distance ASC LIMIT ?", limit)
        except ValueError as exc:
            raise StoreError(
                message=f"search_by_vector query rejected: {exc}",
                operation="search_by_vector",
                provider_name=self.get_provider_name(),
            ) from exc

        async with self._session("search_by_vector") as db:
            cursor = await db.execute(query.sql, query.params)
            rows = await cursor.fetchall()

        return [
            ChunkWithScore(
                chunk=_row_to_chunk(row),
                score=distance_function.to_score(row["distance"]),
                distance=row["distance"],
            )
            for row in rows
        ]

    async def search_by_full_text(
        self,
        knowledge_base_ids: list[str],
        query: str,
        limit: int,
    ) -> list[ChunkWithScore]:
        match = _fts_match_expression(query or "")
        if not match:
            return []

        sql_query = SQLQuery(
            f"SELECT {_CHUNK_COLUMNS}, bm25(knowledge_chunks_fts) AS bm25_rank "
            "FROM knowledge_chunks_fts "
            "JOIN knowledge_chunks c ON c.seq = knowledge_chunks_fts.rowid "
            "WHERE knowledge_chunks_fts MATCH ? AND c.enabled = 1",
            match,
        )
        sql_query.append_in("c.knowledge_base_id", knowledge_base_ids)
        sql_query.append("ORDER BY bm25_rank ASC LIMIT ?", limit)

        async with self._session("search_by_full_text") as db:
            cursor = await db.execute(sql_query.sql, sql_query.params)
            rows = await cursor.fetchall()

        return [
            ChunkWithScore(chunk=_row_to_chunk(row), score=_bm25_to_score(row["bm25_rank"]))
            for row in rows
        ]

    async def search_hybrid(
        self,
        knowledge_base_ids: list[str],
        query: str,
        query_vector: list[float],
        limit: int,
        vector_weight: float,
        text_weight: float,
    ) -> list[ChunkWithScore]:
        candidates = limit * 2
        # A failing leg cancels its sibling; the leg's own error is re-raised.
        try:
            async with asyncio.TaskGroup() as group:
                vector_task = group.create_task(
                    self.search_by_vector(knowledge_base_ids, query_vector, candidates, SearchOptions())
                )
                text_task = group.create_task(
                    self.search_by_full_text(knowledge_base_ids, query, candidates)
                )
        except ExceptionGroup as exc_group:
            raise exc_group.exceptions[0]
        vector_hits, text_hits = vector_task.result(), text_task.result()
        fused = fuse(vector_hits, text_hits, limit, vector_weight, text_weight)
        logger.debug(
            "hybrid_candidates_fused",
            vector_candidates=len(vector_hits),
            text_candidates=len(text_hits),
            results=len(fused),
        )
        return fused

    def get_provider_name(self) -> str:
        return "sqlite_knowledge_store"
