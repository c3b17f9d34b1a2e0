"""SQLite schema for the knowledge store.

``knowledge_chunks`` carries an integer ``seq`` rowid so that the FTS5
index can be an external-content table over it; triggers keep the index in
step with inserts, deletes and content updates.  Timestamps are ISO-8601
UTC strings.
"""

SCHEMA_SQL = """\
CREATE TABLE IF NOT EXISTS knowledge_bases (
    id               TEXT PRIMARY KEY,
    name             TEXT NOT NULL,
    description      TEXT NOT NULL DEFAULT '',
    status           TEXT NOT NULL DEFAULT 'active',
    chunking_config  TEXT,
    parser_config    TEXT,
    embedding_config TEXT,
    metadata         TEXT NOT NULL DEFAULT '{}',
    created_at       TEXT NOT NULL,
    updated_at       TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS documents (
    id                TEXT PRIMARY KEY,
    knowledge_base_id TEXT NOT NULL REFERENCES knowledge_bases(id) ON DELETE CASCADE,
    title             TEXT NOT NULL DEFAULT '',
    source_type       TEXT NOT NULL,
    source_uri        TEXT NOT NULL DEFAULT '',
    content_hash      TEXT NOT NULL DEFAULT '',
    parse_status      TEXT NOT NULL DEFAULT 'pending',
    metadata          TEXT NOT NULL DEFAULT '{}',
    created_at        TEXT NOT NULL,
    updated_at        TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS knowledge_chunks (
    seq               INTEGER PRIMARY KEY AUTOINCREMENT,
    id                TEXT NOT NULL UNIQUE,
    knowledge_base_id TEXT NOT NULL REFERENCES knowledge_bases(id) ON DELETE CASCADE,
    document_id       TEXT NOT NULL REFERENCES documents(id) ON DELETE CASCADE,
    chunk_index       INTEGER NOT NULL,
    content           TEXT NOT NULL,
    content_hash      TEXT NOT NULL DEFAULT '',
    enabled           INTEGER NOT NULL DEFAULT 1,
    metadata          TEXT NOT NULL DEFAULT '{}',
    created_at        TEXT NOT NULL,
    updated_at        TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS knowledge_embeddings (
    id                TEXT PRIMARY KEY,
    knowledge_base_id TEXT NOT NULL,
    chunk_id          TEXT NOT NULL UNIQUE REFERENCES knowledge_chunks(id) ON DELETE CASCADE,
    embedding         BLOB NOT NULL,
    dimension         INTEGER NOT NULL,
    model             TEXT NOT NULL DEFAULT '',
    created_at        TEXT NOT NULL,
    updated_at        TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS knowledge_tags (
    id                TEXT PRIMARY KEY,
    knowledge_base_id TEXT NOT NULL REFERENCES knowledge_bases(id) ON DELETE CASCADE,
    name              TEXT NOT NULL,
    color             TEXT NOT NULL DEFAULT '',
    description       TEXT NOT NULL DEFAULT '',
    created_at        TEXT NOT NULL,
    updated_at        TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS chunk_tags (
    chunk_id   TEXT NOT NULL REFERENCES knowledge_chunks(id) ON DELETE CASCADE,
    tag_id     TEXT NOT NULL REFERENCES knowledge_tags(id) ON DELETE CASCADE,
    created_at TEXT NOT NULL,
    PRIMARY KEY (chunk_id, tag_id)
);

CREATE INDEX IF NOT EXISTS idx_documents_kb ON documents(knowledge_base_id);
CREATE INDEX IF NOT EXISTS idx_chunks_document ON knowledge_chunks(document_id, chunk_index);
CREATE INDEX IF NOT EXISTS idx_chunks_kb ON knowledge_chunks(knowledge_base_id);
CREATE INDEX IF NOT EXISTS idx_embeddings_kb ON knowledge_embeddings(knowledge_base_id);
CREATE INDEX IF NOT EXISTS idx_tags_kb ON knowledge_tags(knowledge_base_id);
CREATE INDEX IF NOT EXISTS idx_chunk_tags_tag ON chunk_tags(tag_id);

CREATE VIRTUAL TABLE IF NOT EXISTS knowledge_chunks_fts USING fts5(
    content,
    content='knowledge_chunks',
    content_rowid='seq',
    tokenize='unicode61'
);

CREATE TRIGGER IF NOT EXISTS knowledge_chunks_ai AFTER INSERT ON knowledge_chunks BEGIN
    INSERT INTO knowledge_chunks_fts(rowid, content) VALUES (new.seq, new.content);
END;

CREATE TRIGGER IF NOT EXISTS knowledge_chunks_ad AFTER DELETE ON knowledge_chunks BEGIN
    INSERT INTO knowledge_chunks_fts(knowledge_chunks_fts, rowid, content)
    VALUES ('delete', old.seq, old.content);
END;

CREATE TRIGGER IF NOT EXISTS knowledge_chunks_au AFTER UPDATE OF content ON knowledge_chunks BEGIN
    INSERT INTO knowledge_chunks_fts(knowledge_chunks_fts, rowid, content)
    VALUES ('delete', old.seq, old.content);
    INSERT INTO knowledge_chunks_fts(rowid, content) VALUES (new.seq, new.content);
END;
"""
