"""Knowledge retrieval and ingestion engine.

Imports documents into knowledge bases (parse -> chunk -> embed -> persist)
and answers retrieval queries with vector, full-text and weighted hybrid
search over a SQLite store.
"""

__version__ = "0.1.0"
