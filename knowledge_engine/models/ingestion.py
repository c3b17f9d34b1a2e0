"""Request / result models for the document import pipeline."""

from __future__ import annotations

from pathlib import PurePath

from pydantic import BaseModel, ConfigDict, Field, model_validator

from knowledge_engine.models.knowledge import ChunkingConfig, SourceType


class ImportRequest(BaseModel):
    """One document to import into a knowledge base.

    Exactly one source is used, chosen by ``source_type``:

    - ``url``  -> ``source_uri`` is fetched and its main text extracted
    - ``text`` -> ``content`` is used verbatim
    - ``file`` -> ``file_bytes`` are parsed by the extension of ``file_name``

    ``chunking`` overrides the knowledge base's stored chunking config.
    """

    model_config = ConfigDict(frozen=True)

    knowledge_base_id: str = Field(min_length=1)
    source_type: SourceType
    title: str = ""
    source_uri: str = ""
    content: str = ""
    file_name: str = ""
    file_bytes: bytes = b""
    chunking: ChunkingConfig | None = None
    metadata: dict[str, object] = Field(default_factory=dict)

    @model_validator(mode="after")
    def _check_source(self) -> ImportRequest:
        if self.source_type is SourceType.URL and not self.source_uri:
            raise ValueError("url imports require source_uri")
        if self.source_type is SourceType.FILE and not self.file_name:
            raise ValueError("file imports require file_name")
        return self

    @property
    def extension(self) -> str:
        """Lower-cased file extension including the dot, e.g. ``".pdf"``."""
        return PurePath(self.file_name).suffix.lower()

    @property
    def display_title(self) -> str:
        if self.title:
            return self.title
        if self.source_type is SourceType.FILE:
            return PurePath(self.file_name).name
        if self.source_type is SourceType.URL:
            return self.source_uri
        return self.content.strip()[:64]


class ImportResult(BaseModel):
    """Outcome of a successful import."""

    model_config = ConfigDict(frozen=True)

    document_id: str
    chunk_count: int = Field(ge=0)
    embedded_count: int = Field(default=0, ge=0)
    ingestion_time: float = Field(default=0.0, ge=0.0, description="Wall-clock seconds.")
