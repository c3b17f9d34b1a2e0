"""Application settings loaded from environment variables via pydantic-settings.

Sources, highest priority first:

1. Environment variables (``OPENAI_API_KEY=sk-...``)
2. ``.env`` file in the working directory
3. ``config/config.yaml`` values (applied by :func:`knowledge_engine.config.loader.load_settings`)
4. The defaults below

Field ``openai_api_key`` maps to env var ``OPENAI_API_KEY``; matching is
case-insensitive.
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

EMBEDDING_PROVIDER_CHOICES = ("auto", "openai", "ollama", "none")


class Settings(BaseSettings):
    """Knowledge engine settings.

    Environment variables override defaults. Loaded from .env file when present.
    """

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # === Storage ===
    knowledge_db_path: str = "data/knowledge.db"
    files_dir: str = "data/files"

    # === Embedding ===
    # "auto" tries OpenAI (when a key is set) then Ollama; "none" disables
    # embeddings, which puts retrieval into its degraded empty-result mode.
    embedding_provider: str = "auto"
    openai_api_key: str = ""
    openai_base_url: str = ""
    openai_embedding_model: str = ""
    ollama_base_url: str = "http://localhost:11434"
    ollama_embedding_model: str = "nomic-embed-text"

    # === Chunking defaults (recursive) ===
    chunk_size: int = Field(default=512, gt=0)
    chunk_overlap: int = Field(default=50, ge=0)

    # === Search defaults ===
    search_top_k: int = Field(default=5, gt=0)
    hybrid_vector_weight: float = Field(default=0.7, ge=0.0)
    hybrid_text_weight: float = Field(default=0.3, ge=0.0)

    # === URL loading ===
    url_fetch_timeout: float = Field(default=10.0, gt=0.0)

    # === App Config ===
    app_env: str = "development"
    log_level: str = "INFO"

    def get_available_embedding_providers(self) -> list[str]:
        """Return embedding provider names that have the settings they need."""
        providers: list[str] = []
        if self.openai_api_key:
            providers.append("openai")
        if self.ollama_base_url:
            providers.append("ollama")
        return providers
