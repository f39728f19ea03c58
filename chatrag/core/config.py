"""Application settings loaded from environment / .env file."""

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── Database ──────────────────────────────────────────
    database_url: str = "sqlite+aiosqlite:///./chatrag.db"

    # ── Embeddings (local, no network calls after download) ─
    embedding_model: str = "sentence-transformers/all-MiniLM-L6-v2"
    embedding_dimensions: int = 384
    embedding_batch_size: int = 10
    embedding_init_timeout: float = 120.0  # seconds, covers the first model download
    embedding_device: str | None = None

    # ── Chunking / retrieval ──────────────────────────────
    chunk_size: int = 500
    chunk_overlap: int = 50
    default_top_k: int = 5

    # ── Ingestion ─────────────────────────────────────────
    max_upload_size_mb: int = 10
    url_fetch_timeout: float = 30.0

    # ── HTTP / logging ────────────────────────────────────
    allowed_origins: str = "*"
    log_level: str = "INFO"


@lru_cache
def get_settings() -> Settings:
    return Settings()
