"""Shared configuration loaded from environment / .env file."""

from __future__ import annotations

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application-wide settings, populated from env vars or .env file."""

    # Embedding service
    openrouter_api_key: str = Field(default="", description="API key for the embedding provider")
    embedding_base_url: str = "https://openrouter.ai/api/v1/embeddings"
    embedding_model: str = "openai/text-embedding-3-small"
    embedding_dimensions: int = 1536
    embedding_timeout: float = Field(default=30.0, description="Per-request timeout in seconds")
    embedding_max_batch_size: int = Field(
        default=2048,
        description="Provider limit on inputs per request; larger lists are pre-split",
    )
    embedding_referer: str = ""
    embedding_app_title: str = ""

    # Chunking
    chunk_min_tokens: int = 200
    chunk_max_tokens: int = 500
    chars_per_token: int = 4

    # Chunk store
    chroma_host: str = "localhost"
    chroma_port: int = 8000
    chroma_collection: str = "context_chunks"

    # Digest store
    database_url: str = "sqlite:///./digests.db"

    # Maintenance
    stale_processing_minutes: int = Field(
        default=30,
        description="Age after which a 'processing' digest counts as stale (0 disables the sweep)",
    )

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


# Singleton: import `settings` wherever needed.
settings = Settings()
