"""
Application Configuration
Loads environment variables and provides typed configuration.
"""
from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # OpenAI
    openai_api_key: str = Field(...)

    # Supabase
    supabase_url: str = Field(...)
    supabase_service_key: str = Field(...)
    documents_bucket: str = Field(default="documents")
    indoor_maps_bucket: str = Field(default="indoor_maps")

    # App Settings
    environment: str = Field(default="development")
    log_level: str = Field(default="INFO")

    # Model Settings
    embedding_model: str = "text-embedding-3-small"
    embedding_dimensions: int = 768
    generation_model: str = "gpt-4o-mini"
    vision_model: str = "gpt-4o"
    model_timeout_seconds: float = 60.0

    # Chunking (token budget, ~0.75 words per token)
    chunk_size_tokens: int = 400
    chunk_overlap_tokens: int = 100

    # Ingestion
    embed_max_attempts: int = 3

    # Retrieval / Answering
    retrieval_top_k: int = 5
    retrieval_min_score: float = 0.0
    answer_max_words: int = 200

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        protected_namespaces=(),
    )


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
