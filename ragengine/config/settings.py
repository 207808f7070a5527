"""
Settings Management

Provides centralized, type-safe configuration using Pydantic.
Supports environment variables, .env files, and grouped config.

Design decisions:
- Using pydantic-settings for validation and type coercion
- Immutable settings after initialization (frozen model)
- One settings group per engine component
"""

from functools import lru_cache
from typing import Literal

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class EmbeddingSettings(BaseSettings):
    """Embedding provider configuration."""

    model_config = SettingsConfigDict(env_prefix="EMBEDDING_")

    # stub = offline mode, no API key required
    provider: Literal["openai", "local", "stub"] = "openai"

    # OpenAI settings
    openai_api_key: SecretStr | None = Field(default=None)
    openai_base_url: str | None = Field(default=None)
    openai_model: str = Field(default="text-embedding-3-small")
    dimensions: int | None = Field(default=None, ge=1)
    request_timeout: float = Field(default=60.0, gt=0)

    # sentence-transformers settings
    local_model: str = Field(default="all-MiniLM-L6-v2")
    local_device: str = Field(default="cpu")

    # Stub settings
    stub_dimension: int = Field(default=64, ge=1)


class VectorStoreSettings(BaseSettings):
    """Relational store and ANN index configuration."""

    model_config = SettingsConfigDict(env_prefix="VECTOR_")

    db_url: str = Field(default="sqlite:///./data/knowledge.db")
    index_path: str | None = Field(default="./data/knowledge.faiss")
    dimension: int | None = Field(
        default=None,
        ge=1,
        description="Index dimension; defaults to the embedding provider's",
    )

    # Search over-fetch factor so KB filtering can still fill `limit`
    search_oversample: int = Field(default=5, ge=1)

    # Rebuild the index from stored embeddings when it disagrees with the table on open
    rebuild_on_mismatch: bool = Field(default=True)


class TokenizerSettings(BaseSettings):
    """Tokenizer configuration."""

    model_config = SettingsConfigDict(env_prefix="TOKENIZER_")

    kind: Literal["tiktoken", "byte"] = "tiktoken"
    encoding: str = Field(default="cl100k_base")


class ChunkingSettings(BaseSettings):
    """Defaults applied to knowledge bases created without a chunking config."""

    model_config = SettingsConfigDict(env_prefix="CHUNKING_")

    strategy: Literal["fixed_size", "semantic", "structure_aware", "hierarchical"] = "semantic"
    chunk_size: int = Field(default=768, ge=1)
    overlap_percent: float = Field(default=0.15, ge=0.0, lt=1.0)
    min_chunk_size: int = Field(default=256, ge=0)
    max_chunk_size: int = Field(default=1024, ge=1)
    parent_chunk_size: int = Field(default=2048, ge=1)
    child_chunk_size: int = Field(default=512, ge=1)
    max_depth: int = Field(default=3, ge=1)
    respect_sentences: bool = True
    preserve_code_blocks: bool = True
    preserve_tables: bool = True
    preserve_lists: bool = True


class ProcessorSettings(BaseSettings):
    """External document processor configuration."""

    model_config = SettingsConfigDict(env_prefix="PROCESSOR_")

    unstructured_api_key: SecretStr | None = Field(default=None)
    unstructured_hosted_url: str = Field(default="https://api.unstructuredapp.io")
    unstructured_self_hosted_url: str = Field(default="http://localhost:8000")
    mistral_api_key: SecretStr | None = Field(default=None)
    mistral_url: str = Field(default="https://api.mistral.ai")
    request_timeout: float = Field(default=120.0, gt=0)


class ObservabilitySettings(BaseSettings):
    """Observability configuration."""

    model_config = SettingsConfigDict(env_prefix="OBS_")

    metrics_prefix: str = Field(default="ragengine")

    # Logging
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    log_format: Literal["json", "text"] = "json"
    log_file: str | None = Field(default=None)


class Settings(BaseSettings):
    """
    Master settings aggregator.

    This is the single source of truth for all configuration.
    Sub-settings are composed here to maintain clear boundaries.
    """

    model_config = SettingsConfigDict(
        env_prefix="RAGENGINE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        frozen=True,  # Immutable after creation
    )

    app_name: str = Field(default="ragengine")
    environment: Literal["development", "staging", "production"] = "development"

    # Component settings (composed)
    embedding: EmbeddingSettings = Field(default_factory=EmbeddingSettings)
    vector_store: VectorStoreSettings = Field(default_factory=VectorStoreSettings)
    tokenizer: TokenizerSettings = Field(default_factory=TokenizerSettings)
    chunking: ChunkingSettings = Field(default_factory=ChunkingSettings)
    processor: ProcessorSettings = Field(default_factory=ProcessorSettings)
    observability: ObservabilitySettings = Field(default_factory=ObservabilitySettings)

    @property
    def is_production(self) -> bool:
        return self.environment == "production"


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Safe because settings are frozen/immutable.
    """
    return Settings()
