"""
Core Types and Data Structures

Defines the fundamental types used throughout the engine.
These are intentionally simple and serializable.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, model_validator


def utcnow() -> datetime:
    """Timezone-aware current time."""
    return datetime.now(timezone.utc)


def new_id() -> str:
    return str(uuid4())


class ChunkingStrategyType(str, Enum):
    """Closed set of chunking algorithms a knowledge base can use."""

    FIXED_SIZE = "fixed_size"
    SEMANTIC = "semantic"
    STRUCTURE_AWARE = "structure_aware"
    HIERARCHICAL = "hierarchical"


class EmbeddingProviderType(str, Enum):
    """Embedding backends."""

    OPENAI = "openai"
    LOCAL = "local"
    STUB = "stub"  # Offline, deterministic


class ProcessorType(str, Enum):
    """External document processors that produce plain text."""

    NATIVE = "native"
    UNSTRUCTURED_HOSTED = "unstructured_hosted"
    UNSTRUCTURED_SELF_HOSTED = "unstructured_self_hosted"
    MISTRAL = "mistral"


class ChunkingConfig(BaseModel):
    """
    Parameters shared by all chunking strategies.

    Each strategy reads only the fields relevant to it:
    - FixedSize: chunk_size, overlap_percent
    - Semantic: min/max_chunk_size, respect_sentences
    - StructureAware: max_chunk_size, preserve_* flags
    - Hierarchical: parent/child_chunk_size, max_depth
    """

    chunk_size: int = Field(default=768, ge=1)
    overlap_percent: float = Field(default=0.15, ge=0.0, lt=1.0)
    min_chunk_size: int = Field(default=256, ge=0)
    max_chunk_size: int = Field(default=1024, ge=1)
    respect_sentences: bool = True
    preserve_code_blocks: bool = True
    preserve_tables: bool = True
    preserve_lists: bool = True
    parent_chunk_size: int = Field(default=2048, ge=1)
    child_chunk_size: int = Field(default=512, ge=1)
    max_depth: int = Field(default=3, ge=1)

    model_config = ConfigDict(frozen=True)

    @model_validator(mode="after")
    def _check_bounds(self) -> "ChunkingConfig":
        if self.min_chunk_size > self.max_chunk_size:
            raise ValueError(
                f"min_chunk_size ({self.min_chunk_size}) exceeds "
                f"max_chunk_size ({self.max_chunk_size})"
            )
        return self

    @property
    def overlap_tokens(self) -> int:
        """Window overlap for fixed-size chunking, truncated to whole tokens."""
        return int(self.chunk_size * self.overlap_percent)


class KnowledgeBase(BaseModel):
    """
    A named, owned collection of documents.

    All documents share one chunking policy and one embedding model.
    The embedding dimension is fixed for the lifetime of the knowledge base.
    """

    id: str = Field(default_factory=new_id)
    user_id: str
    name: str
    description: str | None = None
    chunking_strategy: ChunkingStrategyType = ChunkingStrategyType.SEMANTIC
    chunking_config: ChunkingConfig = Field(default_factory=ChunkingConfig)
    embedding_provider: EmbeddingProviderType = EmbeddingProviderType.OPENAI
    embedding_model: str = "text-embedding-3-small"
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class Document(BaseModel):
    """One ingested source file after text extraction. Content is immutable."""

    id: str = Field(default_factory=new_id)
    user_id: str | None = None
    knowledge_base_id: str
    title: str
    content: str
    file_path: str | None = None
    file_type: str = "text/plain"
    file_size: int = 0
    processor: ProcessorType = ProcessorType.NATIVE
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    model_config = ConfigDict(frozen=True)


class Chunk(BaseModel):
    """
    One retrievable unit of text.

    `embedding` is empty until the chunk has been embedded, after which its
    length equals the knowledge base's embedding dimension. `position` is the
    ordinal within the chunking run that produced the chunk.
    """

    id: str = Field(default_factory=new_id)
    document_id: str
    knowledge_base_id: str
    content: str
    embedding: list[float] = Field(default_factory=list)
    tokens: int = Field(default=0, ge=0)
    position: int = Field(default=0, ge=0)
    parent_chunk_id: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=utcnow)

    @property
    def has_embedding(self) -> bool:
        return len(self.embedding) > 0


class ChunkWithScore(BaseModel):
    """A chunk plus a similarity score in [0, 1]."""

    chunk: Chunk
    score: float = Field(ge=0.0, le=1.0)


class KnowledgeBaseStats(BaseModel):
    """Aggregate chunk statistics for one knowledge base."""

    total_chunks: int = 0
    total_tokens: int = 0
    avg_tokens_per_chunk: int = 0
    num_documents: int = 0


class ProcessedDocument(BaseModel):
    """Plain text plus metadata produced by a document processor."""

    title: str
    content: str
    mime_type: str = "text/plain"
    metadata: dict[str, Any] = Field(default_factory=dict)
