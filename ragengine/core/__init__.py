"""
Core Module

Contains the data model and exception hierarchy shared by every
other module in the engine.
"""

from ragengine.core.exceptions import (
    ChunkingError,
    ConfigurationError,
    DocumentIngestionError,
    DocumentProcessingError,
    EmbeddingAuthenticationError,
    EmbeddingConnectionError,
    EmbeddingProviderError,
    EmbeddingRateLimitError,
    KnowledgeError,
    RAGEngineError,
    StorageError,
    TokenizationError,
    VectorStoreError,
)
from ragengine.core.types import (
    Chunk,
    ChunkingConfig,
    ChunkingStrategyType,
    ChunkWithScore,
    Document,
    EmbeddingProviderType,
    KnowledgeBase,
    KnowledgeBaseStats,
    ProcessedDocument,
    ProcessorType,
)

__all__ = [
    # Types
    "Chunk",
    "ChunkWithScore",
    "ChunkingConfig",
    "ChunkingStrategyType",
    "Document",
    "EmbeddingProviderType",
    "KnowledgeBase",
    "KnowledgeBaseStats",
    "ProcessedDocument",
    "ProcessorType",
    # Exceptions
    "ChunkingError",
    "ConfigurationError",
    "DocumentIngestionError",
    "DocumentProcessingError",
    "EmbeddingAuthenticationError",
    "EmbeddingConnectionError",
    "EmbeddingProviderError",
    "EmbeddingRateLimitError",
    "KnowledgeError",
    "RAGEngineError",
    "StorageError",
    "TokenizationError",
    "VectorStoreError",
]
