"""
Exception Hierarchy

Defines all exceptions raised by the RAG engine.
Exceptions carry structured context, not just messages.

Design decisions:
- All exceptions inherit from RAGEngineError for easy catching
- Error codes enable programmatic handling by the calling shell
- Provider errors keep the original exception as __cause__
"""

from typing import Any


class RAGEngineError(Exception):
    """
    Base exception for all engine errors.

    Provides structured error information including:
    - Human-readable message
    - Machine-readable error code
    - Additional context for debugging
    """

    error_code: str = "RAG_ENGINE_ERROR"

    def __init__(
        self,
        message: str,
        *,
        code: str | None = None,
        context: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code or self.error_code
        self.context = context or {}
        self.__cause__ = cause

    def to_dict(self) -> dict[str, Any]:
        """Serialize exception for API responses."""
        return {
            "error": self.code,
            "message": self.message,
            "context": self.context,
        }


# ============================================================
# Configuration Errors
# ============================================================


class ConfigurationError(RAGEngineError):
    """Error in configuration or settings."""

    error_code = "CONFIGURATION_ERROR"


# ============================================================
# Knowledge Errors
# ============================================================


class KnowledgeError(RAGEngineError):
    """Base error for knowledge ingestion and retrieval."""

    error_code = "KNOWLEDGE_ERROR"


class TokenizationError(KnowledgeError):
    """Text could not be encoded or decoded."""

    error_code = "TOKENIZATION_ERROR"


class ChunkingError(KnowledgeError):
    """Invalid chunking strategy or configuration."""

    error_code = "CHUNKING_ERROR"


class DocumentIngestionError(KnowledgeError):
    """A document could not be ingested into a knowledge base."""

    error_code = "DOCUMENT_INGESTION_ERROR"

    def __init__(
        self,
        message: str,
        *,
        document_id: str | None = None,
        **kwargs: Any,
    ):
        super().__init__(message, **kwargs)
        self.document_id = document_id
        if document_id:
            self.context["document_id"] = document_id


class DocumentProcessingError(KnowledgeError):
    """External document processor failed to extract text."""

    error_code = "DOCUMENT_PROCESSING_ERROR"


# ============================================================
# Embedding Errors
# ============================================================


class EmbeddingProviderError(KnowledgeError):
    """Base error for embedding providers."""

    error_code = "EMBEDDING_PROVIDER_ERROR"

    def __init__(
        self,
        message: str,
        *,
        provider: str | None = None,
        **kwargs: Any,
    ):
        super().__init__(message, **kwargs)
        self.provider = provider
        if provider:
            self.context["provider"] = provider


class EmbeddingAuthenticationError(EmbeddingProviderError):
    """Provider rejected the credentials."""

    error_code = "EMBEDDING_AUTHENTICATION_ERROR"


class EmbeddingRateLimitError(EmbeddingProviderError):
    """Rate limit exceeded for embedding provider."""

    error_code = "EMBEDDING_RATE_LIMIT"

    def __init__(
        self,
        message: str,
        *,
        retry_after: float | None = None,
        **kwargs: Any,
    ):
        super().__init__(message, **kwargs)
        self.retry_after = retry_after


class EmbeddingConnectionError(EmbeddingProviderError):
    """Failed to reach the embedding provider."""

    error_code = "EMBEDDING_CONNECTION_ERROR"


# ============================================================
# Storage Errors
# ============================================================


class StorageError(KnowledgeError):
    """Relational store open or write failure."""

    error_code = "STORAGE_ERROR"


class VectorStoreError(StorageError):
    """ANN index failure or embedding dimension mismatch."""

    error_code = "VECTOR_STORE_ERROR"

    def __init__(
        self,
        message: str,
        *,
        expected_dimension: int | None = None,
        actual_dimension: int | None = None,
        **kwargs: Any,
    ):
        super().__init__(message, **kwargs)
        self.expected_dimension = expected_dimension
        self.actual_dimension = actual_dimension
        if expected_dimension is not None:
            self.context["expected_dimension"] = expected_dimension
            self.context["actual_dimension"] = actual_dimension

