"""
Knowledge / RAG Module

Tokenization, chunking, embedding, storage and retrieval.
Provides the knowledge bases for retrieval-augmented generation.
"""

from ragengine.knowledge.chunking import (
    ChunkingStrategy,
    FixedSizeChunker,
    HierarchicalChunker,
    SemanticChunker,
    StructureAwareChunker,
    get_chunker,
)
from ragengine.knowledge.embeddings import (
    EmbeddingProvider,
    LocalEmbeddings,
    OpenAIEmbeddings,
    StubEmbeddings,
    create_provider,
)
from ragengine.knowledge.processor import DocumentProcessor, ProcessorConfig, detect_mime_type
from ragengine.knowledge.rag import RAGService, build_rag_service
from ragengine.knowledge.tokenizer import ByteTokenizer, TiktokenTokenizer, Tokenizer
from ragengine.knowledge.vector_store import VectorStore

__all__ = [
    # Tokenizer
    "ByteTokenizer",
    "TiktokenTokenizer",
    "Tokenizer",
    # Chunking
    "ChunkingStrategy",
    "FixedSizeChunker",
    "HierarchicalChunker",
    "SemanticChunker",
    "StructureAwareChunker",
    "get_chunker",
    # Embeddings
    "EmbeddingProvider",
    "LocalEmbeddings",
    "OpenAIEmbeddings",
    "StubEmbeddings",
    "create_provider",
    # Processing
    "DocumentProcessor",
    "ProcessorConfig",
    "detect_mime_type",
    # Storage / retrieval
    "RAGService",
    "VectorStore",
    "build_rag_service",
]
