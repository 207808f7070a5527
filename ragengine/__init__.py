"""
ragengine: knowledge-base ingestion and retrieval for RAG

Documents are split into chunks by one of four strategies, embedded,
stored in a relational table paired with a FAISS index, and retrieved to
augment prompts with relevant context.
"""

__version__ = "0.1.0"

from ragengine.core.types import (
    Chunk,
    ChunkingConfig,
    ChunkingStrategyType,
    ChunkWithScore,
    Document,
    KnowledgeBase,
    KnowledgeBaseStats,
)
from ragengine.knowledge.rag import RAGService, build_rag_service

__all__ = [
    "Chunk",
    "ChunkWithScore",
    "ChunkingConfig",
    "ChunkingStrategyType",
    "Document",
    "KnowledgeBase",
    "KnowledgeBaseStats",
    "RAGService",
    "build_rag_service",
]
