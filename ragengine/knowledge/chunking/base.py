"""
Base Chunker

Abstract base for document chunking, plus the text-splitting helpers
shared by the paragraph-aware strategies.
"""

import re
from abc import ABC, abstractmethod
from typing import Any

from ragengine.core.types import Chunk, ChunkingConfig, ChunkingStrategyType, Document
from ragengine.knowledge.tokenizer import Tokenizer

PARAGRAPH_BREAK = re.compile(r"\n[ \t]*\n\s*")
SENTENCE_BREAK = re.compile(r"(?<=[.!?])\s+")


class ChunkingStrategy(ABC):
    """
    Abstract chunking strategy.

    A chunking run is all-or-nothing: a tokenizer failure propagates as
    TokenizationError and no chunks are returned. Positions are assigned
    sequentially from 0 over the whole result.
    """

    strategy: ChunkingStrategyType

    def __init__(self, tokenizer: Tokenizer):
        self._tokenizer = tokenizer

    @property
    def tokenizer(self) -> Tokenizer:
        return self._tokenizer

    @abstractmethod
    async def chunk(self, document: Document, config: ChunkingConfig) -> list[Chunk]:
        """Split a document into ordered chunks without embeddings."""
        pass

    def _create_chunk(
        self,
        document: Document,
        content: str,
        position: int,
        metadata: dict[str, Any],
        *,
        tokens: int | None = None,
        parent_chunk_id: str | None = None,
        chunk_id: str | None = None,
    ) -> Chunk:
        extra = {"id": chunk_id} if chunk_id else {}
        return Chunk(
            document_id=document.id,
            knowledge_base_id=document.knowledge_base_id,
            content=content,
            tokens=tokens if tokens is not None else self._tokenizer.count(content),
            position=position,
            parent_chunk_id=parent_chunk_id,
            metadata={"strategy": self.strategy.value, **metadata},
            **extra,
        )


def split_paragraphs(text: str) -> list[str]:
    """Split on blank lines, dropping empty paragraphs."""
    return [p.strip() for p in PARAGRAPH_BREAK.split(text) if p.strip()]


def paragraph_spans(text: str, offset: int = 0) -> list[tuple[int, int]]:
    """Character ranges of the non-blank paragraphs in text, shifted by offset."""
    spans = []
    start = 0
    for match in PARAGRAPH_BREAK.finditer(text):
        spans.append((start, match.start()))
        start = match.end()
    spans.append((start, len(text)))

    result = []
    for s, e in spans:
        piece = text[s:e]
        if not piece.strip():
            continue
        # Trim surrounding whitespace while keeping offsets
        lead = len(piece) - len(piece.lstrip())
        trail = len(piece) - len(piece.rstrip())
        result.append((offset + s + lead, offset + e - trail))
    return result


def split_sentences(text: str) -> list[str]:
    """Sentence boundary is `.`, `!` or `?` followed by whitespace."""
    return [s.strip() for s in SENTENCE_BREAK.split(text) if s.strip()]
