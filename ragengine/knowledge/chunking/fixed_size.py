"""
Fixed-Size Chunker

Sliding token window with overlap. No structural awareness.
"""

from ragengine.core.types import Chunk, ChunkingConfig, ChunkingStrategyType, Document
from ragengine.knowledge.chunking.base import ChunkingStrategy


class FixedSizeChunker(ChunkingStrategy):
    """
    Token windows of `chunk_size` advanced by `chunk_size - overlap_tokens`.

    The final partial window is emitted. Window boundaries may split a
    multi-byte character; see the tokenizer module for the decode policy.
    """

    strategy = ChunkingStrategyType.FIXED_SIZE

    async def chunk(self, document: Document, config: ChunkingConfig) -> list[Chunk]:
        if not document.content.strip():
            return []

        tokens = self._tokenizer.encode(document.content)
        chunk_size = config.chunk_size
        overlap = config.overlap_tokens
        stride = max(1, chunk_size - overlap)

        chunks = []
        start = 0
        while start < len(tokens):
            end = min(start + chunk_size, len(tokens))
            window = tokens[start:end]

            chunks.append(
                self._create_chunk(
                    document,
                    self._tokenizer.decode(window),
                    position=len(chunks),
                    tokens=len(window),
                    metadata={
                        "chunk_size": chunk_size,
                        "overlap_tokens": overlap,
                        "token_range": [start, end],
                    },
                )
            )

            if end == len(tokens):
                break
            start += stride

        return chunks
