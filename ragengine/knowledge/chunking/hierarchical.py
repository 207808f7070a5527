"""
Hierarchical Chunker

Coarse parent chunks for context, fine child chunks for matching.
"""

from ragengine.core.types import Chunk, ChunkingConfig, ChunkingStrategyType, Document, new_id
from ragengine.knowledge.chunking.base import ChunkingStrategy


class HierarchicalChunker(ChunkingStrategy):
    """
    Two-level parent/child split.

    Parents are consecutive `parent_chunk_size` token windows. When
    `max_depth > 1`, every parent longer than `child_chunk_size` is cut
    into non-overlapping `child_chunk_size` windows whose
    `parent_chunk_id` points back at it. Children are sliced from the
    parent's tokens, so their token counts sum to the parent's.

    Output order is parent, its children, next parent, ...
    """

    strategy = ChunkingStrategyType.HIERARCHICAL

    async def chunk(self, document: Document, config: ChunkingConfig) -> list[Chunk]:
        if not document.content.strip():
            return []

        tokens = self._tokenizer.encode(document.content)
        parent_size = config.parent_chunk_size
        child_size = config.child_chunk_size

        chunks: list[Chunk] = []
        for start in range(0, len(tokens), parent_size):
            window = tokens[start : start + parent_size]
            parent_id = new_id()

            chunks.append(
                self._create_chunk(
                    document,
                    self._tokenizer.decode(window),
                    position=len(chunks),
                    tokens=len(window),
                    chunk_id=parent_id,
                    metadata={
                        "level": 0,
                        "is_parent": True,
                        "parent_id": None,
                        "token_range": [start, start + len(window)],
                    },
                )
            )

            if config.max_depth <= 1 or len(window) <= child_size:
                continue

            for offset in range(0, len(window), child_size):
                piece = window[offset : offset + child_size]
                chunks.append(
                    self._create_chunk(
                        document,
                        self._tokenizer.decode(piece),
                        position=len(chunks),
                        tokens=len(piece),
                        parent_chunk_id=parent_id,
                        metadata={
                            "level": 1,
                            "is_parent": False,
                            "parent_id": parent_id,
                            "token_range": [start + offset, start + offset + len(piece)],
                        },
                    )
                )

        return chunks
