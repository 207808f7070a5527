"""
Chunking Module

Four interchangeable chunking strategies, selected by a knowledge
base's configured strategy.
"""

from ragengine.core.exceptions import ChunkingError
from ragengine.core.types import ChunkingStrategyType
from ragengine.knowledge.chunking.base import ChunkingStrategy
from ragengine.knowledge.chunking.fixed_size import FixedSizeChunker
from ragengine.knowledge.chunking.hierarchical import HierarchicalChunker
from ragengine.knowledge.chunking.semantic import SemanticChunker
from ragengine.knowledge.chunking.structure_aware import StructureAwareChunker
from ragengine.knowledge.tokenizer import Tokenizer

_STRATEGIES: dict[ChunkingStrategyType, type[ChunkingStrategy]] = {
    ChunkingStrategyType.FIXED_SIZE: FixedSizeChunker,
    ChunkingStrategyType.SEMANTIC: SemanticChunker,
    ChunkingStrategyType.STRUCTURE_AWARE: StructureAwareChunker,
    ChunkingStrategyType.HIERARCHICAL: HierarchicalChunker,
}


def get_chunker(strategy: ChunkingStrategyType | str, tokenizer: Tokenizer) -> ChunkingStrategy:
    """Instantiate the chunker for a strategy name."""
    try:
        strategy_type = ChunkingStrategyType(strategy)
    except ValueError as e:
        raise ChunkingError(
            f"Unknown chunking strategy: {strategy}",
            context={"strategy": str(strategy)},
            cause=e,
        )
    return _STRATEGIES[strategy_type](tokenizer)


__all__ = [
    "ChunkingStrategy",
    "FixedSizeChunker",
    "HierarchicalChunker",
    "SemanticChunker",
    "StructureAwareChunker",
    "get_chunker",
]
