"""
Test Fixtures

Builders and fake providers shared by unit and integration tests.
"""

from ragengine.core.exceptions import EmbeddingProviderError
from ragengine.core.types import (
    ChunkingConfig,
    ChunkingStrategyType,
    Document,
    KnowledgeBase,
)
from ragengine.knowledge.embeddings import EmbeddingProvider, StubEmbeddings

STUB_DIMENSION = 32


class FailingEmbeddings(EmbeddingProvider):
    """Provider that fails every call, counting how often it was asked."""

    name = "failing"

    def __init__(self, dimension: int = STUB_DIMENSION):
        self._dimension = dimension
        self.calls = 0

    @property
    def dimension(self) -> int:
        return self._dimension

    async def embed(self, text: str) -> list[float]:
        self.calls += 1
        raise EmbeddingProviderError("upstream unavailable", provider=self.name)

    async def embed_batch(self, texts: list[str]) -> list[list[float]]:
        self.calls += 1
        raise EmbeddingProviderError("upstream unavailable", provider=self.name)


class FlakyIndex:
    """Wraps a FAISS index and fails selected operations."""

    def __init__(self, inner, fail: set[str]):
        self._inner = inner
        self._fail = fail

    def __getattr__(self, name):
        return getattr(self._inner, name)

    def add_with_ids(self, vectors, keys):
        if "add" in self._fail:
            raise RuntimeError("faiss add failed")
        return self._inner.add_with_ids(vectors, keys)

    def remove_ids(self, keys):
        if "remove" in self._fail:
            raise RuntimeError("faiss remove failed")
        return self._inner.remove_ids(keys)


class ShortBatchEmbeddings(StubEmbeddings):
    """Provider that silently drops the last vector of a batch."""

    name = "short"

    async def embed_batch(self, texts: list[str]) -> list[list[float]]:
        vectors = await super().embed_batch(texts)
        return vectors[:-1]


def make_document(content: str, knowledge_base_id: str = "kb-1", **kwargs) -> Document:
    return Document(
        knowledge_base_id=knowledge_base_id,
        title=kwargs.pop("title", "doc"),
        content=content,
        **kwargs,
    )


def make_knowledge_base(
    strategy: ChunkingStrategyType = ChunkingStrategyType.SEMANTIC,
    config: ChunkingConfig | None = None,
    **kwargs,
) -> KnowledgeBase:
    return KnowledgeBase(
        user_id=kwargs.pop("user_id", "user-1"),
        name=kwargs.pop("name", "test kb"),
        chunking_strategy=strategy,
        chunking_config=config or ChunkingConfig(),
        embedding_provider="stub",
        embedding_model="stub",
        **kwargs,
    )


def unit_vector(index: int, dimension: int = STUB_DIMENSION) -> list[float]:
    vector = [0.0] * dimension
    vector[index] = 1.0
    return vector


def words(n: int, word: str = "word") -> str:
    """n space-separated copies of word, without trailing punctuation."""
    return " ".join([word] * n)
