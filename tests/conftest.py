"""
Test Configuration

Shared fixtures. Every fixture is offline: the byte tokenizer, the stub
embedding provider and an in-memory SQLite store.
"""

import pytest

from ragengine.knowledge.embeddings import StubEmbeddings
from ragengine.knowledge.rag import RAGService
from ragengine.knowledge.tokenizer import ByteTokenizer
from ragengine.knowledge.vector_store import VectorStore
from ragengine.observability.metrics import MetricsCollector
from tests.fixtures import STUB_DIMENSION


@pytest.fixture
def tokenizer():
    return ByteTokenizer()


@pytest.fixture
def metrics():
    return MetricsCollector(prefix="test")


@pytest.fixture
def stub_provider():
    return StubEmbeddings(dimension=STUB_DIMENSION)


@pytest.fixture
def vector_store(metrics):
    store = VectorStore(dimension=STUB_DIMENSION, db_url="sqlite://", metrics=metrics)
    yield store
    store.close()


@pytest.fixture
def rag_service(tokenizer, stub_provider, vector_store, metrics):
    return RAGService(
        tokenizer=tokenizer,
        embedding_provider=stub_provider,
        vector_store=vector_store,
        metrics=metrics,
    )


def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "integration: Integration tests")
    config.addinivalue_line("markers", "slow: Slow tests")
