"""
Unit Tests - Embedding Providers

Tests for the stub provider, OpenAI error mapping and provider factory.
The OpenAI provider is exercised against an in-process fake client.
"""

import math
from types import SimpleNamespace

import httpx
import openai
import pytest

from ragengine.config.settings import EmbeddingSettings
from ragengine.core.exceptions import (
    ConfigurationError,
    EmbeddingAuthenticationError,
    EmbeddingConnectionError,
    EmbeddingProviderError,
    EmbeddingRateLimitError,
)
from ragengine.knowledge.embeddings import (
    OpenAIEmbeddings,
    StubEmbeddings,
    create_provider,
    provider_from_settings,
)

OPENAI_URL = "https://api.openai.com/v1/embeddings"


class FakeEmbeddingsAPI:
    """Stands in for client.embeddings."""

    def __init__(self, dimension: int = 4, reverse: bool = False, error: Exception | None = None):
        self.dimension = dimension
        self.reverse = reverse
        self.error = error
        self.requests: list[dict] = []

    async def create(self, **kwargs):
        self.requests.append(kwargs)
        if self.error is not None:
            raise self.error

        inputs = kwargs["input"]
        if isinstance(inputs, str):
            inputs = [inputs]
        data = [
            SimpleNamespace(index=i, embedding=[float(i + 1)] * self.dimension)
            for i in range(len(inputs))
        ]
        if self.reverse:
            data.reverse()
        return SimpleNamespace(data=data)


def fake_client(**kwargs) -> SimpleNamespace:
    return SimpleNamespace(embeddings=FakeEmbeddingsAPI(**kwargs))


def status_response(status: int, headers: dict | None = None) -> httpx.Response:
    return httpx.Response(status, headers=headers, request=httpx.Request("POST", OPENAI_URL))


class TestStubEmbeddings:
    """Tests for StubEmbeddings."""

    @pytest.mark.asyncio
    async def test_deterministic(self):
        provider = StubEmbeddings(dimension=16)
        first = await provider.embed("vector databases")
        second = await StubEmbeddings(dimension=16).embed("vector databases")
        assert first == second

    @pytest.mark.asyncio
    async def test_unit_length(self):
        provider = StubEmbeddings(dimension=16)
        for text in ["hello world", "", "!!!"]:
            vector = await provider.embed(text)
            assert len(vector) == 16
            assert math.isclose(math.sqrt(sum(x * x for x in vector)), 1.0, rel_tol=1e-9)

    @pytest.mark.asyncio
    async def test_batch_matches_single_in_order(self):
        provider = StubEmbeddings(dimension=16)
        texts = ["alpha", "beta gamma", "delta"]

        batch = await provider.embed_batch(texts)

        assert batch == [await provider.embed(t) for t in texts]

    @pytest.mark.asyncio
    async def test_shared_words_are_similar(self):
        provider = StubEmbeddings(dimension=64)
        query = await provider.embed("faiss index search")
        close = await provider.embed("search faiss index")
        assert math.isclose(sum(a * b for a, b in zip(query, close)), 1.0, rel_tol=1e-9)

    @pytest.mark.asyncio
    async def test_empty_batch(self):
        provider = StubEmbeddings()
        assert await provider.embed_batch([]) == []
        assert provider.calls == []

    def test_model_and_dimension(self):
        provider = StubEmbeddings(dimension=8)
        assert provider.dimension == 8
        assert provider.model == "stub-8"

    def test_invalid_dimension(self):
        with pytest.raises(ConfigurationError):
            StubEmbeddings(dimension=0)


class TestOpenAIEmbeddings:
    """Tests for OpenAIEmbeddings against a fake client."""

    def test_dimension_map(self):
        assert OpenAIEmbeddings(model="text-embedding-3-large").dimension == 3072
        assert OpenAIEmbeddings(model="text-embedding-3-small").dimension == 1536
        assert OpenAIEmbeddings(model="custom-model").dimension == 1536
        assert OpenAIEmbeddings(model="text-embedding-3-large", dimensions=256).dimension == 256

    @pytest.mark.asyncio
    async def test_batch_is_reordered_by_index(self):
        client = fake_client(reverse=True)
        provider = OpenAIEmbeddings(api_key="sk-test", client=client)

        vectors = await provider.embed_batch(["a", "b", "c"])

        assert [v[0] for v in vectors] == [1.0, 2.0, 3.0]
        assert client.embeddings.requests[0]["model"] == "text-embedding-3-small"
        assert "dimensions" not in client.embeddings.requests[0]

    @pytest.mark.asyncio
    async def test_dimensions_forwarded(self):
        client = fake_client(dimension=8)
        provider = OpenAIEmbeddings(api_key="sk-test", dimensions=8, client=client)

        vector = await provider.embed("hello")

        assert len(vector) == 8
        assert client.embeddings.requests[0]["dimensions"] == 8

    @pytest.mark.asyncio
    async def test_authentication_error(self):
        error = openai.AuthenticationError("bad key", response=status_response(401), body=None)
        provider = OpenAIEmbeddings(api_key="sk-bad", client=fake_client(error=error))

        with pytest.raises(EmbeddingAuthenticationError) as exc_info:
            await provider.embed("hello")

        assert exc_info.value.__cause__ is error
        assert exc_info.value.provider == "openai"

    @pytest.mark.asyncio
    async def test_rate_limit_error(self):
        error = openai.RateLimitError(
            "slow down",
            response=status_response(429, headers={"retry-after": "7"}),
            body=None,
        )
        provider = OpenAIEmbeddings(api_key="sk-test", client=fake_client(error=error))

        with pytest.raises(EmbeddingRateLimitError) as exc_info:
            await provider.embed_batch(["a", "b"])

        assert exc_info.value.retry_after == 7.0
        assert exc_info.value.__cause__ is error

    @pytest.mark.asyncio
    async def test_connection_error(self):
        error = openai.APIConnectionError(request=httpx.Request("POST", OPENAI_URL))
        provider = OpenAIEmbeddings(api_key="sk-test", client=fake_client(error=error))

        with pytest.raises(EmbeddingConnectionError):
            await provider.embed("hello")

    @pytest.mark.asyncio
    async def test_server_error_maps_to_base(self):
        error = openai.InternalServerError("boom", response=status_response(500), body=None)
        provider = OpenAIEmbeddings(api_key="sk-test", client=fake_client(error=error))

        with pytest.raises(EmbeddingProviderError) as exc_info:
            await provider.embed("hello")

        assert type(exc_info.value) is EmbeddingProviderError
        assert exc_info.value.code == "EMBEDDING_PROVIDER_ERROR"


class TestCreateProvider:
    """Tests for create_provider and provider_from_settings."""

    def test_openai_requires_key(self):
        with pytest.raises(ConfigurationError):
            create_provider("openai")

    def test_openai_with_key(self):
        provider = create_provider("openai", api_key="sk-test", model="text-embedding-3-large")
        assert isinstance(provider, OpenAIEmbeddings)
        assert provider.model == "text-embedding-3-large"
        assert provider.dimension == 3072

    def test_stub(self):
        provider = create_provider("stub", dimensions=12)
        assert isinstance(provider, StubEmbeddings)
        assert provider.dimension == 12

    def test_unknown_provider(self):
        with pytest.raises(ConfigurationError):
            create_provider("cohere")

    def test_from_settings(self):
        settings = EmbeddingSettings(provider="stub", stub_dimension=24)
        provider = provider_from_settings(settings)
        assert isinstance(provider, StubEmbeddings)
        assert provider.dimension == 24

    def test_from_settings_openai_without_key(self):
        settings = EmbeddingSettings(provider="openai", openai_api_key=None)
        with pytest.raises(ConfigurationError):
            provider_from_settings(settings)
