"""
Embedding Providers

Generate vector embeddings for chunk text and queries.
Abstracts different embedding backends.

Design decisions:
- Provider-agnostic interface with a fixed dimension per provider+model
- Batch embedding is all-or-nothing and preserves input order
- No retries: provider errors surface to the caller with the provider's
  message and the original exception as __cause__
"""

import hashlib
import math
import re
from abc import ABC, abstractmethod
from typing import Any

from ragengine.config.settings import EmbeddingSettings
from ragengine.core.exceptions import (
    ConfigurationError,
    EmbeddingAuthenticationError,
    EmbeddingConnectionError,
    EmbeddingProviderError,
    EmbeddingRateLimitError,
)
from ragengine.core.types import EmbeddingProviderType

# Known OpenAI output dimensions
OPENAI_MODEL_DIMENSIONS = {
    "text-embedding-3-small": 1536,
    "text-embedding-3-large": 3072,
    "text-embedding-ada-002": 1536,
}
DEFAULT_OPENAI_DIMENSION = 1536


class EmbeddingProvider(ABC):
    """
    Abstract embedding provider.

    Generates dense vector representations of text
    for semantic similarity search.
    """

    name: str = "embedding"

    @property
    def model(self) -> str:
        """Model identifier recorded on knowledge bases."""
        return self.name

    @property
    @abstractmethod
    def dimension(self) -> int:
        """Embedding dimension, fixed for the provider's lifetime."""
        pass

    @abstractmethod
    async def embed(self, text: str) -> list[float]:
        """Generate embedding for single text."""
        pass

    @abstractmethod
    async def embed_batch(self, texts: list[str]) -> list[list[float]]:
        """Generate one embedding per text, in input order."""
        pass

    def _check_batch(self, texts: list[str], vectors: list[list[float]]) -> list[list[float]]:
        if len(vectors) != len(texts):
            raise EmbeddingProviderError(
                f"Provider returned {len(vectors)} embeddings for {len(texts)} inputs",
                provider=self.name,
            )
        return vectors


class OpenAIEmbeddings(EmbeddingProvider):
    """
    OpenAI embedding provider.

    Uses text-embedding-3-small/large or ada-002. The client is created
    with retries disabled.
    """

    name = "openai"

    def __init__(
        self,
        api_key: str | None = None,
        model: str = "text-embedding-3-small",
        dimensions: int | None = None,  # Optional dimension reduction (v3 models)
        base_url: str | None = None,
        timeout: float = 60.0,
        client: Any = None,
    ):
        self._api_key = api_key
        self._model = model
        self._dimensions = dimensions
        self._base_url = base_url
        self._timeout = timeout
        self._client = client

    @property
    def model(self) -> str:
        return self._model

    def _get_client(self):
        if self._client is None:
            try:
                from openai import AsyncOpenAI
            except ImportError:
                raise ImportError("openai package required. Install with: pip install openai")

            kwargs: dict[str, Any] = {"max_retries": 0, "timeout": self._timeout}
            if self._api_key:
                kwargs["api_key"] = self._api_key
            if self._base_url:
                kwargs["base_url"] = self._base_url

            self._client = AsyncOpenAI(**kwargs)
        return self._client

    @property
    def dimension(self) -> int:
        if self._dimensions:
            return self._dimensions
        return OPENAI_MODEL_DIMENSIONS.get(self._model, DEFAULT_OPENAI_DIMENSION)

    async def _create(self, inputs: str | list[str]) -> list[list[float]]:
        import openai

        client = self._get_client()

        kwargs: dict[str, Any] = {"model": self._model, "input": inputs}
        if self._dimensions:
            kwargs["dimensions"] = self._dimensions

        try:
            response = await client.embeddings.create(**kwargs)
        except openai.AuthenticationError as e:
            raise EmbeddingAuthenticationError(str(e), provider=self.name, cause=e)
        except openai.RateLimitError as e:
            retry_after = e.response.headers.get("retry-after") if e.response else None
            raise EmbeddingRateLimitError(
                str(e),
                provider=self.name,
                retry_after=float(retry_after) if retry_after else None,
                cause=e,
            )
        except openai.APIConnectionError as e:
            raise EmbeddingConnectionError(str(e), provider=self.name, cause=e)
        except openai.APIError as e:
            raise EmbeddingProviderError(str(e), provider=self.name, cause=e)

        # The API tags each item with its input index
        data = sorted(response.data, key=lambda item: item.index)
        return [list(item.embedding) for item in data]

    async def embed(self, text: str) -> list[float]:
        vectors = self._check_batch([text], await self._create(text))
        return vectors[0]

    async def embed_batch(self, texts: list[str]) -> list[list[float]]:
        if not texts:
            return []
        return self._check_batch(texts, await self._create(texts))


class LocalEmbeddings(EmbeddingProvider):
    """
    Local embedding provider using sentence-transformers.

    Runs on CPU/GPU locally, no API calls needed.
    Good for privacy-sensitive deployments.
    """

    name = "local"

    def __init__(
        self,
        model_name: str = "all-MiniLM-L6-v2",
        device: str = "cpu",
    ):
        self._model_name = model_name
        self._device = device
        self._model = None

    @property
    def model(self) -> str:
        return self._model_name

    def _get_model(self):
        if self._model is None:
            try:
                from sentence_transformers import SentenceTransformer
            except ImportError:
                raise ImportError(
                    "sentence-transformers required. Install with: "
                    "pip install sentence-transformers"
                )

            self._model = SentenceTransformer(self._model_name, device=self._device)
        return self._model

    @property
    def dimension(self) -> int:
        return self._get_model().get_sentence_embedding_dimension()

    def _encode(self, inputs: str | list[str]):
        model = self._get_model()
        try:
            return model.encode(inputs, convert_to_numpy=True)
        except Exception as e:
            raise EmbeddingProviderError(str(e), provider=self.name, cause=e)

    async def embed(self, text: str) -> list[float]:
        return self._encode(text).tolist()

    async def embed_batch(self, texts: list[str]) -> list[list[float]]:
        if not texts:
            return []
        return self._check_batch(texts, self._encode(texts).tolist())


_WORD = re.compile(r"\w+")


class StubEmbeddings(EmbeddingProvider):
    """
    Deterministic, offline embedding provider for tests and CI.

    Hashes each lowercased word into one of `dimension` signed buckets and
    L2-normalises the result, so texts sharing words score as similar.
    NEVER makes external network calls.
    """

    name = "stub"

    def __init__(self, dimension: int = 64):
        if dimension < 1:
            raise ConfigurationError("Stub embedding dimension must be positive")
        self._dimension = dimension
        self.calls: list[list[str]] = []

    @property
    def model(self) -> str:
        return f"stub-{self._dimension}"

    @property
    def dimension(self) -> int:
        return self._dimension

    def _vector(self, text: str) -> list[float]:
        vector = [0.0] * self._dimension
        words = _WORD.findall(text.lower()) or [text]

        for word in words:
            digest = hashlib.blake2b(word.encode("utf-8"), digest_size=8).digest()
            bucket = int.from_bytes(digest[:4], "little") % self._dimension
            sign = 1.0 if digest[4] & 1 else -1.0
            vector[bucket] += sign

        norm = math.sqrt(sum(x * x for x in vector))
        if norm == 0:
            vector[0] = 1.0
            return vector
        return [x / norm for x in vector]

    async def embed(self, text: str) -> list[float]:
        self.calls.append([text])
        return self._vector(text)

    async def embed_batch(self, texts: list[str]) -> list[list[float]]:
        if not texts:
            return []
        self.calls.append(list(texts))
        return [self._vector(t) for t in texts]


def create_provider(
    provider: EmbeddingProviderType | str,
    *,
    api_key: str | None = None,
    model: str | None = None,
    dimensions: int | None = None,
    **kwargs: Any,
) -> EmbeddingProvider:
    """
    Build an embedding provider.

    OpenAI requires an API key; a missing key is a configuration error
    rather than a failure deferred to the first request.
    """
    try:
        provider_type = EmbeddingProviderType(provider)
    except ValueError as e:
        raise ConfigurationError(f"Unknown embedding provider: {provider}", cause=e)

    if provider_type == EmbeddingProviderType.OPENAI:
        if not api_key:
            raise ConfigurationError(
                "OpenAI embedding provider requires an API key",
                context={"provider": provider_type.value},
            )
        return OpenAIEmbeddings(
            api_key=api_key,
            model=model or "text-embedding-3-small",
            dimensions=dimensions,
            **kwargs,
        )
    elif provider_type == EmbeddingProviderType.LOCAL:
        return LocalEmbeddings(model_name=model or "all-MiniLM-L6-v2", **kwargs)
    else:
        return StubEmbeddings(dimension=dimensions or 64)


def provider_from_settings(settings: EmbeddingSettings) -> EmbeddingProvider:
    """Build the provider described by EMBEDDING_* settings."""
    if settings.provider == "openai":
        api_key = settings.openai_api_key.get_secret_value() if settings.openai_api_key else None
        return create_provider(
            "openai",
            api_key=api_key,
            model=settings.openai_model,
            dimensions=settings.dimensions,
            base_url=settings.openai_base_url,
            timeout=settings.request_timeout,
        )
    elif settings.provider == "local":
        return create_provider("local", model=settings.local_model, device=settings.local_device)
    return create_provider("stub", dimensions=settings.dimensions or settings.stub_dimension)
