"""
Tokenizer

Counts, encodes and decodes text into model tokens.
Shared by every chunking strategy; instances hold no mutable state
after construction and may be reused across concurrent calls.

Round-trip: decode(encode(text)) == text for ordinary text. Decoding a
token slice that splits a multi-byte character is lossy (the partial
character becomes U+FFFD); chunkers that cut token windows inherit this.
"""

from abc import ABC, abstractmethod

from ragengine.core.exceptions import ConfigurationError, TokenizationError


class Tokenizer(ABC):
    """Abstract tokenizer."""

    name: str = "tokenizer"

    @abstractmethod
    def encode(self, text: str) -> list[int]:
        """Encode text into token ids."""
        pass

    @abstractmethod
    def decode(self, tokens: list[int]) -> str:
        """Decode token ids back into text."""
        pass

    def count(self, text: str) -> int:
        """Number of tokens in text."""
        return len(self.encode(text))

    def truncate(self, text: str, max_tokens: int) -> str:
        """Cut text down to at most max_tokens tokens."""
        tokens = self.encode(text)
        if len(tokens) <= max_tokens:
            return text
        return self.decode(tokens[:max_tokens])


class TiktokenTokenizer(Tokenizer):
    """
    BPE tokenizer backed by tiktoken.

    Uses cl100k_base by default, the encoding of the OpenAI embedding
    models. Special-token strings in the input are encoded as special
    tokens rather than rejected.
    """

    name = "tiktoken"

    def __init__(self, encoding_name: str = "cl100k_base"):
        try:
            import tiktoken
        except ImportError:
            raise ImportError("tiktoken required. Install with: pip install tiktoken")

        try:
            self._encoding = tiktoken.get_encoding(encoding_name)
        except Exception as e:
            raise TokenizationError(
                f"Failed to load tiktoken encoding {encoding_name!r}: {e}",
                context={"encoding": encoding_name},
                cause=e,
            )
        self.encoding_name = encoding_name

    def encode(self, text: str) -> list[int]:
        try:
            return self._encoding.encode(text, allowed_special="all")
        except Exception as e:
            raise TokenizationError(f"Failed to encode text: {e}", cause=e)

    def decode(self, tokens: list[int]) -> str:
        try:
            return self._encoding.decode(tokens)
        except Exception as e:
            raise TokenizationError(
                f"Failed to decode {len(tokens)} tokens: {e}",
                cause=e,
            )


class ByteTokenizer(Tokenizer):
    """
    One token per UTF-8 byte.

    Offline and dependency-free. Token counts are larger than a BPE
    tokenizer's but fully deterministic, which makes chunk boundaries
    easy to reason about in tests.
    """

    name = "byte"

    def encode(self, text: str) -> list[int]:
        try:
            return list(text.encode("utf-8"))
        except UnicodeEncodeError as e:
            # Lone surrogates cannot be represented in UTF-8
            raise TokenizationError(f"Failed to encode text: {e}", cause=e)

    def decode(self, tokens: list[int]) -> str:
        try:
            return bytes(tokens).decode("utf-8", errors="replace")
        except (ValueError, TypeError) as e:
            raise TokenizationError(
                f"Token ids must be integers in 0..255: {e}",
                cause=e,
            )

    def count(self, text: str) -> int:
        try:
            return len(text.encode("utf-8"))
        except UnicodeEncodeError as e:
            raise TokenizationError(f"Failed to encode text: {e}", cause=e)


def create_tokenizer(kind: str = "tiktoken", encoding: str = "cl100k_base") -> Tokenizer:
    """Build a tokenizer by name."""
    if kind == "tiktoken":
        return TiktokenTokenizer(encoding)
    elif kind == "byte":
        return ByteTokenizer()
    raise ConfigurationError(f"Unknown tokenizer: {kind}")
