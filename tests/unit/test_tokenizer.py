"""
Unit Tests - Tokenizer

Tests for byte and tiktoken tokenizers.
"""

import pytest

from ragengine.core.exceptions import ConfigurationError, TokenizationError
from ragengine.knowledge.tokenizer import ByteTokenizer, TiktokenTokenizer, create_tokenizer


@pytest.fixture
def tiktoken_tokenizer():
    """cl100k_base needs a cached or downloadable BPE file."""
    try:
        return TiktokenTokenizer()
    except TokenizationError as e:
        pytest.skip(f"tiktoken encoding unavailable: {e}")


class TestByteTokenizer:
    """Tests for ByteTokenizer."""

    def test_round_trip_ascii(self):
        tokenizer = ByteTokenizer()
        text = "The quick brown fox jumps over the lazy dog. 12345!"
        assert tokenizer.decode(tokenizer.encode(text)) == text

    def test_round_trip_multibyte(self):
        tokenizer = ByteTokenizer()
        text = "naïve café, 東京"
        assert tokenizer.decode(tokenizer.encode(text)) == text

    def test_count_is_utf8_length(self):
        tokenizer = ByteTokenizer()
        assert tokenizer.count("abc") == 3
        assert tokenizer.count("é") == 2
        assert tokenizer.count("") == 0

    def test_split_multibyte_decodes_with_replacement(self):
        """Cutting inside a character is lossy, not an error."""
        tokenizer = ByteTokenizer()
        tokens = tokenizer.encode("é")
        assert tokenizer.decode(tokens[:1]) == "�"

    def test_lone_surrogate_is_fatal(self):
        tokenizer = ByteTokenizer()
        with pytest.raises(TokenizationError):
            tokenizer.encode("bad \ud800 text")
        with pytest.raises(TokenizationError):
            tokenizer.count("\udfff")

    def test_out_of_range_token_is_fatal(self):
        tokenizer = ByteTokenizer()
        with pytest.raises(TokenizationError):
            tokenizer.decode([72, 300])

    def test_truncate(self):
        tokenizer = ByteTokenizer()
        assert tokenizer.truncate("hello world", 5) == "hello"
        assert tokenizer.truncate("short", 10) == "short"


class TestTiktokenTokenizer:
    """Tests for TiktokenTokenizer."""

    def test_round_trip_ascii(self, tiktoken_tokenizer):
        text = "Retrieval-augmented generation joins search with language models."
        assert tiktoken_tokenizer.decode(tiktoken_tokenizer.encode(text)) == text

    def test_count_matches_encode(self, tiktoken_tokenizer):
        text = "one two three four five"
        assert tiktoken_tokenizer.count(text) == len(tiktoken_tokenizer.encode(text))
        assert 0 < tiktoken_tokenizer.count(text) <= len(text)

    def test_special_tokens_are_allowed(self, tiktoken_tokenizer):
        tokens = tiktoken_tokenizer.encode("<|endoftext|>")
        assert len(tokens) == 1

    def test_unknown_encoding_raises(self):
        with pytest.raises(TokenizationError):
            TiktokenTokenizer("no_such_encoding")


class TestCreateTokenizer:
    """Tests for create_tokenizer."""

    def test_byte(self):
        assert isinstance(create_tokenizer("byte"), ByteTokenizer)

    def test_unknown_kind(self):
        with pytest.raises(ConfigurationError):
            create_tokenizer("wordpiece")
