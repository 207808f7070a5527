"""
Unit Tests - Settings

Tests for environment-driven configuration.
"""

import pytest
from pydantic import ValidationError

from ragengine.config.settings import (
    ChunkingSettings,
    EmbeddingSettings,
    Settings,
    VectorStoreSettings,
    get_settings,
)


class TestSettings:
    """Tests for settings groups and the master settings."""

    def test_defaults(self):
        settings = EmbeddingSettings()
        assert settings.openai_model == "text-embedding-3-small"
        assert settings.stub_dimension == 64
        assert VectorStoreSettings().search_oversample == 5

    def test_env_prefixes(self, monkeypatch):
        monkeypatch.setenv("EMBEDDING_PROVIDER", "stub")
        monkeypatch.setenv("EMBEDDING_STUB_DIMENSION", "48")
        monkeypatch.setenv("VECTOR_DB_URL", "sqlite:///tmp/test.db")
        monkeypatch.setenv("CHUNKING_STRATEGY", "hierarchical")
        monkeypatch.setenv("RAGENGINE_ENVIRONMENT", "production")

        settings = Settings()

        assert settings.embedding.provider == "stub"
        assert settings.embedding.stub_dimension == 48
        assert settings.vector_store.db_url == "sqlite:///tmp/test.db"
        assert settings.chunking.strategy == "hierarchical"
        assert settings.is_production

    def test_secret_is_masked(self, monkeypatch):
        monkeypatch.setenv("EMBEDDING_OPENAI_API_KEY", "sk-secret")
        settings = EmbeddingSettings()

        assert settings.openai_api_key.get_secret_value() == "sk-secret"
        assert "sk-secret" not in repr(settings)

    def test_invalid_values_rejected(self):
        with pytest.raises(ValidationError):
            EmbeddingSettings(provider="cohere")
        with pytest.raises(ValidationError):
            ChunkingSettings(overlap_percent=1.0)

    def test_settings_are_frozen(self):
        settings = Settings()
        with pytest.raises(ValidationError):
            settings.app_name = "changed"

    def test_get_settings_is_cached(self):
        get_settings.cache_clear()
        try:
            assert get_settings() is get_settings()
        finally:
            get_settings.cache_clear()

    def test_chunking_flags_from_env(self, monkeypatch):
        monkeypatch.setenv("CHUNKING_RESPECT_SENTENCES", "false")
        monkeypatch.setenv("CHUNKING_PRESERVE_LISTS", "false")

        settings = ChunkingSettings()

        assert settings.respect_sentences is False
        assert settings.preserve_lists is False
        assert settings.preserve_code_blocks is True
        assert settings.preserve_tables is True

    def test_rebuild_on_mismatch_default(self, monkeypatch):
        assert VectorStoreSettings().rebuild_on_mismatch is True
        monkeypatch.setenv("VECTOR_REBUILD_ON_MISMATCH", "false")
        assert VectorStoreSettings().rebuild_on_mismatch is False
