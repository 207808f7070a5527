"""
Configuration Module

Environment-driven settings for every engine component.
"""

from ragengine.config.settings import (
    ChunkingSettings,
    EmbeddingSettings,
    ObservabilitySettings,
    ProcessorSettings,
    Settings,
    TokenizerSettings,
    VectorStoreSettings,
    get_settings,
)

__all__ = [
    "ChunkingSettings",
    "EmbeddingSettings",
    "ObservabilitySettings",
    "ProcessorSettings",
    "Settings",
    "TokenizerSettings",
    "VectorStoreSettings",
    "get_settings",
]
