"""
Integration Tests - RAG Pipeline

Tests for the full pipeline: file -> processor -> chunks -> store ->
search -> augmented prompt, wired from settings and persisted to disk.
"""

import pytest

from ragengine.config.settings import (
    ChunkingSettings,
    EmbeddingSettings,
    ObservabilitySettings,
    Settings,
    TokenizerSettings,
    VectorStoreSettings,
)
from ragengine.core.types import ChunkingStrategyType, Document, ProcessedDocument
from ragengine.knowledge.embeddings import StubEmbeddings
from ragengine.knowledge.processor import DocumentProcessor, to_document
from ragengine.knowledge.rag import CONTEXT_HEADER, build_rag_service

GUIDE = """# Deployment guide

The ingestion worker reads uploaded files and stores their chunks.

| setting | default |
|---------|---------|
| workers | 4       |

Handlers receive one event at a time.

```python
def handler(event):
    return event["body"]
```

Restart the worker after changing settings.
"""


def text_document(knowledge_base_id: str, text: str) -> Document:
    return to_document(ProcessedDocument(title="note.txt", content=text), knowledge_base_id)


@pytest.fixture
def settings(tmp_path):
    return Settings(
        embedding=EmbeddingSettings(provider="stub", stub_dimension=48),
        tokenizer=TokenizerSettings(kind="byte"),
        vector_store=VectorStoreSettings(
            db_url=f"sqlite:///{tmp_path / 'data' / 'knowledge.db'}",
            index_path=str(tmp_path / "data" / "knowledge.faiss"),
        ),
        chunking=ChunkingSettings(strategy="structure_aware", min_chunk_size=0, max_chunk_size=200),
        observability=ObservabilitySettings(log_level="WARNING"),
    )


@pytest.fixture
def guide_file(tmp_path):
    path = tmp_path / "guide.md"
    path.write_text(GUIDE, encoding="utf-8")
    return path


class TestRAGPipeline:
    """Tests for RAG pipeline integration."""

    @pytest.mark.asyncio
    async def test_document_to_augmented_query(self, settings, guide_file):
        service = build_rag_service(settings)
        try:
            assert isinstance(service.embedding_provider, StubEmbeddings)
            assert service.vector_store.dimension == 48

            kb = service.new_knowledge_base("user-1", "ops docs")
            assert kb.chunking_strategy == ChunkingStrategyType.STRUCTURE_AWARE
            assert kb.chunking_config.max_chunk_size == 200

            processed = await DocumentProcessor().process(guide_file)
            document = to_document(processed, kb.id, user_id="user-1", file_path=str(guide_file))
            chunks = await service.process_document(document, kb)

            kinds = [c.metadata["segment_type"] for c in chunks]
            assert "code_block" in kinds
            assert "table" in kinds
            code = next(c for c in chunks if c.metadata["segment_type"] == "code_block")
            assert code.content.startswith("```python") and code.content.endswith("```")

            results = await service.search("def handler(event)", [kb.id], limit=2)
            assert results[0].chunk.id == code.id

            prompt = await service.augment_query("How do handlers work?", [kb.id], limit=3)
            assert prompt.startswith(CONTEXT_HEADER)
            assert prompt.endswith("How do handlers work?")

            stats = await service.get_stats(kb.id)
            assert stats.total_chunks == len(chunks)
            assert stats.num_documents == 1
        finally:
            service.vector_store.close()

    @pytest.mark.asyncio
    async def test_store_survives_restart(self, settings):
        service = build_rag_service(settings)
        kb = service.new_knowledge_base("user-1", "notes")
        documents = [
            text_document(kb.id, "Vectors are normalised before indexing."),
            text_document(kb.id, "Rows keep the raw embedding for rebuilds."),
        ]
        for document in documents:
            await service.process_document(document, kb)
        service.vector_store.close()

        restarted = build_rag_service(settings)
        try:
            assert restarted.vector_store.vector_count == 2
            assert restarted.vector_store.orphaned_vector_count() == 0

            results = await restarted.search("raw embedding rebuilds", [kb.id], limit=1)
            assert results[0].chunk.document_id == documents[1].id

            assert await restarted.delete_chunks(kb.id) == 2
            assert restarted.vector_store.vector_count == 0
        finally:
            restarted.vector_store.close()

    def test_chunking_flags_reach_new_knowledge_bases(self, settings):
        chunking = ChunkingSettings(
            strategy="semantic",
            respect_sentences=False,
            preserve_code_blocks=False,
            preserve_tables=False,
            preserve_lists=False,
        )
        service = build_rag_service(settings.model_copy(update={"chunking": chunking}))
        try:
            config = service.new_knowledge_base("user-1", "raw").chunking_config
            assert config.respect_sentences is False
            assert config.preserve_code_blocks is False
            assert config.preserve_tables is False
            assert config.preserve_lists is False
        finally:
            service.vector_store.close()
