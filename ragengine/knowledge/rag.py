"""
RAG Service

Orchestrates ingestion (chunk -> embed -> store) and retrieval
(embed query -> search -> rank -> format) over knowledge bases.

Design decisions:
- One embed_batch call per document; nothing is stored unless every
  chunk was embedded
- Multi-knowledge-base search is a global top-`limit`, not a per-kb cap
- Writes are serialised per knowledge base with asyncio locks
- Provider, tokenizer and storage errors propagate unchanged
"""

import asyncio
from collections import defaultdict

from ragengine.config.settings import Settings, get_settings
from ragengine.core.exceptions import DocumentIngestionError, EmbeddingProviderError
from ragengine.core.types import (
    Chunk,
    ChunkingConfig,
    ChunkingStrategyType,
    ChunkWithScore,
    Document,
    KnowledgeBase,
    KnowledgeBaseStats,
)
from ragengine.knowledge.chunking import get_chunker
from ragengine.knowledge.embeddings import EmbeddingProvider, provider_from_settings
from ragengine.knowledge.tokenizer import Tokenizer, create_tokenizer
from ragengine.knowledge.vector_store import VectorStore
from ragengine.observability.logging import LogLevel, configure_logging, get_logger
from ragengine.observability.metrics import MetricsCollector, Timer, get_metrics_collector

logger = get_logger("ragengine.rag")

CONTEXT_HEADER = "# Relevant Context from Knowledge Base"
QUERY_HEADER = "# User Query"
SOURCE_SEPARATOR = "\n\n---\n\n"


def format_context(results: list[ChunkWithScore]) -> str:
    """Number each result as a source with its relevance score."""
    return SOURCE_SEPARATOR.join(
        f"[Source {i}] (Relevance: {result.score:.2f})\n{result.chunk.content}"
        for i, result in enumerate(results, start=1)
    )


class RAGService:
    """
    Public surface of the engine.

    Usage:
        rag = RAGService(tokenizer, provider, store)
        chunks = await rag.process_document(document, knowledge_base)
        prompt = await rag.augment_query("What is X?", [knowledge_base.id])
    """

    def __init__(
        self,
        tokenizer: Tokenizer,
        embedding_provider: EmbeddingProvider,
        vector_store: VectorStore,
        metrics: MetricsCollector | None = None,
        default_strategy: ChunkingStrategyType = ChunkingStrategyType.SEMANTIC,
        default_chunking_config: ChunkingConfig | None = None,
    ):
        self._tokenizer = tokenizer
        self._provider = embedding_provider
        self._store = vector_store
        self._metrics = metrics or get_metrics_collector()
        self._default_strategy = default_strategy
        self._default_config = default_chunking_config or ChunkingConfig()
        self._kb_locks: dict[str, asyncio.Lock] = defaultdict(asyncio.Lock)

    @property
    def vector_store(self) -> VectorStore:
        return self._store

    @property
    def embedding_provider(self) -> EmbeddingProvider:
        return self._provider

    def new_knowledge_base(
        self,
        user_id: str,
        name: str,
        description: str | None = None,
        strategy: ChunkingStrategyType | None = None,
        chunking_config: ChunkingConfig | None = None,
    ) -> KnowledgeBase:
        """Build a knowledge base record with this service's defaults."""
        return KnowledgeBase(
            user_id=user_id,
            name=name,
            description=description,
            chunking_strategy=strategy or self._default_strategy,
            chunking_config=chunking_config or self._default_config,
            embedding_provider=self._provider.name,
            embedding_model=self._provider.model,
        )

    # ------------------------------------------------------------------
    # Ingestion
    # ------------------------------------------------------------------

    async def _embed_batch(self, texts: list[str]) -> list[list[float]]:
        provider = self._provider.name
        try:
            with Timer(self._metrics.histogram("embedding_latency_seconds"), provider=provider):
                vectors = await self._provider.embed_batch(texts)
        except Exception:
            self._metrics.counter("embedding_requests_total").inc(provider=provider, status="error")
            raise

        self._metrics.counter("embedding_requests_total").inc(provider=provider, status="success")
        if len(vectors) != len(texts):
            raise EmbeddingProviderError(
                f"Provider returned {len(vectors)} embeddings for {len(texts)} chunks",
                provider=provider,
            )
        return vectors

    async def process_document(self, document: Document, knowledge_base: KnowledgeBase) -> list[Chunk]:
        """
        Chunk, embed and store one document.

        Returns the stored chunks with their embeddings. If chunking or
        embedding fails, nothing is stored and the error propagates.
        """
        if document.knowledge_base_id != knowledge_base.id:
            raise DocumentIngestionError(
                f"Document belongs to knowledge base {document.knowledge_base_id}, "
                f"not {knowledge_base.id}",
                document_id=document.id,
            )

        strategy = knowledge_base.chunking_strategy.value
        with logger.context(
            knowledge_base_id=knowledge_base.id,
            document_id=document.id,
            operation="process_document",
        ):
            try:
                chunks = await self._chunk_and_embed(document, knowledge_base)
                if chunks:
                    async with self._kb_locks[knowledge_base.id]:
                        self._store.add_chunks_batch(chunks)
            except Exception as e:
                self._metrics.counter("documents_processed_total").inc(
                    strategy=strategy, status="error"
                )
                logger.error("Document ingestion failed", error=e)
                raise

            self._metrics.counter("documents_processed_total").inc(
                strategy=strategy, status="success"
            )
            logger.info(
                "Document processed",
                strategy=strategy,
                chunks=len(chunks),
                tokens=sum(c.tokens for c in chunks),
            )
            return chunks

    async def _chunk_and_embed(self, document: Document, knowledge_base: KnowledgeBase) -> list[Chunk]:
        chunker = get_chunker(knowledge_base.chunking_strategy, self._tokenizer)
        chunks = await chunker.chunk(document, knowledge_base.chunking_config)
        if not chunks:
            logger.warning("Document produced no chunks")
            return []

        self._metrics.counter("chunks_created_total").inc(
            len(chunks), strategy=knowledge_base.chunking_strategy.value
        )

        vectors = await self._embed_batch([chunk.content for chunk in chunks])
        return [
            chunk.model_copy(update={"embedding": vector})
            for chunk, vector in zip(chunks, vectors)
        ]

    async def reprocess_document(
        self, document: Document, knowledge_base: KnowledgeBase
    ) -> list[Chunk]:
        """
        Replace a document's chunks with a fresh chunking run.

        New chunks are chunked and embedded first, then swapped in for the
        old ones in a single store transaction, so any failure leaves the
        existing chunks intact.
        """
        if document.knowledge_base_id != knowledge_base.id:
            raise DocumentIngestionError(
                f"Document belongs to knowledge base {document.knowledge_base_id}, "
                f"not {knowledge_base.id}",
                document_id=document.id,
            )

        with logger.context(
            knowledge_base_id=knowledge_base.id,
            document_id=document.id,
            operation="reprocess_document",
        ):
            chunks = await self._chunk_and_embed(document, knowledge_base)
            async with self._kb_locks[knowledge_base.id]:
                removed = self._store.replace_document_chunks(document.id, chunks)

            logger.info("Document reprocessed", removed=removed, chunks=len(chunks))
            return chunks

    # ------------------------------------------------------------------
    # Retrieval
    # ------------------------------------------------------------------

    async def search(
        self,
        query: str,
        knowledge_base_ids: list[str],
        limit: int = 5,
    ) -> list[ChunkWithScore]:
        """Global top-`limit` chunks across the given knowledge bases."""
        if not knowledge_base_ids or limit <= 0:
            return []

        try:
            vector = await self._provider.embed(query)
            results: list[ChunkWithScore] = []
            for kb_id in dict.fromkeys(knowledge_base_ids):
                results.extend(self._store.search(kb_id, vector, limit))
        except Exception:
            self._metrics.counter("search_requests_total").inc(status="error")
            raise

        results.sort(key=lambda r: r.score, reverse=True)
        results = results[:limit]

        self._metrics.counter("search_requests_total").inc(status="success")
        self._metrics.histogram("search_results").observe(len(results))
        logger.debug(
            "Search completed",
            knowledge_bases=len(knowledge_base_ids),
            results=len(results),
        )
        return results

    async def augment_query(
        self,
        query: str,
        knowledge_base_ids: list[str],
        limit: int = 5,
    ) -> str:
        """
        Prepend retrieved context to a query.

        Returns the query unchanged when no knowledge base is given or
        nothing was retrieved.
        """
        if not knowledge_base_ids:
            return query

        results = await self.search(query, knowledge_base_ids, limit)
        if not results:
            return query

        return f"{CONTEXT_HEADER}\n\n{format_context(results)}{SOURCE_SEPARATOR}{QUERY_HEADER}\n\n{query}"

    # ------------------------------------------------------------------
    # Management
    # ------------------------------------------------------------------

    async def get_chunks(self, knowledge_base_id: str) -> list[Chunk]:
        return self._store.get_chunks_by_kb(knowledge_base_id)

    async def delete_chunks(self, knowledge_base_id: str) -> int:
        """Delete every chunk of a knowledge base. Returns the number removed."""
        async with self._kb_locks[knowledge_base_id]:
            return self._store.delete_chunks_by_kb(knowledge_base_id)

    async def delete_document_chunks(self, document_id: str, knowledge_base_id: str) -> int:
        async with self._kb_locks[knowledge_base_id]:
            return self._store.delete_chunks_by_document(document_id)

    async def get_stats(self, knowledge_base_id: str) -> KnowledgeBaseStats:
        return self._store.stats(knowledge_base_id)


def build_rag_service(settings: Settings | None = None) -> RAGService:
    """Wire tokenizer, embedding provider and vector store from settings."""
    settings = settings or get_settings()

    obs = settings.observability
    configure_logging(
        level=LogLevel.from_name(obs.log_level),
        json_output=obs.log_format == "json",
        log_file=obs.log_file,
    )

    tokenizer = create_tokenizer(settings.tokenizer.kind, settings.tokenizer.encoding)
    provider = provider_from_settings(settings.embedding)
    metrics = MetricsCollector(prefix=obs.metrics_prefix)
    store = VectorStore(
        dimension=settings.vector_store.dimension or provider.dimension,
        db_url=settings.vector_store.db_url,
        index_path=settings.vector_store.index_path,
        search_oversample=settings.vector_store.search_oversample,
        rebuild_on_mismatch=settings.vector_store.rebuild_on_mismatch,
        metrics=metrics,
    )

    chunking = settings.chunking
    return RAGService(
        tokenizer=tokenizer,
        embedding_provider=provider,
        vector_store=store,
        metrics=metrics,
        default_strategy=ChunkingStrategyType(chunking.strategy),
        default_chunking_config=ChunkingConfig(
            chunk_size=chunking.chunk_size,
            overlap_percent=chunking.overlap_percent,
            min_chunk_size=chunking.min_chunk_size,
            max_chunk_size=chunking.max_chunk_size,
            parent_chunk_size=chunking.parent_chunk_size,
            child_chunk_size=chunking.child_chunk_size,
            max_depth=chunking.max_depth,
            respect_sentences=chunking.respect_sentences,
            preserve_code_blocks=chunking.preserve_code_blocks,
            preserve_tables=chunking.preserve_tables,
            preserve_lists=chunking.preserve_lists,
        ),
    )
