"""
Vector Store

Hybrid chunk persistence: a relational table for content and metadata
(SQLAlchemy) paired with a FAISS index for cosine similarity search.

Design decisions:
- ANN vectors are keyed by a store-allocated `vector_key`, unique across
  every knowledge base, never by the chunk's in-document position
- One write path: rows are flushed in a transaction, vectors are added
  and the index file is written, then the transaction commits; each
  failure point undoes the steps already taken
- Deletes remove vectors from the index after their rows are committed;
  a vector that could not be removed, or an index file that could not be
  rewritten, is logged and counted instead of raised
- Divergence between index and table is reported by the
  `ann_orphaned_vectors` and `ann_missing_vectors` gauges and repaired
  by `rebuild_index()`
- Cosine similarity via inner product on L2-normalised vectors
- Writes are serialised with a re-entrant lock
"""

import threading
from pathlib import Path
from typing import Any

import numpy as np
from sqlalchemy import delete, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from ragengine.core.exceptions import StorageError, VectorStoreError
from ragengine.core.types import Chunk, ChunkWithScore, KnowledgeBaseStats
from ragengine.knowledge.db import Base, ChunkRecord, create_db_engine
from ragengine.observability.logging import get_logger
from ragengine.observability.metrics import MetricsCollector, get_metrics_collector

logger = get_logger("ragengine.vector_store")

_FLOAT = np.dtype("<f4")


def _get_faiss():
    try:
        import faiss
    except ImportError:
        raise ImportError(
            "faiss required. Install with: pip install faiss-cpu "
            "or pip install faiss-gpu"
        )
    return faiss


class VectorStore:
    """
    Chunk rows plus an ANN index kept consistent through one write path.

    Read paths return empty results for absent records. Storage failures
    raise StorageError; ANN failures and dimension mismatches raise
    VectorStoreError.

    Usage:
        store = VectorStore(dimension=1536, db_url="sqlite:///kb.db",
                            index_path="kb.faiss")
        store.add_chunks_batch(chunks)
        results = store.search(kb_id, query_vector, limit=5)
    """

    def __init__(
        self,
        dimension: int,
        db_url: str = "sqlite://",
        index_path: str | None = None,
        search_oversample: int = 5,
        metrics: MetricsCollector | None = None,
        rebuild_on_mismatch: bool = True,
    ):
        if dimension < 1:
            raise VectorStoreError("Vector dimension must be positive")

        self._dimension = dimension
        self._index_path = Path(index_path) if index_path else None
        self._search_oversample = max(1, search_oversample)
        self._metrics = metrics or get_metrics_collector()
        self._lock = threading.RLock()

        try:
            self._engine = create_db_engine(db_url)
            Base.metadata.create_all(self._engine)
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to open chunk store: {e}", cause=e)

        self._session_factory = sessionmaker(
            bind=self._engine,
            autoflush=False,
            expire_on_commit=False,
        )

        self._index = self._load_index()
        self._next_key = self._initial_next_key()
        self._reconcile(rebuild_on_mismatch)
        self._refresh_gauges()

    @property
    def dimension(self) -> int:
        return self._dimension

    # ------------------------------------------------------------------
    # Index management
    # ------------------------------------------------------------------

    def _new_index(self):
        faiss = _get_faiss()
        return faiss.IndexIDMap(faiss.IndexFlatIP(self._dimension))

    def _load_index(self):
        if self._index_path is None or not self._index_path.exists():
            return self._new_index()

        faiss = _get_faiss()
        try:
            index = faiss.read_index(str(self._index_path))
        except RuntimeError as e:
            raise VectorStoreError(f"Failed to read index {self._index_path}: {e}", cause=e)

        if index.d != self._dimension:
            raise VectorStoreError(
                f"Index at {self._index_path} has dimension {index.d}",
                expected_dimension=self._dimension,
                actual_dimension=index.d,
            )

        logger.info("Loaded ANN index", path=str(self._index_path), vectors=index.ntotal)
        return index

    def _index_keys(self) -> np.ndarray:
        faiss = _get_faiss()
        return faiss.vector_to_array(self._index.id_map)

    def _initial_next_key(self) -> int:
        with self._session() as session:
            db_max = session.scalar(select(func.max(ChunkRecord.vector_key)))

        keys = self._index_keys()
        index_max = int(keys.max()) if keys.size else -1
        return max(db_max if db_max is not None else -1, index_max) + 1

    def save(self) -> None:
        """Write the ANN index to `index_path`, if one is configured."""
        if self._index_path is None:
            return

        faiss = _get_faiss()
        with self._lock:
            try:
                self._index_path.parent.mkdir(parents=True, exist_ok=True)
                faiss.write_index(self._index, str(self._index_path))
            except (OSError, RuntimeError) as e:
                raise VectorStoreError(f"Failed to write index {self._index_path}: {e}", cause=e)

    def _save_after_commit(self) -> None:
        """Write the index once rows are committed; failures are logged and counted."""
        try:
            self.save()
        except VectorStoreError as e:
            self._metrics.counter("ann_index_save_failures_total").inc()
            logger.error("Failed to persist ANN index", error=e, path=str(self._index_path))

    def rebuild_index(self) -> int:
        """
        Rebuild the ANN index from the embeddings stored with each row.

        Drops orphaned vectors and restores any that are missing. Returns
        the number of vectors in the new index.
        """
        with self._lock:
            index = self._new_index()

            with self._session() as session:
                rows = session.execute(
                    select(ChunkRecord.vector_key, ChunkRecord.embedding).where(
                        ChunkRecord.vector_key.is_not(None)
                    )
                ).all()

            if rows:
                keys = np.asarray([r.vector_key for r in rows], dtype=np.int64)
                vectors = np.stack([np.frombuffer(r.embedding, dtype=_FLOAT) for r in rows])
                index.add_with_ids(self._normalize(vectors), keys)

            self._index = index
            self.save()
            self._refresh_gauges()

        logger.info("Rebuilt ANN index", vectors=index.ntotal)
        return index.ntotal

    def _divergence(self) -> tuple[set[int], set[int]]:
        """Index keys with no row, and row keys with no vector."""
        with self._lock:
            with self._session() as session:
                row_keys = set(
                    session.scalars(
                        select(ChunkRecord.vector_key).where(ChunkRecord.vector_key.is_not(None))
                    )
                )
            index_keys = {int(k) for k in self._index_keys()}
        return index_keys - row_keys, row_keys - index_keys

    def orphaned_vector_count(self) -> int:
        """Vectors in the ANN index with no relational row."""
        return len(self._divergence()[0])

    def missing_vector_count(self) -> int:
        """Rows with an embedding whose vector is absent from the ANN index."""
        return len(self._divergence()[1])

    def _reconcile(self, rebuild: bool) -> None:
        orphaned, missing = self._divergence()
        if not orphaned and not missing:
            return

        logger.warning(
            "ANN index disagrees with chunk table",
            orphaned=len(orphaned),
            missing=len(missing),
            rebuild=rebuild,
        )
        if rebuild:
            self.rebuild_index()

    def _refresh_gauges(self) -> None:
        orphaned, missing = self._divergence()
        self._metrics.gauge("ann_vectors").set(self._index.ntotal)
        self._metrics.gauge("ann_orphaned_vectors").set(len(orphaned))
        self._metrics.gauge("ann_missing_vectors").set(len(missing))

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _session(self) -> Session:
        return self._session_factory()

    @staticmethod
    def _normalize(vectors: np.ndarray) -> np.ndarray:
        """L2 normalize rows for cosine similarity."""
        norms = np.linalg.norm(vectors, axis=1, keepdims=True)
        norms[norms == 0] = 1.0
        return np.ascontiguousarray(vectors / norms, dtype=np.float32)

    def _check_dimension(self, vector: list[float], chunk_id: str | None = None) -> None:
        if len(vector) != self._dimension:
            context = {"chunk_id": chunk_id} if chunk_id else {}
            raise VectorStoreError(
                f"Expected dimension {self._dimension}, got {len(vector)}",
                expected_dimension=self._dimension,
                actual_dimension=len(vector),
                context=context,
            )

    def _discard_vectors(self, keys: list[int]) -> None:
        """Remove vectors from the in-memory index; failures leave orphans that are counted, not raised."""
        if not keys:
            return
        try:
            self._index.remove_ids(np.asarray(keys, dtype=np.int64))
        except RuntimeError as e:
            logger.error("Failed to remove vectors from ANN index", error=e, keys=len(keys))

    def _remove_vectors(self, keys: list[int]) -> None:
        if not keys:
            return
        self._discard_vectors(keys)
        self._save_after_commit()

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def add_chunk(self, chunk: Chunk) -> Chunk:
        """Store a single chunk."""
        return self.add_chunks_batch([chunk])[0]

    def add_chunks_batch(self, chunks: list[Chunk]) -> list[Chunk]:
        """
        Store chunks and their vectors atomically.

        Chunks with an empty embedding are stored without an ANN entry.
        Either every row and every vector is stored, or nothing is.
        """
        if not chunks:
            return []

        written, _ = self._write(chunks)
        logger.debug("Stored chunks", chunks=written)
        return chunks

    def replace_document_chunks(self, document_id: str, chunks: list[Chunk]) -> int:
        """
        Swap a document's stored chunks for `chunks` in one transaction.

        On failure the previous chunks stay in place. Returns the number of
        rows replaced.
        """
        _, replaced = self._write(chunks, ChunkRecord.document_id == document_id)
        logger.info(
            "Replaced document chunks",
            document_id=document_id,
            removed=replaced,
            chunks=len(chunks),
        )
        return replaced

    def _write(self, chunks: list[Chunk], *replace: Any) -> tuple[int, int]:
        """
        Insert chunk rows and vectors in one transaction.

        When `replace` criteria are given, the matching rows are deleted in
        the same transaction and their vectors removed after the commit.
        Returns (rows written, rows replaced).
        """
        for chunk in chunks:
            if chunk.embedding:
                self._check_dimension(chunk.embedding, chunk.id)

        compensations = self._metrics.counter("vector_store_compensations_total")

        with self._lock:
            records = []
            keys: list[int] = []
            vectors: list[list[float]] = []
            next_key = self._next_key

            for chunk in chunks:
                if chunk.embedding:
                    vector = np.asarray(chunk.embedding, dtype=_FLOAT)
                    records.append(ChunkRecord.from_chunk(chunk, next_key, vector.tobytes()))
                    keys.append(next_key)
                    vectors.append(chunk.embedding)
                    next_key += 1
                else:
                    records.append(ChunkRecord.from_chunk(chunk, None, None))

            old_keys: list[int] = []
            replaced = 0
            session = self._session()
            try:
                try:
                    if replace:
                        old_keys = [
                            k
                            for k in session.scalars(select(ChunkRecord.vector_key).where(*replace))
                            if k is not None
                        ]
                        replaced = session.execute(delete(ChunkRecord).where(*replace)).rowcount or 0
                    session.add_all(records)
                    session.flush()
                except SQLAlchemyError as e:
                    session.rollback()
                    raise StorageError(f"Failed to write chunks: {e}", cause=e)

                if keys:
                    try:
                        self._index.add_with_ids(
                            self._normalize(np.asarray(vectors, dtype=np.float32)),
                            np.asarray(keys, dtype=np.int64),
                        )
                    except RuntimeError as e:
                        session.rollback()
                        compensations.inc(stage="ann_add")
                        raise VectorStoreError(f"Failed to add vectors: {e}", cause=e)

                    try:
                        self.save()
                    except VectorStoreError:
                        session.rollback()
                        self._discard_vectors(keys)
                        compensations.inc(stage="index_save")
                        raise

                try:
                    session.commit()
                except SQLAlchemyError as e:
                    session.rollback()
                    self._remove_vectors(keys)
                    compensations.inc(stage="commit")
                    raise StorageError(f"Failed to commit chunks: {e}", cause=e)
            finally:
                session.close()

            self._next_key = next_key
            self._remove_vectors(old_keys)

        if records:
            self._metrics.counter("vector_store_writes_total").inc(len(records))
        self._refresh_gauges()
        return len(records), replaced

    def _delete_where(self, *criteria: Any) -> int:
        with self._lock:
            session = self._session()
            try:
                keys = [
                    k
                    for k in session.scalars(select(ChunkRecord.vector_key).where(*criteria))
                    if k is not None
                ]
                result = session.execute(delete(ChunkRecord).where(*criteria))
                session.commit()
            except SQLAlchemyError as e:
                session.rollback()
                raise StorageError(f"Failed to delete chunks: {e}", cause=e)
            finally:
                session.close()

            self._remove_vectors(keys)

        self._refresh_gauges()
        return result.rowcount or 0

    def delete_chunks_by_kb(self, knowledge_base_id: str) -> int:
        """Delete a knowledge base's chunks and vectors. Returns rows deleted."""
        deleted = self._delete_where(ChunkRecord.knowledge_base_id == knowledge_base_id)
        logger.info("Deleted knowledge base chunks", knowledge_base_id=knowledge_base_id, chunks=deleted)
        return deleted

    def delete_chunks_by_document(self, document_id: str) -> int:
        """Delete one document's chunks and vectors. Returns rows deleted."""
        deleted = self._delete_where(ChunkRecord.document_id == document_id)
        logger.info("Deleted document chunks", document_id=document_id, chunks=deleted)
        return deleted

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def search(
        self,
        knowledge_base_id: str,
        query_vector: list[float],
        limit: int = 5,
    ) -> list[ChunkWithScore]:
        """
        Nearest chunks of one knowledge base, best first.

        The ANN query over-fetches `limit * search_oversample` candidates
        before dropping other knowledge bases' vectors, so the result can
        still be shorter than `limit` when the index is dominated by other
        knowledge bases.
        """
        self._check_dimension(query_vector)
        if limit <= 0 or self._index.ntotal == 0:
            return []

        query = self._normalize(np.asarray([query_vector], dtype=np.float32))
        k = min(limit * self._search_oversample, self._index.ntotal)

        try:
            similarities, ids = self._index.search(query, k)
        except RuntimeError as e:
            raise VectorStoreError(f"ANN search failed: {e}", cause=e)

        candidates = [(int(key), float(sim)) for key, sim in zip(ids[0], similarities[0]) if key != -1]
        if not candidates:
            return []

        with self._session() as session:
            rows = session.scalars(
                select(ChunkRecord).where(
                    ChunkRecord.vector_key.in_([key for key, _ in candidates]),
                    ChunkRecord.knowledge_base_id == knowledge_base_id,
                )
            ).all()
        by_key = {row.vector_key: row for row in rows}

        results = []
        for key, similarity in candidates:
            row = by_key.get(key)
            if row is None:
                continue
            # score = 1 - cosine distance, where distance = 1 - similarity
            score = min(1.0, max(0.0, 1.0 - (1.0 - similarity)))
            results.append(ChunkWithScore(chunk=row.to_chunk(), score=score))
            if len(results) >= limit:
                break

        return results

    def get_chunk(self, chunk_id: str, with_embedding: bool = False) -> Chunk | None:
        with self._session() as session:
            row = session.get(ChunkRecord, chunk_id)
        if row is None:
            return None
        return row.to_chunk(self._decode(row) if with_embedding else None)

    def get_chunks_by_kb(self, knowledge_base_id: str, with_embedding: bool = False) -> list[Chunk]:
        """All chunks of a knowledge base ordered by position."""
        return self._select_chunks(ChunkRecord.knowledge_base_id == knowledge_base_id, with_embedding)

    def get_chunks_by_document(self, document_id: str, with_embedding: bool = False) -> list[Chunk]:
        return self._select_chunks(ChunkRecord.document_id == document_id, with_embedding)

    def _select_chunks(self, criterion: Any, with_embedding: bool) -> list[Chunk]:
        with self._session() as session:
            rows = session.scalars(
                select(ChunkRecord)
                .where(criterion)
                .order_by(ChunkRecord.position, ChunkRecord.created_at, ChunkRecord.id)
            ).all()
        return [row.to_chunk(self._decode(row) if with_embedding else None) for row in rows]

    @staticmethod
    def _decode(row: ChunkRecord) -> list[float] | None:
        if row.embedding is None:
            return None
        return np.frombuffer(row.embedding, dtype=_FLOAT).tolist()

    def stats(self, knowledge_base_id: str) -> KnowledgeBaseStats:
        """Chunk, token and document counts for a knowledge base."""
        with self._session() as session:
            total_chunks, total_tokens, num_documents = session.execute(
                select(
                    func.count(ChunkRecord.id),
                    func.coalesce(func.sum(ChunkRecord.tokens), 0),
                    func.count(func.distinct(ChunkRecord.document_id)),
                ).where(ChunkRecord.knowledge_base_id == knowledge_base_id)
            ).one()

        return KnowledgeBaseStats(
            total_chunks=total_chunks,
            total_tokens=total_tokens,
            avg_tokens_per_chunk=total_tokens // total_chunks if total_chunks else 0,
            num_documents=num_documents,
        )

    def count(self) -> int:
        """Total chunk rows across all knowledge bases."""
        with self._session() as session:
            return session.scalar(select(func.count()).select_from(ChunkRecord)) or 0

    @property
    def vector_count(self) -> int:
        return self._index.ntotal

    def close(self) -> None:
        try:
            self.save()
        finally:
            self._engine.dispose()
