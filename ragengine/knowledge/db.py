"""Relational chunk storage models."""

from datetime import datetime
from pathlib import Path
from typing import Any

from sqlalchemy import JSON, Index, Integer, LargeBinary, String, Text, create_engine
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.pool import StaticPool

from ragengine.core.types import Chunk


class Base(DeclarativeBase):
    pass


class ChunkRecord(Base):
    """
    One chunk row.

    `vector_key` is the chunk's id in the ANN index, unique across all
    knowledge bases; it is NULL for chunks stored without an embedding.
    `embedding` keeps the raw vector so the index can be rebuilt.
    """

    __tablename__ = "chunks"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    document_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    knowledge_base_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    tokens: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    parent_chunk_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    chunk_metadata: Mapped[dict[str, Any]] = mapped_column("metadata", JSON, default=dict)
    # ISO-8601 with offset; SQLite drops tzinfo from DateTime columns
    created_at: Mapped[str] = mapped_column(String(40), nullable=False)
    vector_key: Mapped[int | None] = mapped_column(Integer, nullable=True, unique=True)
    embedding: Mapped[bytes | None] = mapped_column(LargeBinary, nullable=True)

    __table_args__ = (Index("ix_chunks_kb_position", "knowledge_base_id", "position"),)

    @classmethod
    def from_chunk(
        cls,
        chunk: Chunk,
        vector_key: int | None,
        embedding: bytes | None,
    ) -> "ChunkRecord":
        return cls(
            id=chunk.id,
            document_id=chunk.document_id,
            knowledge_base_id=chunk.knowledge_base_id,
            content=chunk.content,
            tokens=chunk.tokens,
            position=chunk.position,
            parent_chunk_id=chunk.parent_chunk_id,
            chunk_metadata=dict(chunk.metadata),
            created_at=chunk.created_at.isoformat(),
            vector_key=vector_key,
            embedding=embedding,
        )

    def to_chunk(self, embedding: list[float] | None = None) -> Chunk:
        return Chunk(
            id=self.id,
            document_id=self.document_id,
            knowledge_base_id=self.knowledge_base_id,
            content=self.content,
            embedding=embedding or [],
            tokens=self.tokens,
            position=self.position,
            parent_chunk_id=self.parent_chunk_id,
            metadata=dict(self.chunk_metadata or {}),
            created_at=datetime.fromisoformat(self.created_at),
        )


def create_db_engine(db_url: str) -> Engine:
    """Create an engine; in-memory SQLite shares one connection across threads."""
    if db_url.startswith("sqlite"):
        kwargs: dict[str, Any] = {"connect_args": {"check_same_thread": False}}
        database = make_url(db_url).database
        if not database or database == ":memory:":
            kwargs["poolclass"] = StaticPool
        else:
            Path(database).parent.mkdir(parents=True, exist_ok=True)
        return create_engine(db_url, **kwargs)
    return create_engine(db_url, pool_pre_ping=True)
