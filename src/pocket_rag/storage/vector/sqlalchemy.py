"""
SQLAlchemy-based persisted vector storage.

Keeps the semantic memory across restarts in any SQLAlchemy database (SQLite
on device). Embeddings are stored as float32 blobs and scanned linearly in
insertion order, exactly like the in-memory store.
"""

import logging
from contextlib import contextmanager
from datetime import datetime
from typing import List, Optional

import numpy as np
from sqlalchemy import Column, DateTime, Engine, Integer, LargeBinary, String, Text
from sqlalchemy.orm import Session, declarative_base

from pocket_rag.models import MemoryChunk, ScoredChunk
from pocket_rag.storage.vector.similarity import check_dimension, rank_by_similarity

logger = logging.getLogger(__name__)

Base = declarative_base()


class ChunkDB(Base):
    """SQLAlchemy model for chunk storage."""

    __tablename__ = "memory_chunks"

    # Insertion order; drives tie-breaking in search
    seq = Column(Integer, primary_key=True, autoincrement=True)
    id = Column(String, nullable=False, unique=True, index=True)
    text = Column(Text, nullable=False)
    embedding = Column(LargeBinary, nullable=False)
    created_at = Column(DateTime, nullable=False, default=datetime.now)

    def to_memory_chunk(self) -> MemoryChunk:
        vector = np.frombuffer(self.embedding, dtype=np.float32)
        return MemoryChunk(id=self.id, text=self.text, embedding=vector.tolist())

    @staticmethod
    def from_memory_chunk(chunk: MemoryChunk) -> "ChunkDB":
        return ChunkDB(
            id=chunk.id,
            text=chunk.text,
            embedding=np.asarray(chunk.embedding, dtype=np.float32).tobytes(),
        )


class SQLAlchemyVectorStore:
    """
    Persisted implementation of the VectorStore protocol.

    Example:
        from sqlalchemy import create_engine
        engine = create_engine("sqlite:///memory.db")
        store = SQLAlchemyVectorStore(engine, dimension=512)
        store.create_tables()
    """

    def __init__(self, engine: Engine, dimension: int = 512):
        self.engine = engine
        self._dimension = dimension
        logger.info(f"SQLAlchemyVectorStore initialized (engine={engine.url}, {dimension} dimensions)")

    @contextmanager
    def _session(self):
        """Context manager for database sessions with automatic commit/rollback."""
        session = Session(self.engine)
        try:
            yield session
            session.commit()
        except Exception as e:
            session.rollback()
            logger.error(f"Database error: {e}")
            raise
        finally:
            session.close()

    def create_tables(self):
        """Create database tables if they don't exist."""
        Base.metadata.create_all(self.engine)
        logger.info("Database tables created/verified")

    @property
    def dimension(self) -> int:
        return self._dimension

    def add(self, chunks: List[MemoryChunk]) -> List[str]:
        """Add chunks in a single transaction."""
        check_dimension(chunks, self._dimension)

        with self._session() as session:
            session.add_all([ChunkDB.from_memory_chunk(chunk) for chunk in chunks])

        logger.debug(f"Persisted {len(chunks)} chunks")
        return [chunk.id for chunk in chunks]

    def _all_chunks(self) -> List[MemoryChunk]:
        with self._session() as session:
            rows = session.query(ChunkDB).order_by(ChunkDB.seq).all()
            return [row.to_memory_chunk() for row in rows]

    def search(self, query_vector: List[float], top_k: int = 3, min_score: float = 0.0) -> List[ScoredChunk]:
        if top_k <= 0:
            return []
        results = rank_by_similarity(query_vector, self._all_chunks(), top_k, min_score)
        logger.debug(f"{len(results)} results found (top_k={top_k}, min_score={min_score})")
        return results

    def get_by_id(self, chunk_id: str) -> Optional[MemoryChunk]:
        with self._session() as session:
            row = session.query(ChunkDB).filter(ChunkDB.id == chunk_id).first()
            if not row:
                return None
            return row.to_memory_chunk()

    def count(self) -> int:
        with self._session() as session:
            return session.query(ChunkDB).count()

    def clear(self) -> None:
        with self._session() as session:
            count = session.query(ChunkDB).delete()
        logger.info(f"Cleared all chunks ({count} total)")
