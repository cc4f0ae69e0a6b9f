"""
In-memory vector storage implementation.

Stores chunks in insertion order with a cosine linear scan. At on-device
corpus sizes a scan is fast enough that no index structure is needed.
Data is lost on restart; use SQLAlchemyVectorStore to persist.
"""

import logging
from typing import Dict, List, Optional

from pocket_rag.models import MemoryChunk, ScoredChunk
from pocket_rag.storage.vector.similarity import check_dimension, rank_by_similarity

logger = logging.getLogger(__name__)


class InMemoryVectorStore:
    """In-memory implementation of the VectorStore protocol."""

    def __init__(self, dimension: int = 512):
        self._dimension = dimension
        # Insertion-ordered: id -> chunk
        self._chunks: Dict[str, MemoryChunk] = {}

        logger.info(f"InMemoryVectorStore initialized ({dimension} dimensions)")

    @property
    def dimension(self) -> int:
        return self._dimension

    def add(self, chunks: List[MemoryChunk]) -> List[str]:
        """Add chunks. Validates the whole batch before storing any of it."""
        check_dimension(chunks, self._dimension)

        for chunk in chunks:
            self._chunks[chunk.id] = chunk

        logger.debug(f"Inserted {len(chunks)} chunks (total {len(self._chunks)})")
        return [chunk.id for chunk in chunks]

    def search(self, query_vector: List[float], top_k: int = 3, min_score: float = 0.0) -> List[ScoredChunk]:
        results = rank_by_similarity(query_vector, list(self._chunks.values()), top_k, min_score)
        logger.debug(f"{len(results)} results found (top_k={top_k}, min_score={min_score})")
        return results

    def get_by_id(self, chunk_id: str) -> Optional[MemoryChunk]:
        return self._chunks.get(chunk_id)

    def count(self) -> int:
        return len(self._chunks)

    def clear(self) -> None:
        count = len(self._chunks)
        self._chunks.clear()
        logger.info(f"Cleared all chunks ({count} total)")
