"""
Storage protocol definitions for semantic memory.

Implementations can keep vectors in memory or persist them (SQLite via
SQLAlchemy) as long as they satisfy the protocol interface.
"""

from typing import List, Optional, Protocol

from pocket_rag.models import MemoryChunk, ScoredChunk


class VectorStore(Protocol):
    """
    Protocol for chunk storage with nearest-neighbour search.

    Invariants every implementation must hold:
    - every stored embedding has exactly ``dimension`` elements
    - ``add`` is atomic: all chunks are stored or none are
    - search never mutates stored chunks
    - equal scores are returned in insertion order
    """

    @property
    def dimension(self) -> int:
        """Embedding dimension accepted by this store."""
        ...

    def add(self, chunks: List[MemoryChunk]) -> List[str]:
        """
        Append chunks to the store.

        Args:
            chunks: Chunks with embeddings of length ``dimension``

        Returns:
            The stored chunk IDs, in input order

        Raises:
            VectorStoreError: If any embedding has the wrong dimension
        """
        ...

    def search(self, query_vector: List[float], top_k: int = 3, min_score: float = 0.0) -> List[ScoredChunk]:
        """
        Find the most similar chunks.

        Args:
            query_vector: Query embedding
            top_k: Maximum number of results (0 returns nothing)
            min_score: Minimum cosine similarity

        Returns:
            Scored chunks, descending by score, ties in insertion order
        """
        ...

    def get_by_id(self, chunk_id: str) -> Optional[MemoryChunk]:
        """Retrieve a chunk by its ID, or None."""
        ...

    def count(self) -> int:
        """Number of stored chunks."""
        ...

    def clear(self) -> None:
        """Remove all chunks."""
        ...
