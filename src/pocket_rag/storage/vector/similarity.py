"""Linear-scan cosine ranking shared by the vector store implementations."""

from typing import Iterable, List

import numpy as np

from pocket_rag.exceptions import VectorStoreError
from pocket_rag.models import MemoryChunk, ScoredChunk


def check_dimension(chunks: Iterable[MemoryChunk], dimension: int) -> None:
    for chunk in chunks:
        if len(chunk.embedding) != dimension:
            raise VectorStoreError(
                f"Chunk {chunk.id} has {len(chunk.embedding)} dimensions, store expects {dimension}"
            )


def cosine_scores(query_vector: List[float], matrix: np.ndarray) -> np.ndarray:
    """Cosine similarity of the query against each row. Zero-norm rows score 0.0."""
    query = np.asarray(query_vector, dtype=np.float32)
    query_norm = np.linalg.norm(query)
    row_norms = np.linalg.norm(matrix, axis=1)

    denom = row_norms * query_norm
    dots = matrix @ query
    scores = np.zeros(len(matrix), dtype=np.float32)
    np.divide(dots, denom, out=scores, where=denom > 0)
    return scores


def rank_by_similarity(
    query_vector: List[float],
    chunks: List[MemoryChunk],
    top_k: int,
    min_score: float,
) -> List[ScoredChunk]:
    """
    Score ``chunks`` (in insertion order) against the query.

    Returns at most ``top_k`` results with score >= ``min_score``, descending
    by score. The sort is stable, so equal scores keep insertion order.
    """
    if top_k <= 0 or not chunks:
        return []

    if len(query_vector) != len(chunks[0].embedding):
        raise VectorStoreError(
            f"Query has {len(query_vector)} dimensions, store holds {len(chunks[0].embedding)}"
        )

    matrix = np.asarray([chunk.embedding for chunk in chunks], dtype=np.float32)
    scores = cosine_scores(query_vector, matrix)

    ranked = sorted(
        (
            (chunk, float(score))
            for chunk, score in zip(chunks, scores)
            if float(score) >= min_score
        ),
        key=lambda item: item[1],
        reverse=True,
    )
    return [ScoredChunk(chunk=chunk, score=score) for chunk, score in ranked[:top_k]]
