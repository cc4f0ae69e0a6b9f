import logging
from typing import List

from pocket_rag.embeddings import TextEmbedding, is_zero_vector
from pocket_rag.exceptions import EmbeddingFailure
from pocket_rag.models import MemoryChunk, RetrievalRequest, RetrievalResult
from pocket_rag.storage import VectorStore

logger = logging.getLogger(__name__)


class SemanticMemory:
    """
    Queryable semantic memory: embedding model + vector store.

    Exclusively owns its vector store. Recording a batch is all-or-nothing
    from the caller's point of view.
    """

    def __init__(self, embedding: TextEmbedding, store: VectorStore):
        if embedding.dimension != store.dimension:
            raise ValueError(
                f"Embedding dimension {embedding.dimension} does not match "
                f"store dimension {store.dimension}"
            )
        self.embedding = embedding
        self._store = store

    def count(self) -> int:
        return self._store.count()

    async def record(self, chunks: List[str]) -> List[str]:
        """
        Embed and store text chunks.

        Blank chunks are skipped. All chunks are embedded before any is
        stored, so a failure leaves the store unchanged.

        Returns:
            IDs of the stored chunks

        Raises:
            EmbeddingFailure: If the embedding stage raises
            VectorStoreError: If the embeddings don't fit the store
        """
        texts = [chunk.strip() for chunk in chunks if chunk and chunk.strip()]
        if not texts:
            return []

        try:
            vectors = await self.embedding.embed_batch(texts)
        except Exception as e:
            logger.error(f"Failed to embed {len(texts)} chunks: {e}")
            raise EmbeddingFailure(self.embedding.model_name, str(e)) from e

        if len(vectors) != len(texts):
            raise EmbeddingFailure(
                self.embedding.model_name,
                f"expected {len(texts)} vectors, got {len(vectors)}",
            )

        zero_count = sum(1 for vector in vectors if is_zero_vector(vector))
        if zero_count:
            logger.warning(f"{zero_count}/{len(texts)} chunks have zero embeddings")

        memory_chunks = [MemoryChunk(text=text, embedding=vector) for text, vector in zip(texts, vectors)]
        ids = self._store.add(memory_chunks)

        logger.info(f"Recorded {len(ids)} chunks (total {self._store.count()})")
        return ids

    async def retrieve(self, request: RetrievalRequest) -> RetrievalResult:
        """
        Retrieve the top-k chunks for a query.

        ``k == 0`` and an empty store both yield an empty result without
        embedding the query.
        """
        if request.k == 0 or self._store.count() == 0:
            return RetrievalResult()

        query_vector = await self.embedding.embed(request.query)
        entries = self._store.search(
            query_vector,
            top_k=request.k,
            min_score=request.score_threshold,
        )

        logger.debug(
            f"Retrieved {len(entries)} chunks for '{request.query[:50]}' "
            f"(k={request.k}, threshold={request.score_threshold})"
        )
        return RetrievalResult(entries=entries)
