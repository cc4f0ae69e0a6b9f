"""
Text embedding protocol for pocket-rag.

Provides a unified interface for embedding text into dense vectors
for semantic similarity search.
"""

from typing import List, Protocol

from typing_extensions import runtime_checkable


@runtime_checkable
class TextEmbedding(Protocol):
    """
    Protocol for text embedding providers.

    All implementations must:

    1. Return deterministic vectors for the same input
    2. Always return vectors of exactly ``dimension`` elements
    3. Implement async methods so blocking inference can run off the caller

    Example:
        >>> embedder = LocalEmbedding(tokenizer, model)
        >>> vector = await embedder.embed("Hello world")
        >>> len(vector) == embedder.dimension
        True
    """

    @property
    def dimension(self) -> int:
        """
        Vector dimension produced by this embedder.

        All vectors in a vector store must have the same dimension.
        """
        ...

    @property
    def model_name(self) -> str:
        """Identifier of the embedding model."""
        ...

    async def embed(self, text: str) -> List[float]:
        """
        Generate the embedding for one text.

        Args:
            text: Text to embed

        Returns:
            Embedding vector of length ``dimension``
        """
        ...

    async def embed_batch(self, texts: List[str]) -> List[List[float]]:
        """
        Generate embeddings for multiple texts.

        Args:
            texts: Texts to embed

        Returns:
            List of embedding vectors (same order as input)
        """
        ...
