"""OpenAI embedding adapter for pocket-rag."""

import asyncio
import logging
import os
from typing import List, Optional

logger = logging.getLogger(__name__)


class OpenAIEmbedding:
    """
    Embedding adapter using OpenAI's embedding API.

    Alternative to on-device embedding when the device has network access.
    Requests ``dimensions`` from the API so vectors fit the same store as the
    local encoder (text-embedding-3 models accept 512).

    Example:
        >>> embedder = OpenAIEmbedding(model="text-embedding-3-small", dimensions=512)
        >>> vector = await embedder.embed("fire extinguisher is in room 3")
        >>> len(vector)
        512
    """

    def __init__(
        self,
        model: str = "text-embedding-3-small",
        dimensions: int = 512,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: float = 30.0,
        max_retries: int = 3,
    ):
        """
        Initialize OpenAI embedder.

        Args:
            model: OpenAI model name (default: text-embedding-3-small)
            dimensions: Output dimension requested from the API
            api_key: OpenAI API key (None = use OPENAI_API_KEY env var)
            base_url: Custom endpoint (None = official OpenAI)
            timeout: Request timeout in seconds
            max_retries: Number of retry attempts for failed requests
        """
        try:
            from openai import OpenAI
        except ImportError as e:
            raise ImportError(
                "openai is required for OpenAIEmbedding. "
                "Install with: pip install pocket-rag[embeddings-openai]"
            ) from e

        self._model = model
        self._dimension = dimensions
        self._client = OpenAI(
            api_key=api_key or os.getenv("OPENAI_API_KEY"),
            base_url=base_url,
            timeout=timeout,
            max_retries=max_retries,
        )

        logger.info(f"OpenAI embedder initialized: {model} ({self._dimension} dimensions)")

    @property
    def dimension(self) -> int:
        return self._dimension

    @property
    def model_name(self) -> str:
        return self._model

    def _create(self, texts: List[str]) -> List[List[float]]:
        response = self._client.embeddings.create(
            model=self._model, input=texts, dimensions=self._dimension
        )
        # API preserves input order
        return [item.embedding for item in response.data]

    async def embed(self, text: str) -> List[float]:
        """
        Raises:
            ValueError: If text is empty
            openai.OpenAIError: If API request fails
        """
        if not text or not text.strip():
            raise ValueError("Cannot embed empty text")

        vectors = await asyncio.to_thread(self._create, [text])
        return vectors[0]

    async def embed_batch(self, texts: List[str]) -> List[List[float]]:
        if not texts:
            return []

        if any(not text or not text.strip() for text in texts):
            raise ValueError("Cannot embed empty texts in batch")

        return await asyncio.to_thread(self._create, texts)
