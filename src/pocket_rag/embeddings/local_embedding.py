"""On-device embedding: WordPiece tokenizer + fixed-dimension embedding model."""

import asyncio
import logging
from typing import List

from pocket_rag.embeddings.model import EmbeddingModel, is_zero_vector
from pocket_rag.embeddings.tokenizer import WordPieceTokenizer

logger = logging.getLogger(__name__)


class LocalEmbedding:
    """
    TextEmbedding adapter running tokenizer and model on the local device.

    Inference is blocking, so it runs in a worker thread to keep the event
    loop (and any UI driven by it) responsive.

    Example:
        >>> tokenizer = WordPieceTokenizer(vocab_path="vocab.txt")
        >>> model = EmbeddingModel(SentenceTransformerRunner("..."), dimension=512)
        >>> embedder = LocalEmbedding(tokenizer, model)
        >>> vector = await embedder.embed("first aid kit is behind the desk")
        >>> len(vector)
        512
    """

    def __init__(self, tokenizer: WordPieceTokenizer, model: EmbeddingModel):
        self._tokenizer = tokenizer
        self._model = model

    @property
    def dimension(self) -> int:
        return self._model.dimension

    @property
    def model_name(self) -> str:
        return self._model.name

    def _embed_sync(self, text: str) -> List[float]:
        ids = self._tokenizer.tokenize(text)
        vector = self._model.embed(ids, self._tokenizer.attention_mask(ids))
        if is_zero_vector(vector):
            logger.warning(f"Zero embedding produced for: '{text[:50]}'")
        return vector

    def _embed_batch_sync(self, texts: List[str]) -> List[List[float]]:
        return [self._embed_sync(text) for text in texts]

    async def embed(self, text: str) -> List[float]:
        return await asyncio.to_thread(self._embed_sync, text)

    async def embed_batch(self, texts: List[str]) -> List[List[float]]:
        if not texts:
            return []
        vectors = await asyncio.to_thread(self._embed_batch_sync, texts)
        logger.debug(f"Embedded batch of {len(vectors)} texts")
        return vectors

    def close(self) -> None:
        self._model.close()
