"""
Text embedding abstractions for pocket-rag.

Provides a protocol-based embedding interface with adapters:
- LocalEmbedding: WordPiece tokenizer + on-device sentence encoder
- OpenAIEmbedding: OpenAI API embeddings

Heavy dependencies (transformers, sentence-transformers, openai) are only
imported when an adapter is constructed.
"""

from pocket_rag.embeddings.local_embedding import LocalEmbedding
from pocket_rag.embeddings.model import (
    EmbeddingModel,
    ModelRunner,
    OutputSpec,
    SentenceTransformerRunner,
    is_zero_vector,
)
from pocket_rag.embeddings.openai_embedding import OpenAIEmbedding
from pocket_rag.embeddings.protocol import TextEmbedding
from pocket_rag.embeddings.tokenizer import WordPieceTokenizer

__all__ = [
    "TextEmbedding",
    "LocalEmbedding",
    "OpenAIEmbedding",
    "EmbeddingModel",
    "ModelRunner",
    "OutputSpec",
    "SentenceTransformerRunner",
    "WordPieceTokenizer",
    "is_zero_vector",
]
