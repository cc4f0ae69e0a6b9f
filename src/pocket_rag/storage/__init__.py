"""
Storage for semantic memory.

Provides the VectorStore protocol plus an in-memory store and a persisted
SQLAlchemy store. Both satisfy the protocol interface.
"""

from pocket_rag.storage.protocols import VectorStore
from pocket_rag.storage.vector import InMemoryVectorStore, SQLAlchemyVectorStore

__all__ = [
    "VectorStore",
    "InMemoryVectorStore",
    "SQLAlchemyVectorStore",
]
