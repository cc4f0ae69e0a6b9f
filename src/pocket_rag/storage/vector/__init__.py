"""Vector store implementations."""

from pocket_rag.storage.vector.memory import InMemoryVectorStore
from pocket_rag.storage.vector.sqlalchemy import SQLAlchemyVectorStore

__all__ = ["InMemoryVectorStore", "SQLAlchemyVectorStore"]
