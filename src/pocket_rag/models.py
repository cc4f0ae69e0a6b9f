import uuid
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class MemoryChunk(BaseModel):
    """A unit of stored text plus its embedding. Immutable once stored."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: str(uuid.uuid4()), description="Opaque chunk handle")
    text: str
    embedding: List[float]


class ScoredChunk(BaseModel):
    chunk: MemoryChunk
    score: float


class TaskType(str, Enum):
    QUESTION_ANSWERING = "question_answering"
    RETRIEVAL_QUERY = "retrieval_query"
    TRANSLATION = "translation"


class RetrievalRequest(BaseModel):
    query: str
    k: int = Field(default=3, ge=0, description="Number of chunks to retrieve (0 = no context)")
    score_threshold: float = Field(default=0.0, description="Minimum similarity score")
    task_type: TaskType = TaskType.QUESTION_ANSWERING


class RetrievalResult(BaseModel):
    """Retrieved chunks, descending by score, ties in insertion order."""

    entries: List[ScoredChunk] = Field(default_factory=list)

    @property
    def texts(self) -> List[str]:
        return [entry.chunk.text for entry in self.entries]

    @property
    def is_empty(self) -> bool:
        return not self.entries

    def __len__(self) -> int:
        return len(self.entries)


class BackendStatus(str, Enum):
    UNINITIALIZED = "uninitialized"
    INITIALIZING = "initializing"
    READY = "ready"
    FAILED = "failed"
    BUSY = "busy"


class BackendState(BaseModel):
    """Observable lifecycle state of the persistent inference backend."""

    model_config = ConfigDict(frozen=True)

    status: BackendStatus = BackendStatus.UNINITIALIZED
    reason: Optional[str] = Field(default=None, description="Failure reason (FAILED only)")

    @classmethod
    def failed(cls, reason: str) -> "BackendState":
        return cls(status=BackendStatus.FAILED, reason=reason)

    @property
    def is_failed(self) -> bool:
        return self.status == BackendStatus.FAILED


class GenerationMode(str, Enum):
    TEXT_ONLY = "text_only"
    MULTIMODAL = "multimodal"
