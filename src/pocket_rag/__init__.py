"""
pocket-rag: On-device retrieval-augmented generation.

Core components:
- embeddings: WordPiece tokenizer, sentence encoder and embedding adapters
- storage: Vector store protocol with in-memory and SQLAlchemy stores
- semantic_memory: Record and retrieve text chunks by similarity
- chain: Retrieval + prompt rendering + streamed inference
- backends: Inference backend protocols and llama.cpp implementations
- backend_manager: Serialised access to the model, multimodal fallback
- pipeline: The top-level application context
"""

__version__ = "0.1.0"

from pocket_rag.backend_manager import InferenceBackendManager
from pocket_rag.chain import RetrievalInferenceChain
from pocket_rag.config import PipelineConfig
from pocket_rag.images import RawImage
from pocket_rag.models import (
    BackendState,
    BackendStatus,
    GenerationMode,
    MemoryChunk,
    RetrievalRequest,
    RetrievalResult,
    ScoredChunk,
    TaskType,
)
from pocket_rag.pipeline import RagPipeline, build_pipeline
from pocket_rag.prompt import PromptTemplate
from pocket_rag.semantic_memory import SemanticMemory
from pocket_rag.streaming import CancellationToken, IncrementKind, ResponseAccumulator

__all__ = [
    "__version__",
    # Models
    "MemoryChunk",
    "ScoredChunk",
    "TaskType",
    "RetrievalRequest",
    "RetrievalResult",
    "BackendStatus",
    "BackendState",
    "GenerationMode",
    "RawImage",
    # Components
    "SemanticMemory",
    "PromptTemplate",
    "RetrievalInferenceChain",
    "InferenceBackendManager",
    "ResponseAccumulator",
    "IncrementKind",
    "CancellationToken",
    "PipelineConfig",
    "RagPipeline",
    "build_pipeline",
]
